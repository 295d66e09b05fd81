"""Protocol constants.

Keep these in one place to avoid stringly-typed message handling.
"""

# Responses and stream control.

ACK = "ACK"         # receipt of a request
REP = "REP"         # final response; may carry an error
PART = "PART"       # partial response, one batch of result rows
ROW = "ROW"         # one row of a streaming insert
END = "END"         # no more rows on a streaming insert
CANCEL = "CANCEL"   # abandon an open stream

# Data definition.

CREATE_SCHEMA = "CREATE_SCHEMA"
DROP_SCHEMA = "DROP_SCHEMA"
LIST_SCHEMAS = "LIST_SCHEMAS"
CREATE_ENTITY = "CREATE_ENTITY"
DROP_ENTITY = "DROP_ENTITY"
LIST_ENTITIES = "LIST_ENTITIES"
DESCRIBE_ENTITY = "DESCRIBE_ENTITY"

# Transactions and data manipulation.

BEGIN = "BEGIN"
COMMIT = "COMMIT"
ROLLBACK = "ROLLBACK"
INSERT = "INSERT"
INSERT_STREAM = "INSERT_STREAM"

# Queries.

QUERY = "QUERY"


REQUESTS = frozenset((
    CREATE_SCHEMA, DROP_SCHEMA, LIST_SCHEMAS,
    CREATE_ENTITY, DROP_ENTITY, LIST_ENTITIES, DESCRIBE_ENTITY,
    BEGIN, COMMIT, ROLLBACK, INSERT, INSERT_STREAM,
    QUERY,
))

RESPONSES = frozenset((ACK, REP, PART))

STREAM = frozenset((ROW, END, CANCEL))
