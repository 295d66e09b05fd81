""" Python client for a remote vector similarity store. This includes schema
    and entity definition, transactional loading of rows, either one at a
    time or streamed, and construction and consumption of similarity and
    predicate queries.
"""

# Utility components.

from . import json
from . import errors
from . import config
home = config.directory

# Submodules used by multiple other components.

from . import protocol
from . import transport
from .protocol.model import (
    Column,
    ColumnDef,
    Direction,
    Distance,
    EntityDefinition,
    EntityRef,
    Function,
    InsertRow,
    Literal,
    ResultRow,
    SchemaRef,
    Type,
    and_,
    not_,
    or_,
)

from .errors import (
    ConnectionError,
    InvalidStateError,
    RemoteError,
    TimeoutError,
    ValidationError,
    VectorLinkError,
)

# Primary public-facing interfaces.

from . import ddl
from . import txn
from . import query
from . import result
from . import loader

from .transport.session import Session
from .query import Query, column
from .result import RowSequence
from .txn import Transaction, StreamHandle
from .client import Client, connect

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
