""" This is a super-simple in-memory vector engine to act as a foil for any
    client-facing unit tests. It is started in-process by the engine()
    fixture defined in conftest.py, and answers on an automatically chosen
    port.

    It understands every request the client can send, keeps committed rows
    per entity and pending writes per transaction, and evaluates queries
    with brute-force scans. Two attributes let tests provoke failures:
    *fail_after* makes the next query fail once that many rows have been
    delivered, and *delay* holds query results back for that many seconds.
"""

import re
import threading
import time
import uuid

import numpy

from vectorlink.protocol import fields
from vectorlink.protocol.message import Payload
from vectorlink.protocol.model import Compound, EntityDefinition, EntityRef, Function, InsertRow, Literal, Operator, QueryDescription
from vectorlink.transport.zmq.request import Server


class EngineError(Exception):

    def __init__(self, message, **details):
        Exception.__init__(self, message)
        self.details = details


# end of class EngineError



class Table:

    def __init__(self, definition):
        self.definition = definition
        self.rows = list()


# end of class Table



class Engine(Server):

    batch_size = 3

    def __init__(self, *args, **kwargs):

        self.schemas = dict()
        self.transactions = dict()
        self.lock = threading.Lock()
        self.received = list()

        self.fail_after = None
        self.delay = 0
        self.stream_delay = 0

        handlers = dict()
        handlers[fields.CREATE_SCHEMA] = self.create_schema
        handlers[fields.DROP_SCHEMA] = self.drop_schema
        handlers[fields.LIST_SCHEMAS] = self.list_schemas
        handlers[fields.CREATE_ENTITY] = self.create_entity
        handlers[fields.DROP_ENTITY] = self.drop_entity
        handlers[fields.LIST_ENTITIES] = self.list_entities
        handlers[fields.DESCRIBE_ENTITY] = self.describe_entity
        handlers[fields.BEGIN] = self.begin
        handlers[fields.COMMIT] = self.commit
        handlers[fields.ROLLBACK] = self.rollback
        handlers[fields.INSERT] = self.insert
        handlers[fields.QUERY] = self.query
        self.handlers = handlers

        Server.__init__(self, *args, **kwargs)


    def count(self, msg_type):
        """ Return how many requests of *msg_type* have been received. """

        with self.lock:
            return self.received.count(msg_type)


    def req_handler(self, request):
        with self.lock:
            self.received.append(request.msg_type)

        handler = self.handlers[request.msg_type]
        value = request.payload.value if request.payload is not None else None
        return handler(request, request.target, value)


    def stream_handler(self, request, rows):
        with self.lock:
            self.received.append(request.msg_type)

        writes = self._transaction(request.target)
        count = 0

        for msg in rows:
            seq = getattr(msg.payload, 'seq', count)

            try:
                write = self._check(InsertRow.from_dict(msg.payload.value))
            except EngineError as e:
                e.details['row'] = seq
                raise

            with self.lock:
                writes.append(write)
            count += 1

        if self.stream_delay:
            time.sleep(self.stream_delay)

        return Payload({'count': count})


    # Schemas and entities.

    def _schema(self, name):
        try:
            return self.schemas[name]
        except KeyError:
            raise EngineError('schema does not exist', schema=name) from None


    def _table(self, entity):
        entity = EntityRef.parse(entity)
        tables = self._schema(entity.schema.name)

        try:
            return tables[entity.name]
        except KeyError:
            raise EngineError('entity does not exist', entity=entity.fqn) from None


    def create_schema(self, request, target, value):
        with self.lock:
            if target in self.schemas:
                raise EngineError('schema already exists', schema=target)
            self.schemas[target] = dict()


    def drop_schema(self, request, target, value):
        with self.lock:
            self._schema(target)
            del self.schemas[target]


    def list_schemas(self, request, target, value):
        with self.lock:
            return Payload(sorted(self.schemas))


    def create_entity(self, request, target, value):
        definition = EntityDefinition.from_dict(value)
        entity = definition.entity

        with self.lock:
            tables = self._schema(entity.schema.name)
            if entity.name in tables:
                raise EngineError('entity already exists', entity=entity.fqn)
            tables[entity.name] = Table(definition)


    def drop_entity(self, request, target, value):
        entity = EntityRef.parse(target)

        with self.lock:
            self._table(entity)
            del self.schemas[entity.schema.name][entity.name]


    def list_entities(self, request, target, value):
        with self.lock:
            tables = self._schema(target)
            entities = [table.definition.entity.to_dict() for table in tables.values()]

        return Payload(entities)


    def describe_entity(self, request, target, value):
        with self.lock:
            return Payload(self._table(target).definition.to_dict())


    # Transactions and inserts.

    def _transaction(self, txid):
        with self.lock:
            try:
                return self.transactions[txid]
            except KeyError:
                raise EngineError('unknown transaction', transaction=txid) from None


    def _check(self, row):
        """ Validate *row* against its entity, returning the (entity, values)
            pair that is eventually written.
        """

        with self.lock:
            definition = self._table(row.entity).definition

        values = dict()

        for column in definition.columns:
            literal = row.get(column.name)

            if literal is None or literal.is_null:
                if not column.nullable:
                    raise EngineError('null value for non-nullable column', column=column.name)
                values[column.name] = None
                continue

            if not column.type.compatible(literal.type):
                raise EngineError('type mismatch', column=column.name)
            if column.type.is_vector and len(literal.value) != column.dimension:
                raise EngineError('vector dimension mismatch', column=column.name)

            values[column.name] = literal.value

        for column in row.columns:
            if not definition.has_column(column):
                raise EngineError('unknown column', column=column)

        return (row.entity, values)


    def begin(self, request, target, value):
        txid = uuid.uuid4().hex

        with self.lock:
            self.transactions[txid] = list()

        return Payload(txid)


    def commit(self, request, target, value):
        writes = self._transaction(target)

        with self.lock:
            for entity, values in writes:
                self._table(entity).rows.append(values)
            del self.transactions[target]


    def rollback(self, request, target, value):
        self._transaction(target)

        with self.lock:
            del self.transactions[target]


    def insert(self, request, target, value):
        writes = self._transaction(target)
        write = self._check(InsertRow.from_dict(value))

        with self.lock:
            writes.append(write)


    # Queries.

    def query(self, request, target, value):
        description = QueryDescription.from_dict(value)
        entity = description.entity

        with self.lock:
            table = self._table(entity)
            definition = table.definition
            rows = list(table.rows)

            if target is not None:
                if target not in self.transactions:
                    raise EngineError('unknown transaction', transaction=target)
                rows.extend(values for written, values in self.transactions[target] if written == entity)

        if description.predicate is not None:
            rows = [row for row in rows if matches(description.predicate, row)]

        knn = description.knn
        if knn is not None:
            ranked = list()
            for row in rows:
                vector = row.get(knn.column)
                if vector is None:
                    continue
                row = dict(row)
                row[knn.alias] = distance(knn.distance.value, vector, knn.query)
                ranked.append(row)
            rows = ranked

        order = description.effective_order
        if order is not None:
            for component in reversed(order.components):
                descending = component.direction.value == 'DESC'
                rows.sort(key=lambda row: sort_key(row.get(component.column)), reverse=descending)

        if description.skip:
            rows = rows[description.skip:]

        cap = description.effective_limit
        if cap is not None:
            rows = rows[:cap]

        columns, rows = project(description, definition, rows)

        fail_after = self.fail_after
        self.fail_after = None

        if self.delay:
            time.sleep(self.delay)

        deliver = rows if fail_after is None else rows[:fail_after]

        for start in range(0, len(deliver), self.batch_size):
            batch = deliver[start:start + self.batch_size]
            self.part(request, Payload({'columns': columns, 'rows': batch}))

        if fail_after is not None and fail_after < len(rows):
            raise EngineError('query failed during execution', delivered=fail_after)

        return Payload({'count': len(rows), 'columns': columns})


# end of class Engine



def matches(predicate, row):

    if isinstance(predicate, Compound):
        results = [matches(operand, row) for operand in predicate.operands]
        op = predicate.op.value
        if op == 'AND':
            return all(results)
        if op == 'OR':
            return any(results)
        return not results[0]

    value = row.get(predicate.column)
    operands = [operand.value for operand in predicate.operands]
    operator = predicate.operator

    if operator is Operator.ISNULL:
        result = value is None
    elif value is None:
        result = False
    elif operator is Operator.EQUAL:
        result = value == operands[0]
    elif operator is Operator.GREATER:
        result = value > operands[0]
    elif operator is Operator.LESS:
        result = value < operands[0]
    elif operator is Operator.GEQUAL:
        result = value >= operands[0]
    elif operator is Operator.LEQUAL:
        result = value <= operands[0]
    elif operator is Operator.IN:
        result = value in operands
    elif operator is Operator.BETWEEN:
        result = operands[0] <= value <= operands[1]
    elif operator is Operator.LIKE:
        result = like(operands[0]).fullmatch(value) is not None
    else:
        raise EngineError('unsupported operator', operator=operator.value)

    if predicate.negated:
        return not result
    return result



def like(pattern):
    expression = ''
    for character in pattern:
        if character == '%':
            expression += '.*'
        elif character == '_':
            expression += '.'
        else:
            expression += re.escape(character)
    return re.compile(expression, re.DOTALL)



def sort_key(value):
    # Nulls sort first in ascending order.
    return (value is not None, value if value is not None else 0)



def distance(name, a, b):

    a = numpy.asarray(a, dtype=numpy.float64)
    b = numpy.asarray(b, dtype=numpy.float64)

    if a.shape != b.shape:
        raise EngineError('vector dimension mismatch', expected=a.size, actual=b.size)

    if name == 'manhattan':
        result = numpy.abs(a - b).sum()
    elif name == 'euclidean':
        result = numpy.sqrt(numpy.square(a - b).sum())
    elif name == 'squaredeuclidean':
        result = numpy.square(a - b).sum()
    elif name == 'cosine':
        norm = numpy.linalg.norm(a) * numpy.linalg.norm(b)
        result = 1.0 if norm == 0 else 1.0 - a.dot(b) / norm
    elif name == 'chisquared':
        total = a + b
        mask = total != 0
        result = (numpy.square(a - b)[mask] / total[mask]).sum()
    elif name == 'innerproduct':
        result = a.dot(b)
    else:
        raise EngineError('unknown function', function=name)

    return float(result)



def project(description, definition, rows):
    """ Return the output column names and the rows as lists of values. """

    projection = description.projection
    knn = description.knn

    if projection is None or projection.is_star:
        names = list(definition.names)
        if knn is not None:
            names.append(knn.alias)
        output = [[row.get(name) for name in names] for row in rows]
        return names, [[_plain(value) for value in values] for values in output]

    names = list(projection.names)
    output = list()

    for row in rows:
        values = list()
        for element in projection.elements:
            source = element.source
            if isinstance(source, Function):
                values.append(evaluate(source, row))
            else:
                if source not in row and not definition.has_column(source):
                    raise EngineError('unknown column', column=source)
                values.append(_plain(row.get(source)))
        output.append(values)

    return names, output



def evaluate(function, row):
    arguments = list()
    for argument in function.arguments:
        if isinstance(argument, Literal):
            arguments.append(argument.value)
        else:
            arguments.append(row.get(argument))

    if len(arguments) != 2 or None in arguments:
        return None

    return distance(function.name, arguments[0], arguments[1])



def _plain(value):
    if isinstance(value, tuple):
        return list(value)
    return value


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
