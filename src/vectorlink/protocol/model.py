""" The vocabulary exchanged with the remote engine: schemas, entities,
    columns, literals, predicates, projections, ordering, nearest neighbor
    clauses, query descriptions, insert rows and result rows.

    Every class here is an immutable value object. Each knows how to render
    itself as a JSON-friendly dictionary (:func:`to_dict`) and how to
    reconstruct itself from one (:func:`from_dict`); the payload of a
    protocol message is built from these dictionaries.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, Optional, Sequence, Tuple, Union

import numpy

from ..errors import ValidationError


class Type(enum.Enum):
    BOOLEAN = 'BOOLEAN'
    INTEGER = 'INTEGER'
    LONG = 'LONG'
    FLOAT = 'FLOAT'
    DOUBLE = 'DOUBLE'
    STRING = 'STRING'
    INT_VECTOR = 'INT_VECTOR'
    FLOAT_VECTOR = 'FLOAT_VECTOR'
    DOUBLE_VECTOR = 'DOUBLE_VECTOR'

    @property
    def is_vector(self) -> bool:
        return self in _vector_types

    @property
    def is_numeric(self) -> bool:
        return self in _numeric_types

    def compatible(self, other: 'Type') -> bool:
        """ Return True if a literal of type *other* can be stored in a
            column of this type.
        """

        if self is other:
            return True
        if self.is_vector:
            return other.is_vector
        if self.is_numeric:
            return other.is_numeric and not (self in _integral_types and other not in _integral_types)
        return False


_vector_types = frozenset((Type.INT_VECTOR, Type.FLOAT_VECTOR, Type.DOUBLE_VECTOR))
_integral_types = frozenset((Type.INTEGER, Type.LONG, Type.INT_VECTOR))
_numeric_types = frozenset((Type.INTEGER, Type.LONG, Type.FLOAT, Type.DOUBLE))


class Distance(enum.Enum):
    """ Distance functions understood by the engine. The values double as
        the function names usable in a projection.
    """

    L1 = 'manhattan'
    L2 = 'euclidean'
    L2SQUARED = 'squaredeuclidean'
    COSINE = 'cosine'
    CHISQUARED = 'chisquared'
    INNERPRODUCT = 'innerproduct'


def _enum(kind, value, what):
    if isinstance(value, kind):
        return value

    try:
        return kind[value]
    except KeyError:
        pass

    try:
        return kind(value)
    except ValueError:
        raise ValidationError('unknown %s: %r' % (what, value)) from None


def _name(value, what):
    if not isinstance(value, str) or value == '':
        raise ValidationError('%s name must be a non-empty string' % (what), details={'name': value})
    return value


###############################################################################
# Schemas, entities, columns.
###############################################################################

@dataclass(frozen=True)
class SchemaRef:
    """ Identifies a namespace of entities. """

    name: str

    def __post_init__(self) -> None:
        _name(self.name, 'schema')
        if '.' in self.name:
            raise ValidationError('schema name cannot contain a dot', details={'name': self.name})

    def __str__(self) -> str:
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name}

    @classmethod
    def from_dict(cls, data: Mapping) -> 'SchemaRef':
        return cls(data['name'])


@dataclass(frozen=True)
class EntityRef:
    """ Identifies a table-like container within a schema. The *schema* may
        be given as a plain string.
    """

    name: str
    schema: SchemaRef

    def __post_init__(self) -> None:
        _name(self.name, 'entity')
        if not isinstance(self.schema, SchemaRef):
            object.__setattr__(self, 'schema', SchemaRef(self.schema))

    def __str__(self) -> str:
        return self.fqn

    @property
    def fqn(self) -> str:
        return self.schema.name + '.' + self.name

    @classmethod
    def parse(cls, text: Union[str, 'EntityRef']) -> 'EntityRef':
        """ Accept 'schema.entity' and return the equivalent reference. """

        if isinstance(text, EntityRef):
            return text

        try:
            schema, name = str(text).split('.', 1)
        except ValueError:
            raise ValidationError('expected schema.entity, got %r' % (text,)) from None

        return cls(name, SchemaRef(schema))

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'schema': self.schema.name}

    @classmethod
    def from_dict(cls, data: Mapping) -> 'EntityRef':
        return cls(data['name'], SchemaRef(data['schema']))


@dataclass(frozen=True)
class ColumnDef:
    """ A single typed column. Vector columns must declare a positive fixed
        *dimension*; scalar columns must not declare one.
    """

    name: str
    type: Type
    nullable: bool = False
    dimension: Optional[int] = None

    def __post_init__(self) -> None:
        _name(self.name, 'column')
        object.__setattr__(self, 'type', _enum(Type, self.type, 'column type'))

        if self.type.is_vector:
            if self.dimension is None or int(self.dimension) <= 0:
                raise ValidationError('vector column requires a positive dimension', details={'column': self.name, 'dimension': self.dimension})
            object.__setattr__(self, 'dimension', int(self.dimension))
        elif self.dimension is not None:
            raise ValidationError('scalar column cannot declare a dimension', details={'column': self.name, 'dimension': self.dimension})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.type.value,
            'nullable': self.nullable,
            'dimension': self.dimension,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> 'ColumnDef':
        return cls(data['name'], data['type'], bool(data.get('nullable', False)), data.get('dimension'))


@dataclass(frozen=True)
class EntityDefinition:
    """ An entity and its ordered columns. Column names are unique. """

    entity: EntityRef
    columns: Tuple[ColumnDef, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, 'entity', EntityRef.parse(self.entity))
        columns = tuple(self.columns)
        object.__setattr__(self, 'columns', columns)

        if len(columns) == 0:
            raise ValidationError('an entity requires at least one column', details={'entity': self.entity.fqn})

        seen = set()
        for column in columns:
            if column.name in seen:
                raise ValidationError('duplicate column name', details={'entity': self.entity.fqn, 'column': column.name})
            seen.add(column.name)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    def column(self, name: str) -> ColumnDef:
        for column in self.columns:
            if column.name == name:
                return column

        raise ValidationError('unknown column', details={'entity': self.entity.fqn, 'column': name})

    def has_column(self, name: str) -> bool:
        return name in self.names

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity': self.entity.to_dict(),
            'columns': [column.to_dict() for column in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> 'EntityDefinition':
        entity = EntityRef.from_dict(data['entity'])
        columns = tuple(ColumnDef.from_dict(column) for column in data['columns'])
        return cls(entity, columns)


###############################################################################
# Literals.
###############################################################################

@dataclass(frozen=True)
class Literal:
    """ A tagged value. The *type* is None only for the null literal; vector
        values are stored as tuples so that literals stay hashable.
    """

    type: Optional[Type]
    value: Any

    def __post_init__(self) -> None:
        if self.type is None:
            if self.value is not None:
                raise ValidationError('untyped literal must be null', details={'value': self.value})
            return

        kind = _enum(Type, self.type, 'literal type')
        object.__setattr__(self, 'type', kind)
        object.__setattr__(self, 'value', _coerce(kind, self.value))

    @classmethod
    def null(cls) -> 'Literal':
        return cls(None, None)

    @classmethod
    def string(cls, value: str) -> 'Literal':
        return cls(Type.STRING, value)

    @classmethod
    def boolean(cls, value: bool) -> 'Literal':
        return cls(Type.BOOLEAN, value)

    @classmethod
    def integer(cls, value: int) -> 'Literal':
        return cls(Type.INTEGER, value)

    @classmethod
    def long(cls, value: int) -> 'Literal':
        return cls(Type.LONG, value)

    @classmethod
    def float(cls, value: float) -> 'Literal':
        return cls(Type.FLOAT, value)

    @classmethod
    def double(cls, value: float) -> 'Literal':
        return cls(Type.DOUBLE, value)

    @classmethod
    def vector(cls, values: Iterable[float], type: Type = Type.FLOAT_VECTOR) -> 'Literal':
        return cls(type, values)

    @classmethod
    def of(cls, value: Any) -> 'Literal':
        """ Infer a literal from a plain Python value. Sequences and numpy
            arrays of numbers become float vectors.
        """

        if isinstance(value, Literal):
            return value
        if value is None:
            return cls.null()
        if isinstance(value, (bool, numpy.bool_)):
            return cls(Type.BOOLEAN, value)
        if isinstance(value, (int, numpy.integer)):
            return cls(Type.LONG, value)
        if isinstance(value, (float, numpy.floating)):
            return cls(Type.DOUBLE, value)
        if isinstance(value, str):
            return cls(Type.STRING, value)
        if isinstance(value, (list, tuple, numpy.ndarray)):
            return cls(Type.FLOAT_VECTOR, value)

        raise ValidationError('cannot infer a literal type for %s' % (type(value).__name__))

    @property
    def is_null(self) -> bool:
        return self.type is None

    @property
    def dimension(self) -> Optional[int]:
        if self.type is not None and self.type.is_vector:
            return len(self.value)
        return None

    def check(self, column: ColumnDef) -> None:
        """ Raise :class:`ValidationError` if this literal cannot be stored
            in *column*: a null in a non-nullable column, an incompatible
            type, or a vector whose length differs from the declared
            dimension.
        """

        if self.is_null:
            if not column.nullable:
                raise ValidationError('null value for non-nullable column', details={'column': column.name})
            return

        if not column.type.compatible(self.type):
            raise ValidationError('type mismatch', details={'column': column.name, 'expected': column.type.value, 'actual': self.type.value})

        if column.type.is_vector and len(self.value) != column.dimension:
            raise ValidationError('vector dimension mismatch', details={'column': column.name, 'expected': column.dimension, 'actual': len(self.value)})

    def to_dict(self) -> Dict[str, Any]:
        if self.type is None:
            return {'type': None, 'value': None}

        value = self.value
        if self.type.is_vector:
            value = list(value)

        return {'type': self.type.value, 'value': value}

    @classmethod
    def from_dict(cls, data: Mapping) -> 'Literal':
        return cls(data.get('type'), data.get('value'))


def _coerce(kind, value):

    if value is None:
        raise ValidationError('typed literal cannot be null; use Literal.null()', details={'type': kind.value})

    if kind.is_vector:
        dtype = numpy.int64 if kind is Type.INT_VECTOR else numpy.float64

        try:
            array = numpy.asarray(value, dtype=dtype)
        except (TypeError, ValueError) as e:
            raise ValidationError('invalid vector literal: %s' % (e), details={'type': kind.value}) from None

        if array.ndim != 1 or array.size == 0:
            raise ValidationError('vector literal must be a non-empty flat sequence', details={'type': kind.value, 'shape': list(array.shape)})

        return tuple(array.tolist())

    try:
        if kind is Type.STRING:
            if not isinstance(value, str):
                raise TypeError('expected a string')
            return value
        if kind is Type.BOOLEAN:
            return bool(value)
        if kind in (Type.INTEGER, Type.LONG):
            if isinstance(value, (float, numpy.floating)) and not float(value).is_integer():
                raise TypeError('expected an integral value')
            return int(value)
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError('invalid %s literal: %s' % (kind.value, e), details={'value': repr(value)}) from None


def literal(value: Any) -> Literal:
    return Literal.of(value)


###############################################################################
# Insert rows.
###############################################################################

@dataclass(frozen=True)
class InsertRow:
    """ One row destined for *entity*. *values* maps column names to
        literals; plain Python values are converted with :func:`Literal.of`.
        Internally the mapping is kept as an ordered tuple of pairs.
    """

    entity: EntityRef
    values: Tuple[Tuple[str, Literal], ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, 'entity', EntityRef.parse(self.entity))

        values = self.values
        if isinstance(values, Mapping):
            values = values.items()

        pairs = list()
        seen = set()

        for column, value in values:
            _name(column, 'column')
            if column in seen:
                raise ValidationError('duplicate column in insert row', details={'column': column})
            seen.add(column)
            pairs.append((column, Literal.of(value)))

        if len(pairs) == 0:
            raise ValidationError('insert row has no values', details={'entity': self.entity.fqn})

        object.__setattr__(self, 'values', tuple(pairs))

    @classmethod
    def of(cls, entity: Union[str, EntityRef], **values: Any) -> 'InsertRow':
        return cls(EntityRef.parse(entity), values)

    @property
    def columns(self) -> Tuple[str, ...]:
        return tuple(column for column, _value in self.values)

    def get(self, column: str) -> Optional[Literal]:
        for name, value in self.values:
            if name == column:
                return value
        return None

    def validate(self, definition: EntityDefinition) -> None:
        """ Check this row against the entity *definition*: every column
            must exist, every non-nullable column must be supplied, and
            every literal must fit its column.
        """

        for column, value in self.values:
            value.check(definition.column(column))

        supplied = set(self.columns)
        for column in definition.columns:
            if column.name not in supplied and not column.nullable:
                raise ValidationError('missing value for non-nullable column', details={'column': column.name})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity': self.entity.to_dict(),
            'values': {column: value.to_dict() for column, value in self.values},
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> 'InsertRow':
        values = [(column, Literal.from_dict(value)) for column, value in data['values'].items()]
        return cls(EntityRef.from_dict(data['entity']), tuple(values))


###############################################################################
# Predicates. A predicate is either an Atomic comparison against a column,
# or a Compound boolean combination of other predicates.
###############################################################################

class Operator(enum.Enum):
    EQUAL = 'EQUAL'
    GREATER = 'GREATER'
    LESS = 'LESS'
    GEQUAL = 'GEQUAL'
    LEQUAL = 'LEQUAL'
    IN = 'IN'
    BETWEEN = 'BETWEEN'
    LIKE = 'LIKE'
    ISNULL = 'ISNULL'


# Allowed operand counts for each operator, as (minimum, maximum).

_arity = {
    Operator.EQUAL: (1, 1),
    Operator.GREATER: (1, 1),
    Operator.LESS: (1, 1),
    Operator.GEQUAL: (1, 1),
    Operator.LEQUAL: (1, 1),
    Operator.LIKE: (1, 1),
    Operator.IN: (1, None),
    Operator.BETWEEN: (2, 2),
    Operator.ISNULL: (0, 0),
}


class Connective(enum.Enum):
    AND = 'AND'
    OR = 'OR'
    NOT = 'NOT'


class _Combinable:

    def __and__(self, other):
        return and_(self, other)

    def __or__(self, other):
        return or_(self, other)

    def __invert__(self):
        return not_(self)


@dataclass(frozen=True)
class Atomic(_Combinable):
    """ Compare *column* against the *operands* with *operator*. A negated
        atomic predicate matches exactly the rows the plain one does not.
    """

    column: str
    operator: Operator
    operands: Tuple[Literal, ...] = ()
    negated: bool = False

    kind = 'atomic'

    def __post_init__(self) -> None:
        _name(self.column, 'column')
        operator = _enum(Operator, self.operator, 'operator')
        object.__setattr__(self, 'operator', operator)

        operands = tuple(Literal.of(operand) for operand in self.operands)
        object.__setattr__(self, 'operands', operands)

        minimum, maximum = _arity[operator]
        count = len(operands)

        if count < minimum or (maximum is not None and count > maximum):
            raise ValidationError('wrong number of operands for %s' % (operator.value), details={'column': self.column, 'operands': count})

        if operator is Operator.LIKE and operands[0].type is not Type.STRING:
            raise ValidationError('LIKE requires a string pattern', details={'column': self.column})

    def __invert__(self):
        return Atomic(self.column, self.operator, self.operands, not self.negated)

    def columns(self) -> Tuple[str, ...]:
        return (self.column,)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'column': self.column,
            'operator': self.operator.value,
            'operands': [operand.to_dict() for operand in self.operands],
            'negated': self.negated,
        }


@dataclass(frozen=True)
class Compound(_Combinable):
    """ Combine predicates: AND and OR take two or more, NOT exactly one. """

    op: Connective
    operands: Tuple['Predicate', ...]

    kind = 'compound'

    def __post_init__(self) -> None:
        op = _enum(Connective, self.op, 'connective')
        object.__setattr__(self, 'op', op)

        operands = tuple(self.operands)
        object.__setattr__(self, 'operands', operands)

        for operand in operands:
            if not isinstance(operand, (Atomic, Compound)):
                raise ValidationError('%s operand is not a predicate: %r' % (op.value, operand))

        if op is Connective.NOT:
            if len(operands) != 1:
                raise ValidationError('NOT takes exactly one predicate', details={'operands': len(operands)})
        elif len(operands) < 2:
            raise ValidationError('%s takes at least two predicates' % (op.value), details={'operands': len(operands)})

    def columns(self) -> Tuple[str, ...]:
        found = list()
        for operand in self.operands:
            for column in operand.columns():
                if column not in found:
                    found.append(column)
        return tuple(found)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'op': self.op.value,
            'operands': [operand.to_dict() for operand in self.operands],
        }


Predicate = Union[Atomic, Compound]


def predicate_from_dict(data: Mapping) -> Predicate:
    kind = data.get('kind')

    if kind == Atomic.kind:
        operands = tuple(Literal.from_dict(operand) for operand in data.get('operands', ()))
        return Atomic(data['column'], data['operator'], operands, bool(data.get('negated', False)))

    if kind == Compound.kind:
        operands = tuple(predicate_from_dict(operand) for operand in data['operands'])
        return Compound(data['op'], operands)

    raise ValidationError('unknown predicate kind: %r' % (kind,))


def _flatten(op, predicates):
    # Nested connectives of the same kind collapse into one level.

    flat = list()
    for predicate in predicates:
        if isinstance(predicate, Compound) and predicate.op is op:
            flat.extend(predicate.operands)
        else:
            flat.append(predicate)
    return tuple(flat)


def and_(*predicates: Predicate) -> Predicate:
    if len(predicates) == 1:
        return predicates[0]
    return Compound(Connective.AND, _flatten(Connective.AND, predicates))


def or_(*predicates: Predicate) -> Predicate:
    if len(predicates) == 1:
        return predicates[0]
    return Compound(Connective.OR, _flatten(Connective.OR, predicates))


def not_(predicate: Predicate) -> Predicate:
    return Compound(Connective.NOT, (predicate,))


class Column:
    """ Convenience builder for atomic predicates on a named column::

            Column('id').isin('a', 'b') & Column('size').gt(3)
    """

    def __init__(self, name: str):
        self.name = _name(name, 'column')

    def __repr__(self) -> str:
        return 'Column(%r)' % (self.name)

    def _atomic(self, operator, *operands, negated=False):
        return Atomic(self.name, operator, operands, negated)

    def eq(self, value):
        return self._atomic(Operator.EQUAL, value)

    def ne(self, value):
        return self._atomic(Operator.EQUAL, value, negated=True)

    def gt(self, value):
        return self._atomic(Operator.GREATER, value)

    def ge(self, value):
        return self._atomic(Operator.GEQUAL, value)

    def lt(self, value):
        return self._atomic(Operator.LESS, value)

    def le(self, value):
        return self._atomic(Operator.LEQUAL, value)

    def isin(self, *values):
        return self._atomic(Operator.IN, *values)

    def between(self, lower, upper):
        return self._atomic(Operator.BETWEEN, lower, upper)

    def like(self, pattern):
        return self._atomic(Operator.LIKE, pattern)

    def isnull(self):
        return self._atomic(Operator.ISNULL)

    def notnull(self):
        return self._atomic(Operator.ISNULL, negated=True)


# end of class Column


###############################################################################
# Projection and ordering.
###############################################################################

STAR = '*'


@dataclass(frozen=True)
class Function:
    """ A computed projection: the function *name* applied to *arguments*,
        each of which is either a column name or a :class:`Literal`.
    """

    name: str
    arguments: Tuple[Union[str, Literal], ...] = ()

    def __post_init__(self) -> None:
        _name(self.name, 'function')
        arguments = list()
        for argument in self.arguments:
            if isinstance(argument, str):
                arguments.append(argument)
            else:
                arguments.append(Literal.of(argument))
        object.__setattr__(self, 'arguments', tuple(arguments))

    @classmethod
    def distance(cls, column: str, query: Iterable[float], distance: Distance = Distance.L2) -> 'Function':
        distance = _enum(Distance, distance, 'distance')
        return cls(distance.value, (column, Literal.vector(query)))

    def to_dict(self) -> Dict[str, Any]:
        arguments = list()
        for argument in self.arguments:
            if isinstance(argument, Literal):
                arguments.append({'literal': argument.to_dict()})
            else:
                arguments.append({'column': argument})
        return {'name': self.name, 'arguments': arguments}

    @classmethod
    def from_dict(cls, data: Mapping) -> 'Function':
        arguments = list()
        for argument in data.get('arguments', ()):
            if 'literal' in argument:
                arguments.append(Literal.from_dict(argument['literal']))
            else:
                arguments.append(argument['column'])
        return cls(data['name'], tuple(arguments))


@dataclass(frozen=True)
class ProjectionElement:

    source: Union[str, Function]
    alias: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.source, Function):
            _name(self.source, 'column')
        if self.alias is not None:
            _name(self.alias, 'alias')

    @property
    def output_name(self) -> str:
        if self.alias is not None:
            return self.alias
        if isinstance(self.source, Function):
            return self.source.name
        return self.source

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.source, Function):
            source = {'function': self.source.to_dict()}
        else:
            source = {'column': self.source}
        return {'source': source, 'alias': self.alias}

    @classmethod
    def from_dict(cls, data: Mapping) -> 'ProjectionElement':
        source = data['source']
        if 'function' in source:
            source = Function.from_dict(source['function'])
        else:
            source = source['column']
        return cls(source, data.get('alias'))


@dataclass(frozen=True)
class Projection:
    """ Ordered output columns. Insertion order is the output column order,
        and output names must be unique.
    """

    elements: Tuple[ProjectionElement, ...]

    def __post_init__(self) -> None:
        elements = tuple(self.elements)
        object.__setattr__(self, 'elements', elements)

        if len(elements) == 0:
            raise ValidationError('projection is empty')

        seen = set()
        for element in elements:
            name = element.output_name
            if name in seen:
                raise ValidationError('duplicate output name in projection', details={'name': name})
            seen.add(name)

    @classmethod
    def of(cls, *items: Union[str, Tuple[Any, str], Function, ProjectionElement]) -> 'Projection':
        """ Build a projection from column names, functions, existing
            elements, or (source, alias) pairs.
        """

        elements = list()
        for item in items:
            if isinstance(item, ProjectionElement):
                elements.append(item)
            elif isinstance(item, tuple):
                source, alias = item
                elements.append(ProjectionElement(source, alias))
            else:
                elements.append(ProjectionElement(item))
        return cls(tuple(elements))

    @classmethod
    def star(cls) -> 'Projection':
        return cls((ProjectionElement(STAR),))

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(element.output_name for element in self.elements)

    @property
    def is_star(self) -> bool:
        return self.names == (STAR,)

    def to_dict(self) -> Dict[str, Any]:
        return {'elements': [element.to_dict() for element in self.elements]}

    @classmethod
    def from_dict(cls, data: Mapping) -> 'Projection':
        return cls(tuple(ProjectionElement.from_dict(element) for element in data['elements']))


class Direction(enum.Enum):
    ASC = 'ASC'
    DESC = 'DESC'


@dataclass(frozen=True)
class OrderComponent:

    column: str
    direction: Direction = Direction.ASC

    def __post_init__(self) -> None:
        _name(self.column, 'column')
        object.__setattr__(self, 'direction', _enum(Direction, self.direction, 'direction'))

    def to_dict(self) -> Dict[str, Any]:
        return {'column': self.column, 'direction': self.direction.value}


@dataclass(frozen=True)
class OrderSpec:
    """ Ordering criteria; earlier components take precedence on ties. """

    components: Tuple[OrderComponent, ...]

    def __post_init__(self) -> None:
        components = tuple(self.components)
        object.__setattr__(self, 'components', components)

        if len(components) == 0:
            raise ValidationError('order specification is empty')

    @classmethod
    def of(cls, *items: Union[str, Tuple[str, Any], OrderComponent]) -> 'OrderSpec':
        components = list()
        for item in items:
            if isinstance(item, OrderComponent):
                components.append(item)
            elif isinstance(item, tuple):
                components.append(OrderComponent(*item))
            else:
                components.append(OrderComponent(item))
        return cls(tuple(components))

    def __add__(self, other: 'OrderSpec') -> 'OrderSpec':
        return OrderSpec(self.components + other.components)

    def columns(self) -> Tuple[str, ...]:
        return tuple(component.column for component in self.components)

    def to_dict(self) -> Dict[str, Any]:
        return {'components': [component.to_dict() for component in self.components]}

    @classmethod
    def from_dict(cls, data: Mapping) -> 'OrderSpec':
        return cls(tuple(OrderComponent(c['column'], c['direction']) for c in data['components']))


###############################################################################
# Nearest neighbor search and the complete query description.
###############################################################################

@dataclass(frozen=True)
class KnnSpec:
    """ Rank rows by the *distance* between *column* and the *query* vector,
        keeping the *k* closest. The computed distance is available in the
        result under *alias*.
    """

    column: str
    query: Tuple[float, ...]
    k: int
    distance: Distance = Distance.L2
    alias: str = 'distance'

    def __post_init__(self) -> None:
        _name(self.column, 'column')
        _name(self.alias, 'alias')
        object.__setattr__(self, 'distance', _enum(Distance, self.distance, 'distance'))

        query = Literal.vector(self.query).value
        object.__setattr__(self, 'query', query)

        if isinstance(self.k, bool) or not isinstance(self.k, (int, numpy.integer)) or self.k <= 0:
            raise ValidationError('k must be a positive integer', details={'k': self.k})
        object.__setattr__(self, 'k', int(self.k))

    @property
    def dimension(self) -> int:
        return len(self.query)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'column': self.column,
            'query': list(self.query),
            'k': self.k,
            'distance': self.distance.value,
            'alias': self.alias,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> 'KnnSpec':
        return cls(data['column'], tuple(data['query']), data['k'], data.get('distance', Distance.L2), data.get('alias', 'distance'))


def _count(value, what):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, numpy.integer)) or value < 0:
        raise ValidationError('%s must be a non-negative integer' % (what), details={what: value})
    return int(value)


@dataclass(frozen=True)
class QueryDescription:
    """ Everything the engine needs to run one query. A scan of *entity* is
        mandatory; all other clauses are optional.

        When *knn* is present the results are ordered by the computed
        distance, ascending, and capped at knn.k; an explicit *limit* can
        only restrict that further. An explicit *order* is applied as a
        secondary ordering after the distance.
    """

    entity: EntityRef
    predicate: Optional[Predicate] = None
    projection: Optional[Projection] = None
    order: Optional[OrderSpec] = None
    knn: Optional[KnnSpec] = None
    limit: Optional[int] = None
    skip: Optional[int] = None

    def __post_init__(self) -> None:
        if self.entity is None:
            raise ValidationError('a query requires an entity to scan')

        object.__setattr__(self, 'entity', EntityRef.parse(self.entity))
        object.__setattr__(self, 'limit', _count(self.limit, 'limit'))
        object.__setattr__(self, 'skip', _count(self.skip, 'skip'))

        if self.predicate is not None and not isinstance(self.predicate, (Atomic, Compound)):
            raise ValidationError('predicate must be Atomic or Compound')

    @property
    def effective_limit(self) -> Optional[int]:
        """ The maximum number of rows this query can produce. """

        caps = [cap for cap in (self.limit, self.knn.k if self.knn else None) if cap is not None]
        if not caps:
            return None
        return min(caps)

    @property
    def effective_order(self) -> Optional[OrderSpec]:
        """ The complete ordering: the knn distance first, if any, then the
            explicit order as a tie-breaker.
        """

        if self.knn is None:
            return self.order

        distance = OrderSpec((OrderComponent(self.knn.alias, Direction.ASC),))
        if self.order is None:
            return distance
        return distance + self.order

    def validate(self, definition: EntityDefinition) -> None:
        """ Check the query against a locally known entity *definition*. """

        if definition.entity != self.entity:
            raise ValidationError('definition is for a different entity', details={'entity': self.entity.fqn, 'definition': definition.entity.fqn})

        if self.predicate is not None:
            for column in self.predicate.columns():
                definition.column(column)

        if self.knn is not None:
            column = definition.column(self.knn.column)
            if not column.type.is_vector:
                raise ValidationError('knn column is not a vector column', details={'column': column.name, 'type': column.type.value})
            if column.dimension != self.knn.dimension:
                raise ValidationError('knn query vector dimension mismatch', details={'column': column.name, 'expected': column.dimension, 'actual': self.knn.dimension})

        # Besides the stored columns, the distance alias can be read back
        # and ordered on.

        known = set(definition.names)
        if self.knn is not None:
            known.add(self.knn.alias)

        referenced = list()

        if self.projection is not None and not self.projection.is_star:
            for element in self.projection.elements:
                if isinstance(element.source, Function):
                    referenced.extend(argument for argument in element.source.arguments if isinstance(argument, str))
                else:
                    referenced.append(element.source)

        if self.order is not None:
            referenced.extend(component.column for component in self.order.components)

        for name in referenced:
            if name not in known:
                raise ValidationError('unknown column', details={'entity': self.entity.fqn, 'column': name})

    def to_dict(self) -> Dict[str, Any]:
        query = {'entity': self.entity.to_dict()}

        if self.predicate is not None:
            query['predicate'] = self.predicate.to_dict()
        if self.projection is not None:
            query['projection'] = self.projection.to_dict()
        if self.order is not None:
            query['order'] = self.order.to_dict()
        if self.knn is not None:
            query['knn'] = self.knn.to_dict()
        if self.limit is not None:
            query['limit'] = self.limit
        if self.skip is not None:
            query['skip'] = self.skip

        return query

    @classmethod
    def from_dict(cls, data: Mapping) -> 'QueryDescription':
        predicate = data.get('predicate')
        projection = data.get('projection')
        order = data.get('order')
        knn = data.get('knn')

        return cls(
            EntityRef.from_dict(data['entity']),
            predicate_from_dict(predicate) if predicate is not None else None,
            Projection.from_dict(projection) if projection is not None else None,
            OrderSpec.from_dict(order) if order is not None else None,
            KnnSpec.from_dict(knn) if knn is not None else None,
            data.get('limit'),
            data.get('skip'),
        )


###############################################################################
# Result rows.
###############################################################################

class ResultRow(Mapping):
    """ An immutable, ordered mapping from projected output name to value.
        Vector values are tuples. Values can also be retrieved by position
        with :func:`at`.
    """

    __slots__ = ('_names', '_values', '_index')

    def __init__(self, names: Sequence[str], values: Sequence[Any]):

        names = tuple(names)
        values = tuple(_freeze(value) for value in values)

        if len(names) != len(values):
            raise ValueError('row has %d values for %d columns' % (len(values), len(names)))

        object.__setattr__(self, '_names', names)
        object.__setattr__(self, '_values', values)
        object.__setattr__(self, '_index', {name: position for position, name in enumerate(names)})


    def __setattr__(self, name, value):
        raise AttributeError('ResultRow instances are read-only')


    def __getitem__(self, key: str) -> Any:
        return self._values[self._index[key]]


    def __iter__(self) -> Iterator[str]:
        return iter(self._names)


    def __len__(self) -> int:
        return len(self._names)


    def __eq__(self, other: object) -> bool:
        if isinstance(other, ResultRow):
            return self._names == other._names and self._values == other._values
        return Mapping.__eq__(self, other)


    def __hash__(self) -> int:
        return hash((self._names, self._values))


    def __repr__(self) -> str:
        fields = ', '.join('%s=%r' % pair for pair in zip(self._names, self._values))
        return 'ResultRow(' + fields + ')'


    def at(self, position: int) -> Any:
        return self._values[position]


    def as_tuple(self) -> Tuple[Any, ...]:
        return self._values


# end of class ResultRow


def _freeze(value):
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
