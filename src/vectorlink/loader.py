""" Helpers for getting feature data into a vector store: a reader for the
    tab-separated feature files used to seed example entities, and random
    vector generators for synthetic loads and query vectors.

    A feature file has one row per line. The fields are separated by tabs:
    the first is the row identifier, the fourth holds the feature vector as
    space-separated floats, and the fields in between are ignored.
"""

import logging

import numpy

from .errors import ValidationError
from .protocol.model import ColumnDef, EntityDefinition, EntityRef, InsertRow, Literal, Type


log = logging.getLogger(__name__)

id_field = 0
feature_field = 3

_generator = numpy.random.default_rng()


def feature_entity(entity, dimension, id_column='id', vector_column='feature'):
    """ Return the :class:`EntityDefinition` of an entity suitable for
        holding the contents of a feature file: a non-nullable string
        identifier, and a non-nullable float vector of the given *dimension*.
    """

    entity = EntityRef.parse(entity)

    columns = (
        ColumnDef(id_column, Type.STRING),
        ColumnDef(vector_column, Type.FLOAT_VECTOR, dimension=dimension),
    )

    return EntityDefinition(entity, columns)



def parse_line(line, entity, id_column='id', vector_column='feature'):
    """ Return an :class:`InsertRow` for one line of a feature file. """

    fields = line.rstrip('\r\n').split('\t')

    if len(fields) <= feature_field:
        raise ValidationError('feature line has %d fields, expected at least %d' % (len(fields), feature_field + 1))

    try:
        feature = numpy.array(fields[feature_field].split(), dtype=numpy.float32)
    except ValueError as e:
        raise ValidationError('invalid feature vector: %s' % (e)) from None

    values = dict()
    values[id_column] = Literal.string(fields[id_field])
    values[vector_column] = Literal.vector(feature)

    return InsertRow(entity, values)



def read_features(source, entity, id_column='id', vector_column='feature'):
    """ Generate one :class:`InsertRow` per line of a feature file. The
        *source* is either a path or an open text file; a path is opened
        and closed here. Blank lines are skipped. A malformed line raises
        :class:`ValidationError` with the line number in its details.
    """

    entity = EntityRef.parse(entity)

    if hasattr(source, 'read'):
        yield from _read(source, entity, id_column, vector_column)
        return

    with open(source, 'r') as handle:
        yield from _read(handle, entity, id_column, vector_column)



def _read(handle, entity, id_column, vector_column):

    count = 0

    for number, line in enumerate(handle, 1):
        if line.strip() == '':
            continue

        try:
            row = parse_line(line, entity, id_column, vector_column)
        except ValidationError as e:
            e.details.setdefault('line', number)
            raise

        count += 1
        yield row

    log.debug('read %d feature rows for %s', count, entity.fqn)



def random_vector(dimension, dtype=numpy.float32):
    """ Return a random vector of the given *dimension*, with values drawn
        uniformly from [0, 1).
    """

    return _generator.random(dimension).astype(dtype)



def random_vectors(dimension, count, dtype=numpy.float32):
    """ Return *count* random vectors of the given *dimension*, one per row
        of a two-dimensional numpy array.
    """

    return _generator.random((count, dimension)).astype(dtype)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
