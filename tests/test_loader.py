import io
import numpy
import pytest
import vectorlink

from vectorlink.protocol.model import Literal, Type
from vectorlink.txn import State


feed = (
    'fca0132f519e71d1\tunused\t17\t0.5 0.25 0 1\n'
    '\n'
    '0b414f0e6e82cd0a\tunused\t18\t1 1 1 1\r\n'
)


def test_read_features():

    rows = list(vectorlink.loader.read_features(io.StringIO(feed), 'test.E'))

    assert len(rows) == 2
    assert rows[0].entity.fqn == 'test.E'
    assert rows[0].get('id') == Literal.string('fca0132f519e71d1')
    assert rows[0].get('feature').type is Type.FLOAT_VECTOR
    assert rows[0].get('feature').value == (0.5, 0.25, 0.0, 1.0)
    assert rows[1].get('feature').dimension == 4


def test_read_features_path(tmp_path):

    path = tmp_path / 'features.tsv'
    path.write_text(feed)

    rows = list(vectorlink.loader.read_features(str(path), 'test.E', id_column='key', vector_column='vector'))

    assert [row.columns for row in rows] == [('key', 'vector'), ('key', 'vector')]


def test_malformed_line():

    source = io.StringIO(feed + 'short\tline\n')

    with pytest.raises(vectorlink.ValidationError) as caught:
        list(vectorlink.loader.read_features(source, 'test.E'))

    assert caught.value.details['line'] == 4

    with pytest.raises(vectorlink.ValidationError):
        vectorlink.loader.parse_line('id\ta\tb\t0.5 x\n', 'test.E')


def test_random_vectors():

    vector = vectorlink.loader.random_vector(16)
    assert vector.shape == (16,)
    assert vector.dtype == numpy.float32
    assert ((vector >= 0) & (vector < 1)).all()

    vectors = vectorlink.loader.random_vectors(8, 5)
    assert vectors.shape == (5, 8)


def test_load_feed(client, schema):

    definition = vectorlink.loader.feature_entity(schema + '.F', 4)
    client.create_entity(definition)

    with client.transaction() as tx:
        with tx.insert_stream() as stream:
            for row in vectorlink.loader.read_features(io.StringIO(feed), definition.entity):
                stream.send(row)

    assert tx.state is State.COMMITTED
    assert stream.count == 2

    query = client.query(definition.entity).where(vectorlink.column('id').isin('fca0132f519e71d1', '0b414f0e6e82cd0a'))
    assert len(client.execute(query).all()) == 2


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
