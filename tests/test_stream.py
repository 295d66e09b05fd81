import pytest
import vectorlink

from vectorlink.protocol import fields
from vectorlink.protocol.model import ColumnDef, EntityDefinition, InsertRow, Type
from vectorlink.txn import State


@pytest.fixture
def sequence(client, schema):
    """ An entity with a monotonically increasing id column, so that the
        order rows were applied in can be observed.
    """

    columns = (ColumnDef('seq', Type.LONG), ColumnDef('label', Type.STRING, nullable=True))
    definition = EntityDefinition(schema + '.S', columns)
    client.create_entity(definition)
    return definition


def applied(client, engine, entity):
    """ Return the committed rows of *entity*, in the order the engine
        stored them.
    """

    table = engine._table(entity)
    return [row['seq'] for row in table.rows]


def test_stream_preserves_order(client, engine, sequence):

    entity = sequence.entity
    count = 500

    tx = client.begin()
    stream = tx.insert_stream()

    for seq in range(count):
        stream.send(InsertRow.of(entity, seq=seq))

    assert stream.count == count
    assert stream.finish() == count

    tx.commit()
    assert applied(client, engine, entity) == list(range(count))


def test_stream_context(client, engine, sequence):

    entity = sequence.entity

    with client.transaction() as tx:
        with tx.insert_stream() as stream:
            for seq in range(10):
                stream.send(InsertRow.of(entity, seq=seq, label=str(seq)))

    assert stream.closed
    assert tx.state is State.COMMITTED
    assert applied(client, engine, entity) == list(range(10))


def test_commit_refused_while_streaming(client, sequence):

    tx = client.begin()
    stream = tx.insert_stream()
    stream.send(InsertRow.of(sequence.entity, seq=0))

    with pytest.raises(vectorlink.InvalidStateError):
        tx.commit()

    assert stream.finish() == 1
    tx.commit()


def test_local_validation_has_row_index(client, engine, sequence):

    entity = sequence.entity

    tx = client.begin()
    stream = tx.insert_stream()

    stream.send(InsertRow.of(entity, seq=0))
    stream.send(InsertRow.of(entity, seq=1))

    with pytest.raises(vectorlink.ValidationError) as caught:
        stream.send(InsertRow.of(entity, seq='two'))

    assert caught.value.details['row'] == 2
    assert caught.value.details['transaction'] == tx.id

    # The bad row was not sent, and the stream carries on.

    stream.send(InsertRow.of(entity, seq=2))
    assert stream.finish() == 3

    tx.commit()
    assert applied(client, engine, entity) == [0, 1, 2]


def test_remote_rejection_has_row_index(client, engine, schema):

    strict = EntityDefinition(schema + '.R', (ColumnDef('seq', Type.LONG), ColumnDef('label', Type.STRING)))
    client.create_entity(strict)

    lenient = EntityDefinition(schema + '.R', (ColumnDef('seq', Type.LONG), ColumnDef('label', Type.STRING, nullable=True)))
    client.catalog._definitions[lenient.entity] = lenient

    tx = client.begin()
    stream = tx.insert_stream()

    stream.send(InsertRow.of(lenient.entity, seq=0, label='zero'))
    stream.send(InsertRow.of(lenient.entity, seq=1))

    with pytest.raises(vectorlink.RemoteError) as caught:
        stream.finish()

    assert caught.value.details['row'] == 1
    assert caught.value.details['column'] == 'label'
    assert caught.value.details['operation'] == fields.INSERT_STREAM

    # The caller decides what happens next.

    assert tx.state is State.ACTIVE
    tx.rollback()
    assert applied(client, engine, lenient.entity) == []


def test_abort(client, engine, sequence):

    entity = sequence.entity

    tx = client.begin()

    with pytest.raises(RuntimeError):
        with tx.insert_stream() as stream:
            stream.send(InsertRow.of(entity, seq=0))
            raise RuntimeError('source went away')

    assert stream.closed

    with pytest.raises(vectorlink.InvalidStateError):
        stream.send(InsertRow.of(entity, seq=1))

    with pytest.raises(vectorlink.InvalidStateError):
        stream.finish()

    # The transaction no longer waits on the stream.

    tx.rollback()
    assert tx.state is State.ROLLED_BACK


def test_rollback_aborts_streams(client, sequence):

    tx = client.begin()
    stream = tx.insert_stream()
    stream.send(InsertRow.of(sequence.entity, seq=0))

    tx.rollback()

    assert stream.closed
    assert tx.state is State.ROLLED_BACK


def test_finish_timeout(client, engine, sequence, monkeypatch):

    posted = list()
    post = client.session.post

    def recording(msg):
        posted.append(msg.msg_type)
        post(msg)

    monkeypatch.setattr(client.session, 'post', recording)

    tx = client.begin()
    stream = tx.insert_stream()
    stream.send(InsertRow.of(sequence.entity, seq=0))

    engine.stream_delay = 0.5

    try:
        with pytest.raises(vectorlink.TimeoutError):
            stream.finish(timeout=0.05)
    finally:
        engine.stream_delay = 0

    assert posted == [fields.ROW, fields.END, fields.CANCEL]
    assert stream.closed
    assert not tx.streams

    tx.rollback()
    assert tx.state is State.ROLLED_BACK


def test_early_failure_surfaces_on_send(client, engine, schema):

    strict = EntityDefinition(schema + '.X', (ColumnDef('seq', Type.LONG), ColumnDef('label', Type.STRING)))
    client.create_entity(strict)

    lenient = EntityDefinition(schema + '.X', (ColumnDef('seq', Type.LONG), ColumnDef('label', Type.STRING, nullable=True)))
    client.catalog._definitions[lenient.entity] = lenient

    tx = client.begin()
    stream = tx.insert_stream()

    stream.send(InsertRow.of(lenient.entity, seq=0, label='zero'))
    stream.send(InsertRow.of(lenient.entity, seq=1))

    # The engine gives up on the second row without waiting for the end.

    assert stream.pending.rep_event.wait(5)

    with pytest.raises(vectorlink.RemoteError) as caught:
        stream.send(InsertRow.of(lenient.entity, seq=2, label='two'))

    assert caught.value.details['row'] == 1
    assert caught.value.details['operation'] == fields.INSERT_STREAM
    assert stream.closed
    assert stream.count == 2
    assert not tx.streams

    tx.rollback()
    assert applied(client, engine, lenient.entity) == []


def test_streams_do_not_starve_requests(client, engine, sequence):

    entity = sequence.entity
    opened = list()

    for seq in range(engine.worker_count + 2):
        tx = client.begin()
        stream = tx.insert_stream()
        stream.send(InsertRow.of(entity, seq=seq))
        opened.append((tx, stream))

    # Every stream is open and idle; other requests still get through.

    assert isinstance(client.list_schemas(), list)

    with client.transaction() as other:
        other.insert(InsertRow.of(entity, seq=100))

    assert other.state is State.COMMITTED

    for tx, stream in opened:
        assert stream.finish() == 1
        tx.commit()

    assert sorted(applied(client, engine, entity)) == list(range(engine.worker_count + 2)) + [100]


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
