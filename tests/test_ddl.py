import pytest
import vectorlink

from vectorlink.protocol.model import ColumnDef, EntityDefinition, EntityRef, SchemaRef, Type


def test_schemas(client, schema):

    schemas = client.list_schemas()
    assert SchemaRef(schema) in schemas

    # Creating the same schema twice is refused by the engine.

    with pytest.raises(vectorlink.RemoteError) as caught:
        client.create_schema(schema)

    assert caught.value.details['schema'] == schema
    assert caught.value.remote_type == 'EngineError'


def test_drop_schema(client):

    client.create_schema('dropme')
    client.drop_schema('dropme')

    assert SchemaRef('dropme') not in client.list_schemas()

    with pytest.raises(vectorlink.RemoteError):
        client.drop_schema('dropme')


def test_entities(client, schema):

    definition = vectorlink.loader.feature_entity(schema + '.E', 4)

    entity = client.create_entity(definition)
    assert entity == EntityRef('E', schema)
    assert client.catalog.known(entity) is definition

    assert client.list_entities(schema) == [entity]

    # Describing goes to the engine only when asked to refresh, or when the
    # definition is not known locally.

    described = client.describe_entity(entity.fqn, refresh=True)
    assert described == definition

    client.catalog.forget()
    assert client.catalog.known(entity) is None
    assert client.describe_entity(entity) == definition
    assert client.catalog.known(entity) == definition

    client.drop_entity(entity)
    assert client.list_entities(schema) == []
    assert client.catalog.known(entity) is None

    with pytest.raises(vectorlink.RemoteError):
        client.describe_entity(entity)


def test_create_entity_without_schema(client):

    definition = EntityDefinition('missing.E', (ColumnDef('id', Type.STRING),))

    with pytest.raises(vectorlink.RemoteError) as caught:
        client.create_entity(definition)

    assert caught.value.details['operation'] == 'CREATE_ENTITY'

    with pytest.raises(TypeError):
        client.create_entity('missing.E')


def test_drop_schema_forgets_entities(client):

    client.create_schema('forgetful')
    entity = client.create_entity(vectorlink.loader.feature_entity('forgetful.E', 2))
    assert client.catalog.known(entity) is not None

    client.drop_schema('forgetful')
    assert client.catalog.known(entity) is None


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
