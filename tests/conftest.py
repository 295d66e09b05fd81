import os
import pytest
import uuid

import unitengine
import vectorlink


@pytest.fixture(scope="session", autouse=True)
def vectorlink_home(tmp_path_factory):

    # Keep the user's configuration and environment out of the tests.

    for variable in list(os.environ):
        if variable.startswith('VECTORLINK_'):
            del os.environ[variable]

    home = tmp_path_factory.mktemp('vectorlink')
    os.environ['VECTORLINK_HOME'] = str(home)
    vectorlink.config.clear()

    yield home

    vectorlink.config.clear()


@pytest.fixture(scope="session")
def engine(vectorlink_home):

    # Unlike the engine a real deployment talks to, this one runs in-process
    # on the first free port in the default range. It is ready as soon as
    # the constructor returns.

    server = unitengine.Engine(hostname='127.0.0.1')

    yield server

    server.close()


@pytest.fixture(scope="session")
def settings(engine):
    return vectorlink.config.load(address='127.0.0.1', port=engine.port, timeout=10.0)


@pytest.fixture
def client(settings):

    client = vectorlink.Client(settings)

    yield client

    client.close()


@pytest.fixture
def schema(client):
    """ A freshly created schema, unique to the test, dropped afterwards. """

    name = 'test_' + uuid.uuid4().hex[:8]
    client.create_schema(name)

    yield name

    client.drop_schema(name)


def feature_entity(client, schema, dimension=4, name='E'):
    definition = vectorlink.loader.feature_entity(schema + '.' + name, dimension)
    client.create_entity(definition)
    return definition


@pytest.fixture
def features(client, schema):
    """ The E(id: STRING, feature: FLOAT_VECTOR[4]) entity, empty. """

    return feature_entity(client, schema)

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
