""" Implementation of the top-level :func:`connect` method and the
    :class:`Client` it returns. This is intended to be the principal entry
    point for applications talking to a remote vector store.
"""

import atexit
import logging
import threading

from . import config
from . import result
from .ddl import Catalog
from .query import Query
from .transport.session import Session
from .txn import TransactionManager


log = logging.getLogger(__name__)

_cache = dict()
_cache_lock = threading.Lock()


class Client:
    """ Everything needed to work with one remote endpoint: schema and
        entity definition via :attr:`catalog`, transactions and inserts via
        :attr:`transactions`, and queries via :func:`query`.

        The *settings* default to :func:`vectorlink.config.get`; a ready
        *session* may be supplied instead. A Client is a context manager;
        leaving the block closes the session.
    """

    def __init__(self, settings=None, session=None):

        if session is None:
            session = Session(settings)

        self.session = session
        self.settings = session.settings
        self.catalog = Catalog(session)
        self.transactions = TransactionManager(session, self.catalog)


    def __repr__(self):
        return 'Client(%s)' % (self.settings.endpoint)


    def __enter__(self):
        return self


    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


    def close(self):
        _clear(self)
        self.session.close()


    # Data definition.

    def create_schema(self, schema, timeout=None):
        return self.catalog.create_schema(schema, timeout)


    def drop_schema(self, schema, timeout=None):
        return self.catalog.drop_schema(schema, timeout)


    def list_schemas(self, timeout=None):
        return self.catalog.list_schemas(timeout)


    def create_entity(self, definition, timeout=None):
        return self.catalog.create_entity(definition, timeout)


    def drop_entity(self, entity, timeout=None):
        return self.catalog.drop_entity(entity, timeout)


    def list_entities(self, schema, timeout=None):
        return self.catalog.list_entities(schema, timeout)


    def describe_entity(self, entity, refresh=False, timeout=None):
        return self.catalog.describe(entity, refresh, timeout)


    # Transactions.

    def begin(self, timeout=None):
        return self.transactions.begin(timeout)


    def transaction(self, timeout=None):
        """ Return a context manager that begins a transaction, commits it
            if the with-block completes, and rolls it back if the block
            raises. Without this helper nothing is ever rolled back
            automatically.
        """

        return self.transactions.transaction(timeout)


    # Queries.

    def query(self, entity):
        """ Start building a :class:`Query` against *entity*. If the entity
            definition is already known locally the query will be checked
            against it before it is sent.
        """

        return Query(entity, self.catalog.known(entity))


    def execute(self, query, transaction=None, timeout=None):
        """ Run *query*, either a :class:`Query` or a
            :class:`QueryDescription`, and return a lazy
            :class:`RowSequence` of the results.
        """

        if isinstance(query, Query):
            return query.execute(self.session, transaction, timeout)

        return result.execute(self.session, query, transaction, timeout)


# end of class Client



def _clear(client):
    """ Remove *client* from the cache, if it is there. """

    with _cache_lock:
        for key, cached in list(_cache.items()):
            if cached is client:
                del _cache[key]



def connect(address=None, port=None, **overrides):
    """ The :func:`connect` method is the primary entry point for all
        interactions with a remote vector store.

        The return value is a cached :class:`Client` for the requested
        endpoint; *address* and *port* default to the configured values,
        and any other keyword arguments override further settings such as
        the timeouts. If the caller always uses :func:`connect` they will
        always receive the same instance for the same endpoint, until that
        instance is closed.
    """

    settings = config.load(address=address, port=port, **overrides)
    key = settings.endpoint

    with _cache_lock:
        try:
            client = _cache[key]
        except KeyError:
            pass
        else:
            if client.session.is_open:
                return client
            del _cache[key]

        log.debug('connecting to %s', key)
        client = Client(settings)
        _cache[key] = client

    return client



def shutdown():
    """ Close every cached :class:`Client`. Registered to run at exit. """

    with _cache_lock:
        cached = list(_cache.values())
        _cache.clear()

    for client in cached:
        client.session.close()


atexit.register(shutdown)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
