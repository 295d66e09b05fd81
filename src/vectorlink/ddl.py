""" Data definition: creating, dropping, listing and describing schemas and
    entities. The :class:`Catalog` keeps the entity definitions it has seen,
    so that rows and queries can be validated locally before anything is
    sent to the remote engine.
"""

import logging
import threading

from .protocol import fields
from .protocol.model import EntityDefinition, EntityRef, SchemaRef


log = logging.getLogger(__name__)


def _schema(schema):
    if isinstance(schema, SchemaRef):
        return schema
    return SchemaRef(str(schema))


class Catalog:
    """ Schema and entity operations against one :class:`Session`. Every
        method blocks until the remote engine responds; *timeout* defaults
        to the session timeout.
    """

    def __init__(self, session):

        self.session = session
        self._definitions = dict()
        self._definitions_lock = threading.Lock()


    def create_schema(self, schema, timeout=None):
        schema = _schema(schema)
        self.session.request(fields.CREATE_SCHEMA, schema.name, timeout=timeout)
        log.debug('created schema %s', schema.name)
        return schema


    def drop_schema(self, schema, timeout=None):
        """ Drop the *schema* and every entity it contains. """

        schema = _schema(schema)
        self.session.request(fields.DROP_SCHEMA, schema.name, timeout=timeout)

        with self._definitions_lock:
            for entity in list(self._definitions):
                if entity.schema == schema:
                    del self._definitions[entity]

        log.debug('dropped schema %s', schema.name)


    def list_schemas(self, timeout=None):
        payload = self.session.request(fields.LIST_SCHEMAS, timeout=timeout)
        return [SchemaRef(name) for name in payload.value or ()]


    def create_entity(self, definition, timeout=None):
        """ Create the entity described by *definition*, an
            :class:`EntityDefinition`. The definition is remembered for
            local validation of later inserts and queries.
        """

        if not isinstance(definition, EntityDefinition):
            raise TypeError('expected an EntityDefinition, got ' + type(definition).__name__)

        entity = definition.entity
        self.session.request(fields.CREATE_ENTITY, entity.fqn, definition.to_dict(), timeout=timeout)

        with self._definitions_lock:
            self._definitions[entity] = definition

        log.debug('created entity %s', entity.fqn)
        return entity


    def drop_entity(self, entity, timeout=None):
        entity = EntityRef.parse(entity)
        self.session.request(fields.DROP_ENTITY, entity.fqn, timeout=timeout)

        with self._definitions_lock:
            self._definitions.pop(entity, None)

        log.debug('dropped entity %s', entity.fqn)


    def list_entities(self, schema, timeout=None):
        schema = _schema(schema)
        payload = self.session.request(fields.LIST_ENTITIES, schema.name, timeout=timeout)
        return [EntityRef.from_dict(entity) for entity in payload.value or ()]


    def known(self, entity):
        """ Return the locally known definition of *entity*, or None. No
            request is made.
        """

        entity = EntityRef.parse(entity)

        with self._definitions_lock:
            return self._definitions.get(entity)


    def describe(self, entity, refresh=False, timeout=None):
        """ Return the :class:`EntityDefinition` for *entity*, asking the
            remote engine only if it is not already known locally, or if
            *refresh* is True.
        """

        entity = EntityRef.parse(entity)

        if not refresh:
            definition = self.known(entity)
            if definition is not None:
                return definition

        payload = self.session.request(fields.DESCRIBE_ENTITY, entity.fqn, timeout=timeout)
        definition = EntityDefinition.from_dict(payload.value)

        with self._definitions_lock:
            self._definitions[entity] = definition

        return definition


    describe_entity = describe


    def forget(self, entity=None):
        """ Discard the local definition of *entity*, or all of them. """

        with self._definitions_lock:
            if entity is None:
                self._definitions.clear()
            else:
                self._definitions.pop(EntityRef.parse(entity), None)


# end of class Catalog


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
