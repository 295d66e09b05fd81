""" Fluent, immutable construction of queries. Every method on a
    :class:`Query` returns a new instance; the original is never changed, so
    a partially built query can be shared and extended in several ways::

        base = Query('shop.items').where(Column('price').lt(10))
        cheapest = base.order_by('price').limit(5)
        similar = base.knn('feature', vector, k=10)

    Nothing is sent until :func:`Query.execute`.
"""

import dataclasses
import logging

from . import result
from .protocol.model import Column, Distance, EntityRef, KnnSpec, OrderSpec, Projection, QueryDescription, and_


log = logging.getLogger(__name__)


class Query:
    """ A query against one *entity*. If a *definition* for the entity is
        supplied, :func:`description` checks column names and the knn vector
        dimension against it before anything is sent.
    """

    def __init__(self, entity, definition=None, _description=None):

        if _description is None:
            _description = QueryDescription(EntityRef.parse(entity))

        self._description = _description
        self.definition = definition


    def __repr__(self):
        return 'Query(%s)' % (self._description.to_dict(),)


    def __eq__(self, other):
        if not isinstance(other, Query):
            return NotImplemented
        return self._description == other._description


    def __hash__(self):
        return hash(self._description)


    @property
    def entity(self):
        return self._description.entity


    def _replace(self, **changes):
        description = dataclasses.replace(self._description, **changes)
        return Query(None, self.definition, description)


    def where(self, predicate):
        """ Restrict the rows to those satisfying *predicate*. Calling
            :func:`where` again combines the predicates with AND.
        """

        current = self._description.predicate
        if current is not None:
            predicate = and_(current, predicate)

        return self._replace(predicate=predicate)


    def select(self, *items):
        """ Choose the output columns. Each item is a column name, the
            ``'*'`` wildcard, a :class:`Function`, or a ``(source, alias)``
            pair.
        """

        if len(items) == 1 and isinstance(items[0], Projection):
            projection = items[0]
        else:
            projection = Projection.of(*items)

        return self._replace(projection=projection)


    def order_by(self, *items):
        """ Order by one or more columns, each a name or a
            ``(name, direction)`` pair. When a nearest neighbor search is
            also present this order only breaks ties in distance.
        """

        if len(items) == 1 and isinstance(items[0], OrderSpec):
            order = items[0]
        else:
            order = OrderSpec.of(*items)

        return self._replace(order=order)


    def knn(self, column, query, k, distance=Distance.L2, alias='distance'):
        """ Keep the *k* rows whose *column* is closest to the *query*
            vector. Results are ordered by ascending distance, which is
            reported in the output column named *alias*.
        """

        return self._replace(knn=KnnSpec(column, query, k, distance, alias))


    def limit(self, count):
        return self._replace(limit=count)


    def skip(self, count):
        return self._replace(skip=count)


    def description(self):
        """ Return the validated :class:`QueryDescription`. Raises
            :class:`ValidationError` if the query is malformed, or does not
            fit the locally known entity definition.
        """

        description = self._description

        if self.definition is not None:
            description.validate(self.definition)

        return description


    def execute(self, session, transaction=None, timeout=None):
        """ Send the query over *session* and return a lazy
            :class:`RowSequence` of the results. If a *transaction* is given
            the query also sees that transaction's pending writes.
        """

        return result.execute(session, self.description(), transaction, timeout)


# end of class Query



def column(name):
    """ Shorthand for :class:`Column`, for use in predicates. """

    return Column(name)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
