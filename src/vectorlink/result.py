""" Consumption of query results. The engine answers a QUERY request with
    any number of PART messages, each carrying zero or more rows, followed
    by a single REP that marks the end of the results or reports a failure.
    A :class:`RowSequence` turns that series of messages into a lazy,
    single-pass iterator of :class:`ResultRow` instances.
"""

import logging

from . import errors
from .protocol import fields
from .protocol.message import Message, Payload, Request
from .protocol.model import QueryDescription, ResultRow


log = logging.getLogger(__name__)


def execute(session, description, transaction=None, timeout=None):
    """ Send the *description* over *session* and return a
        :class:`RowSequence` for the results. Only the acknowledgement is
        awaited here; rows are fetched as the sequence is consumed, with
        each fetch bounded by *timeout* seconds.
    """

    if not isinstance(description, QueryDescription):
        raise TypeError('expected a QueryDescription, got ' + type(description).__name__)

    target = None
    if transaction is not None:
        transaction.require_active(fields.QUERY)
        target = transaction.id

    request = Request(fields.QUERY, target, Payload(description.to_dict()))
    pending = session.send(request)

    if timeout is None:
        timeout = session.timeout

    return RowSequence(session, pending, description, timeout)


class RowSequence:
    """ A forward-only, finite sequence of result rows. It can be iterated
        exactly once; a second attempt raises :class:`InvalidStateError`.

        Rows are yielded in the order the engine produced them. If the
        engine fails after some rows were delivered, the :class:`RemoteError`
        is raised at that point in the iteration, and the rows already
        yielded remain valid; the number delivered is in the error details
        as 'rows_delivered'.

        Closing the sequence, directly or by leaving a with-block, before
        it is exhausted tells the engine to stop producing results.
    """

    def __init__(self, session, pending, description, timeout):

        self.session = session
        self.pending = pending
        self.description = description
        self.timeout = timeout
        self.delivered = 0
        self.started = False
        self.exhausted = False
        self.closed = False
        self._columns = None
        self._buffered = None


    def __repr__(self):
        return 'RowSequence(%s, delivered=%d)' % (self.description.entity.fqn, self.delivered)


    def __enter__(self):
        return self


    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


    def __iter__(self):
        if self.started:
            raise errors.InvalidStateError('result sequence can only be iterated once', details={'operation': fields.QUERY, 'rows_delivered': self.delivered})

        self.started = True
        return self._generate()


    @property
    def columns(self):
        """ The output column names, in order. Reading this before iterating
            waits for the first response from the engine.
        """

        if self._columns is None and not self.started and not self.closed:
            self._buffered = self._read()

        return self._columns


    def _read(self):
        """ Return the next message for this query, or None at the end. """

        if self.exhausted:
            return None

        try:
            msg = self.pending.next(self.timeout)
        except errors.TimeoutError:
            self.close()
            raise

        value = msg.value or dict()

        if self._columns is None and 'columns' in value:
            self._columns = tuple(value['columns'])

        if msg.msg_type == fields.PART:
            return msg

        self.exhausted = True
        self.closed = True

        if msg.error is not None:
            raise errors.from_payload(msg.error, operation=fields.QUERY, rows_delivered=self.delivered)

        if self._columns is None:
            self._columns = self._projected()

        log.debug('query on %s complete, %d rows', self.description.entity.fqn, self.delivered)
        return None


    def _projected(self):
        projection = self.description.projection
        if projection is None or projection.is_star:
            return None
        return projection.names


    def _generate(self):
        msg = self._buffered
        self._buffered = None

        while True:
            if msg is None:
                if self.closed:
                    return
                msg = self._read()
                if msg is None:
                    return

            rows = (msg.value or dict()).get('rows', ())

            if rows and self._columns is None:
                self._columns = self._projected()
                if self._columns is None:
                    self.close()
                    raise errors.RemoteError('engine sent rows without column names',
                        details={'operation': fields.QUERY, 'rows_delivered': self.delivered})

            for values in rows:
                if self.closed and not self.exhausted:
                    return
                row = ResultRow(self._columns, values)
                self.delivered += 1
                yield row

            msg = None


    def close(self):
        """ Release the results. If the engine has not finished producing
            them it is told to stop; any later messages are discarded.
        """

        if self.closed:
            return

        self.closed = True
        self.session.forget(self.pending)

        if self.pending.done:
            return

        cancel = Message(fields.CANCEL, None, Payload(None), self.pending.id)

        try:
            self.session.post(cancel)
        except errors.ConnectionError:
            log.debug('could not cancel query on %s', self.description.entity.fqn, exc_info=True)


    def all(self):
        """ Consume the sequence and return every row as a list. """

        return list(self)


    def first(self):
        """ Return the first row, or None if there are no results; the rest
            of the results are released.
        """

        try:
            for row in self:
                return row
            return None
        finally:
            self.close()


# end of class RowSequence


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
