""" Explicit transactions, and the two ways of loading rows into one:
    buffered inserts, acknowledged one row at a time, and streaming
    inserts, where rows flow without a per-row round trip and a single
    acknowledgement covers the whole batch.

    The manager never rolls back on its own. If an insert fails, the caller
    decides whether to retry the row, carry on, or call :func:`rollback`.
"""

import contextlib
import enum
import logging
import threading

from . import errors
from .protocol import fields
from .protocol.message import Message, Payload, Request
from .protocol.model import InsertRow


log = logging.getLogger(__name__)


class State(enum.Enum):
    ACTIVE = 'ACTIVE'
    COMMITTED = 'COMMITTED'
    ROLLED_BACK = 'ROLLED_BACK'


class Transaction:
    """ A unit of atomic, isolated write visibility. A transaction starts
        ACTIVE and makes exactly one terminal transition, to COMMITTED or
        ROLLED_BACK; any operation attempted afterwards raises
        :class:`InvalidStateError`.

        Operations against one transaction must be serialized by the
        caller; the lock here only protects the state transition itself.
    """

    def __init__(self, id, manager):

        self.id = id
        self.manager = manager
        self.state = State.ACTIVE
        self.streams = set()
        self._state_lock = threading.Lock()


    def __repr__(self):
        return 'Transaction(%s, %s)' % (self.id, self.state.value)


    def __enter__(self):
        return self


    def __exit__(self, exc_type, exc_value, traceback):
        if self.state is not State.ACTIVE:
            return

        if exc_type is None:
            self.commit()
        else:
            self.rollback()


    @property
    def active(self):
        return self.state is State.ACTIVE


    def require_active(self, operation):
        if self.state is not State.ACTIVE:
            raise errors.InvalidStateError('transaction is %s' % (self.state.value), details={'transaction': self.id, 'operation': operation})


    def _finish(self, state, operation):
        with self._state_lock:
            self.require_active(operation)
            self.state = state

        log.debug('transaction %s %s', self.id, state.value)


    def insert(self, row, timeout=None):
        return self.manager.insert(self, row, timeout)


    def insert_stream(self):
        return self.manager.insert_stream(self)


    def commit(self, timeout=None):
        return self.manager.commit(self, timeout)


    def rollback(self, timeout=None):
        return self.manager.rollback(self, timeout)


# end of class Transaction



class StreamHandle:
    """ An open streaming insert bound to one transaction. Rows handed to
        :func:`send` are transmitted immediately and in order, without
        waiting for the engine; :func:`finish` marks the end of the batch
        and blocks until the engine acknowledges the whole of it.

        Used as a context manager, leaving the block normally finishes the
        stream and leaving it with an exception aborts it.

        :ivar count: The number of rows sent so far.
    """

    def __init__(self, manager, transaction, pending):

        self.manager = manager
        self.session = manager.session
        self.transaction = transaction
        self.pending = pending
        self.count = 0
        self.closed = False


    def __repr__(self):
        return 'StreamHandle(%s, rows=%d)' % (self.transaction.id, self.count)


    def __enter__(self):
        return self


    def __exit__(self, exc_type, exc_value, traceback):
        if self.closed:
            return

        if exc_type is None:
            self.finish()
        else:
            self.abort()


    def _control(self, msg_type, value=None, **extra):
        msg = Message(msg_type, self.transaction.id, Payload(value, **extra), self.pending.id)
        self.session.post(msg)


    def _require_open(self, operation):
        if self.closed:
            raise errors.InvalidStateError('stream is closed', details={'transaction': self.transaction.id, 'operation': operation})
        self.transaction.require_active(operation)


    def send(self, row):
        """ Queue *row* for transmission and return immediately. Local
            validation failures raise :class:`ValidationError` with the
            index of the offending row; nothing is sent for that row. If
            the engine has already given up on the stream its error is
            raised here rather than waiting for :func:`finish`.
        """

        self._require_open(fields.ROW)

        if self.pending.done:
            self.closed = True
            self._release()
            self.session.wait(self.pending, 0)
            raise errors.InvalidStateError('stream was ended by the engine', details={'transaction': self.transaction.id, 'row': self.count})

        try:
            row = self.manager._prepare(row)
        except errors.ValidationError as e:
            e.details.setdefault('row', self.count)
            e.details.setdefault('transaction', self.transaction.id)
            raise

        self._control(fields.ROW, row.to_dict(), seq=self.count)
        self.count += 1


    def finish(self, timeout=None):
        """ Signal that no more rows follow, and block until the engine
            acknowledges the batch. Returns the number of rows the engine
            applied. Raises :class:`RemoteError` if the engine rejected any
            row, with the row index in the error details, or
            :class:`TimeoutError` if *timeout* expires first.
        """

        self._require_open(fields.END)
        self.closed = True

        try:
            self._control(fields.END, count=self.count)
            payload = self.session.wait(self.pending, timeout)
        except errors.TimeoutError:
            self._abandon()
            raise
        finally:
            self._release()

        value = payload.value or dict()
        applied = value.get('count', self.count)
        log.debug('stream on transaction %s finished, %d rows', self.transaction.id, applied)
        return applied


    def abort(self):
        """ Abandon the stream without waiting for completion. Rows already
            sent may or may not have been applied; roll the transaction
            back to be certain.
        """

        if self.closed:
            return

        self.closed = True
        self._abandon()
        self._release()


    def _abandon(self):
        self.session.forget(self.pending)

        try:
            self._control(fields.CANCEL)
        except errors.ConnectionError:
            log.debug('could not cancel stream on transaction %s', self.transaction.id, exc_info=True)


    def _release(self):
        self.transaction.streams.discard(self)


# end of class StreamHandle



class TransactionManager:
    """ Begin, commit and roll back transactions over one session, and
        insert rows into them. Rows are validated against the entity
        definitions known to *catalog* before they are sent.
    """

    def __init__(self, session, catalog):

        self.session = session
        self.catalog = catalog


    def _prepare(self, row):
        if not isinstance(row, InsertRow):
            raise TypeError('expected an InsertRow, got ' + type(row).__name__)

        definition = self.catalog.describe(row.entity)
        row.validate(definition)
        return row


    def begin(self, timeout=None):
        """ Start a new transaction and return it. Raises
            :class:`ConnectionError` if the engine cannot be reached.
        """

        payload = self.session.request(fields.BEGIN, timeout=timeout)
        transaction = Transaction(payload.value, self)
        log.debug('transaction %s ACTIVE', transaction.id)
        return transaction


    def insert(self, transaction, row, timeout=None):
        """ Send one row under *transaction* and block until the engine
            acknowledges it. The row joins the transaction's pending writes;
            it is not durable until :func:`commit`.
        """

        transaction.require_active(fields.INSERT)
        row = self._prepare(row)

        try:
            self.session.request(fields.INSERT, transaction.id, row.to_dict(), timeout=timeout)
        except errors.RemoteError as e:
            e.details.setdefault('transaction', transaction.id)
            e.details.setdefault('entity', row.entity.fqn)
            raise


    def insert_stream(self, transaction):
        """ Open a streaming insert under *transaction* and return the
            :class:`StreamHandle` used to feed it.
        """

        transaction.require_active(fields.INSERT_STREAM)

        request = Request(fields.INSERT_STREAM, transaction.id, Payload(None))
        pending = self.session.send(request)

        handle = StreamHandle(self, transaction, pending)
        transaction.streams.add(handle)
        log.debug('stream opened on transaction %s', transaction.id)
        return handle


    def commit(self, transaction, timeout=None):
        """ Make every write under *transaction* durable and visible. If the
            commit fails the transaction stays ACTIVE, and the caller should
            roll it back.
        """

        transaction.require_active(fields.COMMIT)

        if transaction.streams:
            raise errors.InvalidStateError('transaction has open insert streams', details={'transaction': transaction.id, 'streams': len(transaction.streams)})

        self.session.request(fields.COMMIT, transaction.id, timeout=timeout)
        transaction._finish(State.COMMITTED, fields.COMMIT)


    def rollback(self, transaction, timeout=None):
        """ Discard every write under *transaction*. This is best effort: if
            the engine cannot be told, the failure is logged, and the
            transaction is considered rolled back locally regardless.
        """

        transaction.require_active(fields.ROLLBACK)

        for handle in list(transaction.streams):
            handle.abort()

        try:
            self.session.request(fields.ROLLBACK, transaction.id, timeout=timeout)
        except (errors.ConnectionError, errors.TimeoutError, errors.RemoteError) as e:
            log.warning('rollback of transaction %s not confirmed: %s', transaction.id, e)

        transaction._finish(State.ROLLED_BACK, fields.ROLLBACK)


    @contextlib.contextmanager
    def transaction(self, timeout=None):
        """ Begin a transaction for the duration of a with-block; commit it
            if the block completes, roll it back if the block raises.
        """

        transaction = self.begin(timeout)

        try:
            yield transaction
        except BaseException:
            if transaction.active:
                transaction.rollback()
            raise

        if transaction.active:
            transaction.commit(timeout)


# end of class TransactionManager


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
