"""Transport-agnostic session layer.

A :class:`Session` is a long-lived connection to one remote endpoint. It owns
the transport and nothing else: no schema, transaction or query state lives
here. Any number of threads may have requests outstanding on one session at
the same time; responses are tied back to their requests by message id.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Dict, Optional

from .. import config
from .. import errors
from ..protocol import fields
from ..protocol.message import Message, Payload, Request
from .base import Transport, TransportClosed


log = logging.getLogger(__name__)

_closed = object()


class PendingRequest:
    """Client-side helper that provides ACK/REP synchronization.

    The ACK and the final REP each set a one-shot :class:`threading.Event`;
    callers block on those events, never on a polled flag. Partial (PART)
    responses, and the final REP after them, are also queued in arrival
    order for callers consuming a multi-message response with :func:`next`.
    """

    def __init__(self, req: Request):
        self.req = req
        self.response: Optional[Message] = None
        self.failure: Optional[Exception] = None
        self.ack_event = threading.Event()
        self.rep_event = threading.Event()
        self._parts: queue.SimpleQueue = queue.SimpleQueue()

    @property
    def id(self) -> bytes:
        return self.req.msg_id

    @property
    def done(self) -> bool:
        return self.rep_event.is_set()

    def wait_ack(self, timeout: Optional[float]) -> bool:
        return self.ack_event.wait(timeout)

    def wait(self, timeout: Optional[float] = 60) -> Optional[Message]:
        """Block until the request has been handled. The response is
        returned; it is None if the request is still pending after
        *timeout* seconds.
        """

        self.rep_event.wait(timeout)
        if self.failure is not None:
            raise self.failure
        return self.response

    def next(self, timeout: Optional[float] = 60) -> Message:
        """Return the next PART, or the final REP, in arrival order.

        Raises TimeoutError if nothing arrives within *timeout* seconds.
        """

        try:
            msg = self._parts.get(timeout=timeout)
        except queue.Empty:
            raise errors.TimeoutError(
                f"{self.req.msg_type}: no response in {timeout:.2f} sec",
                details={"operation": self.req.msg_type},
            ) from None

        if msg is _closed:
            self._parts.put(_closed)
            raise self.failure

        return msg

    def _complete_ack(self) -> None:
        self.ack_event.set()

    def _complete_part(self, part: Message) -> None:
        self.ack_event.set()
        self._parts.put(part)

    def _complete(self, response: Message) -> None:
        self.response = response
        self._parts.put(response)
        self.ack_event.set()
        self.rep_event.set()

    def _fail(self, failure: Exception) -> None:
        self.failure = failure
        self._parts.put(_closed)
        self.ack_event.set()
        self.rep_event.set()


class Session:
    """Client-side request/response pattern logic for one endpoint.

    The *settings* default to :func:`vectorlink.config.get`. A *transport*
    can be supplied directly; otherwise a ZeroMQ client is opened against
    the configured endpoint. A Session is a context manager; leaving the
    block closes it.
    """

    def __init__(self, settings: Optional[config.Settings] = None, transport: Optional[Transport] = None):
        if settings is None:
            settings = config.get()

        self.settings = settings
        self.timeout = settings.timeout
        self.ack_timeout = settings.ack_timeout

        if transport is None:
            from .zmq.request import Client

            server_key = settings.server_key if settings.secure else None
            transport = Client(settings.address, settings.port, server_key)

        self.transport = transport
        self._pending: Dict[bytes, PendingRequest] = {}
        self._pending_lock = threading.Lock()

        transport.on_receive = self._handle_incoming
        transport.on_close = self._handle_close
        transport.open()

    def __repr__(self) -> str:
        return f"Session({self.settings.endpoint})"

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self.transport.is_open

    def close(self) -> None:
        self.transport.close()
        self._handle_close()

    def _handle_incoming(self, msg: Message) -> None:
        """Correlate incoming ACK/PART/REP to a PendingRequest."""

        with self._pending_lock:
            pending = self._pending.get(msg.msg_id)
            if pending is not None and msg.msg_type == fields.REP:
                del self._pending[msg.msg_id]

        if pending is None:
            log.debug("dropping %s for unknown request %r", msg.msg_type, msg.msg_id)
            return

        if msg.msg_type == fields.ACK:
            pending._complete_ack()
        elif msg.msg_type == fields.PART:
            pending._complete_part(msg)
        else:
            # REP (or error REP on version mismatch)
            pending._complete(msg)

    def _handle_close(self) -> None:
        with self._pending_lock:
            orphans = list(self._pending.values())
            self._pending.clear()

        for pending in orphans:
            pending._fail(TransportClosed(
                f"{pending.req.msg_type}: session closed with the request outstanding",
                details={"operation": pending.req.msg_type},
            ))

    def forget(self, pending: PendingRequest) -> None:
        """Stop tracking *pending*; any later response is dropped."""

        with self._pending_lock:
            self._pending.pop(pending.id, None)

    def send(self, request: Request) -> PendingRequest:
        """Send *request* and block until the remote side acknowledges it.

        Raises ConnectionError if no acknowledgement arrives within the
        configured ack timeout; the caller is free to decide whether to
        block for the full response.
        """

        pending = PendingRequest(request)
        with self._pending_lock:
            self._pending[pending.id] = pending

        try:
            self.transport.send(request)
        except errors.ConnectionError:
            self.forget(pending)
            raise

        log.debug("sent %s %s to %s", request.msg_type, request.target, self.settings.endpoint)

        ack = pending.wait_ack(self.ack_timeout)
        if not ack:
            self.forget(pending)
            raise errors.ConnectionError(
                f"{request.msg_type} @ {self.settings.endpoint}: no ACK in {self.ack_timeout:.2f} sec",
                details={"operation": request.msg_type},
            )

        if pending.failure is not None:
            raise pending.failure

        return pending

    def post(self, msg: Message) -> None:
        """Fire-and-forget transmission of a stream control message."""

        self.transport.send(msg)

    def wait(self, pending: PendingRequest, timeout: Optional[float] = None) -> Payload:
        """Block for the final response to *pending* and return its payload.

        Raises TimeoutError if the response does not arrive in time, and
        RemoteError if the response carries an error.
        """

        if timeout is None:
            timeout = self.timeout

        response = pending.wait(timeout)

        if response is None:
            self.forget(pending)
            raise errors.TimeoutError(
                f"{pending.req.msg_type}: no response in {timeout:.2f} sec",
                details={"operation": pending.req.msg_type},
            )

        return check(response, operation=pending.req.msg_type)

    def request(self, op: str, target: Optional[str] = None, value: Any = None, timeout: Optional[float] = None, **extra: Any) -> Payload:
        """Send a request for operation *op* and block until it completes.

        Returns the response payload.
        """

        request = Request(op, target, Payload(value, **extra))
        pending = self.send(request)
        return self.wait(pending, timeout)


def check(response: Message, **details: Any) -> Payload:
    """Return the payload of *response*, raising RemoteError if it carries
    an error.
    """

    payload = response.payload

    if payload is None:
        return Payload(value=None)

    if payload.error is not None:
        raise errors.from_payload(payload.error, **details)

    return payload
