"""ZeroMQ request/response transport.

A ROUTER/DEALER request channel. The :class:`Client` is the client-side
transport used by :class:`vectorlink.transport.session.Session`; the
:class:`Server` is the engine-side counterpart, subclassed by anything that
answers vectorlink requests.

Only the background I/O thread of a :class:`Client` or :class:`Server`
touches its ZeroMQ socket. Other threads hand messages to that thread via a
queue, and wake it through an inproc PAIR socket.
"""

from __future__ import annotations

import concurrent.futures
import logging
import queue
import socket as pysocket
import sys
import threading
import traceback
from typing import Callable, Dict, Iterator, Optional, Set, Tuple

import zmq

from ...protocol import fields
from ...protocol.message import Message, Payload, Request
from ..base import Transport, TransportClosed, TransportPortError
from .framing import from_frames, to_frames


log = logging.getLogger(__name__)

minimum_port = 10079
maximum_port = 13679
zmq_context = zmq.Context()


class Client(Transport):
    """Issue requests via a ZeroMQ DEALER socket and receive responses.

    Maintains a persistent connection to a single server; the *address*
    and *port* number must be specified. If *server_key* is given the
    channel is encrypted with CURVE, using a freshly generated client key
    pair.
    """

    def __init__(self, address: str, port: int, server_key: Optional[str] = None):
        self.address = address
        self.port = int(port)
        self.server_key = server_key

        self.on_receive: Optional[Callable[[Message], None]] = None
        self.on_close: Optional[Callable[[], None]] = None

        self.socket = None
        self._outbox: queue.SimpleQueue = queue.SimpleQueue()
        self._signal_rx = None
        self._signal_tx = None
        self._signal_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._closing = False

    @property
    def endpoint(self) -> str:
        return f"tcp://{self.address}:{self.port}"

    @property
    def is_open(self) -> bool:
        return self._thread is not None and not self._closing

    def open(self) -> None:
        if self._thread is not None:
            return

        identity = f"vectorlink.Client.{id(self)}".encode()

        self.socket = zmq_context.socket(zmq.DEALER)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket.identity = identity

        if self.server_key:
            public, secret = zmq.curve_keypair()
            self.socket.curve_secretkey = secret
            self.socket.curve_publickey = public
            self.socket.curve_serverkey = self.server_key.encode()

        self.socket.connect(self.endpoint)

        internal = f"inproc://vectorlink.Client:signal:{id(self)}"
        self._signal_rx = zmq_context.socket(zmq.PAIR)
        self._signal_rx.bind(internal)
        self._signal_tx = zmq_context.socket(zmq.PAIR)
        self._signal_tx.connect(internal)

        self._thread = threading.Thread(target=self.run, name=f"vectorlink:{self.endpoint}", daemon=True)
        self._thread.start()
        log.debug("opened DEALER connection to %s", self.endpoint)

    def close(self) -> None:
        with self._signal_lock:
            if self._closing or self._thread is None:
                return
            self._closing = True
            self._outbox.put(None)
            self._signal_tx.send(b"")

        self._thread.join(5)

        with self._signal_lock:
            self._signal_tx.close()

        log.debug("closed DEALER connection to %s", self.endpoint)

    def send(self, msg: Message) -> None:
        # The lock around the ZeroMQ socket is necessary in a multithreaded
        # application; ZeroMQ sockets make no attempt to be thread-safe.

        with self._signal_lock:
            if self._closing or self._thread is None:
                raise TransportClosed(f"connection to {self.endpoint} is closed")
            self._outbox.put(msg)
            self._signal_tx.send(b"")

    def _handle_outgoing(self) -> bool:
        # Clear one signal and send one message.
        self._signal_rx.recv(flags=zmq.NOBLOCK)
        msg = self._outbox.get(block=False)

        if msg is None:
            return False

        self.socket.send_multipart(to_frames(msg))
        return True

    def _handle_incoming(self, parts) -> None:
        try:
            msg = from_frames(parts)
        except ValueError:
            log.warning("discarding malformed message from %s", self.endpoint, exc_info=True)
            return

        callback = self.on_receive
        if callback is not None:
            callback(msg)

    def run(self) -> None:
        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        poller.register(self._signal_rx, zmq.POLLIN)

        running = True
        while running:
            for active, _flag in poller.poll(10000):
                if active == self._signal_rx:
                    running = self._handle_outgoing()
                    if not running:
                        break
                elif active == self.socket:
                    parts = tuple(self.socket.recv_multipart())
                    self._handle_incoming(parts)

        self.socket.close()
        self._signal_rx.close()

        callback = self.on_close
        if callback is not None:
            callback()


# end of class Client



class StreamCancelled(Exception):
    """The client abandoned the stream being handled."""


class Server:
    """Receive requests via a ZeroMQ ROUTER socket, respond to them.

    The default behavior is to listen on every interface, on the first
    available port in the default range. The *avoid* set enumerates port
    numbers that should not be automatically assigned; this is ignored if a
    fixed *port* is specified. A *secret_key* enables CURVE encryption.

    Subclasses implement :func:`req_handler` for ordinary requests and
    :func:`stream_handler` for streaming inserts. Every request is
    acknowledged on receipt. Ordinary requests are handled on a worker
    pool; each stream is handled on a thread of its own. The rows of any
    one stream are delivered to its handler in the order the client sent
    them.

    :ivar hostname: The hostname on which this server can be contacted.
    :ivar port: The port on which this server is listening for connections.
    """

    worker_count = 8
    stream_timeout = 300

    def __init__(self, hostname: Optional[str] = None, port: Optional[int] = None, avoid: Optional[set] = None, secret_key: Optional[str] = None):

        self.hostname = hostname or pysocket.getfqdn()
        self.avoid = set(avoid or set())

        self.socket = zmq_context.socket(zmq.ROUTER)
        self.socket.setsockopt(zmq.LINGER, 0)

        if secret_key:
            self.socket.curve_server = True
            self.socket.curve_secretkey = secret_key.encode()

        if port is None:
            self.port = self._bind_any()
        else:
            self.port = int(port)
            try:
                self.socket.bind(f"tcp://*:{self.port}")
            except zmq.ZMQError as exc:
                raise TransportPortError(f"port already in use: {self.port}") from exc

        self._responses: queue.SimpleQueue = queue.SimpleQueue()

        internal = f"inproc://vectorlink.Server:signal:{id(self)}"
        self._signal_rx = zmq_context.socket(zmq.PAIR)
        self._signal_rx.bind(internal)
        self._signal_tx = zmq_context.socket(zmq.PAIR)
        self._signal_tx.connect(internal)
        self._signal_lock = threading.Lock()

        # Open streams, keyed by (routing prefix, message id). Only the I/O
        # thread adds to or reads from these containers.

        self._streams: Dict[Tuple, queue.SimpleQueue] = {}
        self._cancelled: Set[Tuple] = set()

        self.shutdown = False
        self.workers = concurrent.futures.ThreadPoolExecutor(max_workers=self.worker_count)
        self.thread = threading.Thread(target=self.run, daemon=True)
        self.thread.start()

    def _bind_any(self) -> int:
        for port in range(minimum_port, maximum_port + 1):
            if port in self.avoid:
                continue
            try:
                self.socket.bind(f"tcp://*:{port}")
                return port
            except zmq.ZMQError:
                continue
        raise TransportPortError(
            f"no ports available in range {minimum_port}:{maximum_port}"
        )

    # --- request handling hooks ---
    def req_handler(self, request: Request) -> Optional[Payload]:
        """Override in subclasses.

        Return:
          - Payload -> will be wrapped into a REP
          - None    -> an empty REP
        Raising an exception sends a REP carrying the error instead.
        """

        return None

    def stream_handler(self, request: Request, rows: Iterator[Message]) -> Optional[Payload]:
        """Override in subclasses to accept streaming inserts.

        *rows* yields the ROW messages of the stream in order, and stops
        when the client signals the end of the stream.
        """

        raise NotImplementedError(f"{request.msg_type} is not supported")

    def req_ack(self, request: Request) -> None:
        """Acknowledge *request*. Only called from the I/O thread, which
        owns the socket.
        """

        ack = Message(fields.ACK, target=request.target, msg_id=request.msg_id)
        ack.meta["zmq_prefix"] = request.meta.get("zmq_prefix", ())
        self.socket.send_multipart(to_frames(ack, include_prefix=True))

    def part(self, request: Request, payload: Payload) -> None:
        """Send one partial response to a request that is still being
        handled; raises StreamCancelled if the client has gone away.
        """

        if _key(request) in self._cancelled:
            raise StreamCancelled(request.msg_id)

        msg = Message(fields.PART, target=request.target, payload=payload, msg_id=request.msg_id)
        msg.meta["zmq_prefix"] = request.meta.get("zmq_prefix", ())
        self.send(msg)

    def send(self, response: Message) -> None:
        # The lock around the ZeroMQ socket is necessary in a multithreaded
        # application; otherwise, if two different threads both invoke
        # send(), the signals can and will get mixed together.

        with self._signal_lock:
            self._responses.put(response)
            self._signal_tx.send(b"")

    def close(self) -> None:
        self.shutdown = True
        self.send(None)
        self.thread.join(5)
        self.workers.shutdown(wait=False)
        with self._signal_lock:
            self._signal_tx.close()

    # --- internal ---
    def _rep_outgoing(self) -> None:
        self._signal_rx.recv(flags=zmq.NOBLOCK)
        response: Optional[Message] = self._responses.get(block=False)
        if response is None:
            return
        frames = to_frames(response, include_prefix=True)
        self.socket.send_multipart(frames)

    def _stream_incoming(self, msg: Message) -> None:
        key = _key(msg)

        try:
            rows = self._streams[key]
        except KeyError:
            if msg.msg_type == fields.CANCEL:
                self._cancelled.add(key)
            return

        rows.put(msg)
        if msg.msg_type != fields.ROW:
            del self._streams[key]

    def _rows(self, request: Request, rows: queue.SimpleQueue) -> Iterator[Message]:
        while True:
            try:
                msg = rows.get(timeout=self.stream_timeout)
            except queue.Empty:
                raise StreamCancelled(f"no stream activity in {self.stream_timeout} sec") from None

            if msg.msg_type == fields.ROW:
                yield msg
            elif msg.msg_type == fields.END:
                return
            else:
                raise StreamCancelled(request.msg_id)

    def _req_incoming(self, req: Request, rows: Optional[queue.SimpleQueue]) -> None:
        """Dispatch to the handlers, build REP, send."""

        payload: Optional[Payload] = None
        error: Optional[dict] = None

        try:
            if rows is None:
                payload = self.req_handler(req)
            else:
                payload = self.stream_handler(req, self._rows(req, rows))
        except StreamCancelled:
            self._cancelled.discard(_key(req))
            return
        except Exception:
            e_class, e_instance, _tb = sys.exc_info()
            error = {
                "type": getattr(e_class, "__name__", "Exception"),
                "text": str(e_instance),
                "debug": traceback.format_exc(),
            }
            details = getattr(e_instance, "details", None)
            if details:
                error["details"] = dict(details)

        self._cancelled.discard(_key(req))

        if payload is None:
            payload = Payload(value=None)
        if error is not None:
            payload.error = error

        rep = Message(fields.REP, target=req.target, payload=payload, msg_id=req.msg_id)
        rep.meta["zmq_prefix"] = req.meta.get("zmq_prefix", ())
        self.send(rep)

    def _dispatch(self, parts) -> None:
        try:
            msg = from_frames(parts)
        except ValueError:
            log.warning("discarding malformed request", exc_info=True)
            return

        if msg.msg_type in fields.STREAM:
            self._stream_incoming(msg)
            return

        if not isinstance(msg, Request):
            log.debug("ignoring unexpected %s message", msg.msg_type)
            return

        self.req_ack(msg)

        if msg.msg_type != fields.INSERT_STREAM:
            self.workers.submit(self._req_incoming, msg, None)
            return

        # The queue must exist before the next frame is read, so that rows
        # arriving right behind the request have a home. A stream handler
        # blocks for as long as the stream is open; it runs outside the
        # worker pool.

        rows: queue.SimpleQueue = queue.SimpleQueue()
        self._streams[_key(msg)] = rows

        handler = threading.Thread(target=self._req_incoming, args=(msg, rows), daemon=True)
        handler.start()

    def run(self) -> None:
        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        poller.register(self._signal_rx, zmq.POLLIN)

        while not self.shutdown:
            for active, _flag in poller.poll(1000):
                if active == self._signal_rx:
                    self._rep_outgoing()
                elif active == self.socket:
                    parts = tuple(self.socket.recv_multipart())
                    self._dispatch(parts)

        self.socket.close()
        self._signal_rx.close()


# end of class Server



def _key(msg: Message) -> Tuple:
    return (tuple(msg.meta.get("zmq_prefix", ())), msg.msg_id)



# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
