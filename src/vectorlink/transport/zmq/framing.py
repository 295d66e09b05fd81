"""ZMQ multipart framing for protocol messages.

Request/Response (DEALER<->ROUTER)
    (optional routing prefix...), version, id, type, target, payload_json
"""

from __future__ import annotations

from typing import Sequence, Tuple

from ...protocol import fields
from ...protocol.message import Message, Payload, Request, version
from ..codec import decode_payload, encode_payload


def to_frames(msg: Message, *, include_prefix: bool = False) -> Tuple[bytes, ...]:
    """Encode a protocol Message to ZMQ request/response multipart frames."""

    prefix: Tuple[bytes, ...] = ()
    if include_prefix:
        prefix = tuple(msg.meta.get("zmq_prefix", ()))

    if msg.msg_id is None:
        raise ValueError("messages must have an id to be put on the wire")

    target = (msg.target or "").encode()
    parts = (
        version,
        msg.msg_id,
        msg.msg_type.encode(),
        target,
        encode_payload(msg.payload),
    )
    return prefix + parts


def from_frames(parts: Sequence[bytes]) -> Message:
    """Decode ROUTER/DEALER parts into a protocol Message.

    If a ROUTER identity prefix is present, it is stored as
    msg.meta['zmq_prefix'].
    """

    if not parts:
        raise ValueError("empty message")

    # ROUTER sockets prepend identity frames. We expect either:
    #   [version, id, type, target, payload]
    # or
    #   [ident, version, id, type, target, payload]
    if parts[0] == version:
        prefix: Tuple[bytes, ...] = ()
        start = 0
    else:
        prefix = (parts[0],)
        start = 1

    if len(parts) < start + 5:
        raise ValueError("truncated message: %d frames" % (len(parts)))

    their_version = parts[start]
    msg_id = parts[start + 1]

    if their_version != version:
        # Version mismatch: represent as an error payload, so that the
        # original caller still hears about it.
        err = {
            "type": "RuntimeError",
            "text": f"message is protocol {their_version!r}, recipient expects {version!r}",
        }
        msg = Message(fields.REP, payload=Payload(error=err), msg_id=msg_id)
    else:
        msg_type = parts[start + 2].decode()
        target = parts[start + 3].decode() or None
        payload = decode_payload(parts[start + 4])

        if msg_type in fields.REQUESTS:
            msg = Request(msg_type, target, payload, msg_id)
        else:
            msg = Message(msg_type, target, payload, msg_id)

    if prefix:
        msg.meta["zmq_prefix"] = prefix
    return msg
