"""Transport codec for protocol Payload."""

from __future__ import annotations

from typing import Optional

from .. import json
from ..protocol.message import Payload


def encode_payload(payload: Optional[Payload]) -> bytes:
    """Return the JSON bytes for *payload*, empty for no payload."""

    if payload is None:
        return b""

    return json.dumps(payload.to_dict())


def decode_payload(payload_bytes: Optional[bytes]) -> Optional[Payload]:
    if payload_bytes in (b"", None):
        return None

    d = json.loads(payload_bytes)
    if not isinstance(d, dict):
        # Preserve non-conforming payloads as the bare value.
        return Payload(value=d)

    return Payload.from_dict(d)
