"""Transport layer implementations."""

from .base import (
    Transport,
    TransportError,
    TransportClosed,
    TransportPortError,
)

from .zmq import request
from . import session
