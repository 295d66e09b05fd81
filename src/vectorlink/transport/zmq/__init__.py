"""ZeroMQ ROUTER/DEALER transport."""

from . import framing
from . import request
