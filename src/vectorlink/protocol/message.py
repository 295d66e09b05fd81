""" A class representation of a vectorlink message, including the request
    subclass used on the client side to track outstanding requests.
"""

from __future__ import annotations

import itertools
import threading
import time as timemodule
from typing import Any, Dict, Optional

from . import fields


# This is the version of the on-the-wire protocol implemented here. The
# version is identified by a single byte, the first frame of every message.

version = b'v'


class Payload:
    """ This is a lightweight class to encapsulate the Python-native body of
        a :class:`Message`. The *value* is the operation-specific content;
        *error*, if set, is a dictionary with 'type' and 'text' fields
        describing a remote failure. Additional keyword arguments become
        attributes and travel with the payload.
    """

    def __init__(self, value: Any = None, time: Optional[float] = None, error: Optional[dict] = None, **kwargs: Any):

        # The use of 'time' as a keyword argument is what's motivating the
        # weird import of the time module in this file; the keyword arguments
        # are aligned with the fields of the JSON representation.

        if time is None:
            time = timemodule.time()

        self.error = error
        self.time = time
        self.value = value

        for key, extra in kwargs.items():
            setattr(self, key, extra)


    def __repr__(self) -> str:
        return 'Payload(' + repr(self.to_dict()) + ')'


    def to_dict(self) -> Dict[str, Any]:
        payload = dict()

        for key, value in vars(self).items():
            if key == 'error' and value is None:
                continue
            payload[key] = value

        return payload


    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payload':
        data = dict(data)
        value = data.pop('value', None)
        time = data.pop('time', None)
        error = data.pop('error', None)
        return cls(value, time=time, error=error, **data)


# end of class Payload



class Message:
    """ The :class:`Message` is a thin encapsulation of what it means to be
        a vectorlink message. The fields are in the order they appear on the
        wire: the message *msg_type*, the *target* the message is about (a
        schema, entity, or transaction id, depending on the type), the
        *payload*, and an identification number unique to this
        correspondence. The identification number is last so that the
        caller can omit it; requests generate their own.

        :ivar meta: Transport-specific annotations, never sent on the wire.
        :ivar timestamp: A UNIX epoch timestamp for the message creation.
    """

    valid_types = fields.RESPONSES | fields.STREAM

    def __init__(self, msg_type: str, target: Optional[str] = None, payload: Optional[Payload] = None, msg_id: Optional[bytes] = None):

        if msg_type not in self.valid_types:
            raise ValueError('invalid message type: ' + str(msg_type))

        self.msg_id = msg_id
        self.msg_type = msg_type
        self.payload = payload
        self.target = target
        self.timestamp = timemodule.time()
        self.meta: Dict[str, Any] = dict()


    def __repr__(self) -> str:
        return '%s(%s, %r, %r, id=%r)' % (type(self).__name__, self.msg_type, self.target, self.payload, self.msg_id)


    @property
    def error(self) -> Optional[dict]:
        if self.payload is None:
            return None
        return self.payload.error


    @property
    def value(self) -> Any:
        if self.payload is None:
            return None
        return self.payload.value


# end of class Message



class Request(Message):
    """ A :class:`Request` is a :class:`Message` the client sends when the
        remote side is expected to respond. Requests are generally created
        without an id number; a locally unique one is generated so that the
        session can tie an incoming response to the request that caused it.
    """

    valid_types = fields.REQUESTS

    def __init__(self, msg_type: str, target: Optional[str] = None, payload: Optional[Payload] = None, msg_id: Optional[bytes] = None):

        if msg_id is None:
            msg_id = _id_next()

        Message.__init__(self, msg_type, target, payload, msg_id)


# end of class Request



_id_min = 0
_id_max = 0xFFFFFFFF
_id_lock = threading.Lock()
_id_ticker = itertools.count(_id_min)


def _id_next() -> bytes:
    """ Return the next request identification number for subroutines to
        use when constructing a message.
    """

    global _id_ticker

    with _id_lock:
        msg_id = next(_id_ticker)

        if msg_id >= _id_max:
            _id_ticker = itertools.count(_id_min)

    msg_id = '%08x' % (msg_id)
    return msg_id.encode()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
