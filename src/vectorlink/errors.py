""" Exceptions raised by vectorlink. Every failure that reaches the caller is
    one of the classes defined here; the *details* dictionary carries the
    context needed to decide on a retry or a rollback, such as the row
    index, the transaction id, or the operation that failed.
"""

from __future__ import annotations

import builtins
from typing import Any, Dict, Mapping, Optional


class VectorLinkError(Exception):
    """ Base class for all vectorlink errors.

        :ivar message: Human-readable description of the failure.
        :ivar code: Short machine-readable code, in UPPER_SNAKE_CASE.
        :ivar details: Context for the failure (row index, transaction id,
            operation, remote error type); always JSON-friendly.
    """

    default_code = 'ERROR'

    def __init__(self, message: str = '', *, code: Optional[str] = None, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details: Dict[str, Any] = dict(details or {})

    def __str__(self) -> str:
        if not self.details:
            return self.message

        context = ', '.join('%s=%r' % (key, self.details[key]) for key in sorted(self.details))
        return '%s (%s)' % (self.message, context)

    def asdict(self) -> Dict[str, Any]:
        return {
            'error': type(self).__name__,
            'code': self.code,
            'message': self.message,
            'details': {key: self.details[key] for key in sorted(self.details)},
        }


class ConnectionError(VectorLinkError, builtins.ConnectionError):
    """ The channel is unreachable or broken. Fatal to the in-flight call;
        the caller may retry at the session level.
    """

    default_code = 'UNAVAILABLE'


class ValidationError(VectorLinkError, ValueError):
    """ A malformed request was detected locally. Nothing was sent to the
        remote engine.
    """

    default_code = 'BAD_REQUEST'


class InvalidStateError(VectorLinkError):
    """ An operation was attempted against an object that is not in the
        required state; for example, inserting into a committed transaction.
    """

    default_code = 'INVALID_STATE'


class RemoteError(VectorLinkError):
    """ The remote engine rejected or failed a request it received.

        :ivar remote_type: The exception type reported by the engine.
    """

    default_code = 'REMOTE'

    def __init__(self, message: str = '', *, remote_type: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.remote_type = remote_type
        if remote_type is not None:
            self.details.setdefault('remote_type', remote_type)


class TimeoutError(VectorLinkError, builtins.TimeoutError):
    """ A deadline expired while waiting on a blocking call. The outcome of
        the operation is unknown.
    """

    default_code = 'DEADLINE_EXCEEDED'


def from_payload(error: Mapping[str, Any], **details: Any) -> RemoteError:
    """ Build a :class:`RemoteError` from the error block of a response
        payload, which has 'type' and 'text' fields and optionally a
        'details' dictionary.
    """

    merged = dict(error.get('details') or {})
    merged.update(details)

    text = error.get('text') or 'remote request failed'
    return RemoteError(text, remote_type=error.get('type'), details=merged)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
