""" Client configuration. Settings are assembled from three layers, each
    overriding the one before it: the built-in defaults, an optional
    ``client.json`` file in the vectorlink configuration directory, and
    VECTORLINK_* environment variables.
"""

import logging
import os
import threading

from . import json


log = logging.getLogger(__name__)

defaults = dict()
defaults['address'] = '127.0.0.1'
defaults['port'] = 1865
defaults['ack_timeout'] = 1.0
defaults['timeout'] = 60.0
defaults['secure'] = False
defaults['server_key'] = None

# Environment variable names for each setting, and the function used to
# interpret the string value.

def _boolean(value):
    value = value.strip().lower()
    if value in ('1', 'true', 'yes', 'on'):
        return True
    if value in ('0', 'false', 'no', 'off', ''):
        return False
    raise ValueError('not a boolean: ' + repr(value))


environment = dict()
environment['address'] = ('VECTORLINK_ADDRESS', str)
environment['port'] = ('VECTORLINK_PORT', int)
environment['ack_timeout'] = ('VECTORLINK_ACK_TIMEOUT', float)
environment['timeout'] = ('VECTORLINK_TIMEOUT', float)
environment['secure'] = ('VECTORLINK_SECURE', _boolean)
environment['server_key'] = ('VECTORLINK_SERVER_KEY', str)


class Settings:
    """ The resolved configuration for a single endpoint. Instances are
        read-only once constructed; use :func:`load` with keyword overrides
        to derive a variant.

        :ivar address: Hostname or IP address of the remote engine.
        :ivar port: Port number the remote engine is listening on.
        :ivar ack_timeout: Seconds to wait for a request to be acknowledged
            before the endpoint is considered unreachable.
        :ivar timeout: Default seconds to wait for a complete response.
        :ivar secure: Whether to encrypt the channel with ZeroMQ CURVE.
        :ivar server_key: The server's Z85-encoded CURVE public key.
    """

    __slots__ = tuple(defaults.keys())

    def __init__(self, **values):

        for key, default in defaults.items():
            object.__setattr__(self, key, values.pop(key, default))

        if values:
            raise TypeError('unknown settings: ' + ', '.join(sorted(values)))

        if self.port is None:
            raise ValueError('a port number must be configured')

        object.__setattr__(self, 'port', int(self.port))

        if self.secure and not self.server_key:
            raise ValueError('secure transport requires the server public key')


    def __setattr__(self, name, value):
        raise AttributeError('Settings instances are read-only')


    def __repr__(self):
        fields = ('%s=%r' % (key, getattr(self, key)) for key in defaults)
        return 'Settings(' + ', '.join(fields) + ')'


    @property
    def endpoint(self):
        return 'tcp://%s:%d' % (self.address, self.port)


    def asdict(self):
        return {key: getattr(self, key) for key in defaults}


# end of class Settings



def directory():
    """ Return the directory where vectorlink looks for its configuration
        file. VECTORLINK_HOME takes precedence; otherwise it is a
        ``.vectorlink`` directory in the user's home directory. The directory
        is not required to exist.
    """

    try:
        return os.environ['VECTORLINK_HOME']
    except KeyError:
        pass

    try:
        home = os.environ['HOME']
    except KeyError:
        raise RuntimeError('VECTORLINK_HOME and HOME environment variables not set, cannot determine vectorlink configuration directory')

    return os.path.join(home, '.vectorlink')



def _from_file():

    try:
        path = os.path.join(directory(), 'client.json')
    except RuntimeError:
        return dict()

    try:
        with open(path, 'rb') as handle:
            contents = handle.read()
    except FileNotFoundError:
        return dict()

    loaded = json.loads(contents)

    if not isinstance(loaded, dict):
        raise ValueError('%s must contain a JSON object' % (path))

    log.debug('loaded settings from %s', path)
    return {key: value for key, value in loaded.items() if key in defaults}



def _from_environment():

    values = dict()

    for key, (variable, interpret) in environment.items():
        try:
            raw = os.environ[variable]
        except KeyError:
            continue

        try:
            values[key] = interpret(raw)
        except ValueError as e:
            raise ValueError('invalid %s: %s' % (variable, e)) from e

    return values



def load(**overrides):
    """ Resolve and return a fresh :class:`Settings` instance. Keyword
        arguments take precedence over every other configuration layer;
        a keyword argument of None is ignored.
    """

    values = dict(defaults)
    values.update(_from_file())
    values.update(_from_environment())

    for key, value in overrides.items():
        if value is not None:
            values[key] = value

    return Settings(**values)



_cached = None
_cached_lock = threading.Lock()

def get():
    """ Return the process-wide :class:`Settings`, resolving them on first
        use. Call :func:`clear` to force a reload.
    """

    global _cached

    with _cached_lock:
        if _cached is None:
            _cached = load()
        return _cached



def clear():
    global _cached

    with _cached_lock:
        _cached = None


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
