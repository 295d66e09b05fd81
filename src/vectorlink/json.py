''' Wrapper module to select the most performant available library to handle
    the equivalent of :func:`json.loads` and :func:`json.dumps` for
    vectorlink payloads.
'''

import enum

import numpy

# The business about conditionally importing the libraries is intended to
# avoid importing less efficient libraries if they are not available.

msgspec = None
orjson = None
json = None

try:
    import msgspec
except ImportError:
    pass

if msgspec is None:
    try:
        import orjson
    except ImportError:
        pass

if msgspec is None and orjson is None:
    import json


def _default(value):
    """ Translate the handful of non-JSON types that can appear in a payload:
        enumerations go out as their value, numpy scalars and arrays as
        native numbers and lists.
    """

    if isinstance(value, enum.Enum):
        return value.value

    if isinstance(value, numpy.ndarray):
        return value.tolist()
    if isinstance(value, numpy.generic):
        return value.item()

    raise TypeError('cannot encode %s as JSON' % (type(value).__name__))


# The msgspec 'encode' operation returns bytes, as does orjson.dumps. To
# maintain alignment all 'dumps' methods need to do so as well.

def json_dumps(value):
    return json.dumps(value, default=_default, separators=(',', ':')).encode()


def orjson_dumps(value):
    return orjson.dumps(value, default=_default, option=orjson.OPT_SERIALIZE_NUMPY)


if msgspec is not None:
    encoder = msgspec.json.Encoder(enc_hook=_default)
    decoder = msgspec.json.Decoder()
    dumps = encoder.encode
    loads = decoder.decode
elif orjson is not None:
    dumps = orjson_dumps
    loads = orjson.loads
else:
    dumps = json_dumps
    loads = json.loads

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
