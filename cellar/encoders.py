#
# Copyright 2013, David Wilson.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""
Value serialization hooks. A :py:class:`cellar.Database` holds two
independently nullable functions, :py:attr:`serializer
<cellar.Database.serializer>` and :py:attr:`deserializer
<cellar.Database.deserializer>`; an :py:class:`Encoder` is simply a named
pair of them that can be handed to :py:func:`cellar.open`.
"""

import functools
import pickle

__all__ = ['Encoder', 'make_json_encoder', 'make_msgpack_encoder',
           'PICKLE', 'JSON']


class Encoder(object):
    """Instances of this class represent a value encoding.

        `name`:
            ASCII string identifying the encoding, used only in log messages
            and :py:func:`repr`.

        `unpack`:
            Function invoked as `func(data)` to deserialize a bytestring read
            from the engine.

        `pack`:
            Function invoked as `func(value)` to serialize a value about to be
            written. It must return a bytestring.
    """
    def __init__(self, name, unpack, pack):
        self.name = name
        self.unpack = unpack
        self.pack = pack

    def __repr__(self):
        return '<cellar.encoders.Encoder %r>' % (self.name,)


def make_json_encoder(separators=(',', ':'), **kwargs):
    """Return an :py:class:`Encoder` that serializes
    dict/list/string/float/int/bool/None objects using the :py:mod:`json`
    module. `separators` and `kwargs` are passed to the JSONEncoder
    constructor."""
    import json
    encoder = json.JSONEncoder(separators=separators, **kwargs)
    decoder = json.JSONDecoder().decode
    pack = lambda o: encoder.encode(o).encode('utf-8')
    unpack = lambda s: decoder(bytes(s).decode('utf-8'))
    return Encoder('json', unpack, pack)


def make_msgpack_encoder():
    """Return an :py:class:`Encoder` that serializes
    dict/list/string/float/int/bool/None objects using `MessagePack
    <http://msgpack.org/>`_ via the `msgpack
    <https://pypi.python.org/pypi/msgpack/>`_ package."""
    import msgpack
    return Encoder('msgpack',
                   functools.partial(msgpack.unpackb, raw=False),
                   functools.partial(msgpack.packb, use_bin_type=True))


#: Encode arbitrary Python objects using the highest pickle protocol. This is
#: the default for :py:func:`cellar.open`.
PICKLE = Encoder('pickle', pickle.loads,
                 functools.partial(pickle.dumps,
                                   protocol=pickle.HIGHEST_PROTOCOL))

#: Encode JSON-compatible values as compact UTF-8 JSON.
JSON = make_json_encoder()
