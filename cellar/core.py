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
Dictionary-like access to an LMDB environment, with re-entrant transactions
and switchable collections.

::

    import cellar

    with cellar.open('/tmp/test.db', max_collections=4) as db:
        db['1'] = {'name': 'me'}
        with db.transaction():
            db['2'] = db['1']
        with db.using('people'):
            db['me'] = True
"""

import logging

from cellar import encoders
from cellar import engines
from cellar import errors
from cellar import namespace
from cellar import stats
from cellar import txn

__all__ = ['Database', 'open']

LOG = logging.getLogger('cellar.core')

_MISSING = object()


def open(path, encoder=encoders.PICKLE, engine=None, **options):
    """Open an existing (or create a new) environment at filesystem `path`,
    returning a :py:class:`Database`. The returned object may be used as a
    context manager, in which case it is closed when the block exits.

    ::

        >>> db = cellar.open('/tmp/test.db', max_collections=4)

    `encoder`:
        :py:class:`cellar.encoders.Encoder` providing the initial
        :py:attr:`Database.serializer` and :py:attr:`Database.deserializer`;
        defaults to :py:data:`cellar.encoders.PICKLE`. If ``None``, values are
        stored and returned as raw bytestrings.

    `engine`:
        Engine class invoked as `engine(path, **options)`; defaults to
        :py:class:`cellar.engines.LmdbEngine`.

    Remaining keyword arguments are environment options, described in
    :py:func:`cellar.engines.lmdb_kwargs`. Opening an environment already
    open in this process raises :py:class:`cellar.errors.EngineError`.
    """
    return Database(path, encoder=encoder, engine=engine, **options)


def _key(key):
    """Keys are never serialized, only coerced to a bytestring."""
    if isinstance(key, (bytes, bytearray, memoryview)):
        return bytes(key)
    return str(key).encode('utf-8', 'surrogateescape')


def _unkey(data):
    return bytes(data).decode('utf-8', 'surrogateescape')


class Database(object):
    """A handle on one open environment. See :py:func:`cellar.open` for the
    constructor arguments.

    At most one transaction is active per handle. Operations issued with no
    transaction active run inside their own short transaction; otherwise they
    join the active one. The handle performs no locking: a transaction
    belongs to the thread that opened it, and threads sharing a handle must
    serialize any sequence of calls with their own lock.
    """
    def __init__(self, path, encoder=encoders.PICKLE, engine=None,
                 **options):
        #: Filesystem path of the environment.
        self.path = path
        #: Options the environment was opened with.
        self.options = options
        #: Function invoked as `func(value)` to produce the bytestring stored
        #: for `value`, or ``None`` to store values unchanged.
        self.serializer = encoder.pack if encoder else None
        #: Function invoked as `func(data)` to turn a stored bytestring back
        #: into a value, or ``None`` to return bytestrings unchanged.
        self.deserializer = encoder.unpack if encoder else None
        #: Environment-level :py:class:`cellar.engines.Engine`, or ``None``
        #: once closed.
        self.engine = None
        self._engine_class = engine or engines.LmdbEngine
        self._dbs = {}
        self._txn_context = txn.TxnContext(self._start)
        self._collections = namespace.CollectionStack(
            self._txn_context, bool(options.get('max_collections')))
        self.reopen()

    def __repr__(self):
        state = 'closed' if self.closed else 'open'
        return '<cellar.Database %r (%s) collection=%r>' %\
            (self.path, state, self._collections.current)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    #
    # Handle lifecycle.
    #

    @property
    def closed(self):
        """``True`` if the environment is closed."""
        return self.engine is None

    def reopen(self):
        """Open the environment using the original path and options, closing
        it first if it is already open. The active collection is retained.
        """
        if self.engine is not None:
            self.close()
        self.engine = self._engine_class(self.path, **self.options)
        return self

    def close(self):
        """Roll back any open transaction, then close the environment.
        Closing a closed database does nothing."""
        engine = self.engine
        if engine is None:
            return
        self.engine = None
        self._dbs.clear()
        try:
            self._txn_context.rollback()
        finally:
            engine.close()

    def _check(self):
        if self.engine is None:
            raise errors.HandleClosed('Closed database: %r' % (self.path,))

    def _db(self):
        """Return the engine's handle for the active collection."""
        name = self._collections.current
        try:
            return self._dbs[name]
        except KeyError:
            db = self.engine.open_db(name)
            self._dbs[name] = db
            return db

    def _start(self, write):
        return self.engine.begin(write=write, db=self._db())

    def _in_txn(self, func, write=False):
        """Invoke `func(txn)` inside the active transaction, or inside a new
        transaction that is committed (if `write`) or aborted afterwards."""
        self._check()
        context = self._txn_context
        if context.active():
            if write and not context.write:
                raise errors.PermissionDenied('Attempted write in a '
                                              'read-only transaction.')
            return func(context.txn)

        engine_txn = self._start(write)
        ok = False
        try:
            result = func(engine_txn)
            ok = True
        finally:
            if ok and write:
                engine_txn.commit()
            else:
                engine_txn.abort()
        return result

    #
    # Serialization hooks.
    #

    def _apply(self, func, value):
        try:
            return func(value)
        except Exception:
            LOG.exception('%r failed; rolling back any open transaction',
                          func)
            self._txn_context.rollback()
            raise

    def _encode(self, value):
        if self.serializer is None:
            return value
        return self._apply(self.serializer, value)

    def _decode(self, data):
        if self.deserializer is None:
            return data
        return self._apply(self.deserializer, data)

    #
    # Transactions.
    #

    @property
    def in_transaction(self):
        """``True`` if a transaction (or snapshot) is currently open."""
        return self._txn_context.active()

    def open_transaction(self, write=False):
        """Open a long-running transaction, read-write if `write` is
        ``True``, otherwise a read-only snapshot. If a transaction is already
        open it is reused, and its mode is left unchanged."""
        self._check()
        self._txn_context.begin(write)

    def commit(self):
        """Commit the open transaction. Does nothing if none is open."""
        self._check()
        self._txn_context.commit()

    def rollback(self):
        """Roll back the open transaction. Does nothing if none is open."""
        self._check()
        self._txn_context.rollback()

    def transaction(self, write=True, func=None):
        """Open a transaction, or join the one already open, and return a
        :py:class:`cellar.txn.Transaction` that finalizes it when used as a
        context manager.

        If `func` is given, invoke it inside the transaction and return its
        result: the transaction is committed if it returns, and rolled back if
        it raises. :py:class:`cellar.errors.Rollback` is swallowed (the result
        is then ``None``); any other exception propagates. When `func` joins
        an already open transaction, returning leaves it open. If an
        enclosing ``with db.transaction():`` block began it, that block also
        decides the outcome of an exception.

        If neither form is used, the transaction remains open until
        :py:meth:`commit` or :py:meth:`rollback` is called.
        """
        self._check()
        owner = self._txn_context.begin(write)
        handle = txn.Transaction(self._txn_context, self, owner)
        if func is None:
            return handle
        with handle:
            return func()

    def snapshot(self, func=None):
        """Like :py:meth:`transaction`, but opens a read-only snapshot."""
        return self.transaction(write=False, func=func)

    def conditional_snapshot(self, func):
        """Invoke `func()` and return its result. If no transaction is open,
        `func()` runs inside a snapshot that is rolled back afterwards,
        otherwise it runs in the open transaction, which is left open."""
        self._check()
        context = self._txn_context
        if context.active():
            return func()
        context.begin(False)
        try:
            return func()
        finally:
            context.rollback()

    #
    # Collections.
    #

    def collection(self, name=_MISSING, func=None):
        """Get or set the collection read and write operations apply to.

        ::

            db.collection()                 # -> current name, None for main
            db.collection('people')         # -> previous name
            db.collection('people', func)   # -> func()

        With `func`, the previous collection is restored when `func` returns
        or raises, however deeply such calls are nested. Switching requires
        the environment to be opened with `max_collections`, and no
        transaction to be open.
        """
        self._check()
        if name is _MISSING:
            return self._collections.current
        if func is None:
            return self._collections.set(name)
        with self._collections.scope(name):
            return func()

    namespace = collection

    def using(self, name):
        """Return a context manager that switches to collection `name` for the
        duration of the block, like `collection(name, func)`.

        ::

            with db.using('people'):
                db['me'] = True
        """
        self._check()
        return self._collections.scope(name)

    def main(self):
        """Switch to the main (top-level) collection."""
        return self.collection(None)

    def drop(self, name):
        """Destroy collection `name` and everything in it. Must be called from
        the main collection with no transaction open."""
        self._check()
        self._collections.check_drop(name)
        db = self._dbs.pop(name, None)
        if db is None:
            db = self.engine.open_db(name)
        engine_txn = self.engine.begin(write=True, db=db)
        ok = False
        try:
            engine_txn.drop(delete=True)
            ok = True
        finally:
            if ok:
                engine_txn.commit()
            else:
                engine_txn.abort()
        self._collections.current = None
        LOG.debug('dropped collection %r', name)

    def clear(self):
        """Delete every record in the current collection. In the main
        collection this deletes *all records* from the database. This is not
        recoverable!"""
        self._in_txn(lambda t: t.drop(delete=False), write=True)

    #
    # Single records.
    #

    def get(self, key):
        """Return the value of `key`, or ``None`` if it does not exist."""
        k = _key(key)
        data = self._in_txn(lambda t: t.get(k))
        if data is None:
            return None
        return self._decode(data)

    def set(self, key, value):
        """Set the value of `key` to `value`. Setting ``None`` deletes the
        key."""
        self._check()
        k = _key(key)
        if value is None:
            self._in_txn(lambda t: t.delete(k), write=True)
            return
        data = self._encode(value)
        self._in_txn(lambda t: t.put(k, data), write=True)

    def delete(self, key, on_missing=None):
        """Delete `key`, returning its previous value. If `key` does not exist
        return `on_missing(key)` if `on_missing` is given, otherwise
        ``None``."""
        k = _key(key)

        def _pop(t):
            data = t.pop(k)
            if data is None:
                return _MISSING
            return self._decode(data)

        old = self._in_txn(_pop, write=True)
        if old is _MISSING:
            return on_missing(key) if on_missing else None
        return old

    def fetch(self, key, on_missing=None):
        """Return the value of `key`. If `key` does not exist return
        `on_missing(key)` if `on_missing` is given, otherwise raise
        :py:class:`cellar.errors.KeyNotFound`."""
        value = self.get(key)
        if value is not None:
            return value
        if on_missing:
            return on_missing(key)
        raise errors.KeyNotFound(key)

    __getitem__ = fetch
    __setitem__ = set

    def __delitem__(self, key):
        def _missing(key):
            raise errors.KeyNotFound(key)
        self.delete(key, _missing)

    def __contains__(self, key):
        k = _key(key)
        return self._in_txn(lambda t: t.get(k)) is not None

    def __len__(self):
        return self._in_txn(lambda t: t.count())

    length = __len__

    def is_empty(self):
        """``True`` if the current collection contains no records."""
        return len(self) == 0

    #
    # Iteration. The each_*() methods require an open transaction, the rest
    # open a snapshot if necessary.
    #

    def _cursor_txn(self):
        self._check()
        return self._txn_context.get()

    def each_key(self):
        """Yield each key of the current collection in key order."""
        it = self._cursor_txn().iter()
        return (_unkey(key) for key, _ in it)

    def each_value(self):
        """Yield each value of the current collection in key order."""
        it = self._cursor_txn().iter()
        return (self._decode(data) for _, data in it)

    def each_pair(self):
        """Yield each `(key, value)` of the current collection in key
        order."""
        it = self._cursor_txn().iter()
        return ((_unkey(key), self._decode(data)) for key, data in it)

    def keys(self):
        """Return a list of keys in the current collection."""
        return self.conditional_snapshot(lambda: list(self.each_key()))

    def values(self):
        """Return a list of values in the current collection."""
        return self.conditional_snapshot(lambda: list(self.each_value()))

    def to_pairs(self):
        """Return a list of `(key, value)` tuples in the current
        collection."""
        return self.conditional_snapshot(lambda: list(self.each_pair()))

    items = to_pairs

    def to_dict(self):
        """Return the contents of the current collection as a dict."""
        return self.conditional_snapshot(lambda: dict(self.each_pair()))

    def __iter__(self):
        return iter(self.keys())

    def slice(self, *keys):
        """Return a dict of the given `keys` and their values, omitting keys
        that don't exist."""
        def _slice():
            pairs = ((key, self.get(key)) for key in keys)
            return dict((k, v) for k, v in pairs if v is not None)
        return self.conditional_snapshot(_slice)

    def values_at(self, *keys):
        """Return a list of values for the given `keys`, with ``None`` in
        place of keys that don't exist."""
        return self.conditional_snapshot(lambda: [self.get(k) for k in keys])

    #
    # Metadata.
    #

    def statistics(self):
        """Return a dict of environment, reader and build metadata. See
        :py:func:`cellar.stats.gather`."""
        self._check()
        raw = self.conditional_snapshot(self.engine.raw_stats)
        return stats.gather(raw)
