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
Storage engine binding. :py:class:`cellar.Database` never talks to py-lmdb
directly; every raw operation goes through an :py:class:`Engine`, and every
py-lmdb exception is translated into a :py:mod:`cellar.errors` exception at
this boundary.
"""

import contextlib
import logging
import os
import platform
import sysconfig
import threading
import weakref

import lmdb

from cellar import errors


__all__ = ['Engine', 'LmdbEngine', 'library_version', 'lmdb_kwargs']

LOG = logging.getLogger('cellar.engines')

KB = 1024
MB = 1048576

#: Map size used when `max_size` is not given.
DEFAULT_MAP_SIZE = 1024 * MB

#: Every option accepted by :py:func:`cellar.open`.
OPTIONS = frozenset([
    'mode', 'max_collections', 'max_readers', 'max_size', 'no_subdir',
    'readonly', 'exclusive', 'compatible', 'writemap', 'no_stickythreads',
    'no_readahead', 'no_memory_init', 'lifo_reclaim', 'no_metasync'
])

# Accepted for compatibility, but LMDB offers nothing to map them onto.
_UNSUPPORTED = ('compatible', 'lifo_reclaim')

# Real paths of environments currently open in this process.
_open_paths = set()
_open_paths_lock = threading.Lock()


@contextlib.contextmanager
def _translate(what):
    """Rethrow any py-lmdb exception raised by the block as the matching
    :py:mod:`cellar.errors` exception, prefixing the message with `what`."""
    try:
        yield
    except lmdb.ReadonlyError as e:
        raise errors.PermissionDenied('%s: %s' % (what, e), e)
    except lmdb.Error as e:
        raise errors.EngineError('%s: %s' % (what, e), e)


def library_version():
    """Return the version of the LMDB library py-lmdb was built against, as
    a string like ``"v0.9.31"``."""
    return 'v%d.%d.%d' % lmdb.version()


def lmdb_kwargs(options):
    """Translate a dict of :py:func:`cellar.open` options into keyword
    arguments for :py:func:`lmdb.open`. Raise
    :py:class:`cellar.errors.ConfigError` for unrecognized options.

        `mode`:
            File creation mode; default py-lmdb's.

        `max_collections`:
            Maximum number of named collections; default ``0``, i.e.
            collections are disabled.

        `max_readers`:
            Maximum concurrent read transactions; default 126.

        `max_size`:
            Maximum size in bytes of the memory map; default 1GiB.

        `no_subdir`:
            `path` names the data file itself rather than a directory.

        `readonly`:
            Open the environment read-only.

        `exclusive`:
            The caller guarantees exclusive use of the environment, so LMDB's
            lock file is not used.

        `writemap`:
            Use a writeable memory map.

        `no_stickythreads`:
            Do not tie read transactions to threads. py-lmdb always opens
            environments this way, so the option is implied.

        `no_readahead`:
            Disable OS filesystem readahead.

        `no_memory_init`:
            Don't zero-initialize malloc buffers before writing them out.

        `no_metasync`:
            Don't fsync the meta page after commit.

        `compatible`, `lifo_reclaim`:
            Accepted, but have no LMDB equivalent and are ignored.
    """
    unknown = set(options) - OPTIONS
    if unknown:
        raise errors.ConfigError('unrecognized option(s): %s' %\
                                 (', '.join(sorted(unknown)),))

    get = options.get
    kwargs = {
        'subdir': not get('no_subdir'),
        'readonly': bool(get('readonly')),
        'lock': not get('exclusive'),
        'writemap': bool(get('writemap')),
        'readahead': not get('no_readahead'),
        'meminit': not get('no_memory_init'),
        'metasync': not get('no_metasync'),
        'max_dbs': int(get('max_collections') or 0),
        'map_size': int(get('max_size') or DEFAULT_MAP_SIZE),
    }
    if get('mode') is not None:
        kwargs['mode'] = int(get('mode'))
    if get('max_readers'):
        kwargs['max_readers'] = int(get('max_readers'))

    for name in _UNSUPPORTED:
        if get(name):
            LOG.warning('option %r has no LMDB equivalent; ignored', name)
    return kwargs


def _system_memory():
    """Return `(page_size, total_pages, avail_pages)` for the host, or
    ``None`` if the platform can't report them."""
    try:
        return (os.sysconf('SC_PAGE_SIZE'),
                os.sysconf('SC_PHYS_PAGES'),
                os.sysconf('SC_AVPHYS_PAGES'))
    except (AttributeError, ValueError, OSError):
        return None


def _release(env, real_path):
    """Close `env` and forget `real_path`. Runs once per environment, from
    :py:meth:`LmdbEngine.close` or when the engine is garbage collected."""
    try:
        with _translate('close'):
            env.close()
    finally:
        with _open_paths_lock:
            _open_paths.discard(real_path)


def _iter_cursor(cursor):
    with cursor:
        with _translate('cursor iteration'):
            for key, value in cursor:
                yield key, value


class Engine(object):
    """
    A storage engine or transaction is any object that implements the
    following methods. Environment-level methods are invoked on the object
    returned by the engine constructor; transaction-level methods are invoked
    on the object returned by :py:meth:`begin`. All key and value variables
    below are bytestrings.
    """

    def close(self):
        """Close the environment. The default implementation does
        nothing."""

    def open_db(self, name):
        """Return an opaque handle for the named collection, creating it if
        necessary, or the main database if `name` is ``None``. Must not be
        called while the calling thread holds a write transaction."""
        raise NotImplementedError

    def begin(self, write=False, db=None):
        """Start a database transaction directed at collection handle `db`,
        returning an :py:class:`Engine` instance requests should be directed
        to for the duration of the transaction."""
        raise NotImplementedError

    def abort(self):
        """Abort the transaction."""
        raise NotImplementedError

    def commit(self):
        """Commit the transaction."""
        raise NotImplementedError

    def get(self, key):
        """Return the value of `key` or ``None`` if it does not exist."""
        raise NotImplementedError

    def put(self, key, value):
        """Set the value of `key` to `value`, overwriting any prior value."""
        raise NotImplementedError

    def delete(self, key):
        """Delete `key` if it exists. Return ``True`` if it existed."""
        raise NotImplementedError

    def pop(self, key):
        """Delete `key` if it exists, returning the previous value, if any,
        otherwise ``None``. The default implementation uses :py:meth:`get`
        and :py:meth:`delete`."""
        old = self.get(key)
        self.delete(key)
        return old

    def iter(self):
        """Yield every `(key, value)` tuple of the collection in key order.
        Key order must match the C `memcmp()
        <http://linux.die.net/man/3/memcmp>`_ function."""
        raise NotImplementedError

    def count(self):
        """Return the number of records in the collection."""
        raise NotImplementedError

    def drop(self, delete=True):
        """Empty the collection. If `delete` is ``True``, also delete the
        collection itself, invalidating its handle."""
        raise NotImplementedError

    def raw_stats(self):
        """Return an unstructured dict of engine metrics. See
        :py:func:`cellar.stats.gather` for the keys consumed."""
        raise NotImplementedError


class LmdbEngine(Engine):
    """Storage engine that uses the OpenLDAP `"Lightning" MDB
    <http://symas.com/mdb/>`_ library via the `py-lmdb
    <http://lmdb.readthedocs.org/>`_ module.

        `path`:
            Filesystem path of the environment. The remaining keyword
            arguments are :py:func:`cellar.open` options, translated by
            :py:func:`lmdb_kwargs`.

        `env`, `txn`, `db`, `write`:
            Used internally by :py:meth:`begin` to produce the
            transaction-level instance.

    LMDB must not open the same environment twice within one process, so a
    second :py:class:`LmdbEngine` for a path that is already open raises
    :py:class:`cellar.errors.EngineError`.
    """
    def __init__(self, path=None, env=None, txn=None, db=None, write=False,
                 **options):
        self.path = path
        self.env = env
        self.txn = txn
        self.db = db
        self.write = write
        self.readonly = False
        self._finalizer = None
        if env is None:
            self._open(path, options)

    def _open(self, path, options):
        kwargs = lmdb_kwargs(options)
        real_path = os.path.realpath(path)
        with _open_paths_lock:
            if real_path in _open_paths:
                raise errors.EngineError('lmdb.open: %s: environment is '
                                         'already used by this process' %\
                                         (path,))
            with _translate('lmdb.open'):
                self.env = lmdb.open(path, **kwargs)
            _open_paths.add(real_path)
        # An engine dropped without close() still frees its path.
        self._finalizer = weakref.finalize(self, _release, self.env,
                                           real_path)
        self.readonly = kwargs['readonly']
        LOG.debug('opened %r with %r', path, kwargs)

    def close(self):
        if self._finalizer is not None:
            self._finalizer()
        LOG.debug('closed %r', self.path)

    def open_db(self, name):
        if name is not None:
            name = str(name).encode('utf-8')
        with _translate('open_db(%r)' % (name,)):
            return self.env.open_db(name, create=not self.readonly)

    def begin(self, write=False, db=None):
        with _translate('begin'):
            txn = self.env.begin(write=write)
        return LmdbEngine(env=self.env, txn=txn, db=db, write=write)

    def abort(self):
        with _translate('abort'):
            self.txn.abort()

    def commit(self):
        with _translate('commit'):
            self.txn.commit()

    def get(self, key):
        with _translate('get'):
            return self.txn.get(key, db=self.db)

    def put(self, key, value):
        with _translate('put'):
            self.txn.put(key, value, db=self.db)

    def delete(self, key):
        with _translate('delete'):
            return self.txn.delete(key, db=self.db)

    def pop(self, key):
        with _translate('pop'):
            return self.txn.pop(key, db=self.db)

    def iter(self):
        with _translate('cursor'):
            cursor = self.txn.cursor(db=self.db)
        return _iter_cursor(cursor)

    def count(self):
        with _translate('stat'):
            return self.txn.stat(self.db)['entries']

    def drop(self, delete=True):
        with _translate('drop'):
            self.txn.drop(self.db, delete=delete)

    def raw_stats(self):
        with _translate('stat'):
            stat = self.env.stat()
            info = self.env.info()
            readers = self.env.readers()
            max_key_size = self.env.max_key_size()

        options = [
            'LMDB_VERSION=%d.%d.%d' % lmdb.version(),
            'PY_LMDB_VERSION=%s' % (lmdb.__version__,),
            'MAX_KEY_SIZE=%d' % (max_key_size,),
            'PAGE_SIZE=%d' % (stat['psize'],),
        ]
        return {
            'build_compiler': platform.python_compiler(),
            'build_flags': sysconfig.get_config_var('CFLAGS') or '',
            'build_options': ' '.join(options),
            'build_target': sysconfig.get_platform(),
            'system_memory': _system_memory(),
            'stat': stat,
            'info': info,
            'readers': readers,
        }
