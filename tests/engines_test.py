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
cellar.engines tests.
"""

import gc
import os
import re
import tempfile
import unittest

import testlib
from testlib import eq
from testlib import rm_rf

import cellar
import cellar.engines
from cellar import errors


class LmdbEngineTest(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp(prefix='cellar-test-')
        self.path = os.path.join(self.tmpdir, 'test.lmdb')
        self.engine = cellar.engines.LmdbEngine(self.path)
        self.main = self.engine.open_db(None)
        self.e = self.engine.begin(write=True, db=self.main)

    def tearDown(self):
        self.e.abort()
        self.engine.close()
        rm_rf(self.tmpdir)

    def testGetPutOverwrite(self):
        assert self.e.get(b'dave') is None
        self.e.put(b'dave', b'')
        eq(self.e.get(b'dave'), b'')
        self.e.put(b'dave', b'2')
        eq(self.e.get(b'dave'), b'2')

    def testPop(self):
        assert self.e.pop(b'dave') is None
        self.e.put(b'dave', b'1')
        eq(self.e.pop(b'dave'), b'1')
        assert self.e.pop(b'dave') is None

    def testDelete(self):
        assert not self.e.delete(b'dave')
        self.e.put(b'dave', b'')
        assert self.e.delete(b'dave')
        eq(self.e.get(b'dave'), None)

    def testIterEmpty(self):
        eq(list(self.e.iter()), [])

    def testIterOrder(self):
        for key in b'c', b'a', b'b':
            self.e.put(key, key * 2)
        eq(list(self.e.iter()), [(b'a', b'aa'), (b'b', b'bb'), (b'c', b'cc')])

    def testCount(self):
        eq(self.e.count(), 0)
        self.e.put(b'a', b'')
        self.e.put(b'b', b'')
        eq(self.e.count(), 2)

    def testDropEmpties(self):
        self.e.put(b'a', b'')
        self.e.drop(delete=False)
        eq(self.e.count(), 0)

    def testCommitVisible(self):
        self.e.put(b'a', b'1')
        self.e.commit()
        self.e = self.engine.begin(write=False, db=self.main)
        eq(self.e.get(b'a'), b'1')

    def testAbortDiscards(self):
        self.e.put(b'a', b'1')
        self.e.abort()
        self.e = self.engine.begin(write=False, db=self.main)
        eq(self.e.get(b'a'), None)

    def testReadonlyTxnPut(self):
        self.e.abort()
        self.e = self.engine.begin(write=False, db=self.main)
        self.assertRaises(errors.PermissionDenied, self.e.put, b'a', b'1')

    def testAlreadyInUse(self):
        try:
            cellar.engines.LmdbEngine(self.path)
        except errors.EngineError as e:
            assert 'already used' in str(e), str(e)
        else:
            self.fail('second open succeeded')

    def testReopenAfterClose(self):
        self.e.abort()
        self.engine.close()
        self.engine = cellar.engines.LmdbEngine(self.path)
        self.e = self.engine.begin(write=True, db=self.engine.open_db(None))

    def testReopenAfterCollected(self):
        self.e.abort()
        self.engine.close()
        engine = cellar.engines.LmdbEngine(self.path)
        del engine
        gc.collect()
        self.engine = cellar.engines.LmdbEngine(self.path)
        self.e = self.engine.begin(write=True, db=self.engine.open_db(None))

    def testCloseTwice(self):
        self.e.abort()
        self.engine.close()
        self.engine.close()
        self.engine = cellar.engines.LmdbEngine(self.path)
        self.e = self.engine.begin(db=self.engine.open_db(None))

    def testNamedDbNeedsMaxCollections(self):
        # open_db() needs the write lock held by self.e.
        self.e.abort()
        self.e = self.engine.begin(db=self.main)
        self.assertRaises(errors.EngineError, self.engine.open_db, 'people')

    def testRawStats(self):
        raw = self.engine.raw_stats()
        for key in ('build_compiler', 'build_flags', 'build_options',
                    'build_target', 'stat', 'info', 'readers'):
            assert key in raw, key
        assert 'MAX_KEY_SIZE=' in raw['build_options']


class NamedDbTest(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp(prefix='cellar-test-')
        self.engine = cellar.engines.LmdbEngine(
            os.path.join(self.tmpdir, 'test.lmdb'), max_collections=2)

    def tearDown(self):
        self.engine.close()
        rm_rf(self.tmpdir)

    def testIsolated(self):
        people = self.engine.open_db('people')
        txn = self.engine.begin(write=True, db=people)
        txn.put(b'me', b'1')
        txn.commit()

        txn = self.engine.begin(db=self.engine.open_db('places'))
        eq(txn.get(b'me'), None)
        txn.abort()

    def testDropDeletes(self):
        people = self.engine.open_db('people')
        txn = self.engine.begin(write=True, db=people)
        txn.put(b'me', b'1')
        txn.drop(delete=True)
        txn.commit()

        txn = self.engine.begin(db=self.engine.open_db('people'))
        eq(txn.count(), 0)
        txn.abort()


class LmdbKwargsTest(unittest.TestCase):
    def testDefaults(self):
        kwargs = cellar.engines.lmdb_kwargs({})
        eq(kwargs['max_dbs'], 0)
        eq(kwargs['subdir'], True)
        eq(kwargs['lock'], True)
        eq(kwargs['map_size'], cellar.engines.DEFAULT_MAP_SIZE)
        assert 'mode' not in kwargs
        assert 'max_readers' not in kwargs

    def testTranslated(self):
        kwargs = cellar.engines.lmdb_kwargs({
            'mode': 0o600,
            'max_collections': 5,
            'max_readers': 500,
            'max_size': 1 << 20,
            'no_subdir': True,
            'readonly': True,
            'exclusive': True,
            'writemap': True,
            'no_stickythreads': True,
            'no_readahead': True,
            'no_memory_init': True,
            'no_metasync': True,
        })
        eq(kwargs, {
            'mode': 0o600,
            'max_dbs': 5,
            'max_readers': 500,
            'map_size': 1 << 20,
            'subdir': False,
            'readonly': True,
            'lock': False,
            'writemap': True,
            'readahead': False,
            'meminit': False,
            'metasync': False,
        })

    def testUnknown(self):
        self.assertRaises(errors.ConfigError,
                          cellar.engines.lmdb_kwargs, {'coalesce': True})

    def testUnsupportedWarns(self):
        with self.assertLogs('cellar.engines', 'WARNING') as cm:
            cellar.engines.lmdb_kwargs({'lifo_reclaim': True})
        assert 'lifo_reclaim' in cm.output[0]


class VersionTest(unittest.TestCase):
    def testFormat(self):
        version = cellar.engines.library_version()
        assert re.match(r'^v\d+\.\d+\.\d+$', version), version
        eq(cellar.LIBRARY_VERSION, version)


if __name__ == '__main__':
    testlib.main()
