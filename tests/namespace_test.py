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
Collection switching tests.
"""

import unittest

from cellar import errors
from cellar import namespace
from cellar import txn

import testlib
from testlib import eq


class CollectionStackTest(unittest.TestCase):
    def setUp(self):
        self.context = txn.TxnContext(lambda write: object())
        self.stack = namespace.CollectionStack(self.context, True)

    def testSetReturnsPrevious(self):
        eq(self.stack.set('a'), None)
        eq(self.stack.set('b'), 'a')
        eq(self.stack.current, 'b')

    def testPushPop(self):
        self.stack.push('a')
        self.stack.push('b')
        eq(len(self.stack), 2)
        self.stack.pop()
        eq(self.stack.current, 'a')
        self.stack.pop()
        eq(self.stack.current, None)
        eq(len(self.stack), 0)

    def testPushWithTxn(self):
        self.context.begin(False)
        self.assertRaises(errors.TransactionOpen, self.stack.push, 'a')
        eq(len(self.stack), 0)

    def testDisabled(self):
        stack = namespace.CollectionStack(self.context, False)
        self.assertRaises(errors.CollectionsNotEnabled, stack.set, 'a')
        eq(stack.set(None), None)

    def testTransactionOpenWins(self):
        stack = namespace.CollectionStack(self.context, False)
        self.context.begin(False)
        self.assertRaises(errors.TransactionOpen, stack.set, 'a')


class CollectionTest(testlib.DatabaseTestCase):
    options = {'max_collections': 5}

    def testDefaultIsMain(self):
        eq(self.db.collection(), None)

    def testSwitch(self):
        eq(self.db.collection('people'), None)
        eq(self.db.collection(), 'people')
        eq(self.db.namespace('places'), 'people')
        eq(self.db.main(), 'places')
        eq(self.db.collection(), None)

    def testIsolation(self):
        self.db['x'] = 'main'
        with self.db.using('a'):
            self.db['x'] = 'a'
            eq(self.db.to_dict(), {'x': 'a'})
        with self.db.using('b'):
            eq(self.db.get('x'), None)
            assert self.db.is_empty()
        eq(self.db['x'], 'main')

    def testNestedRestore(self):
        with self.db.using('a'):
            with self.db.using('b'):
                with self.db.using('c'):
                    eq(self.db.collection(), 'c')
                eq(self.db.collection(), 'b')
            eq(self.db.collection(), 'a')
        eq(self.db.collection(), None)

    def testNestedRestoreOnError(self):
        try:
            with self.db.using('a'):
                with self.db.using('b'):
                    with self.db.using('c'):
                        raise ValueError('boom')
        except ValueError:
            pass
        else:
            self.fail('ValueError was swallowed')
        eq(self.db.collection(), None)
        eq(len(self.db._collections), 0)

    def testFuncForm(self):
        def func():
            self.db['me'] = True
            return self.db.collection()
        eq(self.db.collection('people', func), 'people')
        eq(self.db.collection(), None)
        eq(self.db.get('me'), None)
        eq(self.db.collection('people', lambda: self.db['me']), True)

    def testFuncFormRestoresOnError(self):
        def func():
            raise KeyError('x')
        self.assertRaises(KeyError, self.db.collection, 'people', func)
        eq(self.db.collection(), None)

    def testPlainSwitchInsideScope(self):
        with self.db.using('a'):
            self.db.collection('b')
            eq(self.db.collection(), 'b')
        eq(self.db.collection(), None)

    def testSwitchWithTxn(self):
        self.db.open_transaction()
        self.assertRaises(errors.TransactionOpen, self.db.collection, 'a')
        self.assertRaises(errors.TransactionOpen, self.db.main)
        eq(self.db.collection(), None)
        self.db.rollback()

    def testSwitchWithTxnWhenNested(self):
        with self.db.using('a'):
            with self.db.using('b'):
                with self.db.transaction():
                    try:
                        with self.db.using('c'):
                            pass
                    except errors.TransactionOpen:
                        pass
                    else:
                        self.fail('switched with a transaction open')
                eq(self.db.collection(), 'b')
            eq(self.db.collection(), 'a')

    def testScopeLeavesTxnOpen(self):
        def leak():
            with self.db.using('a'):
                self.db.open_transaction(write=True)
                self.db['x'] = 1
        self.assertRaises(errors.TransactionOpen, leak)
        assert not self.db.in_transaction
        eq(self.db.collection(), None)
        with self.db.using('a'):
            eq(self.db.get('x'), None)

    def testTxnWithinScope(self):
        with self.db.using('a'):
            with self.db.transaction():
                self.db['x'] = 1
            eq(self.db['x'], 1)

    def testDrop(self):
        with self.db.using('a'):
            self.db['x'] = 1
        self.db.drop('a')
        with self.db.using('a'):
            assert self.db.is_empty()

    def testDropMissing(self):
        self.db.drop('never-created')
        eq(self.db.collection(), None)

    def testDropOutsideMain(self):
        with self.db.using('a'):
            self.assertRaises(errors.TopLevelRequired, self.db.drop, 'b')

    def testDropWithTxn(self):
        self.db.open_transaction()
        self.assertRaises(errors.TransactionOpen, self.db.drop, 'a')
        self.db.rollback()

    def testReprShowsCollection(self):
        with self.db.using('people'):
            assert "'people'" in repr(self.db)

    def testReopenKeepsCollection(self):
        self.db.collection('people')
        self.db['me'] = 1
        self.db.reopen()
        eq(self.db.collection(), 'people')
        eq(self.db['me'], 1)


class CollectionsDisabledTest(testlib.DatabaseTestCase):
    def testSwitch(self):
        self.assertRaises(errors.CollectionsNotEnabled,
                          self.db.collection, 'a')
        eq(self.db.collection(), None)

    def testMainAllowed(self):
        eq(self.db.main(), None)

    def testUsing(self):
        def use():
            with self.db.using('a'):
                self.fail('entered disabled collection')
        self.assertRaises(errors.CollectionsNotEnabled, use)
        eq(len(self.db._collections), 0)

    def testDrop(self):
        self.assertRaises(errors.CollectionsNotEnabled, self.db.drop, 'a')


if __name__ == '__main__':
    testlib.main()
