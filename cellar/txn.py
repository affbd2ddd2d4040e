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
Transaction bookkeeping for :py:class:`cellar.Database`.
"""

import logging

from cellar import errors

__all__ = ['TxnContext', 'Transaction']

LOG = logging.getLogger('cellar.txn')


class TxnContext(object):
    """Tracks the single active transaction of one :py:class:`Database
    <cellar.Database>`. Unlike a thread-local context, the transaction
    belongs to the database handle; callers sharing a handle between threads
    must serialize access themselves.

        `start`:
            Function invoked as `func(write)` to begin a new engine
            transaction.
    """
    def __init__(self, start):
        self.start = start
        #: Transaction-level :py:class:`cellar.engines.Engine`, or ``None``.
        self.txn = None
        #: ``True`` for a write transaction, ``False`` for a snapshot,
        #: ``None`` if no transaction is active.
        self.write = None
        #: Number of :py:meth:`begin` calls sharing :py:attr:`txn`.
        self.depth = 0
        #: ``True`` while a :py:class:`Transaction` block that began
        #: :py:attr:`txn` is running, and will finalize it.
        self.guarded = False

    def mode(self):
        """Return a tristate indicating the active transaction mode: ``None``
        if no transaction is active, ``False`` if a read-only transaction is
        active, or ``True`` if a write transaction is active."""
        return self.write

    def active(self):
        return self.txn is not None

    def begin(self, write=False):
        """Begin a transaction, or join the active one without changing its
        mode. Return ``True`` if a new transaction was begun."""
        if self.txn is not None:
            self.depth += 1
            return False
        self.txn = self.start(write)
        self.write = write
        self.depth = 1
        self.guarded = False
        LOG.debug('began %s transaction', 'write' if write else 'read-only')
        return True

    def get(self):
        """Return the active transaction, or raise
        :py:class:`cellar.errors.NoTransactionOpen`."""
        if self.txn is None:
            raise errors.NoTransactionOpen('No snapshot or transaction '
                                           'currently open.')
        return self.txn

    def _clear(self):
        txn = self.txn
        self.txn = None
        self.write = None
        self.depth = 0
        self.guarded = False
        return txn

    def commit(self):
        """Commit the active transaction, if any. The transaction is
        forgotten before the engine is asked to commit it."""
        txn = self._clear()
        if txn is not None:
            LOG.debug('committing transaction')
            txn.commit()

    def rollback(self):
        """Abort the active transaction, if any. The transaction is
        forgotten before the engine is asked to abort it."""
        txn = self._clear()
        if txn is not None:
            LOG.debug('rolling back transaction')
            txn.abort()


class Transaction(object):
    """Returned by :py:meth:`cellar.Database.transaction` once the
    transaction has been opened. Used as a context manager, it finalizes the
    transaction when the block exits:

    ::

        with db.transaction():
            db['people'] = ['me']

    Only the block that began the underlying transaction finalizes it. If
    the block completes normally the transaction is committed, otherwise it
    is rolled back and the exception propagates, except for
    :py:class:`cellar.errors.Rollback`, which is swallowed. Blocks that
    joined an already active transaction leave it open, and let any
    exception, :py:class:`Rollback <cellar.errors.Rollback>` included,
    propagate to the owning block. If there is no owning block, because the
    transaction was opened by :py:meth:`cellar.Database.open_transaction` or
    a body-less ``transaction()``, a joined block that raises rolls the
    transaction back itself.
    """
    def __init__(self, context, database, owner):
        self.context = context
        self.database = database
        #: ``True`` if this handle began the underlying transaction.
        self.owner = owner
        self.txn = context.txn

    def __enter__(self):
        if self.owner and self.context.txn is self.txn:
            self.context.guarded = True
        return self.database

    def __exit__(self, exc_type, exc_value, traceback):
        context = self.context
        # False if commit() or rollback() was called inside the block.
        current = context.txn is self.txn
        if not self.owner:
            if not current:
                return False
            if exc_type is None or context.guarded:
                context.depth -= 1
                return False
            LOG.debug('%s raised in joined transaction', exc_type.__name__)
            context.rollback()
            return issubclass(exc_type, errors.Rollback)

        if current:
            if exc_type is None:
                context.commit()
            else:
                LOG.debug('%s raised in transaction', exc_type.__name__)
                context.rollback()
        return exc_type is not None and issubclass(exc_type, errors.Rollback)
