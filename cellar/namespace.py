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
Active collection tracking for :py:class:`cellar.Database`.
"""

import contextlib
import logging

from cellar import errors

__all__ = ['CollectionStack']

LOG = logging.getLogger('cellar.namespace')


class CollectionStack(object):
    """Tracks the collection read/write operations apply to, and the names
    to restore when scoped switches made by :py:meth:`scope` end.

        `txn_context`:
            :py:class:`cellar.txn.TxnContext` of the owning database. No
            switch is permitted while it has a transaction open.

        `enabled`:
            ``True`` if the environment was opened with `max_collections`.
    """
    def __init__(self, txn_context, enabled):
        self.txn_context = txn_context
        self.enabled = enabled
        #: Name of the active collection, or ``None`` for the main database.
        self.current = None
        self._stack = []

    def __len__(self):
        """Return the number of scoped switches currently in effect."""
        return len(self._stack)

    def _check(self, name, action):
        if self.txn_context.active():
            raise errors.TransactionOpen('Unable to %s: transaction open' %\
                                         (action,))
        if name is not None and not self.enabled:
            raise errors.CollectionsNotEnabled('Unable to %s: collections '
                                               'are not enabled.' % (action,))

    def set(self, name):
        """Switch to `name` immediately, returning the previous name."""
        self._check(name, 'change collection')
        prev = self.current
        self.current = name
        LOG.debug('switched collection %r -> %r', prev, name)
        return prev

    def check_drop(self, name):
        """Raise unless collection `name` may be dropped right now."""
        self._check(name, 'drop collection')
        if self.current is not None:
            raise errors.TopLevelRequired('Unable to drop collection: '
                                          'switch to top-level db first')

    def push(self, name):
        """Switch to `name`, remembering the current name for :py:meth:`pop`.
        """
        self._check(name, 'change collection')
        self._stack.append(self.current)
        self.current = name

    def pop(self, strict=True):
        """Restore the name saved by the matching :py:meth:`push`. The name
        is restored unconditionally; a transaction left open inside the scope
        is rolled back, and if `strict` is ``True``
        :py:class:`cellar.errors.TransactionOpen` is then raised."""
        inner = self.current
        self.current = self._stack.pop()
        if self.txn_context.active():
            LOG.warning('transaction left open in collection %r; '
                        'rolling back', inner)
            self.txn_context.rollback()
            if strict:
                raise errors.TransactionOpen('Unable to change collection: '
                                             'transaction open')

    @contextlib.contextmanager
    def scope(self, name):
        """Context manager that switches to `name` for the duration of the
        block."""
        self.push(name)
        try:
            yield
        except BaseException:
            self.pop(strict=False)
            raise
        self.pop()
