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
All custom exceptions thrown by Cellar should be defined here.
"""


class Error(Exception):
    """Base class for Cellar exceptions."""
    def __init__(self, msg='', inner=None):
        Exception.__init__(self, msg)
        #: The inner exception, if any.
        self.inner = inner


class Rollback(Error):
    """Raise inside a :py:meth:`cellar.Database.transaction` body to roll
    back the transaction gracefully. The exception is swallowed by the
    ``transaction()`` call that began the underlying transaction."""


class ConfigError(Error):
    """An unrecognized option was passed to :py:func:`cellar.open`."""


class HandleClosed(Error):
    """Attempt to use a :py:class:`cellar.Database` after it was closed."""


class EngineError(Error):
    """Unspecified error occurred with the database engine. The original
    exception may be available as the :py:attr:`inner` attribute."""


class CollectionsNotEnabled(Error):
    """Attempt to switch to or drop a named collection in an environment
    opened without `max_collections`."""


class TopLevelRequired(Error):
    """Attempt to drop a collection while a named collection is active.
    Switch to the main namespace first."""


class TxnError(Error):
    """The active transaction state does not permit the operation."""


class TransactionOpen(TxnError):
    """Attempt to switch or drop a collection while a transaction is
    open."""


class NoTransactionOpen(TxnError):
    """Raw iteration was attempted without an open transaction."""


class PermissionDenied(TxnError):
    """Attempt to write inside a read-only transaction (snapshot)."""


class KeyNotFound(Error, KeyError):
    """:py:meth:`cellar.Database.fetch` found no record and was given no
    fallback."""
    def __init__(self, key):
        Error.__init__(self, 'key not found: %r' % (key,))
        #: The missing key.
        self.key = key
