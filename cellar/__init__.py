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

from cellar import core
from cellar import engines
from cellar.core import *
from cellar.errors import Rollback

__all__ = core.__all__ + ['Rollback', 'LIBRARY_VERSION']
__doc__ = core.__doc__
__version__ = '0.3.5'

#: Version of the LMDB library in use, e.g. ``"v0.9.31"``.
LIBRARY_VERSION = engines.library_version()
