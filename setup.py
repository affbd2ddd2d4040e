#!/usr/bin/env python
#
# Copyright 2013, David Wilson
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

"""Cellar setuptools script.
"""

import os

from setuptools import setup


def grep_version():
    path = os.path.join(os.path.dirname(__file__), 'cellar/__init__.py')
    with open(path) as fp:
        for line in fp:
            if line.startswith('__version__'):
                return eval(line.split()[-1])

setup(
    name =          'cellar',
    version =       grep_version(),
    description =   'Dictionary-like access to LMDB environments',
    author =        'David Wilson',
    author_email =  'dw@botanicus.net',
    license =       'Apache 2',
    packages =      ['cellar'],
    python_requires = '>=3.6',
    install_requires = ['lmdb'],
    extras_require = {
        'msgpack': ['msgpack'],
        'test': ['msgpack'],
    },
)
