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
Turn the unstructured record returned by :py:meth:`Engine.raw_stats
<cellar.engines.Engine.raw_stats>` into the dict returned by
:py:meth:`cellar.Database.statistics`.
"""

__all__ = ['gather', 'parse_options', 'parse_readers']


def _int_or_str(s):
    try:
        return int(s)
    except ValueError:
        return s


def parse_options(s):
    """Split a free-form build options string like ``"A=1 B=x C"`` into a
    dict. Values are integers where they parse as one, otherwise strings;
    options without a value map to ``None``."""
    options = {}
    for part in s.split():
        bits = part.split('=', 1)
        if len(bits) == 1:
            options[bits[0]] = None
        else:
            options[bits[0]] = _int_or_str(bits[1])
    return options


def parse_readers(text):
    """Parse the reader table produced by LMDB's ``mdb_reader_list()``
    into a list of dicts with `slot`, `pid`, `thread` and `txnid` keys.
    `txnid` is the string ``"-"`` for an idle slot."""
    readers = []
    for line in text.splitlines():
        bits = line.split()
        if len(bits) != 3 or not bits[0].isdigit():
            continue # header, or "(no active readers)"
        readers.append({
            'slot': len(readers),
            'pid': int(bits[0]),
            'thread': int(bits[1], 16),
            'txnid': _int_or_str(bits[2]),
        })
    return readers


def _datafile(stat, info):
    pages = info['last_pgno'] + 1
    return {
        'type': 'fixed',
        'pages': pages,
        'size_current': pages * stat['psize'],
        'size_upper': info['map_size'],
    }


def _environment(stat, info, readers):
    txnids = [r['txnid'] for r in readers if isinstance(r['txnid'], int)]
    return {
        'pagesize': stat['psize'],
        'branch_pages': stat['branch_pages'],
        'leaf_pages': stat['leaf_pages'],
        'overflow_pages': stat['overflow_pages'],
        'btree_depth': stat['depth'],
        'entries': stat['entries'],
        'last_txnid': info['last_txnid'],
        'last_reader_txnid': min(txnids) if txnids else info['last_txnid'],
        'max_readers': info['max_readers'],
        'readers_in_use': info['num_readers'],
        'datafile': _datafile(stat, info),
    }


def gather(raw):
    """Return the statistics dict for `raw`, a record produced by
    :py:meth:`cellar.engines.Engine.raw_stats`:

        `build`:
            Dict of `compiler`, `flags`, `target` strings, and `options`, the
            parsed build options.

        `environment`:
            Environment-wide B-tree and transaction metrics, with a nested
            `datafile` dict.

        `readers`:
            List of per-reader-slot dicts, see :py:func:`parse_readers`.

        `system_memory`:
            Host `pagesize`, `total_pages` and `avail_pages`, when the
            platform reports them.

    Any keys of `raw` not consumed above are copied through unchanged.
    """
    raw = dict(raw)
    stat = raw.pop('stat')
    info = raw.pop('info')
    readers = parse_readers(raw.pop('readers'))

    stats = {
        'build': {
            'compiler': raw.pop('build_compiler'),
            'flags': raw.pop('build_flags'),
            'options': parse_options(raw.pop('build_options')),
            'target': raw.pop('build_target'),
        },
        'environment': _environment(stat, info, readers),
        'readers': readers,
    }

    memory = raw.pop('system_memory', None)
    if memory:
        page_size, total_pages, avail_pages = memory
        stats['system_memory'] = {
            'pagesize': page_size,
            'total_pages': total_pages,
            'avail_pages': avail_pages,
        }

    stats.update(raw)
    return stats
