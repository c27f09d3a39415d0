#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Check that a my.cnf cannot ask for more memory than the machine has.

min_memory_needed = global_buffers + (thread_buffers * max_connections)
"""

from dataclasses import dataclass
from optparse import OptionParser
import logging
import re
import sys

__version__ = '0.0.1'

log = logging.getLogger(__name__)

K = 1024
M = 1024 ** 2
G = 1024 ** 3

UNITS = {
         'K' : K,
         'M' : M,
         'G' : G,
        }

OVER_TEXT = '\033[31;1mOver!!\033[m'
SAFE_TEXT = '\033[32;1mSafe\033[m'

GLOBAL_BUFFERS = (
                  'key_buffer_size',
                  'innodb_buffer_pool_size',
                  'innodb_log_buffer_size',
                  'innodb_additional_mem_pool_size',
                  'net_buffer_length',
                 )

THREAD_BUFFERS = (
                  'sort_buffer_size',
                  'myisam_sort_buffer_size',
                  'read_buffer_size',
                  'join_buffer_size',
                  'read_rnd_buffer_size',
                 )

HEAP_LIMIT = (
              'innodb_buffer_pool_size',
              'key_buffer_size',
              'sort_buffer_size',
              'read_buffer_size',
              'read_rnd_buffer_size',
             )

INNODB_LOG_FILES = (
                    'innodb_buffer_pool_size',
                    'innodb_log_files_in_group',
                   )

OTHER_VARIABLES = (
                   'max_connections',
                  )

REQUIRE_VARIABLES = frozenset(GLOBAL_BUFFERS + THREAD_BUFFERS + HEAP_LIMIT +
                              INNODB_LOG_FILES + OTHER_VARIABLES)

DEFAULT_MACHINE_MEMORY_SIZE = '4G'
DEFAULT_SYSTEM_MEMORY_SIZE = '256M'


@dataclass(frozen=True)
class Options:
    machine_memory_size: str = DEFAULT_MACHINE_MEMORY_SIZE
    system_memory_size: str = DEFAULT_SYSTEM_MEMORY_SIZE
    color: bool = True


_SIZE_RE = re.compile(r'^(\d+)([A-Z])$')
_OPTION_SIZE_RE = re.compile(r'^\d+[KMG]?$')
_INT_RE = re.compile(r'^\s*([+-]?\d+)')
_SPLIT_RE = re.compile(r'[\s=|]+')
_BAR_PREFIX_RE = re.compile(r'^\|\s+')
_BAR_SUFFIX_RE = re.compile(r'\s*\|\s*$')


def to_int(val):
    """Lenient integer coercion.

    Leading digits (with an optional sign) are used, anything else is 0.
    '256m' -> 256, 'OFF' -> 0, None -> 0.
    """
    if isinstance(val, int):
        return val
    if val is None:
        return 0
    m = _INT_RE.match(str(val))
    if m is None:
        return 0
    return int(m.group(1))


def unit_multiplier(unit):
    # unknown unit letters count as zero bytes, e.g. '1T' -> 0
    if unit not in UNITS:
        log.warning('unsupported size unit %r, treated as 0 bytes', unit)
        return 0
    return UNITS[unit]


def to_byte(val):
    """'256M' -> 268435456. Bare numbers are returned as integers."""
    m = _SIZE_RE.match(str(val))
    if m is None:
        return to_int(val)
    num, unit = m.groups()
    return int(num) * unit_multiplier(unit)


def to_unit(num):
    # strictly greater: exactly 1G is still shown as 1024.000 [M]
    if num > G:
        base, unit = G, 'G'
    elif num > M:
        base, unit = M, 'M'
    elif num > K:
        base, unit = K, 'K'
    else:
        base, unit = 1, ''
    return '%.3f [%s]' % (num / float(base), unit)


def is_size(val):
    return _OPTION_SIZE_RE.match(val) is not None


def parse_my_variables(lines):
    """Collect name/value pairs of the [mysqld] section from my.cnf lines.

    Lines decorated with '|' (``mysql -e 'show variables'`` table output)
    are accepted. A file without any [section] header is read as a whole.
    """
    myval = {}
    lines = list(lines)
    mycnf = any(line.startswith('[') for line in lines)
    in_mysqld = False

    for line in lines:
        if line.startswith('['):
            in_mysqld = line.startswith('[mysqld]')
            log.debug('section %s, in_mysqld=%s', line.strip(), in_mysqld)
            continue
        if mycnf and not in_mysqld:
            continue

        line = _BAR_PREFIX_RE.sub('', line.strip())
        line = _BAR_SUFFIX_RE.sub('', line)
        if not line or line.startswith('#'):
            continue

        fields = _SPLIT_RE.split(line)
        if len(fields) < 2 or not fields[1]:
            log.debug('skip %r', line)
            continue
        name = fields[0].replace('-', '_')
        value = fields[1]
        if value.endswith(('K', 'M', 'G')):
            value = to_byte(value)

        myval[name] = value
        log.debug('%s = %s', name, value)
        # sort_buffer is an alias of sort_buffer_size
        if name.endswith('buffer'):
            myval[name + '_size'] = value

    return myval


def read_my_variables(filename):
    if filename == '-':
        log.debug('reading variables from stdin')
        return parse_my_variables(sys.stdin)
    log.debug('reading variables from %s', filename)
    with open(filename, errors='replace') as cnf:
        return parse_my_variables(cnf)


def missing_variables(myval):
    return sorted(set(name for name in REQUIRE_VARIABLES if name not in myval))


def validate_my_variables(myval):
    missing = missing_variables(myval)
    if missing:
        print('[ABORT] missing variables:\n  ' + '\n  '.join(missing) + '\n')
        sys.exit(1)


def sum_variables(myval, names):
    return sum(to_int(myval.get(name)) for name in names)


def calc_minimal_memory(myval, options=Options()):
    """Return (global, thread, max_connections, minimal, total, over)."""
    global_buffer_size = sum_variables(myval, GLOBAL_BUFFERS)
    thread_buffer_size = sum_variables(myval, THREAD_BUFFERS)
    max_connections = to_int(myval.get('max_connections'))

    minimal_memory = global_buffer_size + thread_buffer_size * max_connections
    total_memory = minimal_memory + to_byte(options.system_memory_size)
    over = total_memory > to_byte(options.machine_memory_size)

    return (global_buffer_size, thread_buffer_size, max_connections,
            minimal_memory, total_memory, over)


def _verdict(over, options):
    if over:
        text = OVER_TEXT if options.color else 'Over!!'
        return '> %s (%s)' % (options.machine_memory_size, text)
    text = SAFE_TEXT if options.color else 'Safe'
    return '< %s (%s)' % (options.machine_memory_size, text)


def _show_buffers(myval, names):
    for k in names:
        v = to_int(myval.get(k))
        print('  %-32s %12d  %12s' % (k, v, to_unit(v)))
    print()


def report_minimal_memory(myval, options=Options()):
    (global_buffer_size, thread_buffer_size, max_connections,
     minimal_memory, total_memory, over) = calc_minimal_memory(myval, options)
    system_memory = to_byte(options.system_memory_size)

    print('[ minimal memory ]')
    print('ref: High Performance MySQL, Solving Memory Bottlenecks, p125')
    print()

    print('global buffers')
    _show_buffers(myval, GLOBAL_BUFFERS)

    print('thread buffers')
    _show_buffers(myval, THREAD_BUFFERS)

    print('%-34s %12d' % ('max_connections', max_connections))
    print()

    print('min_memory_needed = global_buffers + (thread_buffers * max_connections)')
    print('                  = %d + %d * %d' % (global_buffer_size,
                                                thread_buffer_size,
                                                max_connections))
    print('                  = %d (%s)' % (minimal_memory, to_unit(minimal_memory)))
    print()

    print('system memory size = %s' % options.system_memory_size)
    print()

    print('total require memory = min_memory_needed + system_memory_size')
    print('                     = %d + %d' % (minimal_memory, system_memory))
    print('                     = %d (%s) %s' % (total_memory,
                                                 to_unit(total_memory),
                                                 _verdict(over, options)))
    print()

    return over


def _build_parser():
    usage = "usage: %prog [options] my_cnf_file\n"
    usage += "     : mysql -e 'show variables' | %prog [options] -"
    parser = OptionParser(usage, version='%prog ' + __version__)
    parser.add_option('-m', '--memory', dest='machine_memory_size', metavar='NUM',
                      default=DEFAULT_MACHINE_MEMORY_SIZE,
                      help='Server machine memory size. (default: %default)')
    parser.add_option('-s', '--system', dest='system_memory_size', metavar='NUM',
                      default=DEFAULT_SYSTEM_MEMORY_SIZE,
                      help='Server system memory size. (default: %default)')
    parser.add_option('--no-color', dest='color', action='store_false', default=True,
                      help='Do not colorize the Safe/Over marker.')
    parser.add_option('-d', '--debug', dest='debug', action='store_true', default=False,
                      help='Write debug log to stderr.')
    return parser


def main(argv=None):
    parser = _build_parser()
    opts, args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if opts.debug else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    if not args:
        parser.print_help()
        sys.exit(1)

    for size in (opts.machine_memory_size, opts.system_memory_size):
        if not is_size(size):
            parser.error('invalid memory size: %s' % size)

    options = Options(opts.machine_memory_size, opts.system_memory_size, opts.color)

    try:
        myval = read_my_variables(args[0])
    except (IOError, OSError) as e:
        sys.exit(e)

    validate_my_variables(myval)
    report_minimal_memory(myval, options)
    return 0


if __name__ == '__main__':
    sys.exit(main())
