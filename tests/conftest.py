"""Shared fixtures for mymemcheck tests."""

import sys
from pathlib import Path

# Ensure mymemcheck is importable without installing
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest


MY_CNF = """\
[client]
port = 3306
key_buffer_size = 1G

[mysqld]
# buffers
key_buffer_size=16M
innodb_buffer_pool_size=128M
innodb_log_buffer_size=8M
innodb_additional_mem_pool_size=8M
net_buffer_length=16K
sort_buffer_size=2M
myisam_sort_buffer_size=8M
read_buffer_size=128K
join_buffer_size=128K
read_rnd_buffer_size=256K
innodb_log_files_in_group=2
max_connections=100

[mysqldump]
max_allowed_packet = 16M
"""


@pytest.fixture
def write_cnf(tmp_path):
    """Write my.cnf text to a temp file and return its path as str."""
    def _write(text, name='my.cnf'):
        path = tmp_path / name
        path.write_text(text)
        return str(path)
    return _write


@pytest.fixture
def my_cnf(write_cnf):
    return write_cnf(MY_CNF)


@pytest.fixture
def myval():
    """Parsed form of MY_CNF."""
    return {
        'key_buffer_size': 16 * 1024 ** 2,
        'innodb_buffer_pool_size': 128 * 1024 ** 2,
        'innodb_log_buffer_size': 8 * 1024 ** 2,
        'innodb_additional_mem_pool_size': 8 * 1024 ** 2,
        'net_buffer_length': 16 * 1024,
        'sort_buffer_size': 2 * 1024 ** 2,
        'myisam_sort_buffer_size': 8 * 1024 ** 2,
        'read_buffer_size': 128 * 1024,
        'join_buffer_size': 128 * 1024,
        'read_rnd_buffer_size': 256 * 1024,
        'innodb_log_files_in_group': '2',
        'max_connections': '100',
    }
