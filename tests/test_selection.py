import math

import numpy as np
import pytest

from sddsio.constants import MATCH_TYPE, MATCH_INTEGER_TYPE, MATCH_FLOATING_TYPE, AND, OR
from sddsio.exceptions import UsageError
from sddsio.layout.layout import Layout
from sddsio.layout.schema import ColumnDefinition
from sddsio.query.keygroups import (make_sorted_key_groups, find_matching_key_group,
                                    build_str_hash, build_num_hash)
from sddsio.query.selection import (wild_match, has_wildcards, match_names, combine,
                                    set_columns_of_interest)
from sddsio.storage.page import PageBuffer
from sddsio.types.value import SDDSType


def test_wild_match():
    assert wild_match('Temperature', 'Temp*')
    assert wild_match('x1', 'x?')
    assert wild_match('b', '[abc]')
    assert not wild_match('temperature', 'Temp*')
    assert has_wildcards('a*') and not has_wildcards('plain')
    assert match_names(['a1', 'b1', 'a2'], ['a*', 'b1']) == ['a1', 'b1', 'a2']


def test_combine():
    current = np.array([True, True, False])
    new = np.array([True, False, True])
    assert list(combine(current, new, OR)) == [True, True, True]
    assert list(combine(current, new, AND)) == [True, False, False]
    with pytest.raises(UsageError):
        combine(current, new, 'xor')


def test_columns_of_interest_by_type():
    layout = Layout()
    layout.add_column(ColumnDefinition('i', SDDSType.SHORT))
    layout.add_column(ColumnDefinition('f', SDDSType.FLOAT))
    layout.add_column(ColumnDefinition('s', SDDSType.STRING))
    page = PageBuffer(layout)

    page.column_flags[:] = False
    assert set_columns_of_interest(layout, page, MATCH_INTEGER_TYPE, ()) == 1
    assert set_columns_of_interest(layout, page, MATCH_FLOATING_TYPE, ()) == 2
    page.column_flags[:] = False
    assert set_columns_of_interest(layout, page, MATCH_TYPE, ('string',)) == 1
    assert list(page.column_flags) == [False, False, True]
    with pytest.raises(UsageError):
        set_columns_of_interest(layout, page, MATCH_TYPE, ('complex',))


def test_sorted_key_groups_consume_rows():
    groups = make_sorted_key_groups(SDDSType.STRING, ['b', 'a', 'b'])
    assert len(groups) == 2
    assert find_matching_key_group(groups, 'b') == 0
    assert find_matching_key_group(groups, 'b') == 2
    assert find_matching_key_group(groups, 'b') == -1
    assert find_matching_key_group(groups, 'zz') == -1


def test_sorted_key_groups_reuse():
    groups = make_sorted_key_groups(SDDSType.DOUBLE, [3.0, 1.0])
    for _ in range(3):
        assert find_matching_key_group(groups, 1, reuse=True) == 1
    assert find_matching_key_group(groups, 3.0) == 0


def test_numeric_keys_group_nans():
    groups = make_sorted_key_groups(SDDSType.DOUBLE, [float('nan'), 2.0, math.nan])
    assert len(groups) == 2
    assert find_matching_key_group(groups, np.nan) == 0
    assert find_matching_key_group(groups, np.nan) == 2


def test_hash_lookup():
    table = build_str_hash(['x', 'y', 'x'])
    assert table.lookup('x') == 0
    assert table.consumed('x') == 1
    assert table.lookup('x', reuse=True) == 0
    assert table.lookup('q') == -1

    numbers = build_num_hash([1, 2, 2])
    assert numbers.lookup(2.0) == 1
    assert numbers.lookup(np.int32(2)) == 2
    assert numbers.lookup(2) == -1
