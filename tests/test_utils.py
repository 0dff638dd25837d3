import logging

import pytest

from sddsio.exceptions import OutOfRangeError, UsageError
from sddsio.utils.interpolate import interpolate, RangePolicy
from sddsio.utils.primes import (largest_prime_factor, greatest_product_of_small_primes,
                                 check_row_count)
from sddsio.utils.units import multiply_units, divide_units, make_frequency_units


def test_unit_composition():
    assert multiply_units('m', 's') == 'm s'
    assert multiply_units('', 's') == 's'
    assert multiply_units(None, None) == ''
    assert divide_units('m', 's') == 'm/(s)'
    assert divide_units(None, 's') == '1/(s)'
    assert divide_units('m', ' ') == 'm'


def test_frequency_units():
    assert make_frequency_units('s') == '1/s'
    assert make_frequency_units('m s') == '1/(m s)'
    assert make_frequency_units('1/(s)') == 's'
    assert make_frequency_units('(s)') == '1/s'
    assert make_frequency_units('') == ''


def test_prime_factors():
    assert largest_prime_factor(1) == 1
    assert largest_prime_factor(12) == 3
    assert largest_prime_factor(1009) == 1009
    best = greatest_product_of_small_primes(1009)
    assert best <= 1009
    assert largest_prime_factor(best) < 100


def test_large_prime_factor_only_warns(caplog):
    caplog.set_level(logging.WARNING, logger='sddsio')
    assert check_row_count(1009) == 1009
    assert 'large prime factor' in caplog.text
    caplog.clear()
    assert check_row_count(1024) == 2
    assert caplog.text == ''
    check_row_count(1009, quiet=True)
    assert caplog.text == ''


def test_interpolate_in_range():
    assert interpolate([0, 1, 2], [0, 10, 20], 1.5) == (15.0, True)


@pytest.mark.parametrize("policy,expected", [
    (RangePolicy.SATURATE, (20.0, False)),
    (RangePolicy.EXTRAPOLATE, (30.0, False)),
    (RangePolicy.SKIP, (None, False)),
    (RangePolicy.WRAP, (10.0, False)),
])
def test_interpolate_out_of_range(policy, expected):
    assert interpolate([0, 1, 2], [0, 10, 20], 3.0, policy) == expected


def test_interpolate_abort_and_value(caplog):
    with pytest.raises(OutOfRangeError):
        interpolate([0, 1], [0, 1], -1.0)
    assert interpolate([0, 1], [0, 1], 5.0, RangePolicy.VALUE, value=-1) == (-1.0, False)
    with pytest.raises(UsageError):
        interpolate([0, 1], [0, 1], 5.0, RangePolicy.VALUE)
    with pytest.raises(UsageError):
        interpolate([], [], 0.0)
    caplog.set_level(logging.WARNING, logger='sddsio')
    assert interpolate([0, 1], [0, 1], -2.0, RangePolicy.WARN) == (0.0, False)
    assert 'outside' in caplog.text
