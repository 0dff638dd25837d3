"""
Primes - Factor helpers for choosing transform lengths
"""

import logging

logger = logging.getLogger(__name__)

SMALL_PRIMES = (2, 3, 5, 7, 11, 13, 17, 19, 23, 29, 31, 37, 41, 43, 47, 53, 59, 61, 67,
                71, 73, 79, 83, 89, 97)

# Factors above this make prime-length transforms slow
LARGE_FACTOR = 100


def largest_prime_factor(n: int) -> int:
    """Largest prime dividing n; 1 for n <= 1"""
    n = abs(int(n))
    if n <= 1:
        return 1
    largest = 1
    factor = 2
    while factor * factor <= n:
        while n % factor == 0:
            largest = factor
            n //= factor
        factor += 1 if factor == 2 else 2
    return max(largest, n) if n > 1 else largest


def _product_of_primes(rows: int, primes) -> int:
    remains = rows
    product = 1
    while remains > 2:
        best_factor = primes[0]
        smallest_remainder = None
        for p in primes:
            remainder = remains % p
            if smallest_remainder is None or remainder < smallest_remainder:
                smallest_remainder = remainder
                best_factor = p
            if remainder == 0:
                break
        remains //= best_factor
        product *= best_factor
    return product * remains


def greatest_product_of_small_primes(rows: int) -> int:
    """
    A large number not exceeding rows whose factors are all small primes

    Not guaranteed to be the greatest such number.
    """
    best = 0
    for count in range(1, len(SMALL_PRIMES) + 1):
        result = _product_of_primes(rows, SMALL_PRIMES[:count])
        if best < result <= rows:
            best = result
    if best == 0:
        raise ValueError(f"No product of small primes fits {rows} rows")
    return best


def check_row_count(rows: int, quiet: bool = False) -> int:
    """
    Warn when rows has a large prime factor; the row count is never changed

    Returns:
        The largest prime factor of rows
    """
    factor = largest_prime_factor(rows)
    if factor > LARGE_FACTOR and not quiet:
        logger.warning(f"Number of points ({rows}) has large prime factor ({factor}); "
                       f"consider truncating to {greatest_product_of_small_primes(rows)}")
    return factor
