"""
Deterministic index decoding for plan enumeration.

Every plan index maps to exactly one point of the enumeration space and
no two indices below the space size map to the same point. The helpers
here are the building blocks of that bijection.

Rotation rule (used for clip choice and speeds):
    digits d_0..d_k = mixed-radix digits of the value
    choice_g = (d_0 + ... + d_g) mod radix_g

Consecutive values change d_0, so every position rotates from one plan
to the next instead of only the least significant one.
"""

from math import factorial, prod
from typing import List, Sequence


def mixed_radix_digits(value: int, radices: Sequence[int]) -> List[int]:
    """Split value into digits, least significant first."""
    digits = []
    for radix in radices:
        value, digit = divmod(value, radix)
        digits.append(digit)
    return digits


def rotate(value: int, radices: Sequence[int]) -> List[int]:
    """
    Decode value into one choice per radix using the cumulative-sum rule.

    Bijective on [0, prod(radices)).
    """
    choices = []
    running = 0
    for digit, radix in zip(mixed_radix_digits(value, radices), radices):
        running += digit
        choices.append(running % radix)
    return choices


def permutation_at(value: int, n: int) -> List[int]:
    """
    Return the value-th permutation of range(n).

    Factorial number system with the least significant digit picking the
    first element, so the first position changes fastest. Permutation 0 is
    the identity.
    """
    remaining = list(range(n))
    order = []
    for base in range(n, 0, -1):
        value, digit = divmod(value, base)
        order.append(remaining.pop(digit))
    return order


def space_size(radices: Sequence[int]) -> int:
    return prod(radices) if radices else 1


def permutation_count(n: int) -> int:
    return factorial(n)
