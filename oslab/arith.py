"""Integer helpers: base conversion, bit operations, gcd and tilings."""

from __future__ import annotations

import sys
from typing import Optional, Sequence

_DIGITS = "0123456789ABCDEF"
_WORD_BITS = 32


def digit_char(num: int) -> str:
    """The character for a single digit in bases up to 16."""
    if not 0 <= num < len(_DIGITS):
        raise ValueError(f"no digit for {num}")
    return _DIGITS[num]


def from_decimal(value: int, base: int) -> str:
    """Write a positive value in a base from 2 to 16.

    Values of zero or less have no digits and give an empty string.
    """
    if not 2 <= base <= len(_DIGITS):
        raise ValueError(f"base must be between 2 and {len(_DIGITS)}, got {base}")
    digits = []
    while value > 0:
        value, digit = divmod(value, base)
        digits.append(digit_char(digit))
    return "".join(reversed(digits))


def _check_bit(bit: int) -> None:
    if not 0 <= bit < _WORD_BITS:
        raise ValueError(f"bit must be between 0 and {_WORD_BITS - 1}, got {bit}")


def num_ones(value: int) -> int:
    """Number of bits set in the 32-bit two's complement form of value."""
    return bin(value & ((1 << _WORD_BITS) - 1)).count("1")


def set_bit(value: int, bit: int) -> int:
    """value with the given bit set."""
    _check_bit(bit)
    return value | (1 << bit)


def reset_bit(value: int, bit: int) -> int:
    """value with the given bit cleared."""
    _check_bit(bit)
    return value & ~(1 << bit)


def test_bit(value: int, bit: int) -> bool:
    """Whether the given bit of value is set."""
    _check_bit(bit)
    return bool(value & (1 << bit))


def mcd(a: int, b: int) -> int:
    """Greatest common divisor of two non-negative integers."""
    if a < 0 or b < 0:
        raise ValueError("mcd needs non-negative numbers")
    while a and b:
        if a > b:
            a %= b
        else:
            b %= a
    return a + b


def fill_rectangle(n: int) -> int:
    """Number of ways to tile a 2 x n rectangle with 2 x 1 dominoes."""
    if n < 0:
        raise ValueError("n must not be negative")
    previous, current = 1, 1
    for _ in range(n - 1):
        previous, current = current, previous + current
    return current


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Read numbers and bases from standard input and print the conversions."""
    del argv
    while True:
        try:
            num = int(input("Ingrese el numero a convertir: "))
            base = int(input("Ingrese a que base quiere convertirlo: "))
        except EOFError:
            print()
            return 0
        except ValueError:
            print("Entrada invalida", file=sys.stderr)
            continue
        if not 2 <= base <= len(_DIGITS):
            print(f"Base entre 2 y {len(_DIGITS)}")
            continue
        print(f"El numero en base {base} es {from_decimal(num, base)}")
        print()