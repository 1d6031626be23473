"""A complex number with the four arithmetic operations."""

from __future__ import annotations

from dataclasses import dataclass


def _fmt(value: float) -> str:
    return format(value, "g")


@dataclass(frozen=True)
class Complex:
    """Complex number held as real and imaginary parts."""

    real: float
    imag: float = 0.0

    def __add__(self, other: "Complex") -> "Complex":
        if not isinstance(other, Complex):
            return NotImplemented
        return Complex(self.real + other.real, self.imag + other.imag)

    def __sub__(self, other: "Complex") -> "Complex":
        if not isinstance(other, Complex):
            return NotImplemented
        return Complex(self.real - other.real, self.imag - other.imag)

    def __mul__(self, other: "Complex") -> "Complex":
        if not isinstance(other, Complex):
            return NotImplemented
        return Complex(
            self.real * other.real - self.imag * other.imag,
            self.real * other.imag + self.imag * other.real,
        )

    def __truediv__(self, other: "Complex") -> "Complex":
        if not isinstance(other, Complex):
            return NotImplemented
        denominator = other.real ** 2 + other.imag ** 2
        if denominator == 0:
            raise ZeroDivisionError("complex division by zero")
        return Complex(
            (self.real * other.real + self.imag * other.imag) / denominator,
            (self.imag * other.real - self.real * other.imag) / denominator,
        )

    def __str__(self) -> str:
        if self.imag >= 0:
            return f"{_fmt(self.real)}+{_fmt(self.imag)}i"
        return f"{_fmt(self.real)}{_fmt(self.imag)}i"