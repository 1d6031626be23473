"""People records and the orderings used to sort them."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations
from typing import Callable, Iterable, List, Tuple

Compare = Callable[["Person", "Person"], int]


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


@dataclass
class Person:
    """A person with surname, address, identity number and birth date."""

    last_name: str
    street: str
    birth_date: Tuple[int, int, int]
    number: int
    postcode: int
    dni: int

    def __post_init__(self) -> None:
        self.birth_date = tuple(self.birth_date)
        if len(self.birth_date) != 3:
            raise ValueError("birth date is (day, month, year)")

    def __str__(self) -> str:
        day, month, year = self.birth_date
        return (
            f"Apellido: {self.last_name}\n"
            f"Domicilio: {self.street} {self.number}, CP: {self.postcode}\n"
            f"DNI {self.dni}\n"
            f"Fecha de nacimiento: {day}/{month}/{year}"
        )


def compare_lastname(a: Person, b: Person) -> int:
    return _cmp(a.last_name, b.last_name)


def compare_dni(a: Person, b: Person) -> int:
    return _cmp(a.dni, b.dni)


def compare_birthdate(a: Person, b: Person) -> int:
    day_a, month_a, year_a = a.birth_date
    day_b, month_b, year_b = b.birth_date
    return _cmp((year_a, month_a, day_a), (year_b, month_b, day_b))


def compare_postcode_lastname(a: Person, b: Person) -> int:
    return _cmp((a.postcode, a.last_name), (b.postcode, b.last_name))


def compare_postcode_dni(a: Person, b: Person) -> int:
    return _cmp((a.postcode, a.dni), (b.postcode, b.dni))


def sort_people(people: Iterable[Person], compare: Compare) -> List[Person]:
    """Exchange sort: each position swaps with every later, smaller person.

    The order of people that compare equal is not preserved.
    """
    items = list(people)
    for i, j in combinations(range(len(items)), 2):
        if compare(items[i], items[j]) > 0:
            items[i], items[j] = items[j], items[i]
    return items