from __future__ import annotations

from ..extensions import db
from ..validation import from_centigrams, to_centigrams


def centigram_column(**kwargs):
    """
    Integer weight column, stored in hundredths of the unit.

    Kept integral so `SET q = q - :n WHERE q >= :n` is exact on every
    backend, SQLite included.
    """
    return db.Column(db.BigInteger, **kwargs)


def weight_property(column_name: str) -> property:
    """Decimal view (two places) over a centigram column."""

    def getter(self):
        return from_centigrams(getattr(self, column_name))

    def setter(self, value):
        setattr(self, column_name, to_centigrams(value))

    return property(getter, setter)
