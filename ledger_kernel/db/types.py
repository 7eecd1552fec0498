"""
Module: ledger_kernel.db.types
Responsibility: The lossless money column type and the money helpers every
    layer shares: conversion into Decimal, the balance tolerance and
    formatting.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  to_money() rejects float input outright
      because a float has already lost precision by the time it arrives.
    - Amounts carry at most MONEY_DECIMAL_PLACES decimals and at most
      MONEY_PRECISION digits in total, the shape of the money column.
      Anything finer is rejected instead of silently rounded on storage.
    - MoneyType never round-trips through a binary float.  PostgreSQL
      stores NUMERIC(38, 9); SQLite, which has no decimal type, stores the
      fixed-point text form.
    - BALANCE_TOLERANCE is the single epsilon used when comparing debit
      and credit totals.  A difference strictly below it is balanced.
"""

from decimal import Context, Decimal, InvalidOperation

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

MONEY_PRECISION = 38
MONEY_DECIMAL_PLACES = 9

# Smallest representable amount: 0.000000001
MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)

_MONEY_CONTEXT = Context(prec=MONEY_PRECISION)

# Debits and credits whose difference is below this are considered equal.
BALANCE_TOLERANCE = Decimal("0.01")

ZERO = Decimal("0")


class MoneyType(TypeDecorator):
    """
    Fixed-point money column.

    Guarantees:
        - PostgreSQL: plain NUMERIC(38, 9).
        - SQLite: VARCHAR holding the amount quantized to nine places
          ("100.000000000"), read back as Decimal.  SQL arithmetic on such
          a column goes through REAL, so totals must be summed in Python.
    """

    impl = Numeric(MONEY_PRECISION, MONEY_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(MONEY_PRECISION + 2))
        return dialect.type_descriptor(Numeric(MONEY_PRECISION, MONEY_DECIMAL_PLACES))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return format(
            Decimal(value).quantize(MONEY_QUANTUM, context=_MONEY_CONTEXT),
            "f",
        )

    def process_result_value(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return Decimal(str(value))


def money_from_str(value: str) -> Decimal:
    """
    Create a Money value from string.

    Raises:
        ValueError: If value cannot be converted to Decimal.
    """
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid monetary amount: {value!r}") from exc


def _check_scale(result: Decimal, original) -> None:
    try:
        quantized = result.quantize(MONEY_QUANTUM, context=_MONEY_CONTEXT)
    except InvalidOperation as exc:
        raise ValueError(
            f"Monetary amount exceeds {MONEY_PRECISION} digits: {original!r}"
        ) from exc
    if quantized != result:
        raise ValueError(
            f"Monetary amount has more than {MONEY_DECIMAL_PLACES} decimal places: {original!r}"
        )


def to_money(value: Decimal | int | str | None) -> Decimal:
    """
    Coerce a caller-supplied amount into a Decimal.

    None becomes zero.  Strings go through money_from_str().  Floats,
    non-finite values and amounts the money column cannot hold exactly
    are rejected.

    Raises:
        TypeError: If value is a float or an unsupported type.
        ValueError: If value is not a finite number or is finer than
            MONEY_DECIMAL_PLACES.
    """
    if value is None:
        return ZERO
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(
            f"Monetary amounts must be Decimal, int or str, got {type(value).__name__}"
        )
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        result = money_from_str(value.strip())
    else:
        raise TypeError(
            f"Monetary amounts must be Decimal, int or str, got {type(value).__name__}"
        )
    if not result.is_finite():
        raise ValueError(f"Monetary amount must be finite, got {value!r}")
    _check_scale(result, value)
    return result


def is_within_tolerance(
    left: Decimal,
    right: Decimal,
    tolerance: Decimal = BALANCE_TOLERANCE,
) -> bool:
    """Return True when |left - right| is strictly below tolerance."""
    return abs(left - right) < tolerance


def format_amount(value: Decimal) -> str:
    """Render an amount for error messages: no exponent, no trailing zeros."""
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal("1")))
    return format(normalized, "f")
