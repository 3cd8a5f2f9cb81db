# -*- coding: utf-8 -*-
"""
Input validation helpers shared by the provenance ledgers.

Each helper raises InvalidInput naming the offending field, so a ledger can
run its checks in a fixed order and stop at the first failure.
"""

from __future__ import annotations

from typing import Optional

from agritrace.exceptions import InvalidInput


def check_length(
    value: str,
    field: str,
    ledger: str,
    min_len: int = 1,
    max_len: Optional[int] = None,
) -> None:
    """Require ``min_len <= len(value) <= max_len``."""
    length = len(value) if isinstance(value, str) else -1
    if length < min_len or (max_len is not None and length > max_len):
        bound = f"{min_len}-{max_len}" if max_len is not None else f">={min_len}"
        raise InvalidInput(
            message=f"{field} must be {bound} characters, got {length}",
            field=field,
            ledger=ledger,
            context={"length": length},
        )


def check_exact_length(value: str, length: int, field: str, ledger: str) -> None:
    """Require ``len(value) == length`` (content hashes)."""
    actual = len(value) if isinstance(value, str) else -1
    if actual != length:
        raise InvalidInput(
            message=f"{field} must be exactly {length} characters, got {actual}",
            field=field,
            ledger=ledger,
            context={"length": actual},
        )


def check_int(value: int, field: str, ledger: str) -> None:
    """Require a plain integer; ``bool`` and floats are rejected."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(
            message=f"{field} must be an integer, got {type(value).__name__}",
            field=field,
            ledger=ledger,
            context={"type": type(value).__name__},
        )


def check_text(value: str, field: str, ledger: str) -> None:
    """Require a string of any length."""
    if not isinstance(value, str):
        raise InvalidInput(
            message=f"{field} must be a string, got {type(value).__name__}",
            field=field,
            ledger=ledger,
            context={"type": type(value).__name__},
        )


def check_range(
    value: int,
    field: str,
    ledger: str,
    low: int,
    high: Optional[int] = None,
    low_inclusive: bool = True,
) -> None:
    """Require ``value`` within [low, high] (or (low, high] if not inclusive)."""
    check_int(value, field, ledger)
    too_low = value < low if low_inclusive else value <= low
    too_high = high is not None and value > high
    if too_low or too_high:
        left = "[" if low_inclusive else "("
        right = f"{high}]" if high is not None else "inf)"
        raise InvalidInput(
            message=f"{field} must be in {left}{low}, {right}, got {value}",
            field=field,
            ledger=ledger,
            context={"value": value},
        )


def check_principal(principal: str, prefix: str, field: str, ledger: str) -> None:
    """Require a standard principal: a string starting with ``prefix``."""
    if not isinstance(principal, str) or not principal.startswith(prefix):
        raise InvalidInput(
            message=f"{field} must be a standard principal starting with {prefix!r}",
            field=field,
            ledger=ledger,
            context={"principal": principal},
        )


def check_not_before(
    timestamp: int, now: int, field: str, ledger: str,
) -> None:
    """Require ``timestamp >= now``."""
    check_int(timestamp, field, ledger)
    if timestamp < now:
        raise InvalidInput(
            message=f"{field} {timestamp} is before the current ledger time {now}",
            field=field,
            ledger=ledger,
            context={"value": timestamp, "now": now},
        )


__all__ = [
    "check_int",
    "check_text",
    "check_length",
    "check_exact_length",
    "check_range",
    "check_principal",
    "check_not_before",
]
