# Overview: Column factories for money, rate and quantity fields.

from __future__ import annotations

from ..extensions import db


def money_column(**kwargs):
    """Document/system-currency amount: 4 decimal places, Decimal in Python."""
    kwargs.setdefault("nullable", False)
    kwargs.setdefault("default", 0)
    return db.Column(db.Numeric(18, 4, asdecimal=True), **kwargs)


def rate_column(**kwargs):
    kwargs.setdefault("nullable", False)
    kwargs.setdefault("default", 1)
    return db.Column(db.Numeric(18, 6, asdecimal=True), **kwargs)


def quantity_column(**kwargs):
    kwargs.setdefault("nullable", False)
    kwargs.setdefault("default", 0)
    return db.Column(db.Numeric(18, 4, asdecimal=True), **kwargs)
