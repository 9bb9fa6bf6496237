# Overview: Service-layer operations for loyalty points; encapsulates accrual rules and database work.

"""
Loyalty accrual.

Points are only ever added through _record_points(), which writes one
LoyaltyTransaction with before/after balances and bumps the customer (and
card) running totals with SQL increments.

During posting, accrual runs inside a savepoint: any failure rolls back the
loyalty work only and comes back as a "Loyalty Transaction:" warning.
"""

from __future__ import annotations

import calendar
import math
from datetime import date

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import (
    Customer,
    FinancialYear,
    LoyaltyCard,
    LoyaltyConfig,
    LoyaltyTransaction,
    Organization,
)
from ..models.enums import GainRateType, LoyaltyTransactionType, PaymentStatus
from ..time_utils import as_calendar_date
from .currency_service import equivalent, to_decimal
from .outcome import PostingContext, StepOutcome


def is_birthday(birthday: date | None, day: date) -> bool:
    """Month/day match; Feb 29 birthdays fall on Feb 28 in non-leap years."""
    if birthday is None:
        return False
    if birthday.month == 2 and birthday.day == 29 and not calendar.isleap(day.year):
        return day.month == 2 and day.day == 28
    return (birthday.month, birthday.day) == (day.month, day.day)


def earned_points(config: LoyaltyConfig, system_amount) -> int:
    """Purchase points for a system-currency amount under a profile's rules."""
    amount = to_decimal(system_amount)
    lower = to_decimal(config.gain_rate_lower_limit)
    upper = to_decimal(config.gain_rate_upper_limit)
    if amount < lower or amount > upper:
        return 0

    value = to_decimal(config.gain_rate_value)
    points = 0
    if config.gain_rate_type == GainRateType.PERCENTAGE:
        points = math.floor(amount * value / 100)
    elif config.gain_rate_type == GainRateType.FIXED:
        points = math.floor(value)

    if points == 0:
        if config.points_per_currency_unit:
            points = math.floor(amount * to_decimal(config.points_per_currency_unit))
        elif config.points_percentage:
            points = math.floor(amount * to_decimal(config.points_percentage) / 100)
    return max(points, 0)


def _current_points(customer_id: int) -> int:
    return db.session.query(Customer.loyalty_points).filter_by(id=customer_id).scalar() or 0


def _record_points(
    customer: Customer,
    config: LoyaltyConfig,
    transaction_type: LoyaltyTransactionType,
    points: int,
    day: date,
    *,
    card: LoyaltyCard | None = None,
    invoice=None,
    amount=0,
    exchange_rate=1,
    financial_year_id: int | None = None,
    actor_id: int | None = None,
    description: str | None = None,
) -> LoyaltyTransaction:
    before = _current_points(customer.id)
    txn = LoyaltyTransaction(
        org_id=customer.org_id,
        customer_id=customer.id,
        loyalty_card_id=card.id if card else None,
        loyalty_config_id=config.id,
        sales_invoice_id=invoice.id if invoice is not None else None,
        store_id=invoice.store_id if invoice is not None else None,
        financial_year_id=financial_year_id,
        transaction_type=transaction_type,
        points=points,
        points_balance_before=before,
        points_balance_after=before + points,
        reference_number=invoice.reference_number if invoice is not None else None,
        description=description,
        amount=amount,
        currency_id=invoice.currency_id if invoice is not None else None,
        exchange_rate=exchange_rate,
        transaction_date=day,
        created_by=actor_id,
    )
    db.session.add(txn)

    db.session.execute(
        update(Customer)
        .where(Customer.id == customer.id)
        .values(loyalty_points=Customer.loyalty_points + points)
        .execution_options(synchronize_session=False)
    )
    if card is not None:
        db.session.execute(
            update(LoyaltyCard)
            .where(LoyaltyCard.id == card.id)
            .values(
                current_points=LoyaltyCard.current_points + points,
                total_points_earned=LoyaltyCard.total_points_earned + points,
            )
            .execution_options(synchronize_session=False)
        )
    db.session.flush()
    return txn


def _birthday_bonus_given(customer_id: int, year: int) -> bool:
    return (
        db.session.query(LoyaltyTransaction.id)
        .filter(
            LoyaltyTransaction.customer_id == customer_id,
            LoyaltyTransaction.transaction_type == LoyaltyTransactionType.BIRTHDAY_BONUS,
            LoyaltyTransaction.transaction_date >= date(year, 1, 1),
            LoyaltyTransaction.transaction_date <= date(year, 12, 31),
        )
        .first()
        is not None
    )


def award_birthday_bonus(
    customer: Customer,
    config: LoyaltyConfig,
    day: date,
    *,
    card: LoyaltyCard | None = None,
    invoice=None,
    financial_year_id: int | None = None,
    actor_id: int | None = None,
) -> LoyaltyTransaction | None:
    """At most one birthday bonus per customer per calendar year."""
    points = int(config.birthday_bonus_points or 0)
    if points <= 0 or not is_birthday(customer.birthday, day):
        return None
    if _birthday_bonus_given(customer.id, day.year):
        return None
    return _record_points(
        customer, config, LoyaltyTransactionType.BIRTHDAY_BONUS, points, day,
        card=card,
        invoice=invoice,
        financial_year_id=financial_year_id,
        actor_id=actor_id,
        description="Birthday bonus points",
    )


def _materialize_card(customer: Customer, config: LoyaltyConfig) -> tuple[LoyaltyCard | None, bool]:
    if not customer.loyalty_card_number:
        return None, False
    card = (
        db.session.query(LoyaltyCard)
        .filter_by(org_id=customer.org_id, card_number=customer.loyalty_card_number)
        .first()
    )
    if card is not None:
        return card, False
    card = LoyaltyCard(
        org_id=customer.org_id,
        card_number=customer.loyalty_card_number,
        loyalty_config_id=config.id,
        customer_id=customer.id,
    )
    db.session.add(card)
    db.session.flush()
    return card, True


def _accrue(invoice, ctx: PostingContext, customer: Customer, config: LoyaltyConfig, outcome: StepOutcome) -> None:
    cash_sale = invoice.payment_status == PaymentStatus.PAID
    if cash_sale and not config.allow_gaining_cash_sales:
        outcome.warn("Loyalty Transaction", "Cash sales not allowed for earning points")
        return
    if not cash_sale and not config.allow_gaining_credit_sales:
        outcome.warn("Loyalty Transaction", "Credit sales not allowed for earning points")
        return

    day = as_calendar_date(invoice.invoice_date)
    common = {
        "invoice": invoice,
        "financial_year_id": ctx.financial_year.id,
        "actor_id": ctx.actor_id,
    }

    card, is_new_card = _materialize_card(customer, config)
    common["card"] = card

    welcome = int(config.welcome_bonus_points or 0)
    if is_new_card and welcome > 0:
        outcome.records.append(_record_points(
            customer, config, LoyaltyTransactionType.WELCOME_BONUS, welcome, day,
            description="Welcome bonus points for new loyalty card",
            **common,
        ))

    bonus = award_birthday_bonus(customer, config, day, **common)
    if bonus is not None:
        outcome.records.append(bonus)

    system_amount = equivalent(
        invoice.subtotal, invoice.exchange_rate, invoice.total_amount, invoice.equivalent_amount
    )
    points = earned_points(config, system_amount)
    if points > 0:
        outcome.records.append(_record_points(
            customer, config, LoyaltyTransactionType.EARN, points, day,
            amount=invoice.subtotal,
            exchange_rate=invoice.exchange_rate,
            description=f"Points earned from Sales Invoice {invoice.reference_number}",
            **common,
        ))


def accrue_for_invoice(invoice, ctx: PostingContext) -> StepOutcome:
    """
    Loyalty sub-step of posting. Never raises: failures roll back to the
    savepoint and are returned as warnings.
    """
    outcome = StepOutcome("Loyalty Transaction")
    customer = invoice.customer
    if customer is None or not customer.loyalty_config_id:
        return outcome

    config = (
        db.session.query(LoyaltyConfig)
        .filter_by(id=customer.loyalty_config_id, org_id=invoice.org_id)
        .first()
    )
    if config is None or not config.is_active:
        outcome.warn("Loyalty Transaction", "loyalty profile not found or inactive")
        return outcome

    try:
        with db.session.begin_nested():
            _accrue(invoice, ctx, customer, config, outcome)
    except Exception as exc:
        outcome.records.clear()
        current_app.logger.warning("Loyalty accrual rolled back for invoice %s: %s", invoice.id, exc)
        outcome.warn("Loyalty Transaction", str(exc))
    return outcome


def award_birthday_bonuses(today: date) -> int:
    """
    Daily sweep: birthday bonus for every eligible loyalty customer of every
    active organization. One organization's failure does not stop the others.
    """
    awarded = 0
    org_ids = [row[0] for row in db.session.query(Organization.id).filter_by(is_active=True).all()]

    for org_id in org_ids:
        try:
            financial_year = (
                db.session.query(FinancialYear)
                .filter_by(org_id=org_id, is_active=True)
                .first()
            )
            customers = (
                db.session.query(Customer)
                .filter(
                    Customer.org_id == org_id,
                    Customer.is_active.is_(True),
                    Customer.loyalty_config_id.isnot(None),
                    Customer.birthday.isnot(None),
                )
                .all()
            )
            org_awarded = 0
            for customer in customers:
                if not is_birthday(customer.birthday, today):
                    continue
                config = customer.loyalty_config
                if config is None or not config.is_active:
                    continue
                card = None
                if customer.loyalty_card_number:
                    card = (
                        db.session.query(LoyaltyCard)
                        .filter_by(org_id=org_id, card_number=customer.loyalty_card_number)
                        .first()
                    )
                txn = award_birthday_bonus(
                    customer, config, today,
                    card=card,
                    financial_year_id=financial_year.id if financial_year else None,
                )
                if txn is not None:
                    org_awarded += 1
            db.session.commit()
            awarded += org_awarded
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Birthday bonus sweep failed for org %s", org_id)

    current_app.logger.info("Birthday bonus sweep for %s awarded %s bonuses", today.isoformat(), awarded)
    return awarded
