import calendar
from collections import namedtuple
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from dateutil.relativedelta import relativedelta

RENT_CALCULATIONS = ("full", "natural")
CENT = Decimal("0.01")

TimelineEntry = namedtuple("TimelineEntry", ["due_date", "type", "amount", "description"])


def to_money(value):
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value):
    """Convert an amount in currency units to integer cents, rounding half-up."""
    return int((Decimal(str(value or 0)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def add_months(start, months):
    return start + relativedelta(months=months)


def months_between(start, end):
    """Whole calendar months from ``start`` to ``end``."""
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


def days_in_month(day):
    return calendar.monthrange(day.year, day.month)[1]


def remaining_days_in_month(day):
    """Days from ``day`` to the end of its month, ``day`` included."""
    return days_in_month(day) - day.day + 1


def first_month_rent(start_date, monthly_rent, rent_calculation):
    rent = Decimal(str(monthly_rent))
    if rent_calculation == "full":
        return to_money(rent)
    if rent_calculation == "natural":
        return to_money(rent * remaining_days_in_month(start_date) / days_in_month(start_date))
    raise ValueError(f"Unknown rent calculation: {rent_calculation}")


def deposit_for(monthly_rent, deposit_months=None, deposit_amount=None):
    if deposit_amount is not None:
        return to_money(deposit_amount)
    return to_money(Decimal(str(monthly_rent)) * Decimal(str(deposit_months or 0)))


def build_payment_timeline(
    start_date: date,
    end_date: date,
    monthly_rent,
    deposit_months=None,
    rent_calculation="full",
    deposit_amount=None,
):
    """
    Ordered payment schedule of a booking.

    One deposit entry and one (possibly pro-rated) first rent entry fall on
    ``start_date``; a flat monthly rent entry follows on the first day of each
    later month strictly before ``end_date``.
    """
    if end_date <= start_date:
        raise ValueError("End date must be after start date.")

    rent = to_money(monthly_rent)
    entries = []

    deposit = deposit_for(rent, deposit_months, deposit_amount)
    if deposit > 0:
        label = f"{deposit_months} months" if deposit_months else "custom amount"
        entries.append(TimelineEntry(start_date, "deposit", deposit, f"Security deposit ({label})"))

    if rent_calculation == "natural":
        description = f"First month's rent (pro-rated for {remaining_days_in_month(start_date)} days)"
    else:
        description = "First month's rent"
    entries.append(TimelineEntry(start_date, "rent", first_month_rent(start_date, rent, rent_calculation), description))

    current = add_months(start_date.replace(day=1), 1)
    while current < end_date:
        entries.append(TimelineEntry(current, "rent", rent, "Monthly rent"))
        current = add_months(current, 1)

    return entries


def timeline_total(entries):
    return sum((entry.amount for entry in entries), Decimal("0.00"))
