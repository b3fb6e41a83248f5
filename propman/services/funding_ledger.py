"""
Funding Ledger — budget validation and payment state for funding schedules.

All money is ``decimal.Decimal`` quantized to cents; sums and the
"exceeds budget" comparison are exact.  Functions accept either ORM
``FundingDetail`` rows or plain dicts (request payloads before they become
rows), so the same check runs on a draft schedule and on a persisted one.

Usage:
    from propman.services.funding_ledger import validate_schedule, to_money

    result = validate_schedule(project.funding_details, project.budget)
    if not result.valid:
        raise ValidationError(result.message, details=result.errors)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from propman.core.exceptions import InvalidStateError, ValidationError
from propman.models.project import PAID, UNPAID

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
SUB_CENT_MESSAGE = "Amount can have at most 2 decimal places"


def to_money(value, field_name="amount") -> Decimal:
    """Convert *value* to a two-place Decimal without rounding.

    Floats go through ``repr`` so 0.1 becomes Decimal("0.10") rather than its
    binary expansion.

    Raises:
        ValidationError: value is None, unparsable, NaN, infinite or has
            fractions of a cent.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required", details={field_name: "required"})
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError):
        raise ValidationError(
            f"{field_name} must be a number", details={field_name: f"invalid amount: {value!r}"},
        )
    if not amount.is_finite():
        raise ValidationError(
            f"{field_name} must be a finite number", details={field_name: f"invalid amount: {value!r}"},
        )
    try:
        cents = amount.quantize(CENT)
    except InvalidOperation:
        raise ValidationError(
            f"{field_name} is too large", details={field_name: f"invalid amount: {value!r}"},
        )
    if cents != amount:
        raise ValidationError(
            f"{field_name} can have at most 2 decimal places",
            details={field_name: SUB_CENT_MESSAGE},
        )
    return cents


def format_money(amount: Decimal) -> str:
    """Render like the project form does: $11,000 or $10,500.50."""
    if amount == amount.to_integral_value():
        return f"${int(amount):,}"
    return f"${amount.quantize(CENT):,.2f}"


def _get(entry, name):
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def _set(entry, name, value):
    if isinstance(entry, dict):
        entry[name] = value
    else:
        setattr(entry, name, value)


def _entry_amount(entry):
    """(amount, None) or (None, inline error) for one schedule entry."""
    try:
        amount = to_money(_get(entry, "amount"))
    except ValidationError as exc:
        if exc.details.get("amount") == SUB_CENT_MESSAGE:
            return None, SUB_CENT_MESSAGE
        return None, "Amount must be greater than 0"
    if amount <= ZERO:
        return None, "Amount must be greater than 0"
    return amount, None


@dataclass(frozen=True)
class ScheduleValidation:
    """Outcome of validate_schedule.

    ``over_by`` is zero when the schedule fits the budget.  ``errors`` is keyed
    the way the project form renders inline errors: ``funding_<i>_amount``,
    ``funding_<i>_date`` and ``funding`` for the total.
    """

    valid: bool
    total_allocated: Decimal
    remaining: Decimal
    over_by: Decimal
    errors: dict = field(default_factory=dict)

    @property
    def message(self) -> str:
        if "funding" in self.errors:
            return self.errors["funding"]
        if self.errors:
            return "Funding schedule has invalid entries"
        return ""

    def to_dict(self):
        return {
            "valid": self.valid,
            "total_allocated": str(self.total_allocated),
            "remaining": str(self.remaining),
            "over_by": str(self.over_by),
            "errors": dict(self.errors),
        }


def validate_schedule(entries, budget) -> ScheduleValidation:
    """
    Check a funding schedule against a budget.

    Valid iff every entry has amount > 0 and a date, and the total of all
    amounts does not exceed *budget*.  Malformed amounts are reported per
    entry and left out of the total.
    """
    budget = to_money(budget, "budget")
    errors = {}
    total = ZERO

    for index, entry in enumerate(entries or []):
        amount, problem = _entry_amount(entry)
        if problem:
            errors[f"funding_{index}_amount"] = problem
        else:
            total += amount
        if not _get(entry, "date"):
            errors[f"funding_{index}_date"] = "Date is required"

    over_by = total - budget if total > budget else ZERO
    if over_by > ZERO:
        errors["funding"] = (
            f"Total funding ({format_money(total)}) cannot exceed project budget ({format_money(budget)})"
        )

    return ScheduleValidation(
        valid=not errors,
        total_allocated=total,
        remaining=budget - total,
        over_by=over_by,
        errors=errors,
    )


def add_entry(schedule: list, entry) -> list:
    """Append *entry* to *schedule* in place and return it; does not validate."""
    schedule.append(entry)
    return schedule


def mark_paid(entry, paid_by, now=None):
    """Set the entry paid with paid_date / paid_by recorded together.

    Raises:
        InvalidStateError: entry is already paid.
        ValidationError: paid_by is empty.
    """
    if _get(entry, "payment_status") == PAID:
        raise InvalidStateError("FundingDetail", "mark_paid", PAID, "entry is already paid")
    if not paid_by:
        raise ValidationError("paid_by is required to mark an entry paid", details={"paid_by": "required"})

    _set(entry, "payment_status", PAID)
    _set(entry, "paid_date", now or datetime.now(timezone.utc))
    _set(entry, "paid_by", paid_by)
    return entry


def mark_unpaid(entry):
    """Revert an entry to unpaid and clear paid_date / paid_by."""
    _set(entry, "payment_status", UNPAID)
    _set(entry, "paid_date", None)
    _set(entry, "paid_by", None)
    return entry


def summarize_payments(entries) -> dict:
    """Total / paid / unpaid Decimal sums and entry count for *entries*."""
    paid = ZERO
    unpaid = ZERO
    count = 0
    for entry in entries or []:
        amount = _entry_amount(entry)[0] or ZERO
        if _get(entry, "payment_status") == PAID:
            paid += amount
        else:
            unpaid += amount
        count += 1
    return {"total": paid + unpaid, "paid": paid, "unpaid": unpaid, "count": count}
