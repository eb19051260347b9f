"""Typed command objects accepted by the finance services.

The API layer validates raw input and builds these; services never see
request bodies.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal, InvalidOperation

from common.exceptions import ValidationError

CENT = Decimal('0.01')


def to_amount(value, field_name='amount') -> Decimal:
    try:
        amount = Decimal(str(value)).quantize(CENT)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid {field_name}", details={field_name: value})
    if not amount.is_finite():
        raise ValidationError(f"Invalid {field_name}", details={field_name: value})
    return amount


def positive_amount(value, field_name='amount') -> Decimal:
    amount = to_amount(value, field_name)
    if amount <= 0:
        raise ValidationError(
            f"{field_name.replace('_', ' ').capitalize()} must be greater than zero",
            details={field_name: str(amount)},
        )
    return amount


@dataclass
class RecurrenceSpec:
    frequency: str
    interval: int = 1
    next_execution: datetime | None = None
    end_date: datetime | None = None
    requires_approval: bool = True


@dataclass
class TransactionDraft:
    type: str
    amount: Decimal
    account_id: int
    description: str = ''
    category: str = ''
    destination_account_id: int | None = None
    date: datetime | None = None
    notes: str = ''
    tags: list = field(default_factory=list)
    recurrence: RecurrenceSpec | None = None
    is_liability_payment: bool = False
    liability_id: int | None = None
    recurring_parent_id: int | None = None

    def __post_init__(self):
        self.amount = positive_amount(self.amount)

    @property
    def is_recurring(self):
        return self.recurrence is not None


@dataclass
class TransactionPatch:
    """Partial update; fields left as ``None`` are not touched."""

    amount: Decimal | None = None
    account_id: int | None = None
    destination_account_id: int | None = None
    category: str | None = None
    description: str | None = None
    date: datetime | None = None
    notes: str | None = None
    tags: list | None = None

    def __post_init__(self):
        if self.amount is not None:
            self.amount = positive_amount(self.amount)

    def changes(self) -> dict:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass
class PaymentCommand:
    amount: Decimal
    account_id: int
    notes: str = ''

    def __post_init__(self):
        self.amount = positive_amount(self.amount)


@dataclass
class BillPaymentCommand:
    account_id: int
    amount: Decimal | None = None
    notes: str = ''

    def __post_init__(self):
        if self.amount is not None:
            self.amount = positive_amount(self.amount)
