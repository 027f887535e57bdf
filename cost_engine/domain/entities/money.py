"""
Money Value Object - Non-negative amount in a single ISO currency.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from ..exceptions import ValidationError

CENT = Decimal("0.01")

Numeric = Union[Decimal, int, float, str]


def to_decimal(value: Numeric, field_name: str = "amount") -> Decimal:
    """
    Convert a numeric input to Decimal.

    Floats go through str() so 0.1 stays 0.1.

    Raises:
        ValidationError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValidationError(field_name, "must be a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(field_name, f"'{value}' is not a number")
    if not result.is_finite():
        raise ValidationError(field_name, "must be finite")
    return result


def quantize_amount(value: Decimal) -> Decimal:
    """Round to whole cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> int:
    """Convert a Decimal amount to integer cents for storage."""
    return int(quantize_amount(value) * 100)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents back to a Decimal amount."""
    return quantize_amount(Decimal(cents) / 100)


def normalize_currency(currency: str) -> str:
    """
    Validate and normalize an ISO 4217 currency code.

    Raises:
        ValidationError: If the code is not three letters
    """
    code = (currency or "").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError("currency", f"'{currency}' is not an ISO currency code")
    return code


@dataclass(frozen=True)
class Money:
    """
    Immutable money amount.

    Attributes:
        amount: Non-negative amount, rounded to cents
        currency: ISO 4217 code (e.g. 'USD')
    """

    amount: Decimal
    currency: str = "USD"

    def __post_init__(self):
        amount = quantize_amount(to_decimal(self.amount))
        if amount < 0:
            raise ValidationError("amount", "must be non-negative")
        object.__setattr__(self, 'amount', amount)
        object.__setattr__(self, 'currency', normalize_currency(self.currency))

    @classmethod
    def zero(cls, currency: str = "USD") -> 'Money':
        return cls(Decimal("0"), currency)

    def _check_currency(self, other: 'Money') -> None:
        if other.currency != self.currency:
            raise ValidationError(
                "currency",
                f"cannot combine {self.currency} with {other.currency}"
            )

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other)
        return self.amount <= other.amount

    def multiply(self, factor: Numeric) -> 'Money':
        """Scale by a non-negative factor."""
        return Money(self.amount * to_decimal(factor, "factor"), self.currency)

    def __str__(self) -> str:
        return f"{self.amount:,.2f} {self.currency}"
