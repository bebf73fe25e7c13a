import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Generic, TypeVar

from budgetwatch.categories import normalize_category

T = TypeVar('T')
E = TypeVar('E')

# year 0000 has no calendar date behind it
MONTH_RE = re.compile(r"^(?!0000)\d{4}-(0[1-9]|1[0-2])$")


class Maybe(Generic[T], ABC):
    """A parsed value, or nothing when the raw input did not parse."""

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def is_some(self) -> bool:
        pass

    def __eq__(self, other) -> bool:
        return type(self) is type(other) and self.get_or_else(None) == other.get_or_else(None)


class Some(Maybe[T]):

    def __init__(self, value: T):
        self._value = value

    def get_or_else(self, default: T) -> T:
        return self._value

    def is_some(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Some({self._value!r})"


class Nothing(Maybe[T]):

    def get_or_else(self, default: T) -> T:
        return default

    def is_some(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "Nothing()"


class Either(Generic[E, T], ABC):
    """Validated fields on the right, an error dict on the left."""

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def is_right(self) -> bool:
        pass

    @abstractmethod
    def get_error(self) -> E:
        pass


class Right(Either[E, T]):

    def __init__(self, value: T):
        self._value = value

    def get_or_else(self, default: T) -> T:
        return self._value

    def is_right(self) -> bool:
        return True

    def get_error(self) -> E:
        raise ValueError("Validation passed, there is no error")

    def __repr__(self) -> str:
        return f"Right({self._value!r})"


class Left(Either[E, T]):

    def __init__(self, error: E):
        self._error = error

    def get_or_else(self, default: T) -> T:
        return default

    def is_right(self) -> bool:
        return False

    def get_error(self) -> E:
        return self._error

    def __repr__(self) -> str:
        return f"Left({self._error!r})"


def parse_amount(raw: Any) -> Maybe[float]:
    """Parse a stored amount (often text) into a float.

    NaN and infinities count as unparseable.
    """
    if raw is None or isinstance(raw, bool):
        return Nothing()
    try:
        value = float(str(raw).strip())
    except ValueError:
        return Nothing()
    if value != value or value in (float("inf"), float("-inf")):
        return Nothing()
    return Some(value)


def parse_date(raw: Any) -> Maybe[date]:
    if isinstance(raw, datetime):
        return Some(raw.date())
    if isinstance(raw, date):
        return Some(raw)
    if not isinstance(raw, str) or len(raw) < 10:
        return Nothing()
    # accepts "2024-07-15" as well as full ISO timestamps
    try:
        return Some(date.fromisoformat(raw[:10]))
    except ValueError:
        return Nothing()


def validate_expense_fields(data: dict) -> Either[dict, dict]:
    amount = parse_amount(data.get("amount"))
    if not amount.is_some() or amount.get_or_else(0.0) <= 0:
        return Left({
            "error": "invalid_amount",
            "message": "Please enter a valid positive amount",
            "amount": data.get("amount"),
        })

    occurred_on = parse_date(data.get("occurred_on"))
    if not occurred_on.is_some():
        return Left({
            "error": "invalid_date",
            "message": f"Expense date {data.get('occurred_on')!r} is not a YYYY-MM-DD date",
        })

    return Right({
        "description": str(data.get("description") or "").strip(),
        "amount": amount.get_or_else(0.0),
        "category": normalize_category(data.get("category")),
        "occurred_on": occurred_on.get_or_else(None),
    })


def validate_budget_fields(data: dict) -> Either[dict, dict]:
    month_year = str(data.get("month_year") or "")
    if not MONTH_RE.match(month_year):
        return Left({
            "error": "invalid_month",
            "message": f"Budget month {month_year!r} is not YYYY-MM",
        })

    amount = parse_amount(data.get("amount"))
    if not amount.is_some() or amount.get_or_else(0.0) <= 0:
        return Left({
            "error": "invalid_amount",
            "message": "Please enter a valid positive amount",
            "amount": data.get("amount"),
        })

    return Right({
        "category": normalize_category(data.get("category")),
        "amount": amount.get_or_else(0.0),
        "month_year": month_year,
    })
