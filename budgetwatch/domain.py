from dataclasses import dataclass
from datetime import date
from typing import Optional

WARNING = "warning"
EXCEEDED = "exceeded"


@dataclass(frozen=True)
class Expense:
    id: str
    owner_id: str
    description: str
    amount: float
    category: str          # canonical category name
    occurred_on: date
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# A spending ceiling for one category in one month
@dataclass(frozen=True)
class Budget:
    id: str
    owner_id: str
    category: str
    amount: float
    month_year: str  # "YYYY-MM"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class CategorySpendingSummary:
    category: str
    spent: float
    budget_amount: float
    percentage: float
    remaining: float
    exceeded: bool


@dataclass(frozen=True)
class AlertRequest:
    kind: str        # WARNING or EXCEEDED
    category: str
    spent: float
    budget_amount: float
    percentage: float
    title: str = ""
    body: str = ""
