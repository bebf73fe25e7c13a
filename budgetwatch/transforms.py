import json
from typing import Any, Dict, Tuple

from budgetwatch.categories import normalize_category
from budgetwatch.domain import Budget, Expense
from budgetwatch.functional import (
    MONTH_RE,
    Maybe,
    Nothing,
    Some,
    parse_amount,
    parse_date,
)


def expense_from_record(rec: Any) -> Maybe[Expense]:
    if not isinstance(rec, dict) or not rec.get("id") or not rec.get("owner_id"):
        return Nothing()
    amount = parse_amount(rec.get("amount")).get_or_else(0.0)
    occurred_on = parse_date(rec.get("occurred_on")).get_or_else(None)
    if amount <= 0 or occurred_on is None:
        return Nothing()
    return Some(Expense(
        id=str(rec["id"]),
        owner_id=str(rec["owner_id"]),
        description=str(rec.get("description") or ""),
        amount=amount,
        category=normalize_category(rec.get("category")),
        occurred_on=occurred_on,
        created_at=rec.get("created_at"),
        updated_at=rec.get("updated_at"),
    ))


def expense_to_record(e: Expense) -> Dict[str, Any]:
    return {
        "id": e.id,
        "owner_id": e.owner_id,
        "description": e.description,
        "amount": str(e.amount),
        "category": e.category,
        "occurred_on": e.occurred_on.isoformat(),
        "created_at": e.created_at,
        "updated_at": e.updated_at,
    }


def budget_from_record(rec: Any) -> Maybe[Budget]:
    """Budgets with a non-numeric amount are dropped; a non-positive one is
    kept so the aggregator can report it with a zero percentage."""
    if not isinstance(rec, dict) or not rec.get("id") or not rec.get("owner_id"):
        return Nothing()
    month_year = str(rec.get("month_year") or "")
    amount = parse_amount(rec.get("amount"))
    if not MONTH_RE.match(month_year) or not amount.is_some():
        return Nothing()
    return Some(Budget(
        id=str(rec["id"]),
        owner_id=str(rec["owner_id"]),
        category=normalize_category(rec.get("category")),
        amount=amount.get_or_else(0.0),
        month_year=month_year,
        created_at=rec.get("created_at"),
        updated_at=rec.get("updated_at"),
    ))


def budget_to_record(b: Budget) -> Dict[str, Any]:
    return {
        "id": b.id,
        "owner_id": b.owner_id,
        "category": b.category,
        "amount": str(b.amount),
        "month_year": b.month_year,
        "created_at": b.created_at,
        "updated_at": b.updated_at,
    }


def load_seed(path: str) -> Tuple[Tuple[Expense, ...], Tuple[Budget, ...]]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    expenses = tuple(
        e for e in (expense_from_record(r).get_or_else(None) for r in data.get("expenses", []))
        if e is not None
    )
    budgets = tuple(
        b for b in (budget_from_record(r).get_or_else(None) for r in data.get("budgets", []))
        if b is not None
    )
    return expenses, budgets
