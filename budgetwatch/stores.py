"""Expense and budget repositories on top of a key-value store.

Records are kept as one JSON list per kind. Reads skip records that do not
parse; writes keep them untouched so nothing is lost behind the user's back.
Each store serialises its own load-modify-save cycles, and every record
change is checked against the owner asking for it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from budgetwatch.domain import Budget, Expense
from budgetwatch.functional import validate_budget_fields, validate_expense_fields
from budgetwatch.transforms import (
    budget_from_record,
    budget_to_record,
    expense_from_record,
    expense_to_record,
)

logger = logging.getLogger(__name__)

EXPENSES_KEY = "@expenses"
BUDGETS_KEY = "@budgets"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class _RecordStore:
    key: str = ""

    def __init__(self, kv):
        self.kv = kv
        self._lock = asyncio.Lock()

    async def _load_records(self) -> List[Any]:
        raw = await self.kv.get(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Discarding corrupt %s document: %s", self.key, exc)
            return []
        if not isinstance(data, list):
            logger.warning("Discarding %s document: expected a list", self.key)
            return []
        return data

    async def _owned_records(self, owner_id: str) -> List[Dict[str, Any]]:
        return [
            r for r in await self._load_records()
            if isinstance(r, dict) and r.get("owner_id") == owner_id
        ]

    async def _save_records(self, records: List[Any]) -> None:
        await self.kv.set(self.key, json.dumps(records))

    @staticmethod
    def _index_of(records: List[Any], record_id: str, owner_id: Optional[str] = None) -> int:
        """Position of ``record_id``; a record owned by someone else counts as missing."""
        for i, rec in enumerate(records):
            if isinstance(rec, dict) and str(rec.get("id")) == record_id:
                if owner_id is not None and rec.get("owner_id") != owner_id:
                    break
                return i
        raise KeyError(record_id)

    async def delete(self, owner_id: str, record_id: str) -> None:
        async with self._lock:
            records = await self._load_records()
            del records[self._index_of(records, record_id, owner_id)]
            await self._save_records(records)


class ExpenseStore(_RecordStore):
    key = EXPENSES_KEY

    async def list_expenses(self, owner_id: str) -> List[Expense]:
        expenses = []
        for rec in await self._owned_records(owner_id):
            parsed = expense_from_record(rec)
            if parsed.is_some():
                expenses.append(parsed.get_or_else(None))
            else:
                logger.warning("Skipping malformed expense record %r", rec.get("id"))
        return sorted(expenses, key=lambda e: e.occurred_on, reverse=True)

    async def get(self, expense_id: str) -> Expense:
        records = await self._load_records()
        rec = records[self._index_of(records, expense_id)]
        parsed = expense_from_record(rec)
        if not parsed.is_some():
            raise KeyError(expense_id)
        return parsed.get_or_else(None)

    async def create(self, owner_id: str, data: dict) -> Expense:
        checked = validate_expense_fields(data)
        if not checked.is_right():
            raise ValueError(checked.get_error()["message"])

        now = _now()
        expense = Expense(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
            **checked.get_or_else({}),
        )
        async with self._lock:
            records = await self._load_records()
            records.append(expense_to_record(expense))
            await self._save_records(records)
        return expense

    async def update(self, owner_id: str, expense_id: str, data: dict) -> Expense:
        checked = validate_expense_fields(data)
        if not checked.is_right():
            raise ValueError(checked.get_error()["message"])

        async with self._lock:
            records = await self._load_records()
            idx = self._index_of(records, expense_id, owner_id)
            current = expense_from_record(records[idx]).get_or_else(None)
            if current is None:
                raise KeyError(expense_id)

            expense = replace(current, updated_at=_now(), **checked.get_or_else({}))
            records[idx] = expense_to_record(expense)
            await self._save_records(records)
        return expense


class BudgetStore(_RecordStore):
    key = BUDGETS_KEY

    async def list_budgets(self, owner_id: str, month_year: Optional[str] = None) -> List[Budget]:
        budgets = []
        for rec in await self._owned_records(owner_id):
            parsed = budget_from_record(rec)
            if not parsed.is_some():
                logger.warning("Skipping malformed budget record %r", rec.get("id"))
                continue
            budget = parsed.get_or_else(None)
            if month_year is None or budget.month_year == month_year:
                budgets.append(budget)
        return budgets

    async def get(self, budget_id: str) -> Budget:
        records = await self._load_records()
        parsed = budget_from_record(records[self._index_of(records, budget_id)])
        if not parsed.is_some():
            raise KeyError(budget_id)
        return parsed.get_or_else(None)

    async def upsert(self, owner_id: str, data: dict) -> Budget:
        """Create the budget, or replace the amount of the one already set
        for the same category and month."""
        checked = validate_budget_fields(data)
        if not checked.is_right():
            raise ValueError(checked.get_error()["message"])
        fields = checked.get_or_else({})

        async with self._lock:
            records = await self._load_records()
            now = _now()
            for idx, rec in enumerate(records):
                existing = budget_from_record(rec).get_or_else(None)
                if (
                    existing is not None
                    and existing.owner_id == owner_id
                    and existing.category == fields["category"]
                    and existing.month_year == fields["month_year"]
                ):
                    budget = replace(existing, amount=fields["amount"], updated_at=now)
                    records[idx] = budget_to_record(budget)
                    break
            else:
                budget = Budget(id=uuid.uuid4().hex, owner_id=owner_id, created_at=now, updated_at=now, **fields)
                records.append(budget_to_record(budget))
            await self._save_records(records)
        return budget

    async def update(self, owner_id: str, budget_id: str, data: dict) -> Budget:
        checked = validate_budget_fields(data)
        if not checked.is_right():
            raise ValueError(checked.get_error()["message"])
        fields = checked.get_or_else({})

        async with self._lock:
            records = await self._load_records()
            idx = self._index_of(records, budget_id, owner_id)
            current = budget_from_record(records[idx]).get_or_else(None)
            if current is None:
                raise KeyError(budget_id)

            for rec in records:
                other = budget_from_record(rec).get_or_else(None)
                if (
                    other is not None
                    and other.id != budget_id
                    and other.owner_id == owner_id
                    and other.category == fields["category"]
                    and other.month_year == fields["month_year"]
                ):
                    raise ValueError(
                        f"A {fields['category']} budget for {fields['month_year']} already exists"
                    )

            budget = replace(current, updated_at=_now(), **fields)
            records[idx] = budget_to_record(budget)
            await self._save_records(records)
        return budget
