import calendar
from collections import defaultdict
from datetime import date
from typing import Callable, Dict, Iterable, Iterator, List

from budgetwatch.domain import Budget, CategorySpendingSummary, Expense


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def month_bounds(month_year: str) -> tuple[date, date]:
    """First and last calendar day of a ``YYYY-MM`` month."""
    year, month = (int(part) for part in month_year.split("-"))
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def by_category(category: str) -> Callable[[Expense], bool]:
    def _filter(e: Expense) -> bool:
        return e.category == category

    return _filter


def by_date_range(start: date, end: date) -> Callable[[Expense], bool]:
    def _filter(e: Expense) -> bool:
        return start <= e.occurred_on <= end

    return _filter


def iter_month(expenses: Iterable[Expense], month_year: str) -> Iterator[Expense]:
    start, end = month_bounds(month_year)
    yield from filter(by_date_range(start, end), expenses)


def aggregate(
    expenses: Iterable[Expense], budgets: Iterable[Budget], month_year: str
) -> List[CategorySpendingSummary]:
    """Join one month of expenses against that month's budgets.

    Categories without a budget produce no summary. When a category has
    more than one budget for the month, the first one wins.
    """
    spent_by_category: Dict[str, float] = defaultdict(float)
    for e in iter_month(expenses, month_year):
        spent_by_category[e.category] += e.amount

    summaries: List[CategorySpendingSummary] = []
    seen: set[str] = set()
    for b in budgets:
        if b.month_year != month_year or b.category in seen:
            continue
        seen.add(b.category)

        spent = spent_by_category.get(b.category, 0.0)
        percentage = 100 * spent / b.amount if b.amount > 0 else 0.0
        summaries.append(
            CategorySpendingSummary(
                category=b.category,
                spent=spent,
                budget_amount=b.amount,
                percentage=percentage,
                remaining=max(b.amount - spent, 0.0),
                exceeded=spent > b.amount,
            )
        )
    return summaries


def spending_by_category(expenses: Iterable[Expense], month_year: str) -> Dict[str, float]:
    totals: Dict[str, float] = defaultdict(float)
    for e in iter_month(expenses, month_year):
        totals[e.category] += e.amount
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def monthly_total(expenses: Iterable[Expense], month_year: str) -> float:
    return sum(e.amount for e in iter_month(expenses, month_year))
