import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Set

from budgetwatch.aggregator import aggregate, month_key, monthly_total, spending_by_category
from budgetwatch.config import Settings, settings as default_settings
from budgetwatch.dispatcher import AlertDispatcher
from budgetwatch.domain import AlertRequest, Expense
from budgetwatch.evaluator import evaluate
from budgetwatch.events import BUDGET_ALERT, EXPENSE_SAVED, EventBus, event_bus
from budgetwatch.history import NotificationHistoryStore, record_notified
from budgetwatch.stores import BudgetStore, ExpenseStore

logger = logging.getLogger(__name__)


class DispatchOutcome(NamedTuple):
    alert: AlertRequest
    notified: bool  # False when the fallback alert was shown


class SaveResult(NamedTuple):
    expense: Expense
    outcomes: List[DispatchOutcome]


class BudgetAlertService:
    """Runs the budget check that follows every expense save.

    One pass: load budgets, load expenses, aggregate, load history,
    evaluate, dispatch, persist history. Passes for the same owner never
    overlap. Store trouble is logged and read as "nothing there"; a pass
    never raises into the caller.
    """

    def __init__(
        self,
        expenses: ExpenseStore,
        budgets: BudgetStore,
        history: NotificationHistoryStore,
        dispatcher: AlertDispatcher,
        bus: EventBus = event_bus,
        settings: Settings = default_settings,
        clock: Callable[[], date] = date.today,
    ):
        self.expenses = expenses
        self.budgets = budgets
        self.history = history
        self.dispatcher = dispatcher
        self.bus = bus
        self.settings = settings
        self.clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._running: Set[asyncio.Task] = set()

    def _lock_for(self, owner_id: str) -> asyncio.Lock:
        if owner_id not in self._locks:
            self._locks[owner_id] = asyncio.Lock()
        return self._locks[owner_id]

    async def _read(self, what: str, aw: Awaitable, default: Any) -> Any:
        try:
            return await asyncio.wait_for(aw, self.settings.io_timeout)
        except asyncio.TimeoutError:
            logger.warning("Timed out loading %s, continuing without it", what)
        except Exception as exc:
            logger.warning("Could not load %s, continuing without it: %s", what, exc)
        return default

    async def check_budgets(self, owner_id: str, today: Optional[date] = None) -> List[DispatchOutcome]:
        """Evaluate the month containing ``today`` and deliver any alerts.

        The pass keeps running if the caller is cancelled, so the history
        update and the alert are not lost.
        """
        task = asyncio.ensure_future(self._run_pass(owner_id, today or self.clock()))
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return await asyncio.shield(task)

    async def _run_pass(self, owner_id: str, today: date) -> List[DispatchOutcome]:
        async with self._lock_for(owner_id):
            try:
                return await self._evaluate_and_dispatch(owner_id, today)
            except Exception:
                logger.exception("Budget check failed for %s", owner_id)
                return []

    async def _evaluate_and_dispatch(self, owner_id: str, today: date) -> List[DispatchOutcome]:
        month_year = month_key(today)
        today_str = today.isoformat()

        budgets = await self._read("budgets", self.budgets.list_budgets(owner_id, month_year), [])
        if not budgets:
            return []
        expenses = await self._read("expenses", self.expenses.list_expenses(owner_id), [])
        summaries = aggregate(expenses, budgets, month_year)
        for s in summaries:
            logger.debug("%s: spent %s of %s (%.1f%%)", s.category, s.spent, s.budget_amount, s.percentage)

        history = await self._read("notification history", self.history.load(owner_id), {})
        evaluation = evaluate(
            summaries,
            history,
            month_year,
            today_str,
            warning_pct=self.settings.warning_pct,
            exceeded_pct=self.settings.exceeded_pct,
            currency=self.settings.currency,
        )

        outcomes: List[DispatchOutcome] = []
        delivered = history
        for alert in evaluation.alerts:
            try:
                notified = await self.dispatcher.dispatch(alert)
            except Exception:
                # both channels failed; leave the history alone so the next save retries
                logger.exception("Could not deliver %s alert for %s", alert.kind, alert.category)
                continue
            outcomes.append(DispatchOutcome(alert=alert, notified=notified))
            delivered = record_notified(delivered, month_year, alert.category, alert.kind, today_str)
            self.bus.publish(BUDGET_ALERT, {
                "owner_id": owner_id,
                "kind": alert.kind,
                "category": alert.category,
                "title": alert.title,
                "body": alert.body,
                "notified": notified,
            })

        if outcomes:
            try:
                await asyncio.wait_for(self.history.save(owner_id, delivered), self.settings.io_timeout)
            except Exception as exc:
                logger.warning("Could not save notification history for %s: %s", owner_id, exc)
        return outcomes

    async def save_expense(self, owner_id: str, data: dict, expense_id: Optional[str] = None) -> SaveResult:
        """Create (or fully update) an expense, then run the budget check.

        Invalid input raises ``ValueError`` and an expense the owner does
        not have raises ``KeyError``; nothing is saved in either case. Once
        the expense is stored, a failing budget check only costs the alerts.
        """
        if expense_id is None:
            expense = await self.expenses.create(owner_id, data)
        else:
            expense = await self.expenses.update(owner_id, expense_id, data)

        self.bus.publish(EXPENSE_SAVED, {
            "owner_id": expense.owner_id,
            "expense_id": expense.id,
            "category": expense.category,
            "amount": expense.amount,
            "created": expense_id is None,
        })
        outcomes = await self.check_budgets(expense.owner_id)
        return SaveResult(expense=expense, outcomes=outcomes)

    async def monthly_report(self, owner_id: str, month_year: str) -> Dict[str, Any]:
        """Totals, category breakdown and budget progress for one month."""
        expenses = await self._read("expenses", self.expenses.list_expenses(owner_id), [])
        budgets = await self._read("budgets", self.budgets.list_budgets(owner_id, month_year), [])
        return {
            "month": month_year,
            "total": monthly_total(expenses, month_year),
            "by_category": spending_by_category(expenses, month_year),
            "budgets": aggregate(expenses, budgets, month_year),
        }


def create_service(kv, notifier, fallback, bus: EventBus = event_bus, settings: Settings = default_settings) -> BudgetAlertService:
    return BudgetAlertService(
        expenses=ExpenseStore(kv),
        budgets=BudgetStore(kv),
        history=NotificationHistoryStore(kv),
        dispatcher=AlertDispatcher(notifier, fallback, timeout=settings.io_timeout),
        bus=bus,
        settings=settings,
    )
