import asyncio
from datetime import date

import pytest

from budgetwatch.config import Settings
from budgetwatch.dispatcher import AlertDispatcher
from budgetwatch.domain import EXCEEDED, WARNING
from budgetwatch.events import BUDGET_ALERT, EXPENSE_SAVED, EventBus
from budgetwatch.history import NotificationHistoryStore
from budgetwatch.services import BudgetAlertService, create_service
from budgetwatch.storage import InMemoryKeyValueStore
from budgetwatch.stores import BudgetStore, ExpenseStore

TODAY = date(2024, 7, 15)


class FakeNotifier:
    def __init__(self, granted=True, delay=0.0):
        self.granted = granted
        self.delay = delay
        self.sent = []

    async def has_permission(self):
        return self.granted

    async def request_permission(self):
        return self.granted

    async def notify_now(self, title, body):
        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append(title)


class FakeAlert:
    def __init__(self, fail=False):
        self.fail = fail
        self.shown = []

    def show_alert(self, title, body):
        if self.fail:
            raise RuntimeError("no UI")
        self.shown.append(title)


def build(notifier=None, fallback=None, kv=None, bus=None, **settings):
    kv = kv or InMemoryKeyValueStore()
    notifier = notifier or FakeNotifier()
    fallback = fallback or FakeAlert()
    service = BudgetAlertService(
        expenses=ExpenseStore(kv),
        budgets=BudgetStore(kv),
        history=NotificationHistoryStore(kv),
        dispatcher=AlertDispatcher(notifier, fallback, timeout=1.0),
        bus=bus or EventBus(),
        settings=Settings(**settings),
        clock=lambda: TODAY,
    )
    return service, notifier, fallback


def groceries(amount, occurred_on="2024-07-10"):
    return {"description": "shop", "amount": str(amount), "category": "Groceries", "occurred_on": occurred_on}


async def set_groceries_budget(service, owner="u1", amount="10000"):
    await service.budgets.upsert(owner, {"category": "Groceries", "amount": amount, "month_year": "2024-07"})


@pytest.mark.asyncio
async def test_save_expense_fires_warning_and_records_history():
    service, notifier, _ = build()
    await set_groceries_budget(service)

    result = await service.save_expense("u1", groceries(8000))

    assert result.expense.amount == 8000
    assert [(o.alert.kind, o.notified) for o in result.outcomes] == [(WARNING, True)]
    assert notifier.sent == ["Budget Warning: Groceries"]
    assert await service.history.load("u1") == {"2024-07": {"Groceries-warning": "2024-07-15"}}


@pytest.mark.asyncio
async def test_exceeded_then_silent_for_rest_of_day():
    service, notifier, _ = build()
    await set_groceries_budget(service)

    first = await service.save_expense("u1", groceries(12000))
    assert [o.alert.kind for o in first.outcomes] == [EXCEEDED]

    second = await service.save_expense("u1", groceries(1000))
    assert second.outcomes == []
    assert notifier.sent == ["Budget Exceeded: Groceries"]


@pytest.mark.asyncio
async def test_no_budget_means_no_alert_and_no_history():
    service, notifier, fallback = build()
    result = await service.save_expense("u1", groceries(999999))
    assert result.outcomes == []
    assert notifier.sent == [] and fallback.shown == []
    assert await service.history.load("u1") == {}


@pytest.mark.asyncio
async def test_expenses_outside_current_month_do_not_count():
    service, _, _ = build()
    await set_groceries_budget(service)
    result = await service.save_expense("u1", groceries(9000, occurred_on="2024-06-30"))
    assert result.outcomes == []


@pytest.mark.asyncio
async def test_history_is_kept_per_owner():
    service, notifier, _ = build()
    await set_groceries_budget(service, "u1")
    await set_groceries_budget(service, "u2")

    await service.save_expense("u1", groceries(9000))
    result = await service.save_expense("u2", groceries(9000))

    assert [o.alert.kind for o in result.outcomes] == [WARNING]
    assert len(notifier.sent) == 2


@pytest.mark.asyncio
async def test_without_permission_fallback_is_used_and_recorded():
    service, notifier, fallback = build(notifier=FakeNotifier(granted=False))
    await set_groceries_budget(service)

    result = await service.save_expense("u1", groceries(8500))

    assert [o.notified for o in result.outcomes] == [False]
    assert fallback.shown == ["Budget Warning: Groceries"]
    assert "Groceries-warning" in (await service.history.load("u1"))["2024-07"]


@pytest.mark.asyncio
async def test_undelivered_alert_is_retried_on_next_save():
    fallback = FakeAlert(fail=True)
    service, _, _ = build(notifier=FakeNotifier(granted=False), fallback=fallback)
    await set_groceries_budget(service)

    first = await service.save_expense("u1", groceries(8500))
    assert first.outcomes == []
    assert await service.history.load("u1") == {}

    fallback.fail = False
    second = await service.save_expense("u1", groceries(10))
    assert [o.alert.kind for o in second.outcomes] == [WARNING]


@pytest.mark.asyncio
async def test_concurrent_passes_do_not_double_notify():
    service, notifier, _ = build(notifier=FakeNotifier(delay=0.02))
    await set_groceries_budget(service)
    await service.expenses.create("u1", groceries(9000))

    results = await asyncio.gather(
        service.check_budgets("u1"),
        service.check_budgets("u1"),
        service.check_budgets("u1"),
    )

    assert sum(len(r) for r in results) == 1
    assert notifier.sent == ["Budget Warning: Groceries"]


@pytest.mark.asyncio
async def test_store_failure_does_not_break_save():
    service, notifier, _ = build()

    async def broken(*args, **kwargs):
        raise ConnectionError("backend unreachable")

    service.budgets.list_budgets = broken
    result = await service.save_expense("u1", groceries(50000))

    assert result.expense.amount == 50000
    assert result.outcomes == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_slow_expense_store_times_out_as_empty():
    service, notifier, _ = build(io_timeout=0.01)
    await set_groceries_budget(service)
    await service.expenses.create("u1", groceries(9000))

    async def slow(owner_id):
        await asyncio.sleep(1)
        return []

    service.expenses.list_expenses = slow
    assert await service.check_budgets("u1") == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_corrupt_history_still_alerts():
    kv = InMemoryKeyValueStore({"@notificationHistory/u1": "garbage"})
    service, notifier, _ = build(kv=kv)
    await set_groceries_budget(service)

    result = await service.save_expense("u1", groceries(8000))
    assert len(result.outcomes) == 1
    assert await service.history.load("u1") == {"2024-07": {"Groceries-warning": "2024-07-15"}}


@pytest.mark.asyncio
async def test_pass_survives_caller_cancellation():
    service, notifier, _ = build(notifier=FakeNotifier(delay=0.05))
    await set_groceries_budget(service)
    await service.expenses.create("u1", groceries(9000))

    caller = asyncio.ensure_future(service.check_budgets("u1"))
    await asyncio.sleep(0.01)
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    await asyncio.sleep(0.2)
    assert notifier.sent == ["Budget Warning: Groceries"]
    assert await service.history.load("u1") == {"2024-07": {"Groceries-warning": "2024-07-15"}}


@pytest.mark.asyncio
async def test_events_are_published():
    bus = EventBus()
    seen = []
    bus.subscribe(EXPENSE_SAVED, lambda event, payload: seen.append((event.name, payload["category"])) or {})
    bus.subscribe(BUDGET_ALERT, lambda event, payload: seen.append((event.name, payload["kind"])) or {})
    service, _, _ = build(bus=bus)
    await set_groceries_budget(service)

    await service.save_expense("u1", groceries(8000))

    assert seen == [(EXPENSE_SAVED, "Groceries"), (BUDGET_ALERT, WARNING)]


@pytest.mark.asyncio
async def test_update_expense_triggers_check():
    service, notifier, _ = build()
    await set_groceries_budget(service)
    saved = await service.save_expense("u1", groceries(100))
    assert saved.outcomes == []

    updated = await service.save_expense("u1", groceries(10500), expense_id=saved.expense.id)
    assert updated.expense.id == saved.expense.id
    assert [o.alert.kind for o in updated.outcomes] == [EXCEEDED]


@pytest.mark.asyncio
async def test_cannot_save_over_another_owners_expense():
    service, notifier, _ = build()
    await set_groceries_budget(service, owner="u2")
    theirs = await service.save_expense("u2", groceries(100))

    with pytest.raises(KeyError):
        await service.save_expense("u1", groceries(9500), expense_id=theirs.expense.id)

    [kept] = await service.expenses.list_expenses("u2")
    assert kept.amount == 100
    assert notifier.sent == []

    raised = await service.save_expense("u2", groceries(9500), expense_id=theirs.expense.id)
    assert raised.expense.owner_id == "u2"
    assert [o.alert.kind for o in raised.outcomes] == [WARNING]


@pytest.mark.asyncio
async def test_invalid_expense_raises_before_any_check():
    service, notifier, _ = build()
    await set_groceries_budget(service)
    with pytest.raises(ValueError):
        await service.save_expense("u1", groceries("abc"))
    assert await service.expenses.list_expenses("u1") == []


@pytest.mark.asyncio
async def test_monthly_report():
    service, _, _ = build()
    await set_groceries_budget(service)
    await service.expenses.create("u1", groceries(4000))
    await service.expenses.create("u1", {"amount": "600", "category": "Transport", "occurred_on": "2024-07-02"})

    report = await service.monthly_report("u1", "2024-07")

    assert report["month"] == "2024-07"
    assert report["total"] == 4600
    assert report["by_category"] == {"Groceries": 4000, "Transport": 600}
    [s] = report["budgets"]
    assert s.percentage == 40


@pytest.mark.asyncio
async def test_create_service_wires_everything():
    kv = InMemoryKeyValueStore()
    notifier, fallback = FakeNotifier(), FakeAlert()
    service = create_service(kv, notifier, fallback, bus=EventBus())
    await service.budgets.upsert("u1", {"category": "Groceries", "amount": "100", "month_year": date.today().strftime("%Y-%m")})
    await service.save_expense("u1", {"amount": "100", "category": "Groceries", "occurred_on": date.today().isoformat()})
    assert notifier.sent == ["Budget Exceeded: Groceries"]
