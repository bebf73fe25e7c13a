import json

import pytest

from budgetwatch.history import (
    NotificationHistoryStore,
    history_key,
    record_notified,
    was_notified_today,
)
from budgetwatch.storage import InMemoryKeyValueStore


def test_was_notified_today():
    history = {"2024-07": {"Groceries-warning": "2024-07-15"}}
    assert was_notified_today(history, "2024-07", "Groceries", "warning", "2024-07-15")
    assert not was_notified_today(history, "2024-07", "Groceries", "warning", "2024-07-16")
    assert not was_notified_today(history, "2024-07", "Groceries", "exceeded", "2024-07-15")
    assert not was_notified_today(history, "2024-08", "Groceries", "warning", "2024-07-15")
    assert not was_notified_today({}, "2024-07", "Groceries", "warning", "2024-07-15")


def test_record_notified_returns_new_map():
    history = {"2024-07": {"Transport-warning": "2024-07-01"}}
    updated = record_notified(history, "2024-07", "Groceries", "exceeded", "2024-07-15")
    assert updated == {
        "2024-07": {
            "Transport-warning": "2024-07-01",
            "Groceries-exceeded": "2024-07-15",
        }
    }
    assert history == {"2024-07": {"Transport-warning": "2024-07-01"}}


def test_record_notified_overwrites_older_date():
    history = {"2024-07": {"Groceries-warning": "2024-07-01"}}
    updated = record_notified(history, "2024-07", "Groceries", "warning", "2024-07-02")
    assert updated["2024-07"]["Groceries-warning"] == "2024-07-02"


@pytest.mark.asyncio
async def test_load_missing_history_is_empty():
    store = NotificationHistoryStore(InMemoryKeyValueStore())
    assert await store.load("u1") == {}


@pytest.mark.asyncio
async def test_save_then_load_per_owner():
    kv = InMemoryKeyValueStore()
    store = NotificationHistoryStore(kv)
    await store.save("u1", {"2024-07": {"Groceries-warning": "2024-07-15"}})

    assert await store.load("u1") == {"2024-07": {"Groceries-warning": "2024-07-15"}}
    assert await store.load("u2") == {}
    assert json.loads(await kv.get(history_key("u1")))["2024-07"]["Groceries-warning"] == "2024-07-15"


@pytest.mark.asyncio
async def test_corrupt_history_reads_as_empty():
    kv = InMemoryKeyValueStore({history_key("u1"): "{not json"})
    assert await NotificationHistoryStore(kv).load("u1") == {}


@pytest.mark.asyncio
async def test_wrong_shape_history_reads_as_empty():
    kv = InMemoryKeyValueStore({history_key("u1"): json.dumps(["2024-07"])})
    assert await NotificationHistoryStore(kv).load("u1") == {}


@pytest.mark.asyncio
async def test_malformed_entries_are_dropped():
    raw = {"2024-07": {"Groceries-warning": "2024-07-15", "Transport-warning": 5}, "2024-06": "oops"}
    kv = InMemoryKeyValueStore({history_key("u1"): json.dumps(raw)})
    assert await NotificationHistoryStore(kv).load("u1") == {"2024-07": {"Groceries-warning": "2024-07-15"}}
