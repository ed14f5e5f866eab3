import asyncio

import pytest


@pytest.mark.anyio
async def test_history_keeps_the_newest_hundred_entries(sorter_env):
    recorder = sorter_env["history"].HistoryRecorder()

    for index in range(150):
        await recorder.record(f"item-{index}", f"https://example.com/{index}", "News")

    entries = await recorder.list_entries()
    assert len(entries) == 100
    assert entries[0].title == "item-149"
    assert entries[-1].title == "item-50"
    assert [entry.title for entry in entries] == [f"item-{index}" for index in range(149, 49, -1)]
    assert len({entry.id for entry in entries}) == 100


@pytest.mark.anyio
async def test_history_entries_carry_status(sorter_env):
    recorder = sorter_env["history"].HistoryRecorder()

    await recorder.record("Broken", "https://example.com/x", "", status="error")
    await recorder.record("Fine", "https://example.com/y", "Docs")

    first, second = await recorder.list_entries()
    assert (first.title, first.status, first.category) == ("Fine", "success", "Docs")
    assert (second.title, second.status) == ("Broken", "error")
    assert first.timestamp >= second.timestamp


@pytest.mark.anyio
async def test_history_write_failures_are_swallowed(sorter_env, monkeypatch):
    history = sorter_env["history"]
    recorder = history.HistoryRecorder()

    def _broken(record, limit):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(history, "add_history_record", _broken)

    await recorder.record("Lost", "https://example.com/lost", "News")
    assert await recorder.list_entries() == []


@pytest.mark.anyio
async def test_clear_history(sorter_env):
    recorder = sorter_env["history"].HistoryRecorder()
    await recorder.record("One", "https://example.com/1", "News")
    await recorder.record("Two", "https://example.com/2", "News")

    assert await recorder.clear() == 2
    assert await recorder.list_entries() == []


@pytest.mark.anyio
async def test_concurrent_records_get_distinct_ids(sorter_env):
    recorder = sorter_env["history"].HistoryRecorder()

    await asyncio.gather(
        *(recorder.record(f"item-{index}", f"https://example.com/{index}", "News") for index in range(20))
    )

    entries = await recorder.list_entries()
    assert len(entries) == 20
    assert len({entry.id for entry in entries}) == 20
