import threading

import pytest

from aigc_gateway.usage.ledger import PROMPT_SUMMARY_LIMIT, UsageEntry, UsageLedger


def _entry(n: int, kind: str = "create") -> UsageEntry:
    return UsageEntry.record(
        model_name="sora-2-text-to-video",
        prompt=f"prompt {n}",
        image_count=0,
        path="/v1/videos",
        kind=kind,
        now=1_700_000_000 + n,
    )


def test_append_is_most_recent_first():
    ledger = UsageLedger()
    for n in range(3):
        ledger.append("k", _entry(n))

    assert [e.prompt for e in ledger.snapshot("k")] == ["prompt 2", "prompt 1", "prompt 0"]


def test_capacity_evicts_oldest_entry():
    ledger = UsageLedger(capacity=2000)
    for n in range(2001):
        ledger.append("k", _entry(n))

    entries = ledger.snapshot("k")
    assert len(entries) == 2000
    assert entries[0].prompt == "prompt 2000"
    assert entries[-1].prompt == "prompt 1"


def test_keys_are_isolated():
    ledger = UsageLedger(capacity=1)
    ledger.append("a", _entry(1))
    ledger.append("b", _entry(2))

    assert [e.prompt for e in ledger.snapshot("a")] == ["prompt 1"]
    assert ledger.snapshot("missing") == []
    assert len(ledger) == 2


def test_page_is_zero_based_with_total():
    ledger = UsageLedger()
    for n in range(5):
        ledger.append("k", _entry(n))

    items, total = ledger.page("k", page=1, size=2)
    assert total == 5
    assert [e.prompt for e in items] == ["prompt 2", "prompt 1"]

    items, total = ledger.page("k", page=3, size=2)
    assert items == []
    assert total == 5


def test_prompt_summary_is_truncated():
    entry = UsageEntry.record(
        model_name="m", prompt="x" * 600, image_count=1, path="/p", kind="image-create"
    )

    assert entry.prompt == "x" * PROMPT_SUMMARY_LIMIT + "..."
    assert entry.to_dict()["image_count"] == 1


def test_invalid_capacity():
    with pytest.raises(ValueError):
        UsageLedger(capacity=0)


def test_concurrent_appends_do_not_lose_entries():
    ledger = UsageLedger(capacity=10_000)

    def worker(offset):
        for n in range(500):
            ledger.append("k", _entry(offset + n))

    threads = [threading.Thread(target=worker, args=(i * 1000,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(ledger.snapshot("k")) == 4000
