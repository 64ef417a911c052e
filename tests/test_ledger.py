"""Tests for the append-only trace ledger."""

import json
import os
import threading

import pytest

from governance_hooks.errors import LedgerWriteError
from governance_hooks.hashing import compute_content_hash
from governance_hooks.ledger import Contributor, FileRecord, Ledger, MutationClass, TraceEntry
from governance_hooks.storage import LocalStorage, MemoryStorage


LEDGER_PATH = ".orchestration/agent_trace.jsonl"


def _entry(intent_id="INT-001", path="src/core/a.py", content="x", mutation_class=MutationClass.WRITE):
    return TraceEntry.create(
        intent_id=intent_id,
        mutation_class=mutation_class,
        files=[FileRecord(relative_path=path, content_hash=compute_content_hash(content))],
        vcs_revision="rev-test",
        contributor=Contributor(entity_type="AI", model_identifier="test-model"),
    )


class FlakyStorage(MemoryStorage):
    """Fails the first ``failures`` appends."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def append_line(self, rel, line):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise OSError("disk full")
        super().append_line(rel, line)


class TestTraceEntry:
    def test_create_requires_files(self):
        with pytest.raises(ValueError):
            TraceEntry.create("INT-001", MutationClass.WRITE, [], "rev", Contributor("AI", "m"))

    def test_entries_get_unique_ids(self):
        assert _entry().id != _entry().id

    def test_json_layout(self):
        entry = TraceEntry.create(
            intent_id="INT-001",
            mutation_class=MutationClass.WRITE,
            files=[FileRecord("src/core/a.py", compute_content_hash("x"), semantic_links=("REQ-7",))],
            vcs_revision="abc123",
            contributor=Contributor(entity_type="AI", model_identifier="test-model"),
        )
        data = json.loads(entry.to_json())
        assert set(data) == {"id", "timestamp", "intent_id", "vcs_revision", "files"}
        record = data["files"][0]
        assert record["relative_path"] == "src/core/a.py"
        assert record["mutation_class"] == "Write"
        assert record["contributor"] == {"entity_type": "AI", "model_identifier": "test-model"}
        assert record["semantic_links"] == ["REQ-7"]
        assert "\n" not in entry.to_json()

    def test_semantic_links_omitted_when_empty(self):
        data = json.loads(_entry().to_json())
        assert "semantic_links" not in data["files"][0]

    def test_parsed_entry_equals_original(self):
        entry = _entry(mutation_class=MutationClass.DELETE)
        assert TraceEntry.from_dict(json.loads(entry.to_json())) == entry


class TestAppend:
    def test_append_and_count(self):
        ledger = Ledger(MemoryStorage(), LEDGER_PATH)
        assert ledger.count() == 0
        for i in range(3):
            ledger.append(_entry(content=str(i)))
        assert ledger.count() == 3

    def test_append_order_is_preserved(self):
        ledger = Ledger(MemoryStorage(), LEDGER_PATH)
        written = [_entry(path=f"src/core/{i}.py") for i in range(5)]
        for entry in written:
            ledger.append(entry)
        assert [e.id for e in ledger.entries()] == [e.id for e in written]

    def test_one_line_per_entry(self):
        storage = MemoryStorage()
        ledger = Ledger(storage, LEDGER_PATH)
        ledger.append(_entry())
        ledger.append(_entry())
        assert storage.read_text(LEDGER_PATH).count("\n") == 2

    def test_concurrent_appends_do_not_interleave(self):
        ledger = Ledger(MemoryStorage(), LEDGER_PATH)

        def worker(n):
            for i in range(20):
                ledger.append(_entry(intent_id=f"INT-{n}", content=str(i)))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert ledger.count() == 80
        assert ledger.verify() == []

    def test_local_storage_creates_the_directory(self, tmp_path):
        ledger = Ledger(LocalStorage.from_path(tmp_path), LEDGER_PATH)
        ledger.append(_entry())
        assert (tmp_path / ".orchestration" / "agent_trace.jsonl").exists()
        assert ledger.count() == 1


class TestRetries:
    def test_transient_failure_is_retried(self):
        storage = FlakyStorage(failures=2)
        ledger = Ledger(storage, LEDGER_PATH, retries=3, backoff_s=0)
        ledger.append(_entry())
        assert storage.attempts == 3
        assert ledger.count() == 1

    def test_persistent_failure_raises(self):
        storage = FlakyStorage(failures=100)
        ledger = Ledger(storage, LEDGER_PATH, retries=3, backoff_s=0)
        with pytest.raises(LedgerWriteError, match="disk full"):
            ledger.append(_entry())
        assert storage.attempts == 3
        assert ledger.count() == 0

    def test_short_write_is_rolled_back_before_retry(self, tmp_path, monkeypatch):
        ledger = Ledger(LocalStorage.from_path(tmp_path), LEDGER_PATH, retries=3, backoff_s=0)
        ledger.append(_entry())

        real_write = os.write
        calls = []

        def short_once(fd, data):
            calls.append(len(data))
            if len(calls) == 1:
                return real_write(fd, data[: len(data) // 2])
            return real_write(fd, data)

        monkeypatch.setattr(os, "write", short_once)
        second = _entry(content="second")
        ledger.append(second)
        monkeypatch.undo()

        assert len(calls) == 2
        assert [e.id for e in ledger.entries()][-1] == second.id
        assert ledger.count() == 2
        assert ledger.verify() == []

    def test_torn_line_from_a_crashed_writer_does_not_swallow_the_next_entry(self, tmp_path):
        storage = LocalStorage.from_path(tmp_path)
        ledger = Ledger(storage, LEDGER_PATH)
        ledger.append(_entry())
        with (tmp_path / LEDGER_PATH).open("a") as f:
            f.write(_entry().to_json()[:30])

        after = _entry(content="after")
        ledger.append(after)

        assert [e.id for e in ledger.entries()][-1] == after.id
        assert ledger.count() == 2
        assert len(ledger.verify()) == 1


class TestReadSince:
    def test_incremental_reads(self):
        ledger = Ledger(MemoryStorage(), LEDGER_PATH)
        ledger.append(_entry())
        first, offset = ledger.read_since(0)
        assert len(first) == 1

        ledger.append(_entry())
        second, offset = ledger.read_since(offset)
        assert len(second) == 1
        assert second[0].id != first[0].id

        assert ledger.read_since(offset) == ([], offset)

    def test_partial_trailing_line_is_left_for_later(self):
        storage = MemoryStorage()
        ledger = Ledger(storage, LEDGER_PATH)
        ledger.append(_entry())
        complete = storage.files[LEDGER_PATH]

        pending = _entry().to_json()
        storage.files[LEDGER_PATH] = complete + pending[:20].encode()
        entries, offset = ledger.read_since(0)
        assert len(entries) == 1
        assert offset == len(complete)

        storage.files[LEDGER_PATH] = complete + (pending + "\n").encode()
        entries, _ = ledger.read_since(offset)
        assert len(entries) == 1

    def test_unreadable_line_is_skipped(self):
        storage = MemoryStorage()
        ledger = Ledger(storage, LEDGER_PATH)
        ledger.append(_entry())
        storage.append_line(LEDGER_PATH, "{not json")
        ledger.append(_entry())
        assert ledger.count() == 2

    def test_follow_yields_existing_entries_then_stops(self):
        ledger = Ledger(MemoryStorage(), LEDGER_PATH)
        ledger.append(_entry())
        ledger.append(_entry())
        stop = threading.Event()
        stop.set()
        assert len(list(ledger.follow(poll_interval_s=0.01, stop=stop))) == 2


class TestVerify:
    def test_sound_ledger(self):
        ledger = Ledger(MemoryStorage(), LEDGER_PATH)
        ledger.append(_entry())
        assert ledger.verify() == []

    def test_missing_ledger_is_sound(self):
        assert Ledger(MemoryStorage(), LEDGER_PATH).verify() == []

    def test_corrupt_lines_are_reported(self):
        storage = MemoryStorage()
        ledger = Ledger(storage, LEDGER_PATH)
        entry = _entry()
        ledger.append(entry)
        ledger.append(entry)
        storage.append_line(LEDGER_PATH, "{not json")
        bad_hash = json.loads(_entry().to_json())
        bad_hash["files"][0]["content_hash"] = "xyz"
        storage.append_line(LEDGER_PATH, json.dumps(bad_hash))

        problems = ledger.verify()
        assert any("duplicate entry id" in p for p in problems)
        assert any("line 3: invalid JSON" in p for p in problems)
        assert any("line 4" in p and "content_hash" in p for p in problems)

    def test_incomplete_trailing_line(self):
        storage = MemoryStorage()
        ledger = Ledger(storage, LEDGER_PATH)
        ledger.append(_entry())
        storage.files[LEDGER_PATH] += b'{"id":'
        assert any("incomplete trailing line" in p for p in ledger.verify())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
