import threading
import time

import pytest

from meetlogger.services.kv_store import JsonFileKeyValueStore, MemoryKeyValueStore
from meetlogger.services.session_log_store import (
    LOGS_KEY,
    DebouncedWriter,
    SessionLogStore,
    SessionState,
    Utterance,
)


def _texts(utterances):
    return [u.text for u in utterances]


def test_consecutive_duplicate_is_suppressed(session_logs):
    assert session_logs.append("abc123", Utterance("Hello"))
    assert not session_logs.append("abc123", Utterance("Hello"))
    assert len(session_logs.get_log("abc123")) == 1


def test_non_adjacent_duplicate_is_kept(session_logs):
    for text in ("Hello", "Bye", "Hello"):
        session_logs.append("abc123", Utterance(text))
    assert _texts(session_logs.get_log("abc123")) == ["Hello", "Bye", "Hello"]


def test_ring_buffer_keeps_most_recent_in_order():
    store = SessionLogStore(MemoryKeyValueStore(), max_logs=5, flush_delay=60)
    for i in range(8):
        store.append("k", Utterance(f"line {i}"))
    assert _texts(store.get_log("k")) == [f"line {i}" for i in range(3, 8)]
    store.close()


def test_utterance_requires_text():
    with pytest.raises(ValueError):
        Utterance("   ")


def test_debounced_appends_coalesce_into_one_write():
    writes = []

    class CountingStore(MemoryKeyValueStore):
        def set(self, values):
            writes.append(values)
            super().set(values)

    kv = CountingStore()
    store = SessionLogStore(kv, max_logs=100, flush_delay=0.05)
    store.rehydrate()
    for i in range(10):
        store.append("k", Utterance(f"line {i}"))
    assert writes == []
    time.sleep(0.3)
    assert len(writes) == 1
    assert len(writes[0][LOGS_KEY]["k"]) == 10
    store.close()


def test_flush_writes_latest_state(kv_store, session_logs):
    session_logs.append("k", Utterance("one"))
    session_logs.append("k", Utterance("two"))
    assert session_logs.flush()
    stored = kv_store.get([LOGS_KEY])[LOGS_KEY]
    assert [u["text"] for u in stored["k"]] == ["one", "two"]


def test_rehydrate_restores_sessions(tmp_path):
    path = str(tmp_path / "store.json")
    first = SessionLogStore(JsonFileKeyValueStore(path), flush_delay=60)
    first.append("abc123", Utterance("Hello", speaker="Alice"))
    first.close()

    second = SessionLogStore(JsonFileKeyValueStore(path), flush_delay=60)
    assert second.rehydrate() == 1
    restored = second.get_log("abc123")
    assert restored[0].text == "Hello"
    assert restored[0].speaker == "Alice"
    second.close()


def test_rehydrate_accepts_legacy_string_logs():
    kv = MemoryKeyValueStore({LOGS_KEY: {"abc123": ["Hello", "", "We decided X"]}})
    store = SessionLogStore(kv, flush_delay=60)
    store.rehydrate()
    assert _texts(store.get_log("abc123")) == ["Hello", "We decided X"]


def test_append_before_rehydrate_loads_durable_state_first():
    kv = MemoryKeyValueStore({LOGS_KEY: {"k": [{"text": "old"}]}})
    store = SessionLogStore(kv, flush_delay=60)
    store.append("k", Utterance("new"))
    assert _texts(store.get_log("k")) == ["old", "new"]
    store.close()


def test_finalize_returns_log_and_removes_session(session_logs):
    session_logs.append("k", Utterance("a"))
    session_logs.append("k", Utterance("b"))
    assert _texts(session_logs.finalize("k")) == ["a", "b"]
    assert session_logs.state("k") == SessionState.CLOSED
    assert session_logs.finalize("k") == []


def test_logs_during_finalize_belong_to_next_session(session_logs):
    session_logs.append("k", Utterance("before"))
    ticket = session_logs.begin_finalize("k")
    assert session_logs.state("k") == SessionState.FINALIZING
    session_logs.append("k", Utterance("after"))
    assert session_logs.begin_finalize("k") is None

    session_logs.complete_finalize(ticket)
    assert _texts(ticket.utterances) == ["before"]
    assert _texts(session_logs.get_log("k")) == ["after"]


def test_abort_finalize_restores_log_in_front(session_logs):
    session_logs.append("k", Utterance("first"))
    ticket = session_logs.begin_finalize("k")
    session_logs.append("k", Utterance("second"))
    session_logs.abort_finalize(ticket)
    assert _texts(session_logs.get_log("k")) == ["first", "second"]
    assert session_logs.state("k") == SessionState.ACTIVE


def test_in_flight_snapshot_stays_durable(kv_store, session_logs):
    session_logs.append("k", Utterance("first"))
    session_logs.begin_finalize("k")
    session_logs.append("k", Utterance("second"))
    session_logs.flush()
    stored = kv_store.get([LOGS_KEY])[LOGS_KEY]
    assert [u["text"] for u in stored["k"]] == ["first", "second"]


def test_clear_removes_everything(kv_store, session_logs):
    session_logs.append("k", Utterance("a"))
    session_logs.flush()
    session_logs.clear()
    assert session_logs.meeting_keys() == []
    assert kv_store.get([LOGS_KEY]) == {}


def test_failed_write_is_retried_and_append_still_applies():
    attempts = []
    done = threading.Event()

    class FlakyStore(MemoryKeyValueStore):
        def set(self, values):
            attempts.append(values)
            if len(attempts) == 1:
                raise OSError("disk full")
            super().set(values)
            done.set()

    kv = FlakyStore()
    store = SessionLogStore(kv, flush_delay=0.02)
    store.rehydrate()
    assert store.append("k", Utterance("hello"))
    assert _texts(store.get_log("k")) == ["hello"]
    assert done.wait(2.0)
    assert len(attempts) == 2
    assert kv.get([LOGS_KEY])[LOGS_KEY]["k"][0]["text"] == "hello"
    store.close()


def test_debounced_writer_reschedule_cancels_previous_timer():
    calls = []
    writer = DebouncedWriter(lambda: calls.append(1), 0.05)
    writer.schedule()
    writer.schedule()
    writer.schedule()
    time.sleep(0.3)
    assert calls == [1]
    assert not writer.pending


def test_clear_waits_for_write_in_progress():
    entered = threading.Event()
    release = threading.Event()

    class SlowStore(MemoryKeyValueStore):
        def set(self, values):
            entered.set()
            release.wait(2.0)
            super().set(values)

    kv = SlowStore()
    store = SessionLogStore(kv, flush_delay=60)
    store.rehydrate()
    store.append("abc123", Utterance("Hello"))

    flusher = threading.Thread(target=store.flush)
    flusher.start()
    assert entered.wait(2.0)
    clearer = threading.Thread(target=store.clear)
    clearer.start()
    release.set()
    flusher.join(2.0)
    clearer.join(2.0)

    reborn = SessionLogStore(kv, flush_delay=60)
    reborn.rehydrate()
    assert reborn.meeting_keys() == []
    store.close()


def test_complete_finalize_writes_through_immediately(kv_store):
    store = SessionLogStore(kv_store, flush_delay=60)
    store.rehydrate()
    store.append("k", Utterance("a"))
    store.flush()

    store.complete_finalize(store.begin_finalize("k"))

    assert not store.writer.pending
    assert kv_store.get([LOGS_KEY])[LOGS_KEY] == {}
