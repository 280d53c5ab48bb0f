"""Tests for the periodic consumer loop."""

import threading
import time
from datetime import timedelta

import pytest

from conftest import EPOCH, FakeTailer, log_line
from log_consumer.consumer import Consumer, ConsumerError

MINUTE = timedelta(minutes=1)


class TestConsumeBytes:
    def test_drops_records_before_epoch(self, counter, sink):
        consumer = Consumer(1.0, FakeTailer(), counter)
        data = log_line(EPOCH - MINUTE, "200") + log_line(EPOCH + MINUTE, "200")
        assert consumer.consume_bytes(data) == {"200": 1}
        assert counter.counts == {"200": 1}

    def test_record_at_epoch_counts(self, counter):
        consumer = Consumer(1.0, FakeTailer(), counter)
        assert consumer.consume_bytes(log_line(EPOCH, "204")) == {"204": 1}

    def test_only_old_records_no_push(self, counter, sink):
        consumer = Consumer(1.0, FakeTailer(), counter)
        consumer.consume_bytes(log_line(EPOCH - MINUTE, "500") * 3)
        assert counter.counts == {}
        assert sink.writes == []

    def test_counts_by_status(self, counter):
        consumer = Consumer(1.0, FakeTailer(), counter)
        data = b"".join(log_line(EPOCH + MINUTE, s) for s in ("200", "200", "200", "500"))
        assert consumer.consume_bytes(data) == {"200": 3, "500": 1}

    @pytest.mark.parametrize("bad_line", [
        b'{"time": "x", "status": "200", "n": ' + b"1" * 5000 + b"}\n",
        b"[" * 100000 + b"\n",
    ])
    def test_pathological_json_does_not_stop_tick(self, counter, bad_line):
        consumer = Consumer(1.0, FakeTailer(), counter)
        data = bad_line + log_line(EPOCH + MINUTE, "200")
        assert consumer.consume_bytes(data) == {"200": 1}
        assert counter.counts == {"200": 1}

    def test_malformed_lines_skipped(self, counter):
        consumer = Consumer(1.0, FakeTailer(), counter)
        data = (
            b"not json\n"
            + log_line(EPOCH + MINUTE, "200")
            + b'{"time": "bad", "status": "200"}\n'
            + b"\n"
            + log_line(EPOCH + MINUTE, "404")
        )
        assert consumer.consume_bytes(data) == {"200": 1, "404": 1}

    def test_logs_captured_counters(self, counter, caplog):
        consumer = Consumer(1.0, FakeTailer(), counter)
        with caplog.at_level("INFO", logger="log_consumer.consumer"):
            consumer.consume_bytes(log_line(EPOCH + MINUTE, "200"))
        assert "Captured status code counters: {'200': 1}" in caplog.text


class TestTick:
    def test_two_ticks_same_delta(self, counter, sink):
        chunk = b"".join(log_line(EPOCH + MINUTE, s) for s in ("200", "200", "200", "500"))
        consumer = Consumer(1.0, FakeTailer([chunk, chunk]), counter)
        consumer.tick()
        consumer.tick()
        assert counter.counts == {"200": 6, "500": 2}
        assert len(sink.writes) == 2
        assert consumer.ticks == 2

    def test_empty_read_no_push(self, counter, sink):
        consumer = Consumer(1.0, FakeTailer([log_line(EPOCH + MINUTE, "200")]), counter)
        consumer.tick()
        consumer.tick()
        assert counter.counts == {"200": 1}
        assert len(sink.writes) == 1

    def test_tailer_error(self, counter, sink):
        tailer = FakeTailer()
        tailer.fail_with("permission denied")
        consumer = Consumer(1.0, tailer, counter)
        with pytest.raises(ConsumerError, match="Could not retrieve log content"):
            consumer.tick()
        assert sink.writes == []

    def test_sink_error(self, counter, sink):
        sink.fail = True
        consumer = Consumer(1.0, FakeTailer([log_line(EPOCH + MINUTE, "200")]), counter)
        with pytest.raises(ConsumerError, match="Could not export log content"):
            consumer.tick()


class TestRun:
    def test_stop_before_run(self, counter):
        tailer = FakeTailer()
        consumer = Consumer(10.0, tailer, counter)
        consumer.stop()
        consumer.run()
        assert tailer.calls == 0

    def test_stop_between_ticks(self, counter):
        tailer = FakeTailer()
        consumer = Consumer(0.05, tailer, counter)

        t = threading.Thread(target=consumer.run, daemon=True)
        t.start()
        time.sleep(0.3)

        consumer.stop()
        t.join(timeout=1)
        assert not t.is_alive()
        calls = tailer.calls
        assert calls >= 1
        time.sleep(0.15)
        assert tailer.calls == calls

    def test_stop_is_prompt(self, counter):
        consumer = Consumer(30.0, FakeTailer(), counter)
        t = threading.Thread(target=consumer.run, daemon=True)
        t.start()
        time.sleep(0.05)
        started = time.monotonic()
        consumer.stop()
        t.join(timeout=2)
        assert not t.is_alive()
        assert time.monotonic() - started < 1.0

    def test_run_surfaces_first_error(self, counter, sink):
        tailer = FakeTailer([log_line(EPOCH + MINUTE, "200")])
        consumer = Consumer(0.01, tailer, counter)

        original_next = tailer.next

        def next_then_fail():
            data = original_next()
            tailer.fail_with("rotated away")
            return data

        tailer.next = next_then_fail
        with pytest.raises(ConsumerError):
            consumer.run()
        # The first tick's push stays valid.
        assert sink.last_values() == {"200": 1}
        assert consumer.ticks == 1

    def test_shared_stop_event(self, counter):
        stop = threading.Event()
        stop.set()
        tailer = FakeTailer()
        Consumer(10.0, tailer, counter, stop_event=stop).run()
        assert tailer.calls == 0
