"""Tests for core/pumper.py"""
import logging
import os
import threading
import time

import pytest

from streampump.core.errors import PumpStateError
from streampump.core.pumper import BUFFER_SIZE, POLL_INTERVAL, NonBlockingInputStreamPumper
from streampump.core.source import BufferedSource, FileDescriptorSource


def _wait_for(pred, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(0.005)
    return pred()


def _errors(caplog):
    return [r for r in caplog.records if r.levelno >= logging.ERROR]


@pytest.fixture(autouse=True)
def debug_logs(caplog):
    caplog.set_level(logging.DEBUG, logger="streampump")


def test_chunks_then_eof_reports_one_error(caplog):
    src = BufferedSource()
    src.feed(b"A" * 10)
    src.feed(b"B" * 20)
    src.close()
    received = []
    pump = NonBlockingInputStreamPumper(src, received.append)
    pump.start()

    assert pump.join(2.0)
    assert b"".join(received) == b"A" * 10 + b"B" * 20
    errors = _errors(caplog)
    assert len(errors) == 1
    assert errors[0].getMessage() == "Error while pumping stream."


def test_stop_before_data_is_quiet(caplog):
    src = BufferedSource()
    received = []
    pump = NonBlockingInputStreamPumper(src, received.append)
    pump.start()
    pump.request_stop()

    assert pump.join(1.0)
    assert received == []
    assert _errors(caplog) == []


def test_stop_while_idle_exits_within_poll_interval(caplog):
    src = BufferedSource()
    pump = NonBlockingInputStreamPumper(src, lambda chunk: None)
    pump.start()
    time.sleep(3 * POLL_INTERVAL)

    started = time.monotonic()
    pump.request_stop()
    assert pump.join(1.0)
    # The idle wait is on an event, so it wakes well before a full interval
    assert time.monotonic() - started < POLL_INTERVAL * 4
    assert not pump.is_running
    assert _errors(caplog) == []


def test_stop_racing_new_data_is_never_an_error(caplog):
    src = BufferedSource()
    received = []
    pump = NonBlockingInputStreamPumper(src, received.append)
    pump.start()

    src.feed(b"C")
    assert _wait_for(lambda: received)
    feeder = threading.Thread(target=src.feed, args=(b"D",))
    feeder.start()
    pump.request_stop()
    feeder.join()

    assert pump.join(1.0)
    assert received[0] == b"C"
    assert b"".join(received) in (b"C", b"CD")
    assert _errors(caplog) == []


def test_chunks_do_not_share_the_read_buffer():
    src = BufferedSource()
    payload = bytes(range(256)) * 10
    src.feed(payload)
    received = []
    pump = NonBlockingInputStreamPumper(src, received.append)
    pump.start()
    assert _wait_for(lambda: sum(map(len, received)) == len(payload))
    pump.request_stop()
    pump.join(1.0)

    assert len(received) > 1
    assert all(isinstance(c, bytes) and 0 < len(c) <= BUFFER_SIZE for c in received)
    # Earlier chunks still hold their own bytes after the buffer was reused
    assert received[0] == payload[:BUFFER_SIZE]
    assert b"".join(received) == payload


def test_pipe_stream_is_delivered_in_order(caplog):
    r, w = os.pipe()
    payload = os.urandom(20000)
    received = []
    pump = NonBlockingInputStreamPumper(FileDescriptorSource(r), received.append)

    def writer():
        view = memoryview(payload)
        while view:
            n = os.write(w, view[:3000])
            view = view[n:]
            time.sleep(0.001)
        os.close(w)

    pump.start()
    t = threading.Thread(target=writer)
    t.start()
    t.join()
    try:
        assert pump.join(2.0)
    finally:
        os.close(r)

    assert b"".join(received) == payload
    # Writer hung up while the pump was still running
    assert len(_errors(caplog)) == 1


def test_on_close_fires_once_on_eof():
    src = BufferedSource()
    src.close()
    closed = []
    pump = NonBlockingInputStreamPumper(src, lambda c: None, on_close=lambda: closed.append(1))
    pump.start()
    assert pump.join(1.0)
    pump.request_stop()
    assert closed == [1]


def test_on_close_fires_once_on_stop():
    closed = []
    pump = NonBlockingInputStreamPumper(BufferedSource(), lambda c: None, on_close=lambda: closed.append(1))
    pump.start()
    pump.request_stop()
    pump.request_stop()
    assert pump.join(1.0)
    assert closed == [1]


def test_on_close_fires_when_never_started():
    closed = []
    pump = NonBlockingInputStreamPumper(BufferedSource(), lambda c: None, on_close=lambda: closed.append(1))
    pump.close()
    assert closed == [1]
    assert pump.join(0.1)


def test_failing_on_close_is_logged_not_raised(caplog):
    def boom():
        raise RuntimeError("hook broke")

    pump = NonBlockingInputStreamPumper(BufferedSource(), lambda c: None, on_close=boom)
    pump.start()
    pump.request_stop()
    assert pump.join(1.0)
    assert any("hook broke" in r.getMessage() for r in caplog.records if r.levelno == logging.WARNING)


def test_pump_cannot_restart():
    pump = NonBlockingInputStreamPumper(BufferedSource(), lambda c: None)
    pump.start()
    with pytest.raises(PumpStateError):
        pump.start()
    pump.request_stop()
    assert pump.join(1.0)
    with pytest.raises(PumpStateError):
        pump.start()


def test_start_after_stop_raises():
    pump = NonBlockingInputStreamPumper(BufferedSource(), lambda c: None)
    pump.request_stop()
    with pytest.raises(PumpStateError):
        pump.start()


def test_interrupt_without_stop_exits_quietly(caplog):
    pump = NonBlockingInputStreamPumper(BufferedSource(), lambda c: None)
    pump.start()
    assert _wait_for(lambda: pump.thread is not None)
    pump.interrupt()

    assert pump.join(1.0)
    assert pump.is_running
    assert _errors(caplog) == []
    assert pump.thread.name == pump.name


def test_callback_failure_ends_pump(caplog):
    src = BufferedSource()
    src.feed(b"x")
    closed = []

    def bad_callback(chunk):
        raise ValueError("sink rejected chunk")

    pump = NonBlockingInputStreamPumper(src, bad_callback, on_close=lambda: closed.append(1))
    pump.start()
    assert pump.join(1.0)
    assert closed == [1]
    assert len(_errors(caplog)) == 1


def test_context_manager_stops_and_joins():
    src = BufferedSource()
    received = []
    with NonBlockingInputStreamPumper(src, received.append) as pump:
        src.feed(b"hello")
        assert _wait_for(lambda: received)
    assert not pump.is_running
    assert not pump.thread.is_alive()
    assert received == [b"hello"]


class _InterruptingSource:
    """Reports data, then interrupts the pump and fails the read."""

    def __init__(self):
        self.pump = None

    def available(self):
        return 1

    def read_into(self, buffer):
        self.pump.interrupt()
        raise OSError("read aborted")


def test_io_error_after_interrupt_is_debug_only(caplog):
    src = _InterruptingSource()
    pump = NonBlockingInputStreamPumper(src, lambda c: None)
    src.pump = pump
    pump.start()

    assert pump.join(1.0)
    assert pump.is_running
    assert _errors(caplog) == []
    debug = [r for r in caplog.records
             if r.levelno == logging.DEBUG and r.getMessage() == "Interrupted while pumping stream."]
    assert len(debug) == 1


def test_callback_os_error_is_not_a_source_failure(caplog):
    src = BufferedSource()
    src.feed(b"x")

    def closed_stdout(chunk):
        raise BrokenPipeError("stdout closed")

    pump = NonBlockingInputStreamPumper(src, closed_stdout)
    pump.start()
    assert pump.join(1.0)

    errors = _errors(caplog)
    assert len(errors) == 1
    assert errors[0].getMessage().startswith("Unexpected error while pumping stream")
    assert "BrokenPipeError" in errors[0].getMessage()
