import threading
import time

import pytest

from streamsports.errors import NetworkError
from streamsports.relay import SegmentRelay, SegmentStream


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class Reader(threading.Thread):
    def __init__(self, stream, timeout=2.0):
        super().__init__(daemon=True)
        self.stream = stream
        self.timeout = timeout
        self.result = None
        self.error = None

    def run(self):
        try:
            self.result = self.stream.read_next_chunk(self.timeout)
        except Exception as e:
            self.error = e


# ===== SegmentStream =====

def test_buffered_chunks_are_fifo():
    stream = SegmentStream()
    assert stream.deliver(b"one")
    assert stream.deliver(b"two")
    stream.finish()

    assert stream.read_next_chunk() == b"one"
    assert stream.read_next_chunk() == b"two"
    assert stream.read_next_chunk() == b""
    assert stream.read_next_chunk() == b""


def test_parked_read_wakes_on_delivery():
    stream = SegmentStream()
    reader = Reader(stream)
    reader.start()
    assert wait_until(lambda: stream._reading)

    stream.deliver(b"late")
    reader.join(2)

    assert reader.result == b"late"


def test_parked_read_sees_eof():
    stream = SegmentStream()
    reader = Reader(stream)
    reader.start()
    assert wait_until(lambda: stream._reading)

    stream.finish()
    reader.join(2)

    assert reader.result == b""


def test_error_after_buffered_data():
    stream = SegmentStream()
    stream.deliver(b"partial")
    stream.finish(NetworkError("connection reset"))

    assert stream.read_next_chunk() == b"partial"
    with pytest.raises(NetworkError, match="connection reset"):
        stream.read_next_chunk()


def test_only_one_pending_read():
    stream = SegmentStream()
    reader = Reader(stream)
    reader.start()
    assert wait_until(lambda: stream._reading)

    with pytest.raises(RuntimeError):
        stream.read_next_chunk(0.1)

    stream.deliver(b"x")
    reader.join(2)
    assert reader.result == b"x"


def test_read_timeout():
    with pytest.raises(NetworkError):
        SegmentStream().read_next_chunk(0.05)


def test_delivery_after_close_is_refused():
    stream = SegmentStream()
    stream.deliver(b"dropped")
    stream.close()

    assert stream.closed
    assert not stream.deliver(b"more")
    assert stream.read_next_chunk() == b""


def test_empty_chunks_are_ignored():
    stream = SegmentStream()
    assert stream.deliver(b"")
    stream.deliver(b"a")
    stream.finish()
    assert stream.read_next_chunk() == b"a"
    assert stream.read_next_chunk() == b""


# ===== SegmentRelay =====

def test_relay_delivers_all_chunks():
    relay = SegmentRelay(read_timeout=2)

    def produce(stream):
        for chunk in (b"a", b"b", b"c"):
            stream.deliver(chunk)

    handle = relay.register(produce)

    assert list(relay.iter_chunks(handle)) == [b"a", b"b", b"c"]
    assert len(relay) == 0


def test_producer_error_reaches_reader():
    relay = SegmentRelay(read_timeout=2)

    def produce(stream):
        stream.deliver(b"first")
        raise ValueError("upstream went away")

    handle = relay.register(produce)

    assert relay.read_next_chunk(handle) == b"first"
    with pytest.raises(ValueError):
        relay.read_next_chunk(handle)
    assert len(relay) == 0


def test_unknown_handle_reads_eof():
    assert SegmentRelay().read_next_chunk("missing") == b""


def test_cancel_stops_producer():
    relay = SegmentRelay(read_timeout=2)
    stopped = threading.Event()

    def produce(stream):
        while stream.deliver(b"chunk"):
            time.sleep(0.01)
        stopped.set()

    handle = relay.register(produce)
    assert relay.read_next_chunk(handle) == b"chunk"

    relay.cancel(handle)

    assert stopped.wait(2)
    assert relay.read_next_chunk(handle) == b""


def test_abandoned_iterator_cancels_transfer():
    relay = SegmentRelay(read_timeout=2)
    stopped = threading.Event()

    def produce(stream):
        while stream.deliver(b"chunk"):
            time.sleep(0.01)
        stopped.set()

    chunks = relay.iter_chunks(relay.register(produce))
    assert next(chunks) == b"chunk"
    chunks.close()

    assert stopped.wait(2)
    assert len(relay) == 0


def test_cancel_all():
    relay = SegmentRelay(read_timeout=2)
    release = threading.Event()

    def produce(stream):
        release.wait(2)

    for _ in range(3):
        relay.register(produce)
    assert len(relay) == 3

    relay.cancel_all()
    release.set()

    assert len(relay) == 0
