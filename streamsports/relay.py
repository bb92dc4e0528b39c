"""Chunked delivery of proxied segment bytes.

The upstream download runs on its own thread and pushes chunks into a
``SegmentStream``; the WSGI response iterator pulls them back out. Whichever
side arrives second wakes the other one.
"""

import logging
import threading
import uuid
from collections import deque
from typing import Callable, Iterator

from streamsports.errors import NetworkError

log = logging.getLogger(__name__)


class SegmentStream:
    """Single-producer/single-consumer chunk buffer."""

    def __init__(self):
        self._cond = threading.Condition()
        self._chunks: deque[bytes] = deque()
        self._finished = False
        self._closed = False
        self._error: BaseException | None = None
        self._reading = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, chunk: bytes) -> bool:
        """Queue a chunk from the network side.

        Returns False once the reader has gone away, telling the producer to
        stop downloading.
        """
        with self._cond:
            if self._closed or self._finished:
                return False
            if chunk:
                self._chunks.append(chunk)
                self._cond.notify()
            return True

    def finish(self, error: BaseException | None = None) -> None:
        """Mark the upstream transfer complete, optionally with an error."""
        with self._cond:
            if self._finished:
                return
            self._finished = True
            self._error = error
            self._cond.notify_all()

    def close(self) -> None:
        """Reader side is gone; drop buffered data and stop the producer."""
        with self._cond:
            self._closed = True
            self._finished = True
            self._chunks.clear()
            self._cond.notify_all()

    def read_next_chunk(self, timeout: float | None = None) -> bytes:
        """Return the next chunk, ``b""`` at EOF, or raise the transfer error."""
        with self._cond:
            if self._reading:
                raise RuntimeError("a read is already pending on this stream")
            self._reading = True
            try:
                ready = self._cond.wait_for(
                    lambda: self._chunks or self._finished, timeout=timeout
                )
                if not ready:
                    raise NetworkError(f"no segment data within {timeout}s")
                if self._chunks:
                    return self._chunks.popleft()
                if self._error is not None:
                    raise self._error
                return b""
            finally:
                self._reading = False


class SegmentRelay:
    """Registry of in-flight segment streams keyed by opaque handles."""

    def __init__(self, read_timeout: float | None = None):
        self.read_timeout = read_timeout
        self._lock = threading.Lock()
        self._streams: dict[str, SegmentStream] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._streams)

    def register(self, upstream_fetch: Callable[[SegmentStream], None]) -> str:
        """Start ``upstream_fetch(stream)`` on a worker thread and return its handle."""
        handle = uuid.uuid4().hex
        stream = SegmentStream()
        with self._lock:
            self._streams[handle] = stream

        def run():
            try:
                upstream_fetch(stream)
            except Exception as e:
                log.warning("Segment transfer %s failed: %s", handle[:8], e)
                stream.finish(e)
            else:
                stream.finish()

        threading.Thread(target=run, name=f"segment-{handle[:8]}", daemon=True).start()
        return handle

    def read_next_chunk(self, handle: str, timeout: float | None = None) -> bytes:
        with self._lock:
            stream = self._streams.get(handle)
        if stream is None:
            return b""

        try:
            chunk = stream.read_next_chunk(timeout if timeout is not None else self.read_timeout)
        except Exception:
            self._discard(handle)
            raise
        if not chunk:
            self._discard(handle)
        return chunk

    def cancel(self, handle: str) -> None:
        stream = self._discard(handle)
        if stream is not None:
            stream.close()

    def cancel_all(self) -> None:
        with self._lock:
            handles = list(self._streams)
        for handle in handles:
            self.cancel(handle)

    def iter_chunks(self, handle: str) -> Iterator[bytes]:
        """Yield chunks until EOF; cancels the transfer if the consumer stops early."""
        try:
            while True:
                chunk = self.read_next_chunk(handle)
                if not chunk:
                    return
                yield chunk
        finally:
            self.cancel(handle)

    def _discard(self, handle: str) -> SegmentStream | None:
        with self._lock:
            return self._streams.pop(handle, None)
