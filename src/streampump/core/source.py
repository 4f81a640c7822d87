"""Byte sources a pump can poll without blocking.

A source answers two questions: how many bytes can be read right now, and
"read what you have into this buffer". ``read_into`` returns ``EOF`` once the
stream is exhausted.
"""
import array
import fcntl
import os
import select
import termios
import threading
from collections import deque
from typing import IO, Deque, Protocol, Union, runtime_checkable

EOF = -1


@runtime_checkable
class Source(Protocol):
    def available(self) -> int:
        """Number of bytes readable without blocking (0 if none)."""
        ...

    def read_into(self, buffer: bytearray) -> int:
        """Read up to ``len(buffer)`` bytes, returning the count or ``EOF``."""
        ...


class FileDescriptorSource:
    """Source over an OS-level file descriptor (pipe, tty, process output).

    ``target`` is an int descriptor or any object with ``fileno()``. The
    descriptor stays owned by the caller and is never closed here.

    With ``report_eof=False`` a hung-up descriptor simply reports nothing
    available, leaving it to the owner to decide when the pump is done.
    """

    def __init__(self, target: Union[int, IO[bytes]], report_eof: bool = True):
        self.fd = target if isinstance(target, int) else target.fileno()
        self.report_eof = report_eof

    def available(self) -> int:
        count = array.array("i", [0])
        try:
            fcntl.ioctl(self.fd, termios.FIONREAD, count, True)
        except OSError:
            count[0] = 0
        if count[0] > 0 or not self.report_eof:
            return count[0]
        # FIONREAD stays at 0 once the writer hung up; a readable descriptor
        # with nothing buffered means EOF is pending.
        poller = select.poll()
        poller.register(self.fd, select.POLLIN | select.POLLHUP)
        return 1 if poller.poll(0) else 0

    def read_into(self, buffer: bytearray) -> int:
        n = os.readv(self.fd, [buffer])
        return n if n > 0 else EOF

    def __repr__(self) -> str:
        return f"FileDescriptorSource(fd={self.fd})"


class BufferedSource:
    """In-process source fed with ``feed()`` and ended with ``close()``.

    Safe to feed from one thread while a pump reads from another.
    """

    def __init__(self):
        self._chunks: Deque[bytes] = deque()
        self._pending = 0
        self._closed = False
        self._lock = threading.Lock()

    def feed(self, data: bytes) -> None:
        if not data:
            return
        with self._lock:
            if self._closed:
                raise ValueError("feed() on a closed BufferedSource")
            self._chunks.append(bytes(data))
            self._pending += len(data)

    def close(self) -> None:
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def available(self) -> int:
        with self._lock:
            if self._pending:
                return self._pending
            return 1 if self._closed else 0

    def read_into(self, buffer: bytearray) -> int:
        with self._lock:
            if not self._chunks:
                return EOF if self._closed else 0
            n = 0
            size = len(buffer)
            while self._chunks and n < size:
                chunk = self._chunks.popleft()
                take = min(len(chunk), size - n)
                buffer[n:n + take] = chunk[:take]
                if take < len(chunk):
                    self._chunks.appendleft(chunk[take:])
                n += take
            self._pending -= n
            return n
