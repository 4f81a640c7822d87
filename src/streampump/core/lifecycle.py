import threading
from typing import Callable, Optional

from streampump.utils.logger import get_logger

logger = get_logger("lifecycle")

# Receives one freshly allocated chunk per successful read
Callback = Callable[[bytes], None]
OnClose = Callable[[], None]


class PumpLifecycle:
    """Start/stop state shared by every pump strategy.

    The running flag only ever goes from set to cleared. The interrupt event
    stands in for a thread interruption: it is what ``request_stop`` signals
    and what the pump loop waits on while idle.
    """

    def __init__(self, callback: Callback, on_close: Optional[OnClose] = None):
        self.callback = callback
        self.on_close = on_close
        self._running = threading.Event()
        self._running.set()
        self._interrupted = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._started = False
        self._closed_hook_fired = False

    @property
    def running(self) -> bool:
        return self._running.is_set()

    @property
    def interrupted(self) -> bool:
        return self._interrupted.is_set()

    @property
    def thread(self) -> Optional[threading.Thread]:
        with self._lock:
            return self._thread

    @property
    def started(self) -> bool:
        with self._lock:
            return self._started

    def mark_started(self) -> bool:
        """Claim the single start of this lifecycle. False if already started or stopped."""
        with self._lock:
            if self._started or not self._running.is_set():
                return False
            self._started = True
            return True

    def bind_current_thread(self) -> None:
        with self._lock:
            if self._thread is None:
                self._thread = threading.current_thread()

    def stop(self) -> None:
        self._running.clear()
        self.interrupt()

    def interrupt(self) -> None:
        self._interrupted.set()

    def wait_interrupted(self, timeout: float) -> bool:
        return self._interrupted.wait(timeout)

    def consume_interrupt(self) -> None:
        self._interrupted.clear()

    def fire_on_close(self) -> None:
        """Run the termination hook, at most once per lifecycle."""
        with self._lock:
            if self._closed_hook_fired:
                return
            self._closed_hook_fired = True
        if self.on_close is None:
            return
        try:
            self.on_close()
        except Exception as e:
            logger.warning(f"on_close hook failed: {e}")
