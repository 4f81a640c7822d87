import threading
from abc import ABC, abstractmethod
from itertools import count
from typing import Optional

from streampump.core.errors import PumpStateError, SinkError, SourceClosedError
from streampump.core.lifecycle import Callback, OnClose, PumpLifecycle
from streampump.core.source import Source
from streampump.utils.logger import get_logger

logger = get_logger("pumper")

BUFFER_SIZE = 1024
POLL_INTERVAL = 0.05  # seconds

_pump_ids = count(1)


class InputStreamPumper(ABC):
    """A strategy that moves bytes from a source into a callback on its own thread.

    Subclasses implement ``run``; start/stop state lives in a shared
    ``PumpLifecycle``.
    """

    def __init__(self, source: Source, callback: Callback, on_close: Optional[OnClose] = None, name: Optional[str] = None):
        self.source = source
        self.lifecycle = PumpLifecycle(callback, on_close)
        self.name = name or f"pump-{next(_pump_ids)}"
        self._worker: Optional[threading.Thread] = None

    @abstractmethod
    def run(self) -> None:
        """Pump until stopped, interrupted or the source fails."""

    @property
    def is_running(self) -> bool:
        return self.lifecycle.running

    @property
    def thread(self) -> Optional[threading.Thread]:
        return self.lifecycle.thread

    def start(self) -> threading.Thread:
        """Run the pump on a new daemon thread. A pump can only be started once."""
        if not self.lifecycle.mark_started():
            raise PumpStateError(f"{self.name} was already started or stopped")
        t = threading.Thread(target=self._run_and_close, name=self.name, daemon=True)
        self._worker = t
        t.start()
        return t

    def request_stop(self) -> None:
        """Stop reading and wake the pump thread if it is idle."""
        self.lifecycle.stop()
        if not self.lifecycle.started:
            # Never started: no loop will exit to fire the hook.
            self.lifecycle.fire_on_close()

    close = request_stop

    def interrupt(self) -> None:
        """Signal the pump thread without clearing the running flag."""
        self.lifecycle.interrupt()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the pump thread to exit. True if it is no longer alive."""
        t = self._worker
        if t is None:
            return True
        if t is threading.current_thread():
            raise PumpStateError(f"{self.name} cannot join its own thread")
        t.join(timeout)
        return not t.is_alive()

    def _run_and_close(self) -> None:
        try:
            self.run()
        finally:
            self.lifecycle.fire_on_close()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.request_stop()
        self.join()
        return False


class NonBlockingInputStreamPumper(InputStreamPumper):
    """Pumps sources that do not react well to interruption, e.g. ``sys.stdin``.

    Reads only when the source reports bytes available and otherwise sleeps
    ``POLL_INTERVAL`` on the interrupt event, so a stop request is observed
    within one poll interval. Not suitable for sources whose ``available()``
    always reports 0.
    """

    def run(self) -> None:
        lc = self.lifecycle
        lc.bind_current_thread()
        buffer = bytearray(BUFFER_SIZE)
        try:
            while lc.running and not lc.interrupted:
                while self.source.available() > 0 and lc.running and not lc.interrupted:
                    length = self.source.read_into(buffer)
                    if length < 0:
                        raise SourceClosedError()
                    if length == 0:
                        break
                    # Copy so the callback never sees the reused buffer change
                    chunk = bytes(buffer[:length])
                    try:
                        lc.callback(chunk)
                    except Exception as e:
                        # A failing sink is not a source failure
                        raise SinkError(f"callback raised {type(e).__name__}: {e}") from e
                if lc.wait_interrupted(POLL_INTERVAL):
                    lc.consume_interrupt()
                    logger.debug(f"{self.name}: interrupted while idle, stopping")
                    return
        except IOError as e:
            if not lc.running:
                return
            if not lc.interrupted:
                logger.error("Error while pumping stream.", exc_info=e)
            else:
                logger.debug("Interrupted while pumping stream.")
        except Exception as e:
            logger.error(f"Unexpected error while pumping stream: {e}", exc_info=e)
