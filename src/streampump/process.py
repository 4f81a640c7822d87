import subprocess
import time
from typing import List, Optional, Sequence

from streampump.config.settings import Settings, load_settings
from streampump.core.errors import PumpStateError
from streampump.core.lifecycle import Callback, OnClose
from streampump.core.pumper import POLL_INTERVAL, NonBlockingInputStreamPumper
from streampump.core.source import FileDescriptorSource
from streampump.utils.logger import get_logger

logger = get_logger("process")


class ProcessPump:
    """Runs a command and pumps its stdout and stderr into callbacks.

    The pumps only read the pipes; closing them is done here once both pumps
    have exited.
    """

    def __init__(
        self,
        args: Sequence[str],
        on_stdout: Callback,
        on_stderr: Optional[Callback] = None,
        on_close: Optional[OnClose] = None,
        settings: Optional[Settings] = None,
        **popen_kwargs,
    ):
        if not args:
            raise ValueError("args must name a command")
        self.args = list(args)
        self.on_stdout = on_stdout
        self.on_stderr = on_stderr
        self.on_close = on_close
        self.settings = settings or load_settings()
        self.popen_kwargs = popen_kwargs
        self.process: Optional[subprocess.Popen] = None
        self.pumps: List[NonBlockingInputStreamPumper] = []

    def start(self) -> "ProcessPump":
        if self.process is not None:
            raise PumpStateError(f"process {self.args[0]!r} already started")
        self.process = subprocess.Popen(
            self.args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE if self.on_stderr else subprocess.DEVNULL,
            **self.popen_kwargs,
        )
        logger.info(f"Started {self.args[0]!r} (pid={self.process.pid})")

        prefix = f"{self.settings.THREAD_NAME_PREFIX}-{self.process.pid}"
        self.pumps.append(NonBlockingInputStreamPumper(
            FileDescriptorSource(self.process.stdout, report_eof=False), self.on_stdout, name=f"{prefix}-stdout"))
        if self.on_stderr:
            self.pumps.append(NonBlockingInputStreamPumper(
                FileDescriptorSource(self.process.stderr, report_eof=False), self.on_stderr, name=f"{prefix}-stderr"))
        for p in self.pumps:
            p.start()
        return self

    def wait(self, timeout: Optional[float] = None) -> int:
        """Wait for the process to exit and for its output to be drained."""
        if self.process is None:
            raise PumpStateError("process was never started")
        code = self.process.wait(timeout)
        self._drain_and_stop()
        return code

    def stop(self) -> Optional[int]:
        """Stop pumping and terminate the process if it is still alive."""
        if self.process is None:
            return None
        for p in self.pumps:
            p.request_stop()
        if self.process.poll() is None:
            logger.info(f"Terminating {self.args[0]!r} (pid={self.process.pid})")
            self.process.terminate()
            try:
                self.process.wait(self.settings.JOIN_TIMEOUT_SEC)
            except subprocess.TimeoutExpired:
                logger.warning(f"{self.args[0]!r} still running {self.settings.JOIN_TIMEOUT_SEC}s after SIGTERM, killing")
                self.process.kill()
                try:
                    self.process.wait(self.settings.JOIN_TIMEOUT_SEC)
                except subprocess.TimeoutExpired:
                    logger.error(f"{self.args[0]!r} (pid={self.process.pid}) did not exit after SIGKILL")
        self._join_and_release()
        return self.process.returncode

    def _drain_and_stop(self) -> None:
        # The sources do not report EOF, so the pumps idle once the pipes are
        # empty instead of treating the child exiting as a failure.
        deadline = time.monotonic() + self.settings.JOIN_TIMEOUT_SEC
        for p in self.pumps:
            while p.is_running and p.source.available() > 0 and time.monotonic() < deadline:
                time.sleep(POLL_INTERVAL)
        for p in self.pumps:
            p.request_stop()
        self._join_and_release()

    def _join_and_release(self) -> None:
        for p in self.pumps:
            if not p.join(self.settings.JOIN_TIMEOUT_SEC):
                logger.warning(f"{p.name} did not exit within {self.settings.JOIN_TIMEOUT_SEC}s")
        for stream in (self.process.stdout, self.process.stderr):
            if stream is not None and not stream.closed:
                stream.close()
        if self.on_close is not None:
            on_close, self.on_close = self.on_close, None
            on_close()

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
