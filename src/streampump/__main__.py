import argparse
import signal
import subprocess
import sys
import threading
from pathlib import Path
from typing import List, Optional

from streampump.config.settings import load_settings
from streampump.process import ProcessPump
from streampump.utils.logger import get_logger, setup_logger

logger = get_logger("cli")

# ===== Global Control =====
stop_evt = threading.Event()
process_pump: Optional[ProcessPump] = None

# How often main wakes up to check stop_evt while the child runs
WAIT_SLICE_SEC = 0.1


def _relay(stream):
    def write(chunk: bytes) -> None:
        stream.buffer.write(chunk)
        stream.buffer.flush()
    return write


def graceful_exit(signum, frame):
    # Runs on the main thread, possibly inside Popen.wait(): only signal here,
    # the waiting and joining happen back in main().
    logger.info(f"Signal {signum} received, shutting down")
    stop_evt.set()
    if process_pump and process_pump.process:
        process_pump.process.terminate()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="streampump",
        description="Run a command and relay its output through non-blocking pumps",
    )
    p.add_argument("--log-level", default=None, help="Override STREAMPUMP_LOG_LEVEL")
    p.add_argument("--log-file", default=None, help="Override STREAMPUMP_LOG_FILE")
    p.add_argument("command", nargs=argparse.REMAINDER, help="Command to run, after --")
    args = p.parse_args(argv)
    if args.command and args.command[0] == "--":
        args.command = args.command[1:]
    if not args.command:
        p.error("a command is required")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    global process_pump

    args = parse_args(argv)
    settings = load_settings()
    log_file = args.log_file or settings.LOG_FILE
    setup_logger(args.log_level or settings.LOG_LEVEL, Path(log_file) if log_file else None)

    signal.signal(signal.SIGINT, graceful_exit)
    signal.signal(signal.SIGTERM, graceful_exit)

    process_pump = ProcessPump(
        args.command,
        on_stdout=_relay(sys.stdout),
        on_stderr=_relay(sys.stderr),
        settings=settings,
    )
    try:
        process_pump.start()
    except OSError as e:
        logger.error(f"Cannot start {args.command[0]!r}: {e}")
        return 127

    code: Optional[int] = None
    while not stop_evt.is_set():
        try:
            code = process_pump.wait(timeout=WAIT_SLICE_SEC)
            break
        except subprocess.TimeoutExpired:
            continue
    if code is None:
        code = process_pump.stop()
    logger.debug(f"{args.command[0]!r} exited with {code}")
    return code if code >= 0 else 128 - code


def main_entry() -> None:
    sys.exit(main())


if __name__ == "__main__":
    main_entry()
