"""streampump - Non-blocking byte pumps for sources that ignore interruption."""

from .core.errors import PumpError, PumpStateError, SinkError, SourceClosedError
from .core.pumper import BUFFER_SIZE, POLL_INTERVAL, InputStreamPumper, NonBlockingInputStreamPumper
from .core.source import EOF, BufferedSource, FileDescriptorSource, Source
from .process import ProcessPump

__version__ = "0.1.0"
