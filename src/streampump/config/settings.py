import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

def _parse_float(env_var: str, default: float) -> float:
    try:
        return float(os.getenv(env_var, str(default)))
    except ValueError:
        return default

def _parse_optional_str(env_var: str) -> Optional[str]:
    val = os.getenv(env_var, "").strip()
    return val or None

@dataclass(frozen=True)
class Settings:
    # Logging
    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("STREAMPUMP_LOG_LEVEL", "INFO").upper())
    LOG_FILE: Optional[str] = field(default_factory=lambda: _parse_optional_str("STREAMPUMP_LOG_FILE"))

    # Threads
    JOIN_TIMEOUT_SEC: float = field(default_factory=lambda: _parse_float("STREAMPUMP_JOIN_TIMEOUT_SEC", 2.0))
    THREAD_NAME_PREFIX: str = field(default_factory=lambda: os.getenv("STREAMPUMP_THREAD_NAME_PREFIX", "pump").strip() or "pump")

    def __post_init__(self):
        if self.JOIN_TIMEOUT_SEC <= 0:
            object.__setattr__(self, "JOIN_TIMEOUT_SEC", 2.0)

def load_settings() -> Settings:
    return Settings()
