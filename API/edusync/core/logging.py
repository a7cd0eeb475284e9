import logging
import re
import sys
from typing import IO, Any, MutableMapping
# Log domains, one per sync component.
DOMAIN_STORAGE = "storage"
DOMAIN_CONNECTIVITY = "connectivity"
DOMAIN_SYNC = "sync"
DOMAIN_GATEWAY = "gateway"
DOMAIN_TRANSLATION = "translation"
DOMAIN_PROGRESS = "progress"

AGENT_DOMAIN = "agent"
HANDLER_NAME = "edusync"
LOG_FORMAT = "%(asctime)s | %(levelname)s | [%(domain)s] | %(name)s | %(message)s"
POLLED_PATHS = ("/health", "/sync/status", "/events/history")
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")

_SECRET_PATTERNS = [
    re.compile(r"(?i)(x-api-key\s*[=:]\s*)([^\s,;]+)"),
    re.compile(r"(?i)(api[_-]?key\s*[=:]\s*)([^\s,;]+)"),
    re.compile(r"(?i)(authorization\s*[=:]\s*bearer\s+)([^\s,;]+)"),
    re.compile(r"(?i)(bearer\s+)([A-Za-z0-9\-._~+/]+=*)"),
    re.compile(r"(?i)(token\s*[=:]\s*)([^\s,;]+)"),
    re.compile(r"(?i)(password\s*[=:]\s*)([^\s,;]+)"),
]


def redact_secrets(message: str) -> str:
    text = str(message or "")
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(r"\1[REDACTED]", text)
    return text


class DomainLoggerAdapter(logging.LoggerAdapter):
    """Tags records with a sync domain while keeping any `extra` the call site passes."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_domain_logger(name: str, domain: str) -> DomainLoggerAdapter:
    return DomainLoggerAdapter(logging.getLogger(name), {"domain": domain})


class AgentFormatter(logging.Formatter):
    """Formats with a domain column and strips credentials from the rendered line, tracebacks included."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "domain"):
            record.domain = AGENT_DOMAIN  # type: ignore[attr-defined]
        return redact_secrets(super().format(record))


class SuppressPollingFilter(logging.Filter):
    """Drop successful uvicorn access lines for endpoints the UI shell polls."""

    def __init__(self, paths: tuple[str, ...] = POLLED_PATHS):
        super().__init__()
        self.paths = paths

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        return not (" 200" in msg and any(path in msg for path in self.paths))


def configure_logging(level: str = "INFO", stream: IO[str] | None = None) -> logging.Handler:
    """Install the agent handler on the root logger. Calling it again replaces the handler."""
    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(AgentFormatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    access = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, SuppressPollingFilter) for f in access.filters):
        access.addFilter(SuppressPollingFilter())
    return handler
