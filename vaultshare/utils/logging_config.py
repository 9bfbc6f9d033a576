"""
Logging configuration for vaultshare.

The root logger writes to the console and, outside tests, to a rotating JSON
application log plus an errors-only log. Three dedicated streams sit beside it
and never propagate to the root:

* ``security``: auth failures, device requests and decisions, quota hits
* ``audit``: admin changes, revocations, sweep results
* ``access``: one line per HTTP request

Records on every stream are JSON objects. Credential-like fields are masked
before they are written, so a token passed by mistake never reaches disk.
"""

import json
import logging
import logging.handlers
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from flask import g, has_request_context

MB = 1024 * 1024

SENSITIVE_MARKERS = ('token', 'password', 'secret', 'salt')

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


def _is_sensitive(key: str) -> bool:
    key = key.lower()
    return any(marker in key for marker in SENSITIVE_MARKERS)


def redact(fields: dict) -> dict:
    return {key: ('***' if _is_sensitive(key) and value else value) for key, value in fields.items()}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, tagged with the stream it belongs to."""

    def __init__(self, stream: str = 'app'):
        super().__init__()
        self.stream = stream

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'stream': self.stream,
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if self.stream == 'app':
            entry['location'] = f"{record.module}.{record.funcName}:{record.lineno}"

        extras = {key: value for key, value in vars(record).items()
                  if key not in _RESERVED and not key.startswith('_')}
        entry.update(redact(extras))

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


@dataclass(frozen=True)
class StreamSpec:
    suffix: str
    level: int
    max_bytes: int
    backup_count: int


# Security and audit history is kept longer than routine traffic
STREAMS = {
    'security': StreamSpec('security', logging.INFO, 5 * MB, 10),
    'audit': StreamSpec('audit', logging.INFO, 5 * MB, 10),
    'access': StreamSpec('access', logging.INFO, 10 * MB, 5),
}


class LoggingConfig:
    """Wires handlers for one process; ``setup_logging`` is safe to call repeatedly."""

    def __init__(self, app_name: str = 'vaultshare', log_dir: str = 'logs',
                 environment: str = 'development', log_to_file: bool = True):
        self.app_name = app_name
        self.log_dir = Path(log_dir)
        self.environment = environment
        self.log_to_file = log_to_file
        self.console_level = logging.INFO if environment == 'production' else logging.DEBUG

    def log_file(self, suffix: Optional[str] = None) -> Path:
        name = f'{self.app_name}_{suffix}.log' if suffix else f'{self.app_name}.log'
        return self.log_dir / name

    def setup_logging(self):
        root = logging.getLogger()
        root.handlers.clear()
        root.setLevel(logging.DEBUG)

        console = logging.StreamHandler()
        console.setLevel(self.console_level)
        console.setFormatter(logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s'))
        root.addHandler(console)

        if self.log_to_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            root.addHandler(self._rotating(self.log_file(), JsonFormatter(), logging.DEBUG, 10 * MB, 5))
            root.addHandler(self._rotating(self.log_file('errors'), JsonFormatter(), logging.ERROR, 5 * MB, 3))

        for name, spec in STREAMS.items():
            stream_logger = logging.getLogger(name)
            stream_logger.handlers.clear()
            stream_logger.setLevel(spec.level)
            stream_logger.propagate = False
            if self.log_to_file:
                stream_logger.addHandler(self._rotating(
                    self.log_file(spec.suffix), JsonFormatter(name), spec.level,
                    spec.max_bytes, spec.backup_count
                ))
            else:
                stream_logger.addHandler(logging.NullHandler())

        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

        logging.info(f"Logging initialized for {self.app_name} ({self.environment}, "
                     f"files {'on' if self.log_to_file else 'off'})")

    @staticmethod
    def _rotating(path: Path, formatter: logging.Formatter, level: int,
                  max_bytes: int, backup_count: int) -> logging.handlers.RotatingFileHandler:
        handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
        )
        handler.setLevel(level)
        handler.setFormatter(formatter)
        return handler


def _request_context() -> dict:
    if not has_request_context():
        return {}
    context = {}
    for attr in ('request_id', 'client_ip'):
        value = g.get(attr)
        if value:
            context['ip_address' if attr == 'client_ip' else attr] = value
    return context


def log_security_event(event_type: str, message: str, level: int = logging.WARNING, **kwargs):
    """Write to the security stream; request id and client IP are attached when available."""
    extra = {'event': event_type, **_request_context(), **kwargs}
    logging.getLogger('security').log(level, message, extra=redact(extra))


def log_audit_event(action: str, resource: str, message: str, actor_id: Optional[str] = None, **kwargs):
    extra = {'action': action, 'resource': resource, 'actor_id': actor_id or 'system',
             **_request_context(), **kwargs}
    logging.getLogger('audit').info(message, extra=redact(extra))


def log_access_event(method: str, path: str, status_code: int, duration_ms: float, **kwargs):
    level = logging.WARNING if status_code >= 500 else logging.INFO
    logging.getLogger('access').log(level, f"{method} {path} {status_code} {duration_ms:.1f}ms",
                                    extra={'method': method, 'path': path, 'status': status_code,
                                           'duration_ms': round(duration_ms, 1), **kwargs})
