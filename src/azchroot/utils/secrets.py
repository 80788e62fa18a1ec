"""
Process-wide secret redaction for log output.

The configuration resolver registers credential material here; every handler
installed by `setup_logger` carries the filter, so registered values are
replaced before a record is formatted. Entries are only ever added.
"""

import logging
import threading
from typing import Iterable, Set

REDACTED = "<sensitive>"


class SecretFilter(logging.Filter):

    def __init__(self):
        super().__init__()
        self._secrets: Set[str] = set()
        self._lock = threading.Lock()

    def set(self, *secrets: str):
        """Register secrets; empty values are ignored, duplicates are harmless."""
        with self._lock:
            for secret in secrets:
                if secret and secret.strip():
                    self._secrets.add(secret)

    @property
    def secrets(self) -> Iterable[str]:
        return frozenset(self._secrets)

    def redact(self, text: str) -> str:
        # longest first so a secret containing another one is fully masked
        for secret in sorted(self._secrets, key=len, reverse=True):
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None

        # tracebacks are formatted from exc_info, so bake the redacted text into exc_text
        if record.exc_info and not record.exc_text:
            record.exc_text = _FORMATTER.formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = self.redact(record.exc_text)
            record.exc_info = None
        if record.stack_info:
            record.stack_info = self.redact(record.stack_info)
        return True


_FORMATTER = logging.Formatter()


LOG_SECRET_FILTER = SecretFilter()
