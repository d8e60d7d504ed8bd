"""
Logger with redaction of credentials and CSRF tokens
"""

import logging
import re


class Logger(logging.Logger):
    """Package logger. Silent until a handler is attached via ``enable_console``."""

    class SensitiveFormatter(logging.Formatter):
        """Masks secrets before a record is emitted."""

        _PATTERNS = (
            (re.compile(r"(fwcsrf=)[^&\s'\"]+"), r"\1<REDACTED>"),
            (re.compile(r"(https?://[^:/\s]+:)[^@\s]+(@)"), r"\1<REDACTED>\2"),
            (re.compile(r"('Authorization':\s*')[^']+(')"), r"\1<REDACTED>\2"),
            (re.compile(r"(X-FHEM-csrfToken'?:\s*'?)[\w-]+", re.IGNORECASE), r"\1<REDACTED>"),
        )

        def format(self, record: logging.LogRecord) -> str:
            formatted = super().format(record)
            for pattern, replacement in self._PATTERNS:
                formatted = pattern.sub(replacement, formatted)
            return formatted

    def __init__(self, name: str, level: int = logging.NOTSET) -> None:
        super().__init__(name, level)
        self.addHandler(logging.NullHandler())
        self._console: logging.Handler | None = None

    def enable_console(self, level: int = logging.DEBUG) -> None:
        if self._console is None:
            self._console = logging.StreamHandler()
            self._console.setFormatter(
                self.SensitiveFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            self.addHandler(self._console)
        self.setLevel(level)
