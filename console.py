"""Console reporter passed explicitly through every component."""

import sys
from dataclasses import dataclass, replace
from typing import Optional, TextIO


@dataclass(frozen=True)
class Reporter:
    """Prints `[Component] message` progress lines.

    A reporter is created once per run (usually by the CLI) and handed to each
    component, which derives its own prefix with `child()`. Debug and API call
    lines are only printed when `verbose` is set.
    """
    verbose: bool = False
    prefix: str = "Cards"
    stream: Optional[TextIO] = None
    error_stream: Optional[TextIO] = None

    def child(self, prefix: str) -> 'Reporter':
        """Same settings, different component prefix."""
        return replace(self, prefix=prefix)

    def _emit(self, message: str, error: bool = False) -> None:
        if error:
            out = self.error_stream or sys.stderr
        else:
            out = self.stream or sys.stdout
        print(f"[{self.prefix}] {message}", file=out)

    def info(self, message: str) -> None:
        self._emit(message)

    def success(self, message: str) -> None:
        self._emit(f"✓ {message}")

    def warning(self, message: str) -> None:
        self._emit(f"⚠ {message}")

    def error(self, message: str) -> None:
        self._emit(f"✗ {message}", error=True)

    def debug(self, message: str) -> None:
        if self.verbose:
            self._emit(f"· {message}")

    def step(self, message: str, current: int, total: int) -> None:
        self._emit(f"[{current}/{total}] {message}")

    def api_call(self, method: str, url: str, status_code: Optional[int] = None) -> None:
        if self.verbose:
            status = f" ({status_code})" if status_code else ""
            self._emit(f"→ {method} {url}{status}")

    def exception(self, exc: BaseException, context: Optional[str] = None) -> None:
        """Report an error, including the HTTP status when the error carries one."""
        where = f" in {context}" if context else ""
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
        if status is not None:
            reason = getattr(response, "reason_phrase", "") or ""
            self.error(f"API Error{where}: {status} {reason}".rstrip())
            text = getattr(response, "text", "")
            if isinstance(text, str) and text:
                self.error(f"  {text[:200]}")
        elif str(exc):
            self.error(f"Error{where}: {exc}")
        else:
            self.error(f"Unknown error{where}: {type(exc).__name__}")
