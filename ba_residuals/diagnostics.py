"""
Failure accounting for residual evaluations.

Residual functors report projection failures to a DiagnosticsContext owned
by the optimization run. The count is exact under concurrent evaluation;
the per-failure log output is capped so that a run with many bad
observations does not flood the log.
"""

import threading
import logging

logger = logging.getLogger(__name__)

SUPPRESSION_NOTICE = "Will print no more error messages about failing to compute residuals."


class DiagnosticsContext:
    """
    Thread-safe counter of failed residual evaluations.

    The first max_logged failures are logged at ERROR level, the next one
    logs SUPPRESSION_NOTICE once at INFO level, later failures are counted
    silently. The counter is never reset; use a new context for a new run.
    """

    def __init__(self, max_logged: int = 100):
        self.max_logged = max_logged
        self._num_errors = 0
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> "DiagnosticsContext":
        """Build a context capped at config.max_logged_errors."""
        return cls(max_logged=config.max_logged_errors)

    @property
    def num_errors(self) -> int:
        with self._lock:
            return self._num_errors

    def record_failure(self, message: str) -> int:
        """Count one failure and log it if still under the cap. Returns the new count."""
        with self._lock:
            self._num_errors += 1
            count = self._num_errors
            if count <= self.max_logged:
                logger.error(message)
            elif count == self.max_logged + 1:
                logger.info(SUPPRESSION_NOTICE)
        return count


# Shared by functors that are not given a context of their own
default_diagnostics = DiagnosticsContext()
