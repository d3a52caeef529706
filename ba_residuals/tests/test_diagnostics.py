"""
Tests for failure accounting.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from ba_residuals.config import BundleAdjustConfig
from ba_residuals.diagnostics import SUPPRESSION_NOTICE, DiagnosticsContext

LOGGER = "ba_residuals.diagnostics"


class TestDiagnosticsContext:

    def test_counts_every_failure(self):
        diagnostics = DiagnosticsContext()
        for i in range(5):
            assert diagnostics.record_failure("boom") == i + 1
        assert diagnostics.num_errors == 5

    def test_small_cap(self, caplog):
        caplog.set_level(logging.INFO, logger=LOGGER)
        diagnostics = DiagnosticsContext(max_logged=3)

        for i in range(10):
            diagnostics.record_failure(f"failure {i}")

        messages = [(r.levelno, r.getMessage()) for r in caplog.records]
        assert messages == [
            (logging.ERROR, "failure 0"),
            (logging.ERROR, "failure 1"),
            (logging.ERROR, "failure 2"),
            (logging.INFO, SUPPRESSION_NOTICE),
        ]

    def test_zero_cap_only_notices(self, caplog):
        caplog.set_level(logging.INFO, logger=LOGGER)
        diagnostics = DiagnosticsContext(max_logged=0)
        diagnostics.record_failure("first")
        diagnostics.record_failure("second")

        assert [r.getMessage() for r in caplog.records] == [SUPPRESSION_NOTICE]

    def test_no_warning_about_accelerating_failures(self, caplog):
        """After the notice, no further message is emitted however many failures follow."""
        caplog.set_level(logging.DEBUG, logger=LOGGER)
        diagnostics = DiagnosticsContext(max_logged=1)
        for _ in range(1000):
            diagnostics.record_failure("again")

        assert len(caplog.records) == 2
        assert diagnostics.num_errors == 1000

    def test_from_config(self):
        diagnostics = DiagnosticsContext.from_config(BundleAdjustConfig(max_logged_errors=7))
        assert diagnostics.max_logged == 7
        assert diagnostics.num_errors == 0

    def test_logging_happens_under_the_lock(self):
        """Count and message are emitted atomically, so no message can follow the notice."""
        diagnostics = DiagnosticsContext(max_logged=2)
        held = []

        class LockStateHandler(logging.Handler):
            def emit(self, record):
                held.append(diagnostics._lock.locked())

        handler = LockStateHandler()
        logger = logging.getLogger(LOGGER)
        logger.addHandler(handler)
        old_level = logger.level
        logger.setLevel(logging.INFO)
        try:
            for _ in range(5):
                diagnostics.record_failure("locked")
        finally:
            logger.removeHandler(handler)
            logger.setLevel(old_level)

        assert held == [True, True, True]

    def test_concurrent_failures_counted_exactly(self, caplog):
        caplog.set_level(logging.INFO, logger=LOGGER)
        diagnostics = DiagnosticsContext(max_logged=100)

        def fail_many(n):
            for _ in range(n):
                diagnostics.record_failure("concurrent failure")

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(fail_many, [50] * 8))

        assert diagnostics.num_errors == 400
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        notices = [r for r in caplog.records if r.getMessage() == SUPPRESSION_NOTICE]
        assert len(errors) == 100
        assert len(notices) == 1

        notice_index = caplog.records.index(notices[0])
        assert all(r.levelno != logging.ERROR for r in caplog.records[notice_index + 1:])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
