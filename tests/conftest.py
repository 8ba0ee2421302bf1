"""Shared pytest fixtures."""

import logging

import pytest


@pytest.fixture(autouse=True)
def _quiet_pipeline_logs(caplog: pytest.LogCaptureFixture) -> None:
    """Capture pipeline logs at DEBUG so log calls are exercised but not printed."""
    caplog.set_level(logging.DEBUG, logger="src")
