"""Test-wide setup shared by the highlow and shared test suites."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import configure_structlog

# HIGHLOW_* / LOG_* overrides for local runs; the file is optional
load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# no handlers are attached here, so caplog captures every event
configure_structlog()


@pytest.fixture(autouse=True)
def _clear_log_context():
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
