"""
Pytest configuration and shared fixtures for urclient tests.

Provides command line options, markers, a controllable clock and the
temporary-environment helper used across the test suite.
"""

import logging
import os
import sys

import pytest

# Add the parent directory to Python path so tests can import urclient and tests.utils
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

logger = logging.getLogger(__name__)


# ============================================================================
# PYTEST COMMAND LINE OPTIONS
# ============================================================================

def pytest_addoption(parser):
    """Add custom command line options for the test suite."""
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Enable hardware tests that require a reachable UR controller",
    )
    parser.addoption(
        "--robot-host",
        action="store",
        default=os.getenv("URCLIENT_HOST", "127.0.0.1"),
        help="IP address of the UR controller for hardware tests",
    )


@pytest.fixture
def robot_host(request) -> str:
    return request.config.getoption("--robot-host")


# ============================================================================
# COMMON TEST UTILITIES
# ============================================================================

@pytest.fixture
def temp_env():
    """
    Provide temporary environment variable context manager.

    Useful for tests that need to modify environment variables temporarily.
    """

    class TempEnv:
        def __init__(self):
            self.original = {}

        def set(self, key: str, value: str):
            """Set an environment variable temporarily."""
            if key not in self.original:
                self.original[key] = os.environ.get(key)
            os.environ[key] = value

        def restore(self):
            """Restore all modified environment variables."""
            for key, original_value in self.original.items():
                if original_value is None:
                    os.environ.pop(key, None)
                else:
                    os.environ[key] = original_value
            self.original.clear()

    temp = TempEnv()
    try:
        yield temp
    finally:
        temp.restore()


class FakeClock:
    """Callable clock for components that accept an injected time source."""

    def __init__(self, start: float = 1000.0):
        self.current_time = start

    def __call__(self) -> float:
        return self.current_time

    def advance(self, seconds: float) -> None:
        """Advance the clock by the specified number of seconds."""
        self.current_time += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    """
    Provide a controllable clock for testing timing logic without waiting.
    """
    return FakeClock()


# ============================================================================
# PYTEST CONFIGURATION HOOKS
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests that test individual components in isolation")
    config.addinivalue_line(
        "markers", "integration: Integration tests against in-process mock robot servers"
    )
    config.addinivalue_line("markers", "hardware: Hardware tests that require a real UR controller")


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests by default unless --run-hardware is specified."""
    if not config.getoption("--run-hardware"):
        skip_hardware = pytest.mark.skip(reason="Hardware tests disabled (use --run-hardware to enable)")
        for item in items:
            if item.get_closest_marker("hardware"):
                item.add_marker(skip_hardware)


def pytest_sessionstart(session):
    """Called after the Session object has been created."""
    config = session.config
    logger.info("Starting urclient test session")
    logger.info(f"Hardware tests: {'enabled' if config.getoption('--run-hardware') else 'disabled'}")
