"""
Pytest configuration and shared fixtures for the gateway supervisor tests.

This file contains:
- Shared fixtures available to all tests
- Test hooks and configuration
- Helpers for building child-process commands
"""

import shlex
import socket
import sys
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from gateway_supervisor.config import SupervisorConfig  # noqa: E402


def python_argv(code: str) -> list:
    """argv that runs ``code`` in a fresh interpreter."""
    return [sys.executable, "-c", code]


def python_command(code: str) -> str:
    """Shell-quoted form of python_argv, for *_COMMAND environment variables."""
    return shlex.join(python_argv(code))


@pytest.fixture(scope="session")
def project_root_path():
    """Return the project root directory path."""
    return project_root


@pytest.fixture(scope="function")
def clean_env(monkeypatch):
    """Remove every supervisor environment variable for the test."""
    for name in (
        "GATEWAY_PORT",
        "GATEWAY_BIND",
        "GATEWAY_PREFLIGHT_COMMAND",
        "GATEWAY_SERVICE_COMMAND",
        "GATEWAY_SUPERVISOR_MAX_LOG_BYTES",
        "GATEWAY_SUPERVISOR_RESTART_DELAY",
        "GATEWAY_SUPERVISOR_LOG_LEVEL",
        "GATEWAY_FILEBROWSER_PATH",
        "GATEWAY_TERMINAL_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture(scope="function")
def free_port():
    """A TCP port on the loopback interface that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture(scope="function")
def make_config(clean_env):
    """Factory for configs running small Python snippets as the two phases."""

    def _make(
        preflight: str = "print('preflight ok')",
        service: str = "print('service up')",
        **overrides,
    ) -> SupervisorConfig:
        values = dict(
            port=0,
            bind="loopback",
            preflight_command=python_argv(preflight),
            service_command=python_argv(service),
            restart_delay=0.01,
        )
        values.update(overrides)
        return SupervisorConfig(**values)

    return _make


def pytest_configure(config):
    """Configure pytest with custom settings."""
    # Register custom markers
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "e2e: mark test as an end-to-end test"
    )
