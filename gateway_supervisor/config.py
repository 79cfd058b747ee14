"""
Supervisor configuration.

Resolved once at startup and immutable afterwards. Port and bind token follow
the precedence command-line flag > environment variable > default. All other
settings come from the environment with hard-coded defaults.
"""

from __future__ import annotations

import argparse
import ipaddress
import logging
import os
import shlex
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence

from .log_buffer import DEFAULT_MAX_LOG_BYTES

logger = logging.getLogger(__name__)

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_PORT = 18789
DEFAULT_BIND = "lan"

DEFAULT_PREFLIGHT_COMMAND = "node dist/index.js doctor"
DEFAULT_SERVICE_COMMAND = (
    "node dist/index.js gateway --bind {bind} --port {port} --allow-unconfigured"
)

DEFAULT_RESTART_DELAY = 0.1

PORT_ENV = "GATEWAY_PORT"
BIND_ENV = "GATEWAY_BIND"

# Listen addresses for the fallback server. Bind tokens other than the
# loopback ones and IP literals (lan, auto, tailnet, custom, ...) listen on
# every interface.
ANY_HOST = "0.0.0.0"
LOOPBACK_HOST = "127.0.0.1"
LOOPBACK_BIND_TOKENS = frozenset({"loopback", "localhost"})


class ConfigError(ValueError):
    """Configuration that cannot fall back to a default."""


# =============================================================================
# Value parsing
# =============================================================================

def parse_port(raw: Optional[str]) -> Optional[int]:
    """Parse a port number, returning None for anything outside [0, 65536)."""
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    try:
        port = int(raw, 10)
    except ValueError:
        return None
    if 0 <= port < 65536:
        return port
    return None


def resolve_port(cli_port: Optional[str], environ: Mapping[str, str]) -> int:
    port = parse_port(cli_port)
    if port is not None:
        return port
    port = parse_port(environ.get(PORT_ENV))
    if port is not None:
        return port
    return DEFAULT_PORT


def resolve_bind(cli_bind: Optional[str], environ: Mapping[str, str]) -> str:
    return cli_bind or environ.get(BIND_ENV) or DEFAULT_BIND


def bind_to_host(bind: str) -> str:
    """Translate a bind token to the address the fallback server listens on."""
    token = bind.strip()
    if token.lower() in LOOPBACK_BIND_TOKENS:
        return LOOPBACK_HOST
    try:
        ipaddress.ip_address(token)
    except ValueError:
        return ANY_HOST
    return token


def _command_from_env(name: str, default: str) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return shlex.split(default)
    try:
        return shlex.split(raw)
    except ValueError as e:
        logger.warning(f"Ignoring {name}={raw!r} ({e}), using default: {default}")
        return shlex.split(default)


def _float_from_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw, 10)
    except ValueError:
        return default


# =============================================================================
# Configuration object
# =============================================================================

@dataclass(frozen=True)
class SupervisorConfig:
    """Immutable supervisor configuration."""

    port: int = DEFAULT_PORT
    bind: str = DEFAULT_BIND

    # Phase commands
    preflight_command: List[str] = field(default_factory=lambda: _command_from_env(
        "GATEWAY_PREFLIGHT_COMMAND", DEFAULT_PREFLIGHT_COMMAND))
    service_command: List[str] = field(default_factory=lambda: _command_from_env(
        "GATEWAY_SERVICE_COMMAND", DEFAULT_SERVICE_COMMAND))

    # Capture and restart
    max_log_bytes: int = field(default_factory=lambda: _int_from_env(
        "GATEWAY_SUPERVISOR_MAX_LOG_BYTES", DEFAULT_MAX_LOG_BYTES))
    restart_delay: float = field(default_factory=lambda: _float_from_env(
        "GATEWAY_SUPERVISOR_RESTART_DELAY", DEFAULT_RESTART_DELAY))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("GATEWAY_SUPERVISOR_LOG_LEVEL", "INFO"))
    log_format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    # Auxiliary tools, linked from the diagnostic page only
    filebrowser_path: str = field(default_factory=lambda: os.getenv("GATEWAY_FILEBROWSER_PATH", "/workspace"))
    terminal_path: str = field(default_factory=lambda: os.getenv("GATEWAY_TERMINAL_PATH", "/tty"))

    def __post_init__(self) -> None:
        if not 0 <= self.port < 65536:
            raise ConfigError(f"port out of range: {self.port}")
        if not self.preflight_command:
            raise ConfigError("preflight command is empty")
        if not self.service_command:
            raise ConfigError("service command is empty")
        if self.max_log_bytes <= 0:
            raise ConfigError(f"max log bytes must be positive, got {self.max_log_bytes}")
        if self.restart_delay < 0:
            raise ConfigError(f"restart delay must not be negative, got {self.restart_delay}")

    @property
    def listen_host(self) -> str:
        return bind_to_host(self.bind)

    def preflight_argv(self) -> List[str]:
        return list(self.preflight_command)

    def service_argv(self) -> List[str]:
        """Main service command with {bind} and {port} filled in."""
        return [
            arg.replace("{bind}", self.bind).replace("{port}", str(self.port))
            for arg in self.service_command
        ]


# =============================================================================
# Command line
# =============================================================================

def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gateway-supervisor",
        description="Run preflight, then the gateway; serve a safe-mode page on failure.",
        allow_abbrev=False,
    )
    # Values stay strings so invalid input falls through instead of erroring
    parser.add_argument(
        "--port",
        nargs="?",
        default=None,
        help=f"Service port, 0-65535 (env {PORT_ENV}, default {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--bind",
        nargs="?",
        default=None,
        help=f"Bind token passed to the service (env {BIND_ENV}, default {DEFAULT_BIND})",
    )
    return parser


def resolve_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SupervisorConfig:
    """Resolve configuration from the command line and environment.

    Unknown arguments are ignored.
    """
    if environ is None:
        environ = os.environ
    args, _unknown = build_arg_parser().parse_known_args(argv)

    return SupervisorConfig(
        port=resolve_port(args.port, environ),
        bind=resolve_bind(args.bind, environ),
    )
