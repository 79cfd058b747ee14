"""
Gateway Supervisor - preflight-then-serve supervisor with a safe-mode fallback.

Runs a preflight command, then the long-running gateway. If either fails, or
the gateway ever exits, the gateway's port is taken over by a diagnostic
HTTP page with the captured logs and a restart trigger.
"""

from .config import ConfigError, SupervisorConfig, resolve_config
from .fallback_server import FallbackServer, RestartController, create_app
from .log_buffer import RollingLogBuffer
from .phase_runner import PhaseOutcome, PhaseRunner
from .state import Mode, Stage, SupervisorState
from .supervisor import GatewaySupervisor

__version__ = "1.0.0"

__all__ = [
    "ConfigError",
    "FallbackServer",
    "GatewaySupervisor",
    "Mode",
    "PhaseOutcome",
    "PhaseRunner",
    "RestartController",
    "RollingLogBuffer",
    "Stage",
    "SupervisorConfig",
    "SupervisorState",
    "create_app",
    "resolve_config",
]
