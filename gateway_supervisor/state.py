"""
Supervisor state shared between the state machine, the phase runners and
the fallback responder.

One SupervisorState instance is created at startup and handed to every
component by reference. Only the state machine and the phase runners mutate
it; the fallback server only reads it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional


class Mode(str, enum.Enum):
    """Overall supervisor mode, reported as ``status`` by /healthz."""

    STARTING = "starting"
    RUNNING = "running"
    FALLBACK = "fallback"


class Stage(str, enum.Enum):
    """Phase the supervisor is in, or the phase that failed."""

    PREFLIGHT = "preflight"
    MAIN_SERVICE = "mainService"
    # Only ever used as a failure stage, for faults outside both phases
    SUPERVISOR = "supervisor"


# Order in which stages may be entered
_STAGE_ORDER = {Stage.PREFLIGHT: 0, Stage.MAIN_SERVICE: 1}


class StateTransitionError(RuntimeError):
    """Raised when a caller tries to move the state machine backwards."""


@dataclass
class SupervisorState:
    """Mutable supervisor state.

    Invariant: ``failure_stage`` is set if and only if ``mode`` is FALLBACK.
    """

    mode: Mode = Mode.STARTING
    stage: Stage = Stage.PREFLIGHT
    failure_stage: Optional[Stage] = None
    failure_exit_code: Optional[int] = None
    failure_signal: Optional[str] = None

    @property
    def in_fallback(self) -> bool:
        return self.mode is Mode.FALLBACK

    def begin_stage(self, stage: Stage, running: bool = False) -> None:
        """Enter ``stage``. Stages only move forward and never after a failure."""
        if stage not in _STAGE_ORDER:
            raise StateTransitionError(f"{stage.value} is not a runnable stage")
        if self.in_fallback:
            raise StateTransitionError(
                f"cannot enter {stage.value}: supervisor already in fallback"
            )
        if _STAGE_ORDER[stage] < _STAGE_ORDER[self.stage]:
            raise StateTransitionError(
                f"cannot go back from {self.stage.value} to {stage.value}"
            )

        self.stage = stage
        if running:
            self.mode = Mode.RUNNING

    def record_failure(
        self,
        stage: Stage,
        exit_code: Optional[int],
        signal: Optional[str] = None,
    ) -> None:
        """Record a phase failure and switch to fallback mode."""
        self.mode = Mode.FALLBACK
        self.failure_stage = stage
        self.failure_exit_code = exit_code
        self.failure_signal = signal

    def record_unexpected_failure(self) -> None:
        """Force fallback after an unhandled error in the supervisor itself.

        Keeps whatever failure was already recorded; otherwise blames the
        supervisor with exit code 1.
        """
        self.mode = Mode.FALLBACK
        if self.failure_stage is None:
            self.failure_stage = Stage.SUPERVISOR
        if self.failure_exit_code is None and self.failure_signal is None:
            self.failure_exit_code = 1

    def to_health_dict(self) -> Dict[str, Any]:
        return {
            "status": self.mode.value,
            "failureStage": self.failure_stage.value if self.failure_stage else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.to_health_dict(),
            "stage": self.stage.value,
            "failureExitCode": self.failure_exit_code,
            "failureSignal": self.failure_signal,
        }
