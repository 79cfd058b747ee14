"""
Supervisor State Machine.

    starting -> preflight -> {preflight failed | preflight ok}
    preflight ok -> main service -> {failed | exited cleanly}
    every outcome -> fallback (terminal)

The main service is only started after preflight succeeded. A clean exit of
the main service counts as a failure: the port must always answer, so any
exit of the long-running service ends in the safe-mode page. Fallback is
entered at most once and never left; only an external restart of the whole
process starts over.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional

from .config import SupervisorConfig
from .fallback_server import FallbackServer
from .log_buffer import RollingLogBuffer
from .phase_runner import PhaseRunner
from .state import Stage, SupervisorState

logger = logging.getLogger(__name__)

RunnerFactory = Callable[[Stage, SupervisorState, RollingLogBuffer], PhaseRunner]
ServerFactory = Callable[
    [SupervisorConfig, SupervisorState, Dict[Stage, RollingLogBuffer]], FallbackServer
]


class GatewaySupervisor:
    """Runs preflight then the gateway, and falls back to the safe-mode server."""

    def __init__(
        self,
        config: SupervisorConfig,
        state: Optional[SupervisorState] = None,
        runner_factory: RunnerFactory = PhaseRunner,
        server_factory: ServerFactory = FallbackServer,
    ) -> None:
        self.config = config
        self.state = state if state is not None else SupervisorState()
        self.logs: Dict[Stage, RollingLogBuffer] = {
            Stage.PREFLIGHT: RollingLogBuffer(config.max_log_bytes),
            Stage.MAIN_SERVICE: RollingLogBuffer(config.max_log_bytes),
        }
        self._runner_factory = runner_factory
        self._server_factory = server_factory
        self.fallback_server: Optional[FallbackServer] = None
        self._fallback_entered = False

    async def run(self) -> SupervisorState:
        """Run both phases, then enter fallback. Never raises."""
        try:
            await self._run_phases()
        except Exception:
            logger.exception(f"Unexpected error in supervisor (stage={self.state.stage.value})")
            self.state.record_unexpected_failure()

        await self.enter_fallback()
        return self.state

    async def _run_phases(self) -> None:
        self.state.begin_stage(Stage.PREFLIGHT)
        logger.info("Running preflight ...")
        preflight_ok = await self._run_phase(Stage.PREFLIGHT, self.config.preflight_argv())
        if not preflight_ok:
            logger.warning("Preflight failed, gateway will not be started")
            return
        logger.info("Preflight completed successfully.")

        self.state.begin_stage(Stage.MAIN_SERVICE, running=True)
        logger.info(
            f"Starting gateway (bind={self.config.bind}, port={self.config.port})"
        )
        service_ok = await self._run_phase(Stage.MAIN_SERVICE, self.config.service_argv())
        if service_ok:
            # A long-running service must not exit, not even cleanly
            logger.warning("Gateway exited normally with code 0, entering safe mode")
            self.state.record_failure(Stage.MAIN_SERVICE, 0, None)

    async def _run_phase(self, stage: Stage, argv) -> bool:
        runner = self._runner_factory(stage, self.state, self.logs[stage])
        command, *args = argv
        return await runner.run(command, args)

    async def enter_fallback(self) -> bool:
        """Start the safe-mode server. Only the first call has any effect."""
        if self._fallback_entered:
            return False
        self._fallback_entered = True

        if not self.state.in_fallback:
            self.state.record_unexpected_failure()

        logger.warning(f"Entering safe mode: {self.state.to_dict()}")
        self.fallback_server = self._server_factory(self.config, self.state, self.logs)
        try:
            await self.fallback_server.start()
        except Exception:
            logger.exception("Fallback server failed to start")
        return True

    async def serve_forever(self) -> None:
        """Keep the process alive; the safe-mode server runs until exit."""
        await asyncio.Event().wait()

    async def shutdown(self) -> None:
        if self.fallback_server is not None:
            await self.fallback_server.stop()
