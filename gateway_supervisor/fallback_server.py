"""
Fallback Responder - safe-mode HTTP server.

Started once, after the supervisor enters fallback mode, on the same
address/port the gateway was configured to use. Serves:

    *    /healthz   JSON {status, failureStage}, any method
    POST /restart   JSON {ok, message}, then exits the process with status 1
    *               HTML diagnostic page

There is no fallback beneath this one: if the listener cannot bind, the
error is logged and the process stays alive for the orchestrator's liveness
probe to deal with.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from typing import Callable, Mapping, Optional

from aiohttp import web

from .config import SupervisorConfig
from .fallback_page import render_fallback_page
from .log_buffer import RollingLogBuffer
from .state import Stage, SupervisorState

logger = logging.getLogger(__name__)

RESTART_EXIT_CODE = 1


# =============================================================================
# Restart
# =============================================================================

def terminate_process(exit_code: int) -> None:
    """Exit immediately, bypassing event loop shutdown."""
    logger.info(f"Exiting with code {exit_code} so the orchestrator restarts the pod")
    logging.shutdown()
    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(exit_code)


class RestartController:
    """Schedules process termination once, after a short grace delay.

    The delay lets the /restart response reach the client before the
    process goes away. Later requests are acknowledged but do not reschedule.
    """

    def __init__(
        self,
        delay: float,
        exit_func: Callable[[int], None] = terminate_process,
    ) -> None:
        self.delay = delay
        self._exit_func = exit_func
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def scheduled(self) -> bool:
        return self._handle is not None

    def schedule(self) -> bool:
        """Schedule the exit. Returns False if it was already scheduled."""
        if self._handle is not None:
            return False
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)
        logger.info(f"Restart requested, exiting with code {RESTART_EXIT_CODE} in {self.delay}s")
        return True

    def _fire(self) -> None:
        self._exit_func(RESTART_EXIT_CODE)


STATE_KEY = web.AppKey("state", SupervisorState)
LOGS_KEY = web.AppKey("logs", dict)
CONFIG_KEY = web.AppKey("config", SupervisorConfig)
RESTART_KEY = web.AppKey("restart", RestartController)


# =============================================================================
# Middleware
# =============================================================================

@web.middleware
async def access_log_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Log each request with its latency at debug level."""
    start_time = time.monotonic()
    response = await handler(request)
    latency_ms = (time.monotonic() - start_time) * 1000
    logger.debug(f"{request.method} {request.path} -> {response.status} ({latency_ms:.1f}ms)")
    return response


# =============================================================================
# Route Handlers
# =============================================================================

async def health_check(request: web.Request) -> web.Response:
    state = request.app[STATE_KEY]
    return web.json_response(state.to_health_dict())


async def request_restart(request: web.Request) -> web.StreamResponse:
    """Acknowledge, flush the response, then schedule the exit."""
    restart: RestartController = request.app[RESTART_KEY]

    response = web.json_response({"ok": True, "message": "Restarting pod..."})
    await response.prepare(request)
    await response.write_eof()

    restart.schedule()
    return response


async def diagnostic_page(request: web.Request) -> web.Response:
    html = render_fallback_page(
        request.app[STATE_KEY],
        request.app[LOGS_KEY],
        request.app[CONFIG_KEY],
    )
    return web.Response(text=html, content_type="text/html", charset="utf-8")


def create_app(
    config: SupervisorConfig,
    state: SupervisorState,
    logs: Mapping[Stage, RollingLogBuffer],
    restart: Optional[RestartController] = None,
) -> web.Application:
    """Create and configure the safe-mode application."""
    app = web.Application(middlewares=[access_log_middleware])

    app.router.add_route("*", "/healthz", health_check)
    app.router.add_post("/restart", request_restart)
    # Everything else, any method, gets the diagnostic page
    app.router.add_route("*", "/{tail:.*}", diagnostic_page)

    app[STATE_KEY] = state
    app[LOGS_KEY] = dict(logs)
    app[CONFIG_KEY] = config
    app[RESTART_KEY] = restart or RestartController(config.restart_delay)

    return app


# =============================================================================
# Server
# =============================================================================

class FallbackServer:
    """Owns the aiohttp runner for the safe-mode app."""

    def __init__(
        self,
        config: SupervisorConfig,
        state: SupervisorState,
        logs: Mapping[Stage, RollingLogBuffer],
        restart: Optional[RestartController] = None,
    ) -> None:
        self.config = config
        self.state = state
        self.app = create_app(config, state, logs, restart)
        self._runner: Optional[web.AppRunner] = None

    @property
    def is_listening(self) -> bool:
        return self._runner is not None

    @property
    def addresses(self) -> list:
        """Bound socket addresses; resolves port 0 to the real port."""
        if self._runner is None:
            return []
        return list(self._runner.addresses)

    async def start(self) -> bool:
        """Start listening. Returns False (after logging) if binding fails."""
        host, port = self.config.listen_host, self.config.port
        logger.info(f"Starting fallback HTTP server on {host}:{port} (safe mode)")

        runner = web.AppRunner(self.app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        try:
            await site.start()
        except OSError as e:
            logger.error(f"Fallback server error: could not listen on {host}:{port}: {e}")
            await runner.cleanup()
            return False

        self._runner = runner
        logger.info(f"Fallback server listening on {host}:{port}")
        return True

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Fallback server stopped")
