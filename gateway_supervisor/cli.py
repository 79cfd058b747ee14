"""
Gateway Supervisor entry point.

Usage:
    # Run with defaults (bind "lan", port 18789)
    python -m gateway_supervisor

    # Explicit bind/port (take precedence over GATEWAY_BIND / GATEWAY_PORT)
    python -m gateway_supervisor --bind lan --port 18789

    # Custom phase commands
    GATEWAY_PREFLIGHT_COMMAND="./bin/check-config" \\
    GATEWAY_SERVICE_COMMAND="./bin/gateway --port {port}" \\
    python -m gateway_supervisor

    # With debug logging
    GATEWAY_SUPERVISOR_LOG_LEVEL=DEBUG python -m gateway_supervisor
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional, Sequence

from .config import ConfigError, SupervisorConfig, resolve_config
from .logging_config import setup_logging
from .supervisor import GatewaySupervisor


async def main(config: SupervisorConfig) -> int:
    """Run the supervisor and keep serving the safe-mode page until exit."""
    supervisor = GatewaySupervisor(config)
    await supervisor.run()
    try:
        await supervisor.serve_forever()
    finally:
        await supervisor.shutdown()
    return 1


def cli(argv: Optional[Sequence[str]] = None) -> int:
    try:
        config = resolve_config(argv)
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO)
        logging.getLogger("gateway_supervisor").error(f"Invalid configuration: {e}")
        return 2

    logger = setup_logging(config)
    logger.info(
        f"Gateway supervisor starting (bind={config.bind}, port={config.port}, "
        f"listen={config.listen_host})"
    )
    try:
        return asyncio.run(main(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 130


if __name__ == "__main__":
    sys.exit(cli())
