#!/usr/bin/env python3
"""Unified entry point for Recurring Reminder Service.

Starts the REST API, the MCP server and the recurring catch-up worker as
subprocesses and stops all of them as soon as one exits.
"""

import logging
import os
import signal
import subprocess
import sys
import time
from typing import Dict, List, Tuple

from config import settings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# (name, script, extra environment)
SERVICES: List[Tuple[str, str, Dict[str, str]]] = [
    ("API server", "api_server.py", {}),
    ("MCP server", "mcp_server.py", {"MCP_TRANSPORT": "sse"}),
    ("Recurring worker", "background_worker.py", {}),
]

processes: List[Tuple[str, subprocess.Popen]] = []
shutdown_requested = False


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    global shutdown_requested
    if shutdown_requested:
        logger.warning("Force shutdown requested")
        sys.exit(1)

    shutdown_requested = True
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_services()


def shutdown_services():
    """Terminate every running service, killing those that do not stop within 5 seconds."""
    logger.info("Stopping all services...")
    for name, process in processes:
        if process.poll() is None:
            logger.info(f"Terminating {name} (PID: {process.pid})")
            process.terminate()

    for name, process in processes:
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            logger.warning(f"Force killing {name} (PID: {process.pid})")
            process.kill()
            process.wait()

    logger.info("All services stopped")
    sys.exit(0)


def start_service(name: str, script: str, extra_env: Dict[str, str]) -> subprocess.Popen:
    """Start one service script from this directory.

    The child inherits this process's stdout/stderr, so its console log
    output is never buffered in an unread pipe.
    """
    env = os.environ.copy()
    env.update(extra_env)
    logger.info(f"Starting {name}...")
    return subprocess.Popen(
        [sys.executable, script],
        cwd=os.path.dirname(os.path.abspath(__file__)),
        env=env
    )


def main():
    """Main entry point - start all services and watch them."""
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info("=" * 60)
    logger.info("Recurring Reminder Service - Unified Startup")
    logger.info("=" * 60)

    try:
        for name, script, extra_env in SERVICES:
            processes.append((name, start_service(name, script, extra_env)))
            time.sleep(2)

        logger.info("All services started successfully!")
        logger.info(f"  - API Server: http://{settings.API_HOST}:{settings.API_PORT}/docs")
        logger.info(f"  - MCP Server: http://{settings.MCP_HOST}:{settings.MCP_PORT}/sse")
        logger.info(f"  - Recurring worker: every {settings.WORKER_CHECK_INTERVAL}s")

        while not shutdown_requested:
            for name, process in processes:
                if process.poll() is not None:
                    logger.error(f"{name} (PID: {process.pid}) has stopped unexpectedly!")
                    shutdown_services()
            time.sleep(5)

    except Exception as e:
        logger.error(f"Error starting services: {e}")
        shutdown_services()


if __name__ == "__main__":
    main()
