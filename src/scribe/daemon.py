"""Daemon process — always-on mode for production.

Usage: python -m scribe serve

Manages:
- Store and generative backend construction (once per process)
- HTTP callable surface
- Refresh worker (deferred refresh mode, also alongside the chat REPL)
- PID file (prevent duplicate instances)
- Graceful shutdown (SIGTERM/SIGINT)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from typing import TYPE_CHECKING

from scribe.backend import build_backend
from scribe.config import ScribeConfig, load_config
from scribe.core import Scribe
from scribe.store.base import DocumentStore
from scribe.store.memory import MemoryDocumentStore
from scribe.store.sqlite import SqliteDocumentStore

if TYPE_CHECKING:
    from scribe.connectors.cli import CLIConnector

logger = logging.getLogger(__name__)


class ScribeDaemon:
    """Always-on daemon process."""

    def __init__(self, config: ScribeConfig | None = None) -> None:
        self.config = config or load_config()
        self._shutdown_event = asyncio.Event()

    # ── PID file management ──────────────────────────────────

    def _write_pid(self) -> None:
        self.config.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_file.write_text(str(os.getpid()))
        logger.info("PID file written: %s (pid=%d)", self.config.pid_file, os.getpid())

    def _remove_pid(self) -> None:
        if self.config.pid_file.exists():
            self.config.pid_file.unlink()

    def _check_existing(self) -> None:
        if not self.config.pid_file.exists():
            return
        try:
            pid = int(self.config.pid_file.read_text().strip())
            os.kill(pid, 0)  # Check if process exists
            print(f"Scribe daemon already running (pid={pid}). Exiting.", file=sys.stderr)
            sys.exit(1)
        except (ProcessLookupError, ValueError):
            # Stale PID file
            self._remove_pid()

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    # ── Build components ─────────────────────────────────────

    def build_store(self) -> DocumentStore:
        store_config = self.config.store
        if store_config.backend == "memory":
            logger.warning("Using in-memory document store; data is lost on exit")
            return MemoryDocumentStore(max_attempts=store_config.max_attempts)
        if store_config.backend == "sqlite":
            return SqliteDocumentStore(store_config.path, max_attempts=store_config.max_attempts)
        raise ValueError(f"Unknown store backend: {store_config.backend}")

    def build_scribe(self) -> Scribe:
        return Scribe(self.config, self.build_store(), build_backend(self.config.engine))

    # ── Main run loop ────────────────────────────────────────

    async def run(self) -> None:
        from scribe.connectors.http import HTTPConnector

        self._check_existing()
        self._write_pid()
        self._setup_signals()

        scribe = self.build_scribe()
        http = HTTPConnector(scribe, self.config.server)

        logger.info(
            "Scribe daemon starting (engine=%s, store=%s, refresh=%s)",
            self.config.engine.name,
            self.config.store.backend,
            self.config.curation.refresh_mode,
        )

        try:
            await http.start()
            if self.config.curation.refresh_mode == "deferred":
                await scribe.worker.run(self._shutdown_event)
            else:
                await self._shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await http.stop()
            await scribe.close()
            self._remove_pid()
            logger.info("Scribe daemon stopped.")

    async def run_chat(self, scribe: Scribe, cli: CLIConnector) -> None:
        """Run the REPL. In deferred mode the refresh worker polls alongside it."""
        worker = None
        if self.config.curation.refresh_mode == "deferred":
            worker = asyncio.create_task(scribe.worker.run(self._shutdown_event))
        try:
            await cli.start()
        finally:
            self._shutdown_event.set()
            if worker is not None:
                await worker
            await scribe.close()
