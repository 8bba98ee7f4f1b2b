"""Entry point: python -m scribe [chat|serve]

- No args / "chat": Interactive journal REPL (development/testing)
- "serve":          Daemon mode (HTTP callables + refresh worker)
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from scribe.config import load_config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _run_cli() -> None:
    """Interactive CLI REPL mode."""
    config = load_config()
    _setup_logging(config.log_level)

    from scribe.connectors.cli import CLIConnector
    from scribe.daemon import ScribeDaemon

    daemon = ScribeDaemon(config)
    scribe = daemon.build_scribe()
    cli = CLIConnector(scribe, uid=os.getenv("SCRIBE_USER", "local"))

    try:
        asyncio.run(daemon.run_chat(scribe, cli))
    except KeyboardInterrupt:
        pass


def _run_serve() -> None:
    """Daemon mode."""
    config = load_config()
    _setup_logging(config.log_level)

    from scribe.daemon import ScribeDaemon

    daemon = ScribeDaemon(config)
    asyncio.run(daemon.run())


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "chat"

    if cmd in ("chat", "repl"):
        _run_cli()
    elif cmd == "serve":
        _run_serve()
    else:
        print("Usage: python -m scribe [chat|serve]")
        print("  chat   — Interactive journal REPL (default)")
        print("  serve  — Daemon mode with HTTP callables")
        sys.exit(1)


if __name__ == "__main__":
    main()
