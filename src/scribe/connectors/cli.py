"""Local CLI REPL for development and testing.

Each line is a raw note: it is enhanced, printed, and saved as an entry
(which advances the batch trigger like any other creation).
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from scribe.core import CallContext
from scribe.errors import ScribeError

if TYPE_CHECKING:
    from scribe.core import Scribe

logger = logging.getLogger(__name__)


class CLIConnector:
    """Interactive REPL — reads notes from stdin, writes entries to stdout."""

    def __init__(self, scribe: Scribe, uid: str = "local") -> None:
        self._scribe = scribe
        self._caller = CallContext(uid=uid)
        self._running = False

    @property
    def name(self) -> str:
        return "cli"

    async def start(self) -> None:
        self._running = True
        loop = asyncio.get_event_loop()

        print(f"Scribe journal for '{self._caller.uid}' (type 'exit' or Ctrl+C to quit)")
        print("-" * 48)

        while self._running:
            try:
                line = await loop.run_in_executor(None, self._read_input)
            except (EOFError, KeyboardInterrupt):
                print("\nBye!")
                break

            if line is None or line.strip().lower() in ("exit", "quit"):
                print("Bye!")
                break

            text = line.strip()
            if not text:
                continue

            await self.handle_note(text)

        await self._scribe.drain()

    async def handle_note(self, text: str) -> str | None:
        """Enhance one note and save the result. Returns the saved text."""
        try:
            enhanced = (await self._scribe.enhance(self._caller, text))["text"]
            await self._scribe.create_entry(self._caller, enhanced)
        except ScribeError as e:
            print(f"\n[{e.status}] {e.message}", file=sys.stderr)
            return None
        print(f"\nScribe: {enhanced}")
        return enhanced

    def _read_input(self) -> str | None:
        try:
            sys.stdout.write("\nNote: ")
            sys.stdout.flush()
            raw = sys.stdin.buffer.readline()
            if not raw:
                return None
            return raw.decode("utf-8", errors="replace").rstrip("\n")
        except EOFError:
            return None

    async def stop(self) -> None:
        self._running = False
