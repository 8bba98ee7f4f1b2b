"""Context assembly and prompt building for the generative backend.

Two modes share one contract: fetch the N most recent entries by timestamp
descending, then present them oldest-first, together with the user's
long-term memory summary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from scribe.memory.paths import receipts_collection, summary_path

if TYPE_CHECKING:
    from scribe.config import CurationConfig
    from scribe.store.base import DocumentSnapshot, DocumentStore, Transaction

logger = logging.getLogger(__name__)

NO_MEMORY_PLACEHOLDER = "No long-term memory yet."
NO_ENTRIES_PLACEHOLDER = "No recent entries."
NO_SUMMARY_PLACEHOLDER = "No summary yet."

ENHANCEMENT_PROMPT_TEMPLATE = """\
You are a personal scribe with a witty, slightly playful, and very human tone.
Your goal is to rephrase the user's raw note into a beautifully written,
insightful journal entry. The final output must be a single paragraph under
{max_chars} characters. Use the following long-term memory and recent entries
for deep context, but don't feel obligated to reference them directly. Focus
on making the new entry shine.

LONG-TERM MEMORY:
{memory}

RECENT ENTRIES:
{entries}

NEW NOTE: "{note}"
"""

CURATION_PROMPT_TEMPLATE = """\
You are an intelligent memory archivist. Your task is to update the user's
long-term memory summary. Here is the current summary and a list of their
recent journal entries. Synthesize the new entries into the existing summary,
creating a new, cohesive narrative. Intelligently integrate new facts, remove
outdated or trivial details, and identify evolving themes. The final summary
should be a concise, high-level overview of the user's current life, under
{max_chars} characters. Output only the updated summary.

CURRENT SUMMARY:
{summary}

NEW ENTRIES:
{entries}
"""


@dataclass
class AssembledContext:
    """What was presented to the backend, and the rendered prompt."""

    memory: str
    entries: list[str] = field(default_factory=list)
    prompt: str = ""


def format_entries(messages: list[str]) -> str:
    return "\n".join(f"- {m}" for m in messages)


def build_enhancement_prompt(memory: str, entries: list[str], note: str, max_chars: int = 200) -> str:
    """Build the prompt that rewrites a raw note into a journal entry."""
    return ENHANCEMENT_PROMPT_TEMPLATE.format(
        max_chars=max_chars,
        memory=memory or NO_MEMORY_PLACEHOLDER,
        entries=format_entries(entries) or NO_ENTRIES_PLACEHOLDER,
        note=note,
    )


def build_curation_prompt(summary: str, entries: list[str], max_chars: int = 2000) -> str:
    """Build the prompt that folds recent entries into the long-term summary."""
    return CURATION_PROMPT_TEMPLATE.format(
        max_chars=max_chars,
        summary=summary or NO_SUMMARY_PLACEHOLDER,
        entries=format_entries(entries),
    )


class ContextAssembler:
    """Read-only: never writes to the store."""

    def __init__(self, store: DocumentStore, config: CurationConfig) -> None:
        self.store = store
        self.config = config

    async def read_summary(self, uid: str, reader: Any = None, default: str = "") -> str:
        snap = await (reader or self.store).get(summary_path(uid))
        return snap.get("summary") or default

    async def recent_entries(
        self,
        uid: str,
        limit: int,
        reader: Any = None,
        until: datetime | None = None,
    ) -> list[DocumentSnapshot]:
        """The `limit` most recent entries, oldest first.

        `until` drops entries created after that server time.
        """
        reader = reader or self.store
        if until is None:
            newest_first = await reader.query(
                receipts_collection(uid), order_by="timestamp", descending=True, limit=limit
            )
        else:
            rows = await reader.query(receipts_collection(uid), order_by="timestamp", descending=True)
            newest_first = [r for r in rows if r.get("timestamp") <= until][:limit]
        return list(reversed(newest_first))

    async def for_enhancement(self, uid: str, note: str) -> AssembledContext:
        memory = await self.read_summary(uid, default=NO_MEMORY_PLACEHOLDER)
        entries = [
            e.get("message", "") for e in await self.recent_entries(uid, self.config.enhance_window)
        ]
        prompt = build_enhancement_prompt(memory, entries, note, self.config.note_max_chars)
        logger.debug("Enhancement context for %s: %d entries, %d chars", uid, len(entries), len(prompt))
        return AssembledContext(memory=memory, entries=entries, prompt=prompt)

    async def for_curation(
        self,
        uid: str,
        tx: Transaction | None = None,
        until: datetime | None = None,
    ) -> AssembledContext:
        """Curation context. Pass `tx` to make the reads part of a transaction."""
        summary = await self.read_summary(uid, reader=tx)
        entries = [
            e.get("message", "")
            for e in await self.recent_entries(
                uid, self.config.curation_window, reader=tx, until=until
            )
        ]
        prompt = build_curation_prompt(summary, entries, self.config.summary_max_chars)
        logger.debug("Curation context for %s: %d entries, %d chars", uid, len(entries), len(prompt))
        return AssembledContext(memory=summary, entries=entries, prompt=prompt)
