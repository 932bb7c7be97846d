"""Client-owned timeline of rendered turns.

Entry and block ids are generated locally for UI diffing and are never sent
to the server. The only server-facing identifiers in the timeline are the
`actionId` / `turnId` carried inside undo blocks.
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

from app.coach.blocks import DisplayUnit, group_blocks, is_renderable
from app.coach.errors import SealedEntryError
from app.coach.schemas.blocks import CoachBlock

PENDING_TEXT = "…"


def create_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class TimelineBlock:
    id: str
    block: CoachBlock


def with_ids(blocks: Iterable[CoachBlock]) -> list[TimelineBlock]:
    return [TimelineBlock(id=create_id(), block=block) for block in blocks]


@dataclass
class TimelineEntry:
    """One rendered message. Mutable while its turn runs, sealed afterwards."""

    role: Literal["user", "assistant"]
    text: str
    blocks: list[TimelineBlock] = field(default_factory=list)
    id: str = field(default_factory=create_id)
    sealed: bool = False

    def _ensure_open(self) -> None:
        if self.sealed:
            raise SealedEntryError(self.id)

    def set_text(self, text: str) -> None:
        self._ensure_open()
        self.text = text

    def append_blocks(self, blocks: Iterable[CoachBlock]) -> None:
        """Accumulate blocks after the ones already present."""
        self._ensure_open()
        self.blocks = [*self.blocks, *with_ids(blocks)]

    def replace_blocks(self, blocks: Iterable[CoachBlock]) -> None:
        """Drop accumulated blocks in favour of an authoritative list."""
        self._ensure_open()
        self.blocks = with_ids(blocks)

    def seal(self) -> None:
        self.sealed = True

    @property
    def block_list(self) -> list[CoachBlock]:
        return [item.block for item in self.blocks]

    @property
    def renderable_blocks(self) -> list[CoachBlock]:
        return [block for block in self.block_list if is_renderable(block)]

    def display_units(self) -> list[DisplayUnit]:
        return group_blocks(self.block_list)


@dataclass
class Timeline:
    """Append-only log of timeline entries."""

    entries: list[TimelineEntry] = field(default_factory=list)

    def _append(self, entry: TimelineEntry) -> TimelineEntry:
        self.entries.append(entry)
        return entry

    def append_user(self, text: str) -> TimelineEntry:
        entry = TimelineEntry(role="user", text=text)
        entry.seal()
        return self._append(entry)

    def start_assistant(self, text: str = PENDING_TEXT) -> TimelineEntry:
        """Open an in-progress assistant entry for a running turn."""
        return self._append(TimelineEntry(role="assistant", text=text))

    def append_assistant(self, text: str, blocks: Iterable[CoachBlock] = ()) -> TimelineEntry:
        """Append a complete, sealed assistant entry."""
        entry = TimelineEntry(role="assistant", text=text, blocks=with_ids(blocks))
        entry.seal()
        return self._append(entry)

    def get(self, entry_id: str) -> TimelineEntry | None:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def last(self) -> TimelineEntry | None:
        return self.entries[-1] if self.entries else None
