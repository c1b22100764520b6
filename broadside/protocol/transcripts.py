"""Chunked voice-agent transcript framing, reassembly and command extraction.

Transcript chunks arrive on the agent channels as
``"<messageId>|<partIndex>|<totalParts>|<base64(payload)>"`` with a 1-based
``partIndex``. Parts are buffered per message id and joined in part-index
order once every part has arrived, so parts that overtake each other on the
wire still reassemble. Incomplete entries expire after a time-to-live.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable

from .board import BOARD_SIZE, ROW_LETTERS

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_TTL_SECONDS = 30.0
DEFAULT_ACK_MARKERS: tuple[str, ...] = ("firing at", "fire at", "attacking", "targeting")

_LAST_ROW = ROW_LETTERS[BOARD_SIZE - 1]
# Two-digit column first so "A10" is not read as "A1".
_COORDINATE = rf"([A-{_LAST_ROW}])[\s-]?({BOARD_SIZE}|[1-{BOARD_SIZE - 1}])(?!\d)"
COORDINATE_PATTERN = re.compile(rf"\b{_COORDINATE}", re.IGNORECASE)
_EXACT_COORDINATE = re.compile(rf"{_COORDINATE}", re.IGNORECASE)


@dataclass(frozen=True)
class TranscriptChunk:
    message_id: str
    part_index: int
    total_parts: int
    data: bytes


def decode_chunk(raw: str | bytes) -> TranscriptChunk | None:
    """Parse one wire chunk; anything malformed is logged and dropped."""
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        message_id, part_raw, total_raw, encoded = text.split("|", 3)
        part_index = int(part_raw)
        total_parts = int(total_raw)
        data = base64.b64decode(encoded, validate=True)
    except (UnicodeDecodeError, ValueError, binascii.Error) as exc:
        logger.warning("Dropping malformed transcript chunk: %s", exc)
        return None
    if not message_id or total_parts < 1 or not 1 <= part_index <= total_parts:
        logger.warning("Dropping transcript chunk with bad framing %s/%s for %r", part_index, total_parts, message_id)
        return None
    return TranscriptChunk(message_id=message_id, part_index=part_index, total_parts=total_parts, data=data)


def encode_chunk(chunk: TranscriptChunk) -> str:
    encoded = base64.b64encode(chunk.data).decode("ascii")
    return f"{chunk.message_id}|{chunk.part_index}|{chunk.total_parts}|{encoded}"


def split_transcript(message_id: str, text: str, max_part_bytes: int = 512) -> list[str]:
    """Split a transcript into wire chunks the way the voice pipeline emits them."""
    if max_part_bytes < 1:
        raise ValueError("max_part_bytes must be positive")
    data = text.encode("utf-8")
    pieces = [data[i : i + max_part_bytes] for i in range(0, len(data), max_part_bytes)] or [b""]
    total = len(pieces)
    return [
        encode_chunk(TranscriptChunk(message_id=message_id, part_index=index, total_parts=total, data=piece))
        for index, piece in enumerate(pieces, start=1)
    ]


@dataclass
class _PartialTranscript:
    total_parts: int
    started_at: float
    parts: dict[int, bytes] = field(default_factory=dict)


class ChunkBuffer:
    """Keyed store of partially received transcripts with per-entry expiry."""

    def __init__(self, ttl_seconds: float = DEFAULT_CHUNK_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _PartialTranscript] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._entries

    def feed(self, chunk: TranscriptChunk) -> str | None:
        """Buffer a chunk and return the full text once its message is complete."""
        now = self._clock()
        self.evict_expired(now)

        entry = self._entries.get(chunk.message_id)
        if entry is not None and entry.total_parts != chunk.total_parts:
            logger.warning(
                "Transcript %r changed part count from %s to %s; restarting",
                chunk.message_id,
                entry.total_parts,
                chunk.total_parts,
            )
            entry = None
        if entry is None:
            entry = _PartialTranscript(total_parts=chunk.total_parts, started_at=now)
            self._entries[chunk.message_id] = entry

        entry.parts[chunk.part_index] = chunk.data
        if len(entry.parts) < entry.total_parts:
            return None

        del self._entries[chunk.message_id]
        data = b"".join(entry.parts[index] for index in range(1, entry.total_parts + 1))
        return data.decode("utf-8", errors="replace")

    def evict_expired(self, now: float | None = None) -> list[str]:
        now = self._clock() if now is None else now
        expired = [
            message_id for message_id, entry in self._entries.items() if now - entry.started_at >= self.ttl_seconds
        ]
        for message_id in expired:
            entry = self._entries.pop(message_id)
            logger.warning(
                "Evicted stalled transcript %r with %s/%s parts", message_id, len(entry.parts), entry.total_parts
            )
        return expired

    def clear(self) -> None:
        self._entries.clear()


def transcript_text(payload: str) -> str:
    """Return the spoken text of a reassembled transcript payload."""
    try:
        decoded = json.loads(payload)
    except ValueError:
        return payload
    if isinstance(decoded, dict) and isinstance(decoded.get("text"), str):
        return decoded["text"]
    return payload


def parse_coordinate(text: str) -> tuple[int, int] | None:
    match = _EXACT_COORDINATE.fullmatch(text.strip())
    if match is None:
        return None
    return _to_cell(match)


def parse_command(text: str, markers: tuple[str, ...] = DEFAULT_ACK_MARKERS) -> tuple[int, int] | None:
    """Find an acknowledgment marker followed by a coordinate; ``None`` means no action."""
    lowered = text.lower()
    positions = [lowered.find(marker.lower()) for marker in markers]
    found = [(pos, marker) for pos, marker in zip(positions, markers) if pos >= 0]
    if not found:
        return None
    pos, marker = min(found)
    match = COORDINATE_PATTERN.search(text, pos + len(marker))
    if match is None:
        return None
    return _to_cell(match)


def _to_cell(match: re.Match[str]) -> tuple[int, int]:
    row = ord(match.group(1).upper()) - ord(ROW_LETTERS[0])
    col = int(match.group(2)) - 1
    return row, col
