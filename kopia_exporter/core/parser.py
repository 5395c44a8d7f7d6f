"""Streaming decoder for ``kopia snapshot list --json`` output."""

import io
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, TextIO

from .errors import MalformedDocument, MalformedRecord
from .models import ParseResult, Snapshot, SnapshotStats, Source

CHUNK_SIZE = 64 * 1024

# JSON keys of ``stats`` mapped to SnapshotStats fields.
STATS_FIELDS = {
    'totalSize': 'total_size',
    'excludedTotalSize': 'excluded_total_size',
    'fileCount': 'file_count',
    'cachedFiles': 'cached_files',
    'nonCachedFiles': 'non_cached_files',
    'dirCount': 'dir_count',
    'excludedFileCount': 'excluded_file_count',
    'excludedDirCount': 'excluded_dir_count',
    'ignoredErrorCount': 'ignored_error_count',
    'errorCount': 'error_count',
}

SOURCE_FIELDS = {
    'userName': 'user_name',
    'host': 'host',
    'path': 'path',
}

_TIMESTAMP_PATTERN = re.compile(
    r'^(\d{4}-\d{2}-\d{2})[T ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:?\d{2})?$'
)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as written by kopia.

    Kopia writes nanosecond fractions, which are truncated to microseconds.
    Timestamps without an offset are taken as UTC.

    Returns:
        Aware datetime, or None if the value is not a valid timestamp.
    """
    if not isinstance(value, str):
        return None
    match = _TIMESTAMP_PATTERN.match(value.strip())
    if not match:
        return None

    date_part, time_part, fraction, offset = match.groups()
    fraction = (fraction or '').ljust(6, '0')[:6]
    if offset is None or offset == 'Z':
        offset = '+00:00'
    elif ':' not in offset:
        offset = f"{offset[:3]}:{offset[3:]}"

    try:
        return datetime.fromisoformat(f"{date_part}T{time_part}.{fraction}{offset}")
    except ValueError:
        return None


def _require_int(value: Any, key: str) -> int:
    # bool is an int subclass but never a valid counter
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MalformedRecord(f"{key} must be a non-negative integer, got {value!r}")
    return value


def _parse_source(raw: Any) -> Optional[Source]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise MalformedRecord(f"source must be an object, got {type(raw).__name__}")

    values = {}
    for key, attr in SOURCE_FIELDS.items():
        value = raw.get(key)
        if not isinstance(value, str):
            raise MalformedRecord(f"source.{key} must be a string, got {value!r}")
        values[attr] = value
    return Source(**values)


def _parse_stats(raw: Any, root_entry: Any) -> SnapshotStats:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise MalformedRecord(f"stats must be an object, got {type(raw).__name__}")

    values = {}
    for key, attr in STATS_FIELDS.items():
        if key in raw:
            values[attr] = _require_int(raw[key], f"stats.{key}")

    # Failed files are only reported in the root entry summary
    if isinstance(root_entry, dict) and isinstance(root_entry.get('summ'), dict):
        summary = root_entry['summ']
        if 'numFailed' in summary:
            values['failed_file_count'] = _require_int(summary['numFailed'], 'rootEntry.summ.numFailed')

    return SnapshotStats(**values)


def _parse_retention(raw: Any) -> tuple:
    if raw is None:
        return ()
    if not isinstance(raw, list) or not all(isinstance(r, str) for r in raw):
        raise MalformedRecord(f"retentionReason must be a list of strings, got {raw!r}")
    return tuple(raw)


def snapshot_from_json(item: Any) -> Snapshot:
    """Convert one decoded listing entry to a Snapshot.

    Raises:
        MalformedRecord: If the entry does not describe a valid snapshot.
    """
    if not isinstance(item, dict):
        raise MalformedRecord(f"snapshot entry must be an object, got {type(item).__name__}")

    snapshot_id = item.get('id')
    if not isinstance(snapshot_id, str):
        raise MalformedRecord(f"snapshot id must be a string, got {snapshot_id!r}")

    description = item.get('description') or ''
    if not isinstance(description, str):
        raise MalformedRecord(f"description must be a string, got {description!r}")

    start_time = parse_timestamp(item.get('startTime'))
    end_time = parse_timestamp(item.get('endTime'))
    if start_time and end_time and end_time < start_time:
        raise MalformedRecord(f"endTime {item.get('endTime')} precedes startTime {item.get('startTime')}")

    return Snapshot(
        id=snapshot_id,
        source=_parse_source(item.get('source')),
        start_time=start_time,
        end_time=end_time,
        stats=_parse_stats(item.get('stats'), item.get('rootEntry')),
        retention_reasons=_parse_retention(item.get('retentionReason')),
        description=description,
    )


class _StreamBuffer:
    """Read-ahead buffer over a text stream, refilled on demand."""

    def __init__(self, stream: TextIO, chunk_size: int):
        self.stream = stream
        self.chunk_size = chunk_size
        self.buf = ''
        self.pos = 0
        self.eof = False

    def fill(self) -> bool:
        if self.eof:
            return False
        try:
            chunk = self.stream.read(self.chunk_size)
        except UnicodeDecodeError as e:
            raise MalformedDocument(f"snapshot listing is not valid UTF-8: {e}") from e
        if not chunk:
            self.eof = True
            return False
        if self.pos:
            self.buf = self.buf[self.pos:]
            self.pos = 0
        self.buf += chunk
        return True

    def peek(self) -> Optional[str]:
        """Return the next non-whitespace character without consuming it."""
        while True:
            while self.pos < len(self.buf) and self.buf[self.pos].isspace():
                self.pos += 1
            if self.pos < len(self.buf):
                return self.buf[self.pos]
            if not self.fill():
                return None

    def advance(self) -> None:
        self.pos += 1

    def decode(self, decoder: json.JSONDecoder) -> Any:
        # raw_decode does not skip leading whitespace
        if self.peek() is None:
            raise MalformedDocument("unterminated JSON array in snapshot listing")
        while True:
            try:
                value, end = decoder.raw_decode(self.buf, self.pos)
            except json.JSONDecodeError as e:
                if self.fill():
                    continue
                raise MalformedDocument(f"invalid JSON in snapshot listing: {e}") from e
            # A value ending exactly at the buffer edge may continue in the next chunk
            if end == len(self.buf) and self.fill():
                continue
            self.pos = end
            return value

    def drain(self) -> None:
        while self.fill():
            self.pos = len(self.buf)


class SnapshotParser:
    """Incrementally decodes a JSON array of snapshot entries."""

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        """Initialize snapshot parser.

        Args:
            chunk_size: Number of characters read from the stream at a time.
        """
        self.chunk_size = chunk_size
        self.logger = logging.getLogger(__name__)

    def parse(self, stream: TextIO) -> ParseResult:
        """Parse a snapshot listing from a text stream.

        The stream is read to EOF even when the document turns out to be
        malformed, so a writer on the other end of a pipe is never left
        blocked.

        Args:
            stream: Text stream positioned at the start of the listing.

        Returns:
            ParseResult with the decoded snapshots and the malformed entry count.

        Raises:
            MalformedDocument: If the top-level document is not a JSON array.
        """
        buffer = _StreamBuffer(stream, self.chunk_size)
        snapshots: List[Snapshot] = []
        malformed = 0

        try:
            for index, item in enumerate(self._iter_items(buffer)):
                try:
                    snapshots.append(snapshot_from_json(item))
                except MalformedRecord as e:
                    malformed += 1
                    self.logger.warning(f"Skipping malformed snapshot entry {index}: {e}")
        except MalformedDocument:
            try:
                buffer.drain()
            except MalformedDocument:
                pass
            raise

        return ParseResult(snapshots=tuple(snapshots), malformed_count=malformed)

    def parse_text(self, text: str) -> ParseResult:
        """Parse a snapshot listing held in memory."""
        return self.parse(io.StringIO(text))

    def _iter_items(self, buffer: _StreamBuffer) -> Iterator[Dict[str, Any]]:
        decoder = json.JSONDecoder()

        first = buffer.peek()
        if first is None:
            raise MalformedDocument("empty snapshot listing, expected a JSON array")
        if first != '[':
            raise MalformedDocument(f"snapshot listing must be a JSON array, found {first!r}")
        buffer.advance()

        if buffer.peek() == ']':
            buffer.advance()
        else:
            while True:
                yield buffer.decode(decoder)
                separator = buffer.peek()
                if separator == ',':
                    buffer.advance()
                elif separator == ']':
                    buffer.advance()
                    break
                elif separator is None:
                    raise MalformedDocument("unterminated JSON array in snapshot listing")
                else:
                    raise MalformedDocument(f"unexpected {separator!r} between snapshot entries")

        if buffer.peek() is not None:
            raise MalformedDocument("trailing data after snapshot listing")
