"""
Environment file parser and serializer for bwenv.

This module converts `.env` text into an ordered document model and back.

Format:
    # comment lines and blank lines are kept
    KEY=value
    QUOTED="value with = and spaces"
    LITERAL='single quoted, no escapes'
    INLINE=value # trailing comment

Duplicate keys resolve to the last occurrence and lines with an empty key
(``=value``) are ignored. Serialization writes keys sorted by name unless
insertion order is requested, so repeated pulls produce stable diffs.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Mapping

_QUOTES = ('"', "'")
_BOM = "﻿"


class ParseMode(Enum):
    """How the parser reacts to a malformed line."""

    ABORT = "abort"
    COLLECT = "collect"


class WriteOrder(Enum):
    """Order in which entries are written back to text."""

    SORTED = "sorted"
    INSERTION = "insertion"


class LineKind(Enum):
    """Classification of a single source line."""

    ENTRY = "entry"
    COMMENT = "comment"
    BLANK = "blank"


@dataclass(frozen=True)
class EnvEntry:
    """A single KEY=VALUE variable."""

    key: str
    value: str = field(repr=False)
    comment: str | None = None
    line_number: int | None = None


@dataclass(frozen=True)
class EnvLine:
    """One line of a document: an entry, a comment, or a blank line."""

    kind: LineKind
    raw: str = ""
    entry: EnvEntry | None = None


@dataclass(frozen=True)
class EnvDocument:
    """
    Ordered, immutable model of an environment file.

    Entries are unique by key. Comment and blank lines are kept in their
    source position so that a document can be written back with its layout.
    Changing values always produces a new document (see `with_values`).
    """

    lines: tuple[EnvLine, ...] = ()
    errors: tuple[ParseError, ...] = ()
    ignored_lines: tuple[int, ...] = ()

    @classmethod
    def from_map(cls, secret_map: Mapping[str, str]) -> "EnvDocument":
        """Build a document holding only the given variables."""
        return cls(
            lines=tuple(
                EnvLine(kind=LineKind.ENTRY, entry=EnvEntry(key=key, value=value))
                for key, value in secret_map.items()
            )
        )

    @property
    def entries(self) -> list[EnvEntry]:
        return [line.entry for line in self.lines if line.entry is not None]

    def keys(self) -> list[str]:
        return [entry.key for entry in self.entries]

    def get(self, key: str, default: str | None = None) -> str | None:
        for entry in self.entries:
            if entry.key == key:
                return entry.value
        return default

    def to_map(self) -> dict[str, str]:
        """Return the variables as a plain key/value mapping."""
        return {entry.key: entry.value for entry in self.entries}

    def with_values(self, secret_map: Mapping[str, str]) -> "EnvDocument":
        """
        Return a new document whose variables are exactly `secret_map`.

        Entries whose key survives keep their position, inline comment and
        the comment lines above them. Keys missing from the mapping are
        dropped together with the comments attached to them, and new keys
        are appended after the last entry.

        Args:
            secret_map: The complete set of variables for the new document

        Returns:
            A new EnvDocument
        """
        remaining = dict(secret_map)
        lines: list[EnvLine] = []
        pending_comments: list[EnvLine] = []

        for line in self.lines:
            if line.kind is LineKind.COMMENT:
                pending_comments.append(line)
                continue
            if line.kind is LineKind.BLANK:
                lines.extend(pending_comments)
                pending_comments = []
                lines.append(line)
                continue

            entry = line.entry
            if entry.key in remaining:
                lines.extend(pending_comments)
                lines.append(
                    EnvLine(
                        kind=LineKind.ENTRY,
                        raw=line.raw,
                        entry=replace(entry, value=remaining.pop(entry.key)),
                    )
                )
            pending_comments = []

        insert_at = _after_last_entry(lines)
        added = [
            EnvLine(kind=LineKind.ENTRY, entry=EnvEntry(key=key, value=value))
            for key, value in remaining.items()
        ]
        lines[insert_at:insert_at] = added
        lines.extend(pending_comments)

        return EnvDocument(lines=tuple(lines))

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: object) -> bool:
        return any(entry.key == key for entry in self.entries)

    def __iter__(self) -> Iterator[EnvEntry]:
        return iter(self.entries)


def _after_last_entry(lines: list[EnvLine]) -> int:
    for index in range(len(lines) - 1, -1, -1):
        if lines[index].kind is LineKind.ENTRY:
            return index + 1
    return len(lines)


class EnvParser:
    """
    Parser for `.env` text.

    The parser never lets an unexpected exception escape for malformed
    input: every problem is reported as a ParseError carrying the 1-based
    line number. In ABORT mode (the default) the first error is raised; in
    COLLECT mode malformed lines are skipped and recorded on the document.

    Example:
        parser = EnvParser()
        document = parser.parse("A=1\\nB=2\\n")
        document.to_map()  # {"A": "1", "B": "2"}
    """

    def __init__(self, mode: ParseMode = ParseMode.ABORT) -> None:
        self.mode = mode

    def parse(self, text: str | bytes) -> EnvDocument:
        """
        Parse environment file content.

        Args:
            text: File content, either decoded text or raw UTF-8 bytes

        Returns:
            The parsed EnvDocument

        Raises:
            EncodingError: If bytes are not valid UTF-8
            ParseError: In ABORT mode, for the first malformed line
        """
        if isinstance(text, (bytes, bytearray)):
            try:
                text = bytes(text).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise EncodingError(
                    f"Content is not valid UTF-8 (byte offset {exc.start})"
                ) from exc

        if text.startswith(_BOM):
            text = text[len(_BOM):]

        lines: list[EnvLine] = []
        errors: list[ParseError] = []
        ignored: list[int] = []
        last_seen: dict[str, int] = {}

        for line_number, raw in enumerate(_split_lines(text), 1):
            try:
                line = self._parse_line(raw, line_number)
            except ParseError as exc:
                if self.mode is ParseMode.ABORT:
                    raise
                errors.append(exc)
                continue

            if line is None:
                ignored.append(line_number)
                continue

            if line.entry is not None:
                last_seen[line.entry.key] = len(lines)
            lines.append(line)

        # Duplicate keys: the last occurrence wins
        kept = tuple(
            line
            for index, line in enumerate(lines)
            if line.entry is None or last_seen[line.entry.key] == index
        )

        return EnvDocument(lines=kept, errors=tuple(errors), ignored_lines=tuple(ignored))

    def _parse_line(self, raw: str, line_number: int) -> EnvLine | None:
        """Classify and parse one line. Returns None for ignored lines."""
        stripped = raw.strip()

        if not stripped:
            return EnvLine(kind=LineKind.BLANK, raw=raw)

        if stripped.startswith("#"):
            return EnvLine(kind=LineKind.COMMENT, raw=raw)

        if "=" not in raw:
            raise MissingSeparatorError(line_number)

        raw_key, raw_value = raw.split("=", 1)
        key = raw_key.strip()

        if not key:
            return None

        value, comment = _parse_value(raw_value.strip())

        return EnvLine(
            kind=LineKind.ENTRY,
            raw=raw,
            entry=EnvEntry(key=key, value=value, comment=comment, line_number=line_number),
        )


def _split_lines(text: str) -> list[str]:
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _parse_value(raw: str) -> tuple[str, str | None]:
    """Split a trimmed raw value into (value, inline comment)."""
    if not raw:
        return "", None

    quote = raw[0]
    if quote in _QUOTES:
        closing = _find_closing_quote(raw, quote)
        if closing == len(raw) - 1:
            return _unquote(raw[1:closing], quote), None
        if closing is not None:
            rest = raw[closing + 1:]
            if rest[:1].isspace() and rest.strip().startswith("#"):
                return _unquote(raw[1:closing], quote), _comment_text(rest)

        # No clean closing quote: fall back to matching outer quotes
        if len(raw) >= 2 and raw[-1] == quote:
            return _unquote(raw[1:-1], quote), None
        return raw, None

    value, comment = _split_inline_comment(raw)
    return value, comment


def _find_closing_quote(raw: str, quote: str) -> int | None:
    index = 1
    while index < len(raw):
        char = raw[index]
        if char == "\\" and quote == '"':
            index += 2
            continue
        if char == quote:
            return index
        index += 1
    return None


def _split_inline_comment(raw: str) -> tuple[str, str | None]:
    for index, char in enumerate(raw):
        if char == "#" and index > 0 and raw[index - 1].isspace():
            return raw[:index].rstrip(), _comment_text(raw[index:])
    return raw, None


def _comment_text(rest: str) -> str:
    return rest.strip()[1:].strip()


def _unquote(inner: str, quote: str) -> str:
    if quote == "'":
        return inner

    out: list[str] = []
    index = 0
    while index < len(inner):
        char = inner[index]
        if char == "\\" and index + 1 < len(inner):
            nxt = inner[index + 1]
            if nxt in ('\\', '"'):
                out.append(nxt)
                index += 2
                continue
            if nxt == "n":
                out.append("\n")
                index += 2
                continue
            if nxt == "r":
                out.append("\r")
                index += 2
                continue
        out.append(char)
        index += 1
    return "".join(out)


def parse(text: str | bytes, mode: ParseMode = ParseMode.ABORT) -> EnvDocument:
    """
    Parse `.env` content into an EnvDocument.

    Args:
        text: File content as text or UTF-8 bytes
        mode: ABORT to raise on the first malformed line, COLLECT to skip it

    Returns:
        The parsed EnvDocument
    """
    return EnvParser(mode).parse(text)


def needs_quoting(value: str) -> bool:
    """Return True if a value would not survive being written bare."""
    if not value:
        return False
    return (
        "=" in value
        or "\n" in value
        or "\r" in value
        or value != value.strip()
        or value[0] in _QUOTES
        or value[-1] in _QUOTES
        or value.startswith("#")
        or any(value[i] == "#" and value[i - 1].isspace() for i in range(1, len(value)))
    )


def format_value(value: str) -> str:
    """Render a value for writing, double-quoting it when necessary."""
    if not needs_quoting(value):
        return value

    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def validate_key(key: str) -> None:
    """
    Check that a key can be written and read back unchanged.

    Raises:
        InvalidKeyError: If the key is empty, padded, or contains
            characters the line format cannot carry
    """
    if (
        not key
        or key != key.strip()
        or "=" in key
        or "\n" in key
        or key.startswith("#")
        or key.startswith(_BOM)
    ):
        raise InvalidKeyError(key)


def format_entry(entry: EnvEntry) -> str:
    """Render a single entry as a line without the trailing newline."""
    validate_key(entry.key)
    if not entry.comment:
        return f"{entry.key}={format_value(entry.value)}"

    value = format_value(entry.value) if entry.value else '""'
    return f"{entry.key}={value} # {entry.comment}"


def serialize(document: EnvDocument, order: WriteOrder = WriteOrder.SORTED) -> str:
    """
    Serialize a document back to `.env` text.

    The output is deterministic. In SORTED order, lines up to the last blank
    line before the first entry stay at the top, comments above an entry move
    with it, trailing comments stay at the bottom, and blank lines between
    entries are dropped. In INSERTION order the original layout is kept.

    Args:
        document: The document to write
        order: Entry ordering

    Returns:
        The file content, newline-terminated when not empty

    Raises:
        InvalidKeyError: If an entry key cannot be represented
    """
    if order is WriteOrder.INSERTION:
        rendered = [
            format_entry(line.entry) if line.entry is not None else line.raw.rstrip("\r")
            for line in document.lines
        ]
    else:
        rendered = _render_sorted(document.lines)

    if not rendered:
        return ""
    return "\n".join(rendered) + "\n"


def _render_sorted(lines: Iterable[EnvLine]) -> list[str]:
    header: list[str] = []
    blocks: list[tuple[str, list[str]]] = []
    pending: list[str] = []
    seen_entry = False

    for line in lines:
        if line.kind is LineKind.ENTRY:
            blocks.append((line.entry.key, pending + [format_entry(line.entry)]))
            pending = []
            seen_entry = True
        elif line.kind is LineKind.COMMENT:
            pending.append(line.raw.rstrip("\r"))
        elif not seen_entry:
            header.extend(pending)
            header.append(line.raw.rstrip("\r"))
            pending = []

    rendered = header
    for _, block in sorted(blocks, key=lambda item: item[0]):
        rendered.extend(block)
    rendered.extend(pending)
    return rendered


def serialize_map(
    secret_map: Mapping[str, str], order: WriteOrder = WriteOrder.SORTED
) -> str:
    """Serialize a bare key/value mapping."""
    return serialize(EnvDocument.from_map(secret_map), order)


def read_env_file(path: str | Path, mode: ParseMode = ParseMode.ABORT) -> EnvDocument:
    """
    Read and parse an environment file.

    Args:
        path: Path to the file
        mode: Parser error mode

    Returns:
        The parsed EnvDocument

    Raises:
        EnvFileError: If the file is missing or cannot be read
        ParseError: If the content is malformed (ABORT mode)
    """
    path = Path(path)
    try:
        content = path.read_bytes()
    except FileNotFoundError as exc:
        raise EnvFileError(f"Env file not found: {path}", path=path) from exc
    except PermissionError as exc:
        raise EnvFileError(f"Permission denied reading env file: {path}", path=path) from exc
    except OSError as exc:
        raise EnvFileError(f"Error reading env file {path}: {exc.strerror}", path=path) from exc

    try:
        return EnvParser(mode).parse(content)
    except ParseError as exc:
        exc.path = path
        raise


def load_env_file(path: str | Path, mode: ParseMode = ParseMode.ABORT) -> EnvDocument:
    """Like `read_env_file`, but an absent file yields an empty document."""
    if not Path(path).exists():
        return EnvDocument()
    return read_env_file(path, mode)


def write_env_file(
    path: str | Path,
    document: EnvDocument,
    order: WriteOrder = WriteOrder.SORTED,
) -> str:
    """
    Write a document to disk in a single atomic replace.

    The full content is rendered in memory first and written to a temporary
    file next to the target, which then replaces the target. An interrupted
    write leaves the previous file untouched.

    Args:
        path: Destination path
        document: Document to write
        order: Entry ordering

    Returns:
        The content that was written

    Raises:
        EnvFileError: If the file cannot be written
    """
    path = Path(path)
    content = serialize(document, order)
    directory = path.parent if str(path.parent) else Path(".")

    try:
        mode = path.stat().st_mode & 0o777 if path.exists() else 0o600
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    except OSError as exc:
        raise EnvFileError(f"Cannot write env file {path}: {exc.strerror}", path=path) from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except OSError as exc:
        Path(tmp_name).unlink(missing_ok=True)
        raise EnvFileError(f"Cannot write env file {path}: {exc.strerror}", path=path) from exc

    return content


class ParseError(Exception):
    """Exception raised for malformed environment file content."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        self.message = message
        self.line_number = line_number
        self.path: Path | None = None
        super().__init__(message)

    def __str__(self) -> str:
        parts = []
        if self.path is not None:
            parts.append(f"{self.path}:")
        if self.line_number is not None:
            parts.append(f"line {self.line_number}:")
        parts.append(self.message)
        return " ".join(parts)


class MissingSeparatorError(ParseError):
    """A non-comment, non-blank line has no '=' separator."""

    def __init__(self, line_number: int) -> None:
        super().__init__("expected KEY=VALUE, no '=' separator found", line_number)


class EncodingError(ParseError):
    """Content is not valid UTF-8."""


class InvalidKeyError(ValueError):
    """A key cannot be represented in the file format."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Invalid variable name: {key!r}")


class EnvFileError(Exception):
    """Exception raised for environment file IO errors."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.message = message
        self.path = path
        super().__init__(message)
