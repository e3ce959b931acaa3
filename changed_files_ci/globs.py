from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import logging
import re


logger = logging.getLogger(__name__)


class InvalidPatternError(ValueError):
    pass


def _char_class(pattern: str, start: int) -> tuple[str, int]:
    """Translate the `[...]` class opening at `start`; return (regex, next index)."""
    i = start + 1
    negate = i < len(pattern) and pattern[i] == "!"
    if negate:
        i += 1
    # a `]` right after the opening bracket is a literal member
    end = pattern.find("]", i + 1)
    if end == -1:
        raise InvalidPatternError(f"Unclosed character class in '{pattern}'")

    body = pattern[i:end].replace("\\", "\\\\")
    if not negate and body.startswith("^"):
        body = "\\" + body
    return f"[{'^' if negate else ''}{body}]", end + 1


def translate(pattern: str) -> str:
    parts: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*" and pattern.startswith("**", i):
            after = i + 2
            if (i > 0 and pattern[i - 1] != "/") or (after < n and pattern[after] != "/"):
                raise InvalidPatternError(
                    f"Recursive wildcard '**' must form a single path component in '{pattern}'"
                )
            if after < n:
                # `**/` also matches zero directories
                parts.append("(?:.*/)?")
                i = after + 1
            else:
                parts.append(".*")
                i = after
            continue

        if c == "*":
            parts.append(".*")
        elif c == "?":
            parts.append(".")
        elif c == "[":
            regex, i = _char_class(pattern, i)
            parts.append(regex)
            continue
        else:
            parts.append(re.escape(c))
        i += 1
    return "(?s:" + "".join(parts) + r")\Z"


@dataclass(frozen=True)
class GlobPattern:
    pattern: str
    regex: re.Pattern[str] = field(compare=False, repr=False)

    def matches(self, text: str) -> bool:
        return self.regex.match(text) is not None


def compile_pattern(pattern: str) -> GlobPattern:
    try:
        regex = re.compile(translate(pattern), re.IGNORECASE)
    except re.error as exc:
        raise InvalidPatternError(f"Invalid glob pattern '{pattern}': {exc}") from exc
    return GlobPattern(pattern=pattern, regex=regex)


@dataclass(frozen=True)
class GlobFilter:
    includes: tuple[GlobPattern, ...] = ()
    excludes: tuple[GlobPattern, ...] = ()
    # set when include patterns were given, even if all of them were dropped
    restricted: bool = False

    def matches(self, path: str) -> bool:
        if (self.includes or self.restricted) and not any(p.matches(path) for p in self.includes):
            return False
        return not any(p.matches(path) for p in self.excludes)


def _split(raw: str, separator: str) -> list[str]:
    if not raw:
        return []
    entries = raw.split(separator) if separator else [raw]
    return [e.strip() for e in entries if e.strip()]


def _read_sources(sources: str, separator: str, base: Path) -> list[str]:
    entries: list[str] = []
    for source in _split(sources, separator):
        source_path = base / source
        try:
            contents = source_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            logger.warning("Could not read file: %s", source_path)
            continue
        entries.extend(_split(contents, "\n"))
    return entries


def _compile_all(raw_patterns: list[str], label: str) -> list[GlobPattern]:
    compiled: list[GlobPattern] = []
    for raw in raw_patterns:
        try:
            compiled.append(compile_pattern(raw))
        except InvalidPatternError:
            logger.warning("Invalid %sglob pattern: %s", label, raw)
    return compiled


def build_glob_filter(
    files: str = "",
    files_separator: str = "\n",
    files_from_source_file: str = "",
    files_from_source_file_separator: str = "\n",
    files_ignore: str = "",
    files_ignore_separator: str = "\n",
    files_ignore_from_source_file: str = "",
    files_ignore_from_source_file_separator: str = "\n",
    path: Path | str = ".",
) -> GlobFilter:
    """Compile include/exclude sources into a GlobFilter.

    Bad patterns and unreadable source files are reported and skipped. An
    include pattern whose text is itself matched by an exclude pattern is
    dropped altogether.
    """
    base = Path(path)

    includes = _compile_all(
        _split(files, files_separator)
        + _read_sources(files_from_source_file, files_from_source_file_separator, base),
        "",
    )
    excludes = _compile_all(
        _split(files_ignore, files_ignore_separator)
        + _read_sources(files_ignore_from_source_file, files_ignore_from_source_file_separator, base),
        "ignore ",
    )

    kept = []
    for pattern in includes:
        if any(ex.matches(pattern.pattern) for ex in excludes):
            logger.debug("Dropping include pattern '%s' matched by an ignore pattern", pattern.pattern)
            continue
        kept.append(pattern)

    logger.debug("Glob filter: %d include pattern(s), %d ignore pattern(s)", len(kept), len(excludes))
    return GlobFilter(includes=tuple(kept), excludes=tuple(excludes), restricted=bool(includes))
