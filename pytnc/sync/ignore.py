"""Path exclusion rules loaded from ``.ignoretnc``.

Supported pattern forms, evaluated in order (first match wins):

``folder/**``
    The folder itself and everything nested under it.
``*.ext``
    Any path ending with ``.ext``.
anything else
    Exactly that relative path.

Paths are always given relative to the scan root with ``/`` as separator.
There is no negation syntax.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".ignoretnc"


class RuleKind(str, Enum):
    FOLDER = "folder"
    EXTENSION = "extension"
    EXACT = "exact"


@dataclass(frozen=True)
class IgnoreRule:
    """A single parsed ignore pattern."""

    pattern: str
    kind: RuleKind
    value: str
    """Folder prefix, extension suffix (with the dot) or exact path"""

    @classmethod
    def parse(cls, pattern: str) -> "IgnoreRule":
        if pattern.endswith("/**"):
            return cls(pattern, RuleKind.FOLDER, pattern[:-3])
        if pattern.startswith("*."):
            return cls(pattern, RuleKind.EXTENSION, pattern[1:])
        return cls(pattern, RuleKind.EXACT, pattern)

    def matches(self, relative_path: str) -> bool:
        if self.kind == RuleKind.FOLDER:
            return relative_path == self.value or relative_path.startswith(
                self.value + "/"
            )
        if self.kind == RuleKind.EXTENSION:
            return relative_path.endswith(self.value)
        return relative_path == self.value


class IgnoreMatcher:
    """Evaluates ignore rules against root-relative paths.

    Examples:
        >>> matcher = IgnoreMatcher(["build/**", "*.log", "secrets.env"])
        >>> matcher.is_ignored("build/out.txt")
        True
        >>> matcher.is_ignored("src/build/out.txt")
        False
    """

    def __init__(self, patterns: Optional[list[str]] = None):
        self.rules = [IgnoreRule.parse(p) for p in parse_patterns(patterns or [])]

    def __len__(self) -> int:
        return len(self.rules)

    def match(self, relative_path: str) -> Optional[IgnoreRule]:
        """Return the first rule matching ``relative_path``, if any."""
        for rule in self.rules:
            if rule.matches(relative_path):
                return rule
        return None

    def is_ignored(self, relative_path: str) -> bool:
        return self.match(relative_path) is not None


def parse_patterns(lines: list[str]) -> list[str]:
    """Strip whitespace and drop blank lines and ``#`` comments."""
    patterns = []
    for line in lines:
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            patterns.append(stripped)
    return patterns


def load_ignore_file(path: Path) -> list[str]:
    """Read patterns from an ignore file.

    Args:
        path: Path to the ignore file

    Returns:
        List of patterns, empty if the file does not exist
    """
    if not path.exists():
        return []
    patterns = parse_patterns(path.read_text(encoding="utf-8").splitlines())
    logger.debug("Loaded %d ignore pattern(s) from %s", len(patterns), path)
    return patterns
