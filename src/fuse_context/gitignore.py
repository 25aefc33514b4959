"""Resolution of ``.gitignore`` rules from a directory up to its repository root."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from fuse_context.logging import logger
from fuse_context.patterns import match_gitignore_pattern

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

GITIGNORE_FILE = ".gitignore"
VCS_MARKER = ".git"


@dataclass(frozen=True)
class IgnoreRule:
    """One ``.gitignore`` line anchored to the directory that declared it.

    Attributes:
        pattern: the pattern text, as written in the file (stripped).
        origin_directory: absolute, resolved directory holding the ``.gitignore``.
    """

    pattern: str
    origin_directory: Path

    @property
    def anchored_pattern(self) -> str:
        """The pattern joined to its origin directory, POSIX separators."""
        return (PurePosixPath(self.origin_directory.as_posix()) / self.pattern.lstrip("/")).as_posix()

    def matches(self, path: Path) -> bool:
        """Check whether an absolute path is excluded by this rule.

        Paths outside the rule's origin directory never match, so a rule declared
        in ``a/.gitignore`` cannot exclude anything under a sibling ``b/``.

        Args:
            path (Path): an absolute, resolved path.

        Returns:
            bool: True if the rule excludes `path`.
        """
        try:
            rel = path.relative_to(self.origin_directory)
        except ValueError:
            return False
        rel_posix = rel.as_posix()
        if rel_posix in {"", "."}:
            return False
        return match_gitignore_pattern(self.pattern, rel_posix)


def parse_gitignore_lines(lines: Iterable[str], origin_directory: Path) -> list[IgnoreRule]:
    """Turn the lines of one ``.gitignore`` file into anchored rules.

    Blank lines and ``#`` comments are skipped. Negated ``!`` lines are dropped:
    matching is "any rule excludes", there is no re-inclusion.

    Args:
        lines (Iterable[str]): raw lines of the file.
        origin_directory (Path): directory containing the file.

    Returns:
        list[IgnoreRule]: the rules, in file order.
    """
    rules: list[IgnoreRule] = []
    for line in lines:
        text = line.strip()
        if not text or text.startswith("#"):
            continue
        if text.startswith("!"):
            logger.debug("gitignore_negation_unsupported", pattern=text, directory=str(origin_directory))
            continue
        rules.append(IgnoreRule(pattern=text, origin_directory=origin_directory))
    return rules


def resolve_gitignore(start_directory: str | Path) -> list[IgnoreRule]:
    """Collect ``.gitignore`` rules from `start_directory` up to the repository root.

    Ascent stops after the first directory that contains a ``.git`` marker (its own
    ``.gitignore`` is included) or at the filesystem root. Unreadable files are
    skipped: ignore rules are an enrichment, never a reason to fail collection.

    Args:
        start_directory (str | Path): the directory being fused.

    Returns:
        list[IgnoreRule]: rules ordered from the start directory upwards.
    """
    rules: list[IgnoreRule] = []
    current = Path(start_directory).resolve()
    while True:
        gitignore = current / GITIGNORE_FILE
        if gitignore.is_file():
            try:
                lines = gitignore.read_text(encoding="utf-8", errors="ignore").splitlines()
            except OSError as e:
                logger.warning("gitignore_unreadable", path=str(gitignore), error=str(e))
            else:
                found = parse_gitignore_lines(lines, current)
                logger.debug("gitignore_loaded", path=str(gitignore), rules=len(found))
                rules.extend(found)

        if (current / VCS_MARKER).exists():
            break
        parent = current.parent
        if parent == current:
            break
        current = parent
    return rules


def is_ignored(path: Path, rules: Sequence[IgnoreRule]) -> bool:
    """Check whether any rule excludes `path` (absolute, resolved)."""
    return any(rule.matches(path) for rule in rules)
