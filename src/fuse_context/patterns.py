from __future__ import annotations

import fnmatch
from functools import lru_cache
from typing import TYPE_CHECKING

import pathspec

if TYPE_CHECKING:
    from collections.abc import Sequence


def match_any_glob(name: str, globs: Sequence[str]) -> bool:
    """Check if a file name matches any of the provided glob patterns.

    Matching is case-sensitive on every platform so a run is reproducible
    whichever OS produced it.

    Args:
        name (str): the file name (or relative path) to check
        globs (Sequence[str]): the glob patterns to match against

    Returns:
        bool: True if `name` matches any pattern in `globs`, False otherwise
    """
    return any(fnmatch.fnmatchcase(name, g) for g in globs)


@lru_cache(maxsize=4096)
def compile_gitignore_pattern(pattern: str) -> pathspec.GitIgnoreSpec:
    """Compile one gitignore line into a matcher for paths relative to its directory."""
    return pathspec.GitIgnoreSpec.from_lines([pattern])


def match_gitignore_pattern(pattern: str, relative_path: str) -> bool:
    """Evaluate a gitignore pattern against a POSIX path relative to the rule's directory."""
    return compile_gitignore_pattern(pattern).match_file(relative_path)
