from __future__ import annotations

import codecs
import os
import stat
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

from fuse_context.config import CandidateFile, CollectionConfig, is_test_directory, is_unit_test_directory
from fuse_context.gitignore import is_ignored
from fuse_context.logging import logger
from fuse_context.patterns import match_any_glob

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterator, Sequence

    from fuse_context.gitignore import IgnoreRule

BINARY_SAMPLE_CHARS = 8000
BINARY_THRESHOLD = 0.1

_BOMS: tuple[tuple[bytes, str], ...] = (
    (codecs.BOM_UTF32_LE, "utf-32"),
    (codecs.BOM_UTF32_BE, "utf-32"),
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def detect_encoding(head: bytes) -> str:
    """Pick a text encoding from a byte-order mark, UTF-8 when there is none."""
    for bom, encoding in _BOMS:
        if head.startswith(bom):
            return encoding
    return "utf-8"


def is_binary_file(path: Path, sample_chars: int = BINARY_SAMPLE_CHARS, threshold: float = BINARY_THRESHOLD) -> bool:
    """Heuristically classify a file as binary.

    Decodes up to `sample_chars` characters from the start of the file (undecodable
    bytes become U+FFFD) and reports binary when more than `threshold` of them have
    a code point above 255. An empty file is never binary.

    This is a density heuristic, not a content-type authority: a text file written
    mostly in a non-Latin script is a false positive, a binary blob that happens to
    decode as Latin-1-range UTF-8 is a false negative.

    Args:
        path (Path): the file to sample.
        sample_chars (int): number of characters to sample.
        threshold (float): fraction of high code points above which the file is binary.

    Raises:
        OSError: if the file cannot be opened or read.

    Returns:
        bool: True if the file is classified as binary.
    """
    with path.open("rb") as f:
        head = f.read(4)
        encoding = detect_encoding(head)
        f.seek(0)
        # 4 bytes per character is the UTF-8/UTF-32 worst case
        raw = f.read(sample_chars * 4)
    sample = raw.decode(encoding, errors="replace")[:sample_chars]
    if not sample:
        return False
    high = sum(1 for ch in sample if ord(ch) > 255)  # noqa: PLR2004
    return high / len(sample) > threshold


def read_text(path: Path) -> str:
    """Read a text file, honouring a byte-order mark and dropping undecodable bytes.

    Raises:
        OSError: if the file cannot be read.
    """
    data = path.read_bytes()
    return data.decode(detect_encoding(data[:4]), errors="ignore")


def _segments_contain(segments: Sequence[str], entry: str) -> bool:
    if "/" not in entry:
        return entry in segments
    wanted = [s for s in entry.split("/") if s]
    n = len(wanted)
    return any(list(segments[i : i + n]) == wanted for i in range(len(segments) - n + 1))


def in_excluded_directory(relative_path: str, excluded: frozenset[str]) -> bool:
    """Check if any segment of a relative path is an excluded directory name.

    Comparison is case-insensitive; `excluded` must already be lower-cased. An entry
    with a slash (``project/target``) matches that run of consecutive segments.

    Args:
        relative_path (str): POSIX path relative to the source directory
        excluded (frozenset[str]): lower-cased directory names

    Returns:
        bool: True if the path lies under an excluded directory
    """
    if not excluded:
        return False
    segments = [p.lower() for p in relative_path.split("/") if p]
    return any(_segments_contain(segments, e) for e in excluded)


def in_test_project(relative_path: str, *, unit_only: bool) -> bool:
    """Check if any segment of a relative path names a test project.

    Args:
        relative_path (str): POSIX path relative to the source directory
        unit_only (bool): only consider unit-test suffixes, keeping integration,
            end-to-end and benchmark projects

    Returns:
        bool: True if the path lies under a matching test project
    """
    check = is_unit_test_directory if unit_only else is_test_directory
    return any(check(part) for part in relative_path.split("/") if part)


def has_accepted_extension(name: str, config: CollectionConfig) -> bool:
    """Check a file name against the configured extensions (case-insensitive suffix match)."""
    if config.accepts_all_extensions:
        return True
    low = name.lower()
    return any(low.endswith(ext.lower()) for ext in config.extensions)


def excluded_by_test_filter(relative_path: str, config: CollectionConfig) -> bool:
    """Apply the all-tests or unit-tests-only exclusion, whichever is enabled."""
    if config.exclude_all_test_projects:
        return in_test_project(relative_path, unit_only=False)
    if config.exclude_unit_test_projects_only:
        return in_test_project(relative_path, unit_only=True)
    return False


def directory_is_pruned(relative_dir: str, config: CollectionConfig) -> bool:
    """Check whether an entire directory can be skipped during enumeration.

    Only predicates that depend on directory segments are used, so pruning never
    changes which files survive the filter chain.
    """
    return in_excluded_directory(relative_dir, config.lowered_exclude_directories) or excluded_by_test_filter(
        relative_dir,
        config,
    )


def enumerate_files(root: Path, config: CollectionConfig) -> Iterator[Path]:
    """Enumerate regular files under `root`, recursively or top-level only.

    Args:
        root (Path): resolved source directory
        config (CollectionConfig): the collection configuration

    Yields:
        Iterator[Path]: absolute file paths
    """
    if not config.recursive:
        with os.scandir(root) as it:
            for entry in it:
                if entry.is_file():
                    yield Path(entry.path)
        return

    for current, dirs, files in os.walk(root, onerror=_log_unreadable_directory):
        cur = Path(current)
        dirs[:] = [d for d in dirs if not directory_is_pruned(relpath(cur / d, root), config)]
        for f in files:
            yield cur / f


def _log_unreadable_directory(error: OSError) -> None:
    logger.warning("directory_unreadable", path=error.filename, error=error.strerror)


def evaluate_file(
    path: Path,
    root: Path,
    config: CollectionConfig,
    ignore_rules: Sequence[IgnoreRule],
) -> CandidateFile | None:
    """Run one file through the filter chain.

    The order puts cheap string checks before stat and content sampling; it does not
    affect the outcome since every predicate must pass.

    Args:
        path (Path): absolute file path from enumeration
        root (Path): resolved source directory
        config (CollectionConfig): the collection configuration
        ignore_rules (Sequence[IgnoreRule]): resolved gitignore rules

    Returns:
        CandidateFile | None: the candidate with cached stat data, or None if excluded
            or if the file vanished or became unreadable meanwhile
    """
    rel = relpath(path, root)

    if ignore_rules and is_ignored(path, ignore_rules):
        return None
    if not has_accepted_extension(path.name, config):
        return None
    if in_excluded_directory(rel, config.lowered_exclude_directories):
        return None
    if excluded_by_test_filter(rel, config):
        return None

    try:
        st = path.stat()
    except OSError as e:
        logger.warning("file_dropped", path=rel, reason="stat failed", error=str(e))
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    if config.max_file_size_bytes > 0 and st.st_size > config.max_file_size_bytes:
        return None

    if config.ignore_binary:
        try:
            if is_binary_file(path):
                return None
        except OSError as e:
            logger.warning("file_dropped", path=rel, reason="unreadable", error=str(e))
            return None

    if config.exclude_patterns and match_any_glob(path.name, config.exclude_patterns):
        return None

    return CandidateFile(
        full_path=path,
        relative_path=rel,
        size_bytes=st.st_size,
        last_modified=st.st_mtime,
    )


def sort_candidates(files: Sequence[CandidateFile]) -> list[CandidateFile]:
    """Order candidates lexically by relative path, case-insensitive first."""
    return sorted(files, key=lambda f: (f.relative_path.lower(), f.relative_path))


def collect_files(
    root: str | Path,
    config: CollectionConfig,
    ignore_rules: Sequence[IgnoreRule] = (),
    *,
    workers: int | None = None,
    cancel: threading.Event | None = None,
) -> list[CandidateFile]:
    """Enumerate and filter the files of a source tree.

    Per-file predicates are independent, so they run on a thread pool; the
    result is sorted so downstream output is reproducible.

    Args:
        root (str | Path): the source directory
        config (CollectionConfig): the resolved collection configuration
        ignore_rules (Sequence[IgnoreRule]): rules from `resolve_gitignore`, applied
            only when ``config.respect_gitignore`` is set
        workers (int | None): thread count, None lets the executor decide
        cancel (threading.Event | None): cooperative cancellation signal; once set,
            remaining files are skipped

    Returns:
        list[CandidateFile]: surviving files in deterministic order
    """
    base = Path(root).resolve()
    rules = tuple(ignore_rules) if config.respect_gitignore else ()

    def job(path: Path) -> CandidateFile | None:
        if cancel is not None and cancel.is_set():
            return None
        return evaluate_file(path, base, config, rules)

    with ThreadPoolExecutor(max_workers=workers or None) as executor:
        results = list(executor.map(job, enumerate_files(base, config)))

    selected = sort_candidates([r for r in results if r is not None])
    logger.info("files_collected", root=str(base), selected=len(selected), scanned=len(results))
    return selected
