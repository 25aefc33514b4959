"""Token-bounded assembly of collected files into one or more output parts."""

from __future__ import annotations

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from fuse_context.exceptions import FileProcessingError, OutputConflictError
from fuse_context.file_manipulation import read_text
from fuse_context.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence
    from concurrent.futures import Future

    from fuse_context.config import CandidateFile
    from fuse_context.settings import Settings

    TransformFn = Callable[[Path, str], str]
    EstimateFn = Callable[[str], int]

# Approximate cost of "<|path|>\n" + "\n<|/|>\n" per block, path length ignored.
FRAMING_OVERHEAD_TOKENS = 25
DEFAULT_EXTENSION = ".txt"
HEADER_TITLE = "# FUSE CONTEXT"
CLOSING_DELIMITER = "<|/|>"
TOP_TOKEN_FILES = 5
_TRIVIAL_TAG_MAX_LEN = 10
_PREFETCH = 16


@dataclass
class RunBudget:
    """Token limits and the cross-part running total of one run.

    Attributes:
        global_token_cap: hard ceiling on accounted tokens across all parts.
        split_threshold: per-part ceiling that triggers rotation to a new part.
        global_tokens_consumed: monotonic total, never reset on rotation.
    """

    global_token_cap: int | None = None
    split_threshold: int | None = None
    global_tokens_consumed: int = 0

    @property
    def splitting(self) -> bool:
        """Whether output is split into parts."""
        return self.split_threshold is not None

    def would_exceed_cap(self, tokens: int) -> bool:
        """Check whether accounting `tokens` more would pass the global cap."""
        return self.global_token_cap is not None and self.global_tokens_consumed + tokens > self.global_token_cap

    def should_split(self, part_tokens: int, tokens: int) -> bool:
        """Check whether a block of `tokens` must start a new part.

        A part that is still empty never splits, so a single file larger than the
        threshold is written whole, alone in its part.
        """
        return self.split_threshold is not None and part_tokens > 0 and part_tokens + tokens > self.split_threshold

    def consume(self, tokens: int) -> None:
        """Add `tokens` to the global total."""
        if tokens < 0:
            msg = "token counts are non-negative"
            raise ValueError(msg)
        self.global_tokens_consumed += tokens


@dataclass
class OutputPart:
    """One output file, owned and mutated by the assembler while open."""

    index: int
    path: Path
    tokens_written: int = 0
    files_written: int = 0


@dataclass(frozen=True)
class NamingPolicy:
    """How output part paths are derived.

    Attributes:
        output_dir: directory receiving the parts.
        base_name: file stem shared by every part.
        extension: file extension, with its leading dot.
        overwrite: replace existing files instead of failing.
    """

    output_dir: Path
    base_name: str
    extension: str = DEFAULT_EXTENSION
    overwrite: bool = True

    def path_for(self, index: int, *, split: bool) -> Path:
        """Return the path of part `index` (1-based), suffixed ``_part<N>`` when `split`."""
        stem = f"{self.base_name}_part{index}" if split else self.base_name
        return self.output_dir / f"{stem}{self.extension}"


def make_naming_policy(settings: Settings, *, now: datetime | None = None) -> NamingPolicy:
    """Derive the naming policy from run options.

    An explicit ``name`` keeps its extension (``.txt`` when it has none). Otherwise
    the stem is ``fused_<directory>[_all]_<yyyyMMddHHmmss>``.

    Args:
        settings (Settings): run options.
        now (datetime | None): timestamp for generated names, defaults to now.

    Returns:
        NamingPolicy: the policy.
    """
    if settings.name.strip():
        given = Path(settings.name.strip())
        base, extension = given.stem, given.suffix or DEFAULT_EXTENSION
    else:
        stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")  # noqa: DTZ005
        all_suffix = "_all" if settings.apply_all else ""
        dirname = Path(settings.directory).resolve().name or "root"
        base, extension = f"fused_{dirname}{all_suffix}_{stamp}", DEFAULT_EXTENSION
    return NamingPolicy(
        output_dir=Path(settings.output_dir),
        base_name=base,
        extension=extension,
        overwrite=settings.overwrite,
    )


@dataclass
class FusionResult:
    """Outcome of one assembly run, for reporting."""

    parts: list[OutputPart]
    total_tokens: int
    processed_file_count: int
    total_file_count: int
    skipped_trivial: int = 0
    skipped_errors: int = 0
    stop_reason: str | None = None
    conflict_path: Path | None = None
    duration_seconds: float = 0.0
    top_token_files: list[tuple[str, int]] = field(default_factory=list)

    @property
    def stopped_early(self) -> bool:
        """Whether the run stopped before visiting every file."""
        return self.stop_reason is not None

    @property
    def generated_paths(self) -> list[Path]:
        """Paths of every part written."""
        return [p.path for p in self.parts]


def find_root_directory(start: Path) -> Path | None:
    """Find the closest ancestor holding a ``.git`` folder or a ``*.sln`` file."""
    current: Path | None = start.resolve()
    while current is not None:
        try:
            if (current / ".git").is_dir() or any(current.glob("*.sln")):
                return current
        except OSError:
            return None
        current = current.parent if current.parent != current else None
    return None


def build_header(source_dir: Path, part_index: int, *, splitting: bool) -> str:
    """Build the descriptive header written at the top of each part.

    Args:
        source_dir (Path): the fused directory.
        part_index (int): 1-based part number.
        splitting (bool): whether the part number is shown.

    Returns:
        str: the header block, ending with an empty line.
    """
    source = source_dir.resolve()
    root = find_root_directory(source)
    if root is not None:
        label = "Base Path"
        value = source.relative_to(root).as_posix()
        value = "/" if value == "." else value
    else:
        label, value = "Source Path", str(source)

    lines = [HEADER_TITLE, f"# {label}: {value}"]
    if splitting:
        lines.append(f"# Part: {part_index}")
    lines.extend(["# File Format:", "# <|path/to/file|>", "# [Content]", f"# {CLOSING_DELIMITER}", ""])
    return "\n".join(lines) + "\n"


def is_trivial_content(content: str) -> bool:
    """Check whether transformed content carries nothing worth its tokens.

    Whitespace-only text, an empty JSON object or array, and a short lone
    self-closing tag (``<root />``) are trivial.
    """
    trimmed = content.strip()
    if not trimmed or trimmed in {"{}", "[]"}:
        return True
    return trimmed.startswith("<") and trimmed.endswith("/>") and len(trimmed) < _TRIVIAL_TAG_MAX_LEN


def format_metadata(file: CandidateFile) -> str:
    """Render the optional size/mtime line of a framed block."""
    return f"[Size: {file.size_bytes} bytes | Modified: {file.modified_at:%Y-%m-%d %H:%M:%S}]"


def frame_file(file: CandidateFile, content: str, *, include_metadata: bool) -> str:
    """Wrap transformed content in its path delimiters.

    Args:
        file (CandidateFile): the file being written.
        content (str): its transformed content.
        include_metadata (bool): add the size/mtime line.

    Returns:
        str: the complete block, closing delimiter and newline included.
    """
    parts = [f"<|{file.relative_path}|>\n"]
    if include_metadata:
        parts.append(format_metadata(file) + "\n")
    parts.append(content)
    if not content.endswith("\n"):
        parts.append("\n")
    parts.append(f"{CLOSING_DELIMITER}\n")
    return "".join(parts)


@dataclass(frozen=True)
class PreparedFile:
    """A candidate with its transformed content, or the reason it has none."""

    file: CandidateFile
    content: str | None = None
    error: str | None = None


def load_content(file: CandidateFile, transform: TransformFn) -> str:
    """Read and transform one file.

    Raises:
        FileProcessingError: if the file cannot be read or the transformer fails.
    """
    try:
        raw = read_text(file.full_path)
    except OSError as e:
        raise FileProcessingError(path=file.full_path, reason=f"unreadable: {e}") from e
    try:
        return transform(file.full_path, raw)
    except Exception as e:
        raise FileProcessingError(path=file.full_path, reason=f"transform failed: {e}") from e


def prepare_file(file: CandidateFile, transform: TransformFn) -> PreparedFile:
    """Run `load_content`, capturing a per-file failure instead of raising it."""
    try:
        return PreparedFile(file=file, content=load_content(file, transform))
    except FileProcessingError as e:
        return PreparedFile(file=file, error=e.reason)


_DONE = object()


def prepare_files(
    files: Sequence[CandidateFile],
    transform: TransformFn,
    *,
    workers: int | None = None,
    prefetch: int = _PREFETCH,
    cancel: threading.Event | None = None,
) -> Iterator[PreparedFile]:
    """Read and transform files on a worker pool, yielding results in input order.

    A producer thread submits work and hands futures to the consumer through a
    bounded queue, which caps how far preparation runs ahead of writing. The
    producer always ends with a completion marker; closing the generator early
    drains the queue so the producer can deliver it and exit.

    Args:
        files (Sequence[CandidateFile]): files in output order.
        transform (TransformFn): the content transformer.
        workers (int | None): thread count, None lets the executor decide.
        prefetch (int): maximum number of prepared-but-unconsumed files.
        cancel (threading.Event | None): stops submission once set.

    Yields:
        Iterator[PreparedFile]: prepared files, in the order of `files`.
    """
    handoff: queue.Queue[Future[PreparedFile] | object] = queue.Queue(maxsize=max(1, prefetch))
    stop = threading.Event()
    executor = ThreadPoolExecutor(max_workers=workers or None, thread_name_prefix="fuse-prepare")

    def produce() -> None:
        try:
            for f in files:
                if stop.is_set() or (cancel is not None and cancel.is_set()):
                    break
                handoff.put(executor.submit(prepare_file, f, transform))
        finally:
            handoff.put(_DONE)

    producer = threading.Thread(target=produce, name="fuse-producer", daemon=True)
    producer.start()
    finished = False
    try:
        while True:
            item = handoff.get()
            if item is _DONE:
                finished = True
                return
            yield item.result()  # type: ignore[union-attr]
    finally:
        stop.set()
        while not finished:
            item = handoff.get()
            if item is _DONE:
                finished = True
            else:
                item.cancel()  # type: ignore[union-attr]
        producer.join()
        executor.shutdown(wait=True, cancel_futures=True)


class _PartStream:
    """The single open output stream of an assembly run."""

    def __init__(self, naming: NamingPolicy, source_dir: Path, *, splitting: bool) -> None:
        self.naming = naming
        self.source_dir = source_dir
        self.splitting = splitting
        self._handle: TextIO | None = None

    def open(self, index: int) -> OutputPart:
        path = self.naming.path_for(index, split=self.splitting)
        if path.exists() and not self.naming.overwrite:
            logger.error("output_conflict", path=str(path))
            raise OutputConflictError(path=path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = path.open("w", encoding="utf-8", newline="\n")
        self._handle.write(build_header(self.source_dir, index, splitting=self.splitting))
        return OutputPart(index=index, path=path)

    def write(self, block: str) -> None:
        if self._handle is None:
            msg = "no output part is open"
            raise RuntimeError(msg)
        self._handle.write(block)

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


def _top_files(per_file: list[tuple[str, int]], limit: int = TOP_TOKEN_FILES) -> list[tuple[str, int]]:
    return sorted(per_file, key=lambda item: (-item[1], item[0]))[:limit]


def assemble(
    files: Sequence[CandidateFile],
    transform: TransformFn,
    estimate_tokens: EstimateFn,
    budget: RunBudget,
    naming: NamingPolicy,
    *,
    source_dir: Path,
    include_metadata: bool = False,
    cancel: threading.Event | None = None,
    workers: int | None = None,
    framing_overhead: int = FRAMING_OVERHEAD_TOKENS,
) -> FusionResult:
    """Write files into token-bounded output parts.

    Content preparation runs in parallel ahead of the writer; token accounting,
    split decisions and writes happen here, one file at a time, in input order.
    For each file: transform, skip if trivial, account ``tokens + overhead``,
    stop if the global cap would be passed, rotate to a new part if the split
    threshold would be passed (never for an empty part), then write the whole
    framed block.

    Args:
        files (Sequence[CandidateFile]): files in output order.
        transform (TransformFn): the content transformer.
        estimate_tokens (EstimateFn): the token estimator.
        budget (RunBudget): limits and the running total; updated in place.
        naming (NamingPolicy): output part naming.
        source_dir (Path): the fused directory, shown in part headers.
        include_metadata (bool): write a size/mtime line per file.
        cancel (threading.Event | None): shared cancellation signal. Checked before
            each file; set here when the cap is reached or a later part conflicts.
        workers (int | None): preparation thread count.
        framing_overhead (int): tokens added per framed block.

    Raises:
        OutputConflictError: if the first part's path exists and overwrite is disabled.
            A conflict on a later part ends the run instead, with ``stop_reason``
            ``"output_conflict"`` and the parts already written kept and reported.

    Returns:
        FusionResult: the finalized parts and run statistics.
    """
    started = time.perf_counter()
    cancel = cancel if cancel is not None else threading.Event()
    stream = _PartStream(naming, source_dir, splitting=budget.splitting)
    parts: list[OutputPart] = []
    per_file: list[tuple[str, int]] = []
    processed = skipped_trivial = skipped_errors = 0
    stop_reason: str | None = None
    conflict_path: Path | None = None

    prepared_files = prepare_files(files, transform, workers=workers, cancel=cancel)
    try:
        current = stream.open(1)
        parts.append(current)
        for prepared in prepared_files:
            if cancel.is_set():
                stop_reason = "cancelled"
                break
            if prepared.error is not None or prepared.content is None:
                skipped_errors += 1
                logger.warning("file_dropped", path=prepared.file.relative_path, reason=prepared.error)
                continue
            content = prepared.content
            if is_trivial_content(content):
                skipped_trivial += 1
                continue

            file_tokens = estimate_tokens(content) + framing_overhead

            if budget.would_exceed_cap(file_tokens):
                stop_reason = "token_cap"
                logger.info(
                    "token_cap_reached",
                    cap=budget.global_token_cap,
                    consumed=budget.global_tokens_consumed,
                    withheld=prepared.file.relative_path,
                )
                cancel.set()
                break

            if budget.should_split(current.tokens_written, file_tokens):
                stream.close()
                try:
                    current = stream.open(current.index + 1)
                except OutputConflictError as e:
                    stop_reason = "output_conflict"
                    conflict_path = e.path
                    cancel.set()
                    break
                parts.append(current)
                logger.info("part_rotated", part=current.index, path=str(current.path))

            stream.write(frame_file(prepared.file, content, include_metadata=include_metadata))
            current.tokens_written += file_tokens
            current.files_written += 1
            budget.consume(file_tokens)
            processed += 1
            per_file.append((prepared.file.relative_path, file_tokens))
    finally:
        prepared_files.close()
        stream.close()

    if stop_reason is None and cancel.is_set() and processed + skipped_trivial + skipped_errors < len(files):
        stop_reason = "cancelled"

    return FusionResult(
        parts=parts,
        total_tokens=budget.global_tokens_consumed,
        processed_file_count=processed,
        total_file_count=len(files),
        skipped_trivial=skipped_trivial,
        skipped_errors=skipped_errors,
        stop_reason=stop_reason,
        conflict_path=conflict_path,
        duration_seconds=time.perf_counter() - started,
        top_token_files=_top_files(per_file),
    )
