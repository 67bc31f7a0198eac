"""
Batch orchestrator: decode, split, name and encode every input image.

Why this module exists:
- It owns the per-item state machine
  (pending -> decoding -> splitting -> naming -> encoding-left ->
  encoding-right -> done) and turns every failure into that item's result.
- One bad image never stops the batch, and the report always has one
  result per input, in input order.

Items run on a thread pool. Each worker owns its buffers; only this
module's calling thread touches the result list and the recorder.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
import threading
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from . import __version__, codec, splitter
from .config import SplitOptions
from .manifest import ManifestRecorder
from .naming import NamingStrategy
from .splitter import Side
from .utils import EncodeError, PipelineError, atomic_output


TOOL_NAME = "rename-split"
CANCELLED_CAUSE = "Batch cancelled."


class Stage(str, Enum):
    PENDING = "pending"
    DECODING = "decoding"
    SPLITTING = "splitting"
    NAMING = "naming"
    ENCODING_LEFT = "encoding-left"
    ENCODING_RIGHT = "encoding-right"
    DONE = "done"


@dataclass(frozen=True)
class BatchItem:
    ordinal: int
    source: Path


@dataclass(frozen=True)
class ItemSuccess:
    """Both halves exist at their final paths (or would, for dry-run)."""

    ordinal: int
    source: Path
    left_path: Path
    right_path: Path
    status: str = "written"

    ok = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ordinal": self.ordinal,
            "source": str(self.source),
            "status": self.status,
            "left": str(self.left_path),
            "right": str(self.right_path),
        }


@dataclass(frozen=True)
class ItemFailure:
    """The item stopped at `stage`; neither of its final paths was changed."""

    ordinal: int
    source: Path
    stage: Stage
    cause: str
    error_type: str
    cancelled: bool = False

    ok = False

    @property
    def status(self) -> str:
        return "cancelled" if self.cancelled else "error"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ordinal": self.ordinal,
            "source": str(self.source),
            "status": self.status,
            "stage": self.stage.value,
            "error_type": self.error_type,
            "error": self.cause,
        }


ItemResult = Union[ItemSuccess, ItemFailure]
ProgressCallback = Callable[[ItemResult], None]


@dataclass(frozen=True)
class BatchReport:
    """Ordered per-item results of one batch."""

    results: Tuple[ItemResult, ...]
    out_dir: Path

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[ItemResult]:
        return iter(self.results)

    def __getitem__(self, index: int) -> ItemResult:
        return self.results[index]

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)

    @property
    def failures(self) -> List[ItemFailure]:
        return [result for result in self.results if isinstance(result, ItemFailure)]

    def counts(self) -> Dict[str, int]:
        counts = {"written": 0, "skipped": 0, "dry-run": 0, "error": 0, "cancelled": 0}
        for result in self.results:
            counts[result.status] = counts.get(result.status, 0) + 1
        return counts

    def summary(self) -> Dict[str, Any]:
        counts = self.counts()
        return {
            "items": len(self.results),
            "succeeded": len(self.results) - len(self.failures),
            "failed": len(self.failures),
            **counts,
            "output_dir": str(self.out_dir),
            "status": "ok" if self.ok else "partial",
        }


def _discard(paths: Sequence[Path]) -> List[str]:
    """Remove outputs written for a failed item; return cleanup problems."""

    problems: List[str] = []
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            problems.append(f"could not remove partial output {path}: {exc}")
    return problems


def _failure(
    item: BatchItem,
    stage: Stage,
    exc: BaseException,
    cleanup_problems: Sequence[str] = (),
) -> ItemFailure:
    cause = str(exc) or type(exc).__name__
    if not isinstance(exc, PipelineError):
        cause = f"Unexpected error: {cause}"
    if cleanup_problems:
        cause = f"{cause} ({'; '.join(cleanup_problems)})"
    return ItemFailure(
        ordinal=item.ordinal,
        source=item.source,
        stage=stage,
        cause=cause,
        error_type=type(exc).__name__,
    )


def _cancelled(item: BatchItem, stage: Stage) -> ItemFailure:
    return ItemFailure(
        ordinal=item.ordinal,
        source=item.source,
        stage=stage,
        cause=CANCELLED_CAUSE,
        error_type="Cancelled",
        cancelled=True,
    )


def process_item(
    item: BatchItem,
    naming: NamingStrategy,
    options: SplitOptions,
    cancel_event: Optional[threading.Event] = None,
) -> ItemResult:
    """
    Run one item through the pipeline and return its result.

    Never raises. Neither final path changes unless both halves encoded, so
    a failed item never leaves an unpaired half behind.
    """

    if cancel_event is not None and cancel_event.is_set():
        return _cancelled(item, Stage.PENDING)

    stage = Stage.DECODING
    source: Optional[codec.SourceImage] = None
    halves: Tuple[splitter.HalfImage, ...] = ()
    written: List[Path] = []

    try:
        source = codec.decode(item.source)

        stage = Stage.SPLITTING
        halves = splitter.split(source)
        left, right = halves
        source_format = source.format
        dpi = options.dpi_pair if options.dpi is not None else source.dpi
        source.release()
        source = None

        stage = Stage.NAMING
        image_format = codec.resolve_output_format(source_format, options.output_format)
        extension = codec.extension_for(image_format, item.source.suffix)
        left_path = naming.output_path(item.ordinal, Side.LEFT, extension)
        right_path = naming.output_path(item.ordinal, Side.RIGHT, extension)

        if not options.overwrite_existing:
            left_exists = left_path.exists()
            right_exists = right_path.exists()
            if left_exists and right_exists:
                return ItemSuccess(
                    ordinal=item.ordinal,
                    source=item.source,
                    left_path=left_path,
                    right_path=right_path,
                    status="skipped",
                )
            if left_exists or right_exists:
                stage = Stage.ENCODING_LEFT if left_exists else Stage.ENCODING_RIGHT
                lone = left_path if left_exists else right_path
                raise EncodeError(
                    f"{lone} already exists but its pair does not; "
                    "enable overwrite to regenerate both halves."
                )

        if options.dry_run:
            return ItemSuccess(
                ordinal=item.ordinal,
                source=item.source,
                left_path=left_path,
                right_path=right_path,
                status="dry-run",
            )

        if cancel_event is not None and cancel_event.is_set():
            return _cancelled(item, stage)

        # Both halves are staged next to their final paths and only moved in
        # once both encoded, so a failure leaves any previous pair intact.
        stage = Stage.ENCODING_LEFT
        naming.out_dir.mkdir(parents=True, exist_ok=True)
        with atomic_output(left_path) as left_staged:
            codec.encode(left.image, left_staged, image_format, quality=options.quality, dpi=dpi)

            stage = Stage.ENCODING_RIGHT
            with atomic_output(right_path) as right_staged:
                codec.encode(
                    right.image, right_staged, image_format, quality=options.quality, dpi=dpi
                )
            written.append(right_path)
        written.append(left_path)
    except Exception as exc:  # includes codec, filesystem and naming errors
        if len(written) == 1:
            # The right half landed but the left could not be moved in.
            written.append(left_path)
        return _failure(item, stage, exc, _discard(written))
    finally:
        if source is not None:
            source.release()
        for half in halves:
            half.release()

    return ItemSuccess(
        ordinal=item.ordinal,
        source=item.source,
        left_path=left_path,
        right_path=right_path,
    )


def _record_result(
    recorder: ManifestRecorder,
    result: ItemResult,
    position: int,
    total: int,
) -> None:
    name = result.source.name
    if isinstance(result, ItemSuccess):
        if result.status == "skipped":
            recorder.log(f"Skipping existing outputs for {name} ({position}/{total})")
        elif result.status == "dry-run":
            recorder.log(
                f"[dry-run] Would split {name} ({position}/{total}) -> "
                f"{result.left_path}, {result.right_path}"
            )
        else:
            recorder.log(
                f"Split {name} ({position}/{total}) -> "
                f"{result.left_path}, {result.right_path}"
            )
    elif result.cancelled:
        recorder.log(f"Cancelled {name} ({position}/{total})", level="warning")
    else:
        recorder.log(
            f"Failed {name} ({position}/{total}) at {result.stage.value}: {result.cause}",
            level="error",
        )
    details = result.to_dict()
    status = details.pop("status")
    recorder.add_action("split_image", status, **details)


def _log_naming_plan(recorder: ManifestRecorder, naming: NamingStrategy) -> None:
    for ordinal, identity in enumerate(naming.identities):
        if not naming.is_disambiguated(ordinal):
            continue
        try:
            stem = naming.stem(ordinal)
        except PipelineError as exc:
            recorder.log(str(exc), level="warning")
            continue
        recorder.log(
            f"Base name '{identity}' is shared in this batch; "
            f"item {ordinal} will be written as '{stem}'.",
            level="warning",
        )


def run_batch(
    sources: Sequence[Union[str, Path]],
    dest_dir: Union[str, Path],
    options: Optional[SplitOptions] = None,
    *,
    recorder: Optional[ManifestRecorder] = None,
    progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BatchReport:
    """
    Split every source into <dest>/<name>_1.<ext> and <dest>/<name>_2.<ext>.

    Returns once every item has succeeded, failed or been cancelled. The
    progress callback is called from this thread once per finished item.
    """

    options = options or SplitOptions()
    dest_dir = Path(dest_dir)
    if recorder is None:
        recorder = ManifestRecorder(
            tool_name=TOOL_NAME,
            tool_version=__version__,
            console_stream=None,
        )

    items = [BatchItem(ordinal, Path(source)) for ordinal, source in enumerate(sources)]
    naming = NamingStrategy(
        dest_dir,
        [codec.base_identity(item.source) for item in items],
        mode=options.naming,
        subdir=options.subdir,
    )
    results: List[Optional[ItemResult]] = [None] * len(items)

    recorder.inputs["sources"] = [str(item.source) for item in items]
    recorder.outputs["out_dir"] = str(naming.out_dir)

    if not items:
        recorder.log("No input images to split.")
        return BatchReport(results=(), out_dir=naming.out_dir)

    recorder.log(f"Splitting {len(items)} image(s) into {naming.out_dir}.")
    _log_naming_plan(recorder, naming)

    total = len(items)
    if cancel_event is None:
        cancel_event = threading.Event()
    with ThreadPoolExecutor(
        max_workers=options.workers or None,
        thread_name_prefix="rename-split",
    ) as executor:
        futures = {
            executor.submit(process_item, item, naming, options, cancel_event): item
            for item in items
        }
        try:
            for position, future in enumerate(as_completed(futures), start=1):
                item = futures[future]
                try:
                    result = future.result()
                except Exception as exc:  # pragma: no cover - process_item returns its own failures
                    result = _failure(item, Stage.PENDING, exc)
                results[item.ordinal] = result
                _record_result(recorder, result, position, total)

                if progress is not None:
                    try:
                        progress(result)
                    except Exception as exc:
                        recorder.log(f"Progress callback failed: {exc}", level="error")
        except KeyboardInterrupt:
            # Let in-flight items stop before writing; the pool still drains.
            cancel_event.set()
            raise

    report = BatchReport(
        results=tuple(result for result in results if result is not None),
        out_dir=naming.out_dir,
    )
    counts = report.counts()
    recorder.log(
        f"Done: {counts['written']} written, {counts['skipped']} skipped, "
        f"{counts['dry-run']} dry-run, {counts['error']} failed, "
        f"{counts['cancelled']} cancelled."
    )
    return report
