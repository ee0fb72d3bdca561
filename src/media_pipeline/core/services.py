"""Service implementations for the upload pipeline."""

import io
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from PIL import Image

from .error_handling import BatchOperationContextManager, with_error_handling
from .exceptions import (
    CANCELLED_MESSAGE,
    PROCESSING_ERROR_MESSAGE,
    BatchLimitExceededError,
    FailureReason,
    MediaPipelineError,
    NoFileProvidedError,
    StorageError,
    TooLargeError,
    UnsupportedTypeError,
    UploadCancelledError,
    UploadProcessingError,
    UploadRejectedError,
)
from .image_utils import (
    build_image_url,
    cover_crop,
    encode_image,
    fits_within,
    generate_unique_filename,
    normalize_mime_type,
    prepare_for_format,
    resize_to_fit,
    split_upload_name,
)
from .models import (
    ApiResponse,
    BatchResult,
    DerivativeOptions,
    DerivedAsset,
    ImageMetadata,
    ProcessingOutcome,
    RawFile,
    Rendition,
    StorageConfig,
    StoredOriginal,
    UploadedImage,
    UploadLimits,
)
from .observability import (
    LogContext,
    MetricsCollector,
    PerformanceMetrics,
    log_operation_end,
    log_operation_start,
)
from .protocols import (
    FileStoreProtocol,
    LoggerProtocol,
    ProcessBatchFunction,
    ProcessingService,
)
from ..processors.asyncio_processor import process_batch_async as asyncio_process_batch_async


class IngressValidator:
    """Rejects files by declared type, size and batch position. No I/O."""

    def __init__(self, limits: UploadLimits):
        self._limits = limits

    @property
    def allowed_types_label(self) -> str:
        return ", ".join(self._limits.allowed_types)

    def validate(self, raw_file: RawFile, position: int = 0) -> None:
        """
        Check a file against the upload rules.

        Checks run in a fixed order: extension, MIME type, size, then the
        file's position against the per-request limit.

        Raises:
            UnsupportedTypeError: Extension or MIME type not allowed
            TooLargeError: File larger than the configured maximum
            BatchLimitExceededError: File beyond the per-request limit
        """
        allowed = self._limits.allowed_types
        unsupported = (
            f"Only image files are allowed ({self.allowed_types_label}): "
            f"{raw_file.filename}"
        )

        _, extension = split_upload_name(raw_file.filename)
        if extension not in allowed:
            raise UnsupportedTypeError(unsupported, raw_file.filename)

        major, _, subtype = normalize_mime_type(raw_file.content_type).partition("/")
        if major != "image" or subtype not in allowed:
            raise UnsupportedTypeError(unsupported, raw_file.filename)

        size = max(raw_file.byte_length, raw_file.size or 0)
        if size > self._limits.max_file_size:
            raise TooLargeError(
                f"File too large: {raw_file.filename} exceeds "
                f"{self._limits.max_file_size} bytes",
                raw_file.filename,
            )

        if position >= self._limits.max_files_per_request:
            raise BatchLimitExceededError(
                f"Too many files: at most {self._limits.max_files_per_request} "
                f"files per request, {raw_file.filename} was not processed",
                raw_file.filename,
            )


class StorageAllocator:
    """Persists original bytes under collision-resistant names."""

    def __init__(
        self,
        storage: StorageConfig,
        file_store: FileStoreProtocol,
        logger: LoggerProtocol,
        max_name_attempts: int = 5,
    ):
        self._storage = storage
        self._file_store = file_store
        self._logger = logger
        self._max_name_attempts = max_name_attempts

    @with_error_handling
    def allocate(self, raw_file: RawFile) -> StoredOriginal:
        """Write the original into the images directory and describe it."""
        for _ in range(self._max_name_attempts):
            filename = generate_unique_filename(raw_file.filename)
            path = self._storage.images_dir / filename
            try:
                self._file_store.write(path, raw_file.content, exclusive=True)
            except FileExistsError:
                self._logger.warning(f"Name {filename} already taken, drawing another")
                continue

            self._logger.debug(f"Stored {raw_file.filename} as {filename}")
            return StoredOriginal(
                filename=filename,
                path=path,
                original_name=raw_file.filename,
                size_bytes=raw_file.byte_length,
                mime_type=normalize_mime_type(raw_file.content_type),
            )

        raise StorageError(f"Could not allocate a unique name for {raw_file.filename}")


class DerivativeGenerator:
    """Produces the display rendition and the thumbnail for a stored original."""

    def __init__(
        self,
        storage: StorageConfig,
        file_store: FileStoreProtocol,
        logger: LoggerProtocol,
        options: Optional[DerivativeOptions] = None,
    ):
        self._storage = storage
        self._file_store = file_store
        self._logger = logger
        self._options = options or DerivativeOptions()

    @property
    def options(self) -> DerivativeOptions:
        return self._options

    def processed_path(self, stored: StoredOriginal, output_format: str) -> Path:
        return self._storage.images_dir / f"{stored.stem}-processed.{output_format}"

    def thumbnail_path(self, stored: StoredOriginal, output_format: str) -> Path:
        return self._storage.thumbnails_dir / f"{stored.stem}-thumb.{output_format}"

    def artifact_paths(
        self, stored: StoredOriginal, options: Optional[DerivativeOptions] = None
    ) -> List[Path]:
        """Every path ``derive`` may write for this original."""
        output_format = (options or self._options).output_format
        return [
            self.processed_path(stored, output_format),
            self.thumbnail_path(stored, output_format),
        ]

    @with_error_handling
    def derive(
        self, stored: StoredOriginal, options: Optional[DerivativeOptions] = None
    ) -> DerivedAsset:
        """
        Build the derivatives for one stored original.

        The processed rendition is produced only when the original exceeds
        the bounding box. The thumbnail is always exactly square.
        """
        options = options or self._options
        output_format = options.output_format
        image_bytes = self._file_store.read(stored.path)

        with Image.open(io.BytesIO(image_bytes)) as image:
            image.load()
            width, height = image.size
            source = prepare_for_format(image, output_format)
            asset = DerivedAsset(original_width=width, original_height=height)

            if not fits_within(width, height, options.max_width, options.max_height):
                rendition = resize_to_fit(source, options.max_width, options.max_height)
                path = self.processed_path(stored, output_format)
                self._file_store.write(
                    path,
                    encode_image(rendition, output_format, options.quality, progressive=True),
                )
                asset.processed = Rendition(
                    kind="processed",
                    filename=path.name,
                    path=path,
                    width=rendition.width,
                    height=rendition.height,
                )
                self._logger.debug(
                    f"Resized {stored.filename} from {width}x{height} "
                    f"to {rendition.width}x{rendition.height}"
                )

            if options.make_thumbnail:
                thumbnail = cover_crop(source, options.thumbnail_size)
                path = self.thumbnail_path(stored, output_format)
                self._file_store.write(
                    path,
                    encode_image(
                        thumbnail, output_format, options.thumbnail_quality, progressive=True
                    ),
                )
                asset.thumbnail = Rendition(
                    kind="thumbnail",
                    filename=path.name,
                    path=path,
                    width=thumbnail.width,
                    height=thumbnail.height,
                )

        return asset


class CleanupSweeper:
    """Best-effort, idempotent removal of one file's artifacts."""

    def __init__(self, file_store: FileStoreProtocol, logger: LoggerProtocol):
        self._file_store = file_store
        self._logger = logger

    def cleanup(self, paths: Iterable[Path]) -> None:
        for path in paths:
            try:
                removed = self._file_store.remove(path)
            except OSError as exc:
                self._logger.warning(f"Could not remove {path}: {exc}")
                continue
            if removed:
                self._logger.debug(f"Removed {path}")


class UrlResolver:
    """Maps stored filenames to public URLs."""

    def __init__(self, base_url: Optional[str] = None):
        self._base_url = base_url

    def resolve_url(self, filename: str, kind: str = "original") -> str:
        return build_image_url(self._base_url, filename, kind)

    def describe(self, outcome: ProcessingOutcome) -> UploadedImage:
        """Turn a successful outcome into the outbound image record."""
        stored = outcome.stored
        derived = outcome.derived
        metadata = outcome.metadata
        if not outcome.success or stored is None or derived is None or metadata is None:
            raise ValueError(f"Cannot describe failed upload {outcome.filename}")

        display_name = derived.processed.filename if derived.processed else stored.filename
        thumbnail_url = None
        if derived.thumbnail is not None:
            thumbnail_url = self.resolve_url(derived.thumbnail.filename, "thumbnail")

        return UploadedImage(
            id="-".join(stored.filename.split("-", 2)[:2]),
            filename=stored.filename,
            original_url=self.resolve_url(stored.filename, "original"),
            url=self.resolve_url(
                display_name, "processed" if derived.processed else "original"
            ),
            thumbnail_url=thumbnail_url,
            size=metadata.size_bytes,
            mimetype=metadata.mime_type,
            width=metadata.width,
            height=metadata.height,
        )


class UploadProcessingService(ProcessingService):
    """Runs validate, allocate and derive for one file as an isolated unit."""

    def __init__(
        self,
        validator: IngressValidator,
        allocator: StorageAllocator,
        generator: DerivativeGenerator,
        sweeper: CleanupSweeper,
        logger: LoggerProtocol,
    ):
        self._validator = validator
        self._allocator = allocator
        self._generator = generator
        self._sweeper = sweeper
        self._logger = logger

    def run(
        self,
        raw_file: RawFile,
        position: int = 0,
        cancel_event: Optional[threading.Event] = None,
    ) -> ProcessingOutcome:
        """
        Process one file, raising on failure.

        Anything written for the file is removed before the error leaves
        this method. Rejections happen before any write.
        """
        start_time = time.perf_counter()
        log_context = self._log_context(raw_file, position)
        timings: Dict[str, float] = {}

        stage_start = time.perf_counter()
        self._validator.validate(raw_file, position)
        timings["validate"] = time.perf_counter() - stage_start

        stored: Optional[StoredOriginal] = None
        try:
            self._check_cancelled(cancel_event)

            stage_start = time.perf_counter()
            self._logger.debug("Storing original", log_context.with_operation("allocate"))
            stored = self._allocator.allocate(raw_file)
            timings["allocate"] = time.perf_counter() - stage_start

            self._check_cancelled(cancel_event)

            stage_start = time.perf_counter()
            self._logger.debug(
                "Generating derivatives",
                log_context.with_operation("derive").with_metadata(stored=stored.filename),
            )
            derived = self._generator.derive(stored)
            timings["derive"] = time.perf_counter() - stage_start

            self._check_cancelled(cancel_event)
        except Exception:
            if stored is not None:
                self._sweeper.cleanup([stored.path, *self._generator.artifact_paths(stored)])
            raise

        outcome = ProcessingOutcome(
            filename=raw_file.filename,
            success=True,
            stored=stored,
            derived=derived,
            metadata=ImageMetadata(
                width=derived.original_width,
                height=derived.original_height,
                size_bytes=stored.size_bytes,
                mime_type=stored.mime_type,
            ),
            processing_time=time.perf_counter() - start_time,
            stage_timings=timings,
        )
        self._logger.info(
            "Successfully processed upload",
            log_context,
            stored=stored.filename,
            processing_time_ms=round(outcome.processing_time * 1000, 2),
        )
        return outcome

    def process_file(
        self,
        raw_file: RawFile,
        position: int = 0,
        cancel_event: Optional[threading.Event] = None,
    ) -> ProcessingOutcome:
        """Process one file and convert any failure into a failed outcome."""
        start_time = time.perf_counter()
        try:
            return self.run(raw_file, position, cancel_event)
        except UploadRejectedError as e:
            self._logger.warning(
                "Upload rejected",
                self._log_context(raw_file, position),
                reason=e.reason.value,
                error=str(e),
            )
            return self._failure(raw_file, e.reason, str(e), start_time)
        except UploadCancelledError as e:
            self._logger.warning("Upload cancelled", self._log_context(raw_file, position))
            return self._failure(raw_file, e.reason, CANCELLED_MESSAGE, start_time)
        except Exception as e:
            self._logger.error(
                "Upload processing failed",
                self._log_context(raw_file, position).with_metadata(error=str(e)),
                exc_info=True,
            )
            return self._failure(
                raw_file, FailureReason.IO_ERROR, PROCESSING_ERROR_MESSAGE, start_time
            )

    def discard(self, outcome: ProcessingOutcome) -> None:
        paths = outcome.artifact_paths()
        if outcome.stored is not None:
            paths.extend(self._generator.artifact_paths(outcome.stored))
        self._sweeper.cleanup(paths)

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise UploadCancelledError(CANCELLED_MESSAGE)

    @staticmethod
    def _log_context(raw_file: RawFile, position: int) -> LogContext:
        return LogContext(
            correlation_id=f"upload_{position}_{int(time.time() * 1000)}",
            operation="process_file",
            component="upload_processing_service",
        ).with_metadata(filename=raw_file.filename, position=position)

    @staticmethod
    def _failure(
        raw_file: RawFile, reason: FailureReason, error: str, start_time: float
    ) -> ProcessingOutcome:
        return ProcessingOutcome(
            filename=raw_file.filename,
            success=False,
            reason=reason,
            error=error,
            processing_time=time.perf_counter() - start_time,
        )


class UploadOrchestrator:
    """Entry point for single and batch uploads."""

    def __init__(
        self,
        processing_service: ProcessingService,
        url_resolver: UrlResolver,
        storage: StorageConfig,
        file_store: FileStoreProtocol,
        logger: LoggerProtocol,
        process_batch_fn: ProcessBatchFunction,
        max_workers: int = 4,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._processing_service = processing_service
        self._url_resolver = url_resolver
        self._storage = storage
        self._file_store = file_store
        self._logger = logger
        self._process_batch_fn = process_batch_fn
        self._max_workers = max_workers
        self._metrics_collector = metrics_collector
        self._metrics_lock = threading.Lock()

    @property
    def url_resolver(self) -> UrlResolver:
        return self._url_resolver

    @property
    def metrics_collector(self) -> Optional[MetricsCollector]:
        return self._metrics_collector

    def setup(self) -> None:
        """Create the upload directories. Safe to call more than once."""
        for directory in self._storage.directories():
            self._file_store.ensure_directory(directory)
        self._logger.info(f"Upload directories ready under {self._storage.root_dir}")

    def process_batch(
        self,
        files: Sequence[RawFile],
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchResult:
        """Process every file independently and aggregate the outcomes in input order."""
        files = self._require_files(files)
        context = log_operation_start(
            "process_batch",
            self._logger,
            LogContext(component="upload_orchestrator"),
            file_count=len(files),
        )

        with BatchOperationContextManager(
            operation_name=f"Upload batch {context.correlation_id}"
        ) as batch_manager:
            outcomes = self._process_batch_fn(files, self._processing_service, cancel_event)
            for outcome in outcomes:
                if not outcome.success:
                    batch_manager.add_error(outcome.error, item_identifier=outcome.filename)

        return self._finish_batch(outcomes, context)

    async def process_batch_async(
        self,
        files: Sequence[RawFile],
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchResult:
        """
        Process a batch from inside a running event loop.

        If the awaiting task is cancelled, in-flight files are abandoned and
        everything the batch wrote is removed.
        """
        files = self._require_files(files)
        context = log_operation_start(
            "process_batch_async",
            self._logger,
            LogContext(component="upload_orchestrator"),
            file_count=len(files),
        )
        outcomes = await asyncio_process_batch_async(
            files,
            self._processing_service,
            cancel_event,
            max_workers=self._max_workers,
        )
        return self._finish_batch(outcomes, context)

    def upload_single(
        self,
        raw_file: Optional[RawFile],
        cancel_event: Optional[threading.Event] = None,
    ) -> UploadedImage:
        """
        Process one file and describe it.

        Raises:
            NoFileProvidedError: No file was supplied
            UploadRejectedError: The file failed validation
            UploadProcessingError: Storing or deriving failed; nothing is left on disk
        """
        if raw_file is None:
            raise NoFileProvidedError("No image file provided")

        try:
            outcome = self._processing_service.run(raw_file, 0, cancel_event)
        except UploadRejectedError:
            raise
        except MediaPipelineError as exc:
            self._logger.error(f"{PROCESSING_ERROR_MESSAGE}: {exc}")
            raise UploadProcessingError(PROCESSING_ERROR_MESSAGE) from exc
        except Exception as exc:
            self._logger.error(f"{PROCESSING_ERROR_MESSAGE}: {exc}", exc_info=True)
            raise UploadProcessingError(PROCESSING_ERROR_MESSAGE) from exc

        self._record_metrics([outcome], LogContext(operation="upload_single"))
        return self._url_resolver.describe(outcome)

    def upload_single_response(self, raw_file: Optional[RawFile]) -> ApiResponse:
        try:
            image = self.upload_single(raw_file)
        except MediaPipelineError as exc:
            return ApiResponse(success=False, error=str(exc))
        return ApiResponse(
            success=True,
            data=image.model_dump(by_alias=True),
            message="Image uploaded and processed successfully",
        )

    @staticmethod
    def _require_files(files: Sequence[RawFile]) -> List[RawFile]:
        files = list(files or [])
        if not files:
            raise NoFileProvidedError("No image files provided")
        return files

    def _finish_batch(
        self, outcomes: List[ProcessingOutcome], context: LogContext
    ) -> BatchResult:
        result = BatchResult(
            outcomes=outcomes,
            images=[self._url_resolver.describe(o) for o in outcomes if o.success],
        )
        self._record_metrics(outcomes, context)
        log_operation_end(
            context.operation,
            self._logger,
            context,
            success=result.success,
            error_message=result.message,
            succeeded=result.succeeded_count,
            failed=result.failed_count,
        )
        return result

    def _record_metrics(
        self, outcomes: Iterable[ProcessingOutcome], context: LogContext
    ) -> None:
        """
        Record timings for one request, log their summary, then reset.

        The collector holds at most one request's metrics at a time.
        """
        if self._metrics_collector is None:
            return
        collector = self._metrics_collector

        with self._metrics_lock:
            for outcome in outcomes:
                collector.record_metric(
                    PerformanceMetrics(
                        operation="process_file",
                        duration=outcome.processing_time,
                        success=outcome.success,
                        error_message=outcome.error or None,
                        metadata={"filename": outcome.filename},
                    )
                )
                for stage, duration in outcome.stage_timings.items():
                    collector.record_metric(
                        PerformanceMetrics(operation=stage, duration=duration, success=True)
                    )

            summary = collector.get_summary("process_file")
            stage_averages = {}
            for stage in ("validate", "allocate", "derive"):
                stage_summary = collector.get_summary(stage)
                if stage_summary:
                    stage_averages[f"{stage}_avg_ms"] = round(
                        stage_summary["avg_duration"] * 1000, 2
                    )
            collector.clear_metrics()

        self._logger.info(
            "Upload metrics",
            context,
            files=summary["total_operations"],
            succeeded=summary["successful_operations"],
            avg_ms=round(summary["avg_duration"] * 1000, 2),
            max_ms=round(summary["max_duration"] * 1000, 2),
            **stage_averages,
        )
