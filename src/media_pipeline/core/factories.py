"""Factory classes for creating configured service instances."""

from functools import partial
from typing import Optional

from .models import PipelineConfig
from .observability import (
    LogLevel,
    MetricsCollector,
    ObservabilityConfig,
    create_logger,
    create_metrics_collector,
)
from .protocols import FileStoreProtocol, LoggerProtocol, ProcessBatchFunction
from .services import (
    CleanupSweeper,
    DerivativeGenerator,
    IngressValidator,
    StorageAllocator,
    UploadOrchestrator,
    UploadProcessingService,
    UrlResolver,
)
from .storage import LocalFileStore
from ..processors import (
    asyncio_process_batch,
    multithread_process_batch,
    serial_process_batch,
)


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str, debug: bool = False) -> LoggerProtocol:
        """Create a configured structured logger."""
        config = ObservabilityConfig(
            log_level=LogLevel.DEBUG if debug else LogLevel.INFO,
            component_name=name,
        )
        return create_logger(name, config)


class BatchProcessorFactory:
    """Factory selecting the batch strategy named in the configuration."""

    @staticmethod
    def create_process_batch_fn(config: PipelineConfig) -> ProcessBatchFunction:
        if config.processor == "multithread":
            return partial(multithread_process_batch, max_workers=config.concurrency)
        if config.processor == "asyncio":
            return partial(asyncio_process_batch, max_workers=config.concurrency)
        return serial_process_batch


class UploadPipelineFactory:
    """Factory for creating the complete upload pipeline."""

    @staticmethod
    def create_pipeline(
        config: Optional[PipelineConfig] = None,
        file_store: Optional[FileStoreProtocol] = None,
        logger: Optional[LoggerProtocol] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        setup: bool = True,
    ) -> UploadOrchestrator:
        """
        Create a fully configured upload pipeline.

        Directories are created here, once, unless ``setup`` is False.
        Metrics are collected only when passed a collector or when
        ``config.collect_metrics`` is set.
        """
        if config is None:
            config = PipelineConfig.from_env()

        if file_store is None:
            file_store = LocalFileStore()

        if logger is None:
            logger = LoggerFactory.create_logger("upload_pipeline", debug=config.debug)

        if metrics_collector is None:
            metrics_collector = create_metrics_collector(
                ObservabilityConfig(enable_metrics=config.collect_metrics)
            )

        validator = IngressValidator(config.limits)
        allocator = StorageAllocator(config.storage, file_store, logger)
        generator = DerivativeGenerator(
            config.storage, file_store, logger, options=config.derivatives
        )
        sweeper = CleanupSweeper(file_store, logger)
        processing_service = UploadProcessingService(
            validator, allocator, generator, sweeper, logger
        )

        orchestrator = UploadOrchestrator(
            processing_service=processing_service,
            url_resolver=UrlResolver(config.base_url),
            storage=config.storage,
            file_store=file_store,
            logger=logger,
            process_batch_fn=BatchProcessorFactory.create_process_batch_fn(config),
            max_workers=config.concurrency,
            metrics_collector=metrics_collector,
        )

        if setup:
            orchestrator.setup()

        return orchestrator
