"""Common functions shared across all processor implementations."""

from ..core import get_logger
from ..core.exceptions import PROCESSING_ERROR_MESSAGE, FailureReason
from ..core.models import PipelineConfig, ProcessingOutcome, RawFile


def failure_outcome(raw_file: RawFile, error: BaseException) -> ProcessingOutcome:
    """Outcome for a file whose worker died before reporting back."""
    logger = get_logger("processor")
    logger.error(f"[{raw_file.filename}] Worker failed: {error}")
    return ProcessingOutcome(
        filename=raw_file.filename,
        success=False,
        reason=FailureReason.IO_ERROR,
        error=PROCESSING_ERROR_MESSAGE,
    )


def log_configuration(config: PipelineConfig, processor_name: str) -> None:
    """Log the pipeline configuration."""
    logger = get_logger("processor")
    limits = config.limits
    options = config.derivatives

    logger.info("=" * 80)
    logger.info(f"{processor_name.upper()} UPLOAD PROCESSOR")
    logger.info("=" * 80)

    logger.info("STORAGE:")
    logger.info(f"  Images:        {config.storage.images_dir}")
    logger.info(f"  Thumbnails:    {config.storage.thumbnails_dir}")
    logger.info(f"  Base URL:      {config.base_url}")
    logger.info("")

    logger.info("LIMITS:")
    logger.info(f"  Max file size: {limits.max_file_size} bytes")
    logger.info(f"  Max files:     {limits.max_files_per_request}")
    logger.info(f"  Allowed types: {', '.join(limits.allowed_types)}")
    logger.info("")

    logger.info("DERIVATIVES:")
    logger.info(
        f"  Display:       fit inside {options.max_width}x{options.max_height}, "
        f"{options.output_format} q{options.quality}"
    )
    if options.make_thumbnail:
        logger.info(f"  Thumbnail:     {options.thumbnail_size}px square")
    else:
        logger.info("  Thumbnail:     disabled")
    logger.info("=" * 80)
