"""Shared data models for the media pipeline."""

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError, FailureReason

DEFAULT_BASE_URL = "http://localhost:5000"
DEFAULT_MAX_FILE_SIZE = 5 * 1024 * 1024
DEFAULT_MAX_FILES_PER_REQUEST = 10
DEFAULT_ALLOWED_TYPES = ("jpeg", "jpg", "png", "gif", "webp")
PRODUCTION_UPLOAD_DIR = "/opt/uploads"

ImageKind = Literal["original", "processed", "thumbnail"]
OutputFormat = Literal["jpeg", "png", "webp"]
ProcessorName = Literal["serial", "multithread", "asyncio"]


class StorageConfig(BaseModel):
    """Where originals and derivatives live on disk."""

    root_dir: Path = Field(default_factory=lambda: Path.cwd() / "uploads")
    images_subdir: str = "images"
    thumbnails_subdir: str = "thumbnails"

    @property
    def images_dir(self) -> Path:
        return self.root_dir / self.images_subdir

    @property
    def thumbnails_dir(self) -> Path:
        return self.root_dir / self.thumbnails_subdir

    def directories(self) -> List[Path]:
        return [self.root_dir, self.images_dir, self.thumbnails_dir]


class UploadLimits(BaseModel):
    """Ingress rules checked before any disk I/O."""

    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0)
    max_files_per_request: int = Field(default=DEFAULT_MAX_FILES_PER_REQUEST, gt=0)
    allowed_types: Tuple[str, ...] = DEFAULT_ALLOWED_TYPES

    @field_validator("allowed_types")
    @classmethod
    def _normalize_types(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        normalized = tuple(t.lower().lstrip(".") for t in value if t.strip())
        if not normalized:
            raise ValueError("allowed_types must not be empty")
        return normalized


class DerivativeOptions(BaseModel):
    """Options for the display rendition and the thumbnail."""

    max_width: int = Field(default=1200, gt=0)
    max_height: int = Field(default=1200, gt=0)
    quality: int = Field(default=85, ge=1, le=100)
    output_format: OutputFormat = "jpeg"
    make_thumbnail: bool = True
    thumbnail_size: int = Field(default=300, gt=0)
    thumbnail_quality: int = Field(default=80, ge=1, le=100)


class PipelineConfig(BaseModel):
    """Configuration for the upload pipeline."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    limits: UploadLimits = Field(default_factory=UploadLimits)
    derivatives: DerivativeOptions = Field(default_factory=DerivativeOptions)
    base_url: str = DEFAULT_BASE_URL
    processor: ProcessorName = "serial"
    concurrency: int = Field(default=4, gt=0)
    collect_metrics: bool = False
    debug: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> "PipelineConfig":
        """
        Build a configuration from environment variables.

        See ``UploadSettings`` for the variables read. Keyword overrides
        replace the corresponding top-level fields.
        """
        try:
            return UploadSettings().to_pipeline_config(**overrides)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid pipeline configuration: {exc}") from exc


class UploadSettings(BaseSettings):
    """
    Upload settings read from the environment.

    Environment Variables:
        UPLOAD_DIR: Root upload directory
        MEDIA_ENV: "production" defaults the root to /opt/uploads
        BASE_URL: Base URL used for generated links
        MAX_FILE_SIZE: Maximum bytes per file
        MAX_FILES_PER_REQUEST: Maximum files per batch
        UPLOAD_PROCESSOR: serial, multithread or asyncio
        UPLOAD_CONCURRENCY: Worker count for concurrent processors
        COLLECT_METRICS: Record and log per-request timings
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    upload_dir: Optional[Path] = None
    media_env: str = "development"
    base_url: str = DEFAULT_BASE_URL
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    max_files_per_request: int = DEFAULT_MAX_FILES_PER_REQUEST
    upload_processor: ProcessorName = "serial"
    upload_concurrency: int = 4
    collect_metrics: bool = False

    @field_validator("upload_processor", mode="before")
    @classmethod
    def _lower_processor(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @property
    def root_dir(self) -> Path:
        if self.upload_dir is not None:
            return self.upload_dir
        if self.media_env.lower() == "production":
            return Path(PRODUCTION_UPLOAD_DIR)
        return Path.cwd() / "uploads"

    def to_pipeline_config(self, **overrides: Any) -> PipelineConfig:
        values: Dict[str, Any] = {
            "storage": StorageConfig(root_dir=self.root_dir),
            "limits": UploadLimits(
                max_file_size=self.max_file_size,
                max_files_per_request=self.max_files_per_request,
            ),
            "base_url": self.base_url,
            "processor": self.upload_processor,
            "concurrency": self.upload_concurrency,
            "collect_metrics": self.collect_metrics,
        }
        values.update(overrides)
        return PipelineConfig(**values)


class RawFile(BaseModel):
    """An uploaded file as received from the client."""

    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str
    content: bytes = Field(repr=False)
    size: Optional[int] = None

    @property
    def byte_length(self) -> int:
        return len(self.content)


class StoredOriginal(BaseModel):
    """A raw file persisted under its unique name."""

    filename: str
    path: Path
    original_name: str
    size_bytes: int
    mime_type: str

    @property
    def stem(self) -> str:
        return self.path.stem


class Rendition(BaseModel):
    """A derived image written next to its original."""

    kind: Literal["processed", "thumbnail"]
    filename: str
    path: Path
    width: int
    height: int


class DerivedAsset(BaseModel):
    """Derivatives produced for one stored original."""

    original_width: int
    original_height: int
    processed: Optional[Rendition] = None
    thumbnail: Optional[Rendition] = None

    def paths(self) -> List[Path]:
        return [r.path for r in (self.processed, self.thumbnail) if r is not None]


class ImageMetadata(BaseModel):
    """Facts about the original image reported back to the caller."""

    width: int
    height: int
    size_bytes: int
    mime_type: str


class ProcessingOutcome(BaseModel):
    """Result of processing a single uploaded file."""

    filename: str
    success: bool = False
    reason: Optional[FailureReason] = None
    error: str = ""
    stored: Optional[StoredOriginal] = None
    derived: Optional[DerivedAsset] = None
    metadata: Optional[ImageMetadata] = None
    processing_time: float = 0.0
    stage_timings: Dict[str, float] = Field(default_factory=dict)

    def artifact_paths(self) -> List[Path]:
        paths: List[Path] = []
        if self.stored is not None:
            paths.append(self.stored.path)
        if self.derived is not None:
            paths.extend(self.derived.paths())
        return paths


class UploadedImage(BaseModel):
    """Outbound description of a successfully processed image."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    filename: str
    original_url: str = Field(alias="originalUrl")
    url: str
    thumbnail_url: Optional[str] = Field(default=None, alias="thumbnailUrl")
    size: int
    mimetype: str
    width: int
    height: int


class ApiResponse(BaseModel):
    """Envelope handed to the HTTP layer."""

    success: bool
    data: Any = None
    message: Optional[str] = None
    error: Optional[str] = None


class BatchResult(BaseModel):
    """Ordered outcomes for one upload request."""

    outcomes: List[ProcessingOutcome] = Field(default_factory=list)
    images: List[UploadedImage] = Field(default_factory=list)

    @property
    def succeeded(self) -> List[ProcessingOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[str]:
        return [o.filename for o in self.outcomes if not o.success]

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def success(self) -> bool:
        return self.succeeded_count > 0

    @property
    def message(self) -> str:
        if not self.success:
            return "Failed to process any images"
        if self.failed:
            return (
                f"{self.succeeded_count} images processed successfully. "
                f"Failed: {', '.join(self.failed)}"
            )
        return f"{self.succeeded_count} images uploaded and processed successfully"

    def to_api_response(self) -> ApiResponse:
        if not self.success:
            return ApiResponse(success=False, error=self.message)
        return ApiResponse(
            success=True,
            data=[image.model_dump(by_alias=True) for image in self.images],
            message=self.message,
        )
