"""Image ingestion and derivative generation for catalog assets."""

__version__ = "0.1.0"
