from __future__ import annotations


class MetadataEngineError(RuntimeError):
    """Base class for metadata engine failures."""


class StorageError(MetadataEngineError):
    """Raised when the timing store cannot be read or written."""


class CatalogError(MetadataEngineError):
    """Raised at startup when a static catalog is misconfigured."""


class ConfigError(MetadataEngineError):
    """Raised when the engine configuration file is unusable."""
