class ScannerError(Exception):
    """Base class for application-specific errors."""
    pass

class ConfigError(ScannerError):
    """Errors related to configuration loading or validation."""
    pass

class MetadataError(ScannerError):
    """Errors related to fetching or processing metadata."""
    pass

class MetadataNotFoundError(MetadataError):
    """The metadata API answered with a definitive "not found" for the requested resource."""
    pass

class DirectoryScanError(ScannerError):
    """A media folder could not be read."""
    pass

class CatalogError(ScannerError):
    """Errors raised by the catalog store."""
    pass

class EntityNotFoundError(CatalogError):
    """Lookup by an id that does not exist in the catalog."""
    pass

class ConflictNotFoundError(EntityNotFoundError):
    """Resolve or delete was requested for an unknown scanning conflict."""
    pass

class ScanInProgressError(ScannerError):
    """A full scan was requested while another one is still running."""
    pass

class FatalScanError(ScannerError):
    """An unexpected error escaped the per-file and per-folder guards of a scan."""
    pass
