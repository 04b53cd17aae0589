class PhotoJourneyError(Exception):
    """Base class for all pipeline errors"""


class GeocodeError(PhotoJourneyError):
    """Geocoding service or network failure (distinct from a lookup with zero results)"""


class PhotoProcessingError(PhotoJourneyError):
    """A single photo could not be turned into a record; the run continues without it"""

    stage = 'unknown'

    def __init__(self, file_name: str, reason: str, stage: str | None = None):
        self.file_name = file_name
        self.reason = reason
        if stage is not None:
            self.stage = stage
        super().__init__(f"{file_name} [{self.stage}]: {reason}")


class ImageDecodeError(PhotoProcessingError):
    stage = 'decode'


class MissingMetadataError(PhotoProcessingError):
    """Required capture metadata (the timestamp) is absent"""

    stage = 'metadata'


class GeocodeFailedError(PhotoProcessingError):
    stage = 'geocode'


class ThumbnailError(PhotoProcessingError):
    stage = 'thumbnail'


class RunError(PhotoJourneyError):
    """Run-level failure; nothing durable was produced"""

    stage = 'run'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SourceDirectoryError(RunError):
    stage = 'enumerate'


class ExportError(RunError):
    stage = 'export'
