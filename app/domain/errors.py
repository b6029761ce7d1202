# app/domain/errors.py


class FrameNotFoundError(KeyError):
    """Raised when a frame id is not part of the current frame list."""


class InvalidGeometryError(ValueError):
    """Raised when a geometry edit would leave a frame non-finite or degenerate."""


class BackgroundLoadError(RuntimeError):
    pass


class ExportError(RuntimeError):
    """The export was aborted; no partial artifact is produced."""
