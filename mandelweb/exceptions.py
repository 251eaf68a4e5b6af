class MandelwebError(Exception):
    """Base class for errors raised by mandelweb."""


class InvalidConfig(MandelwebError, ValueError):
    """Raised when render parameters or server settings cannot produce a well-defined render."""


class RenderError(MandelwebError):
    """Raised when the concurrent pipeline cannot assemble a complete raster."""


class RenderTimeout(RenderError):
    """Raised when rows are still outstanding after the collector's bounded wait."""
