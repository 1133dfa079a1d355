"""Exception types raised by the layermark pipeline."""


class LayermarkError(Exception):
    """Base class for pipeline failures. ``stage`` names the step that failed."""

    def __init__(self, message, stage=None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self):
        if self.stage:
            return f"{self.stage}: {self.message}"
        return self.message


class InputError(LayermarkError):
    """The source raster could not be decoded or holds no pixels."""


class MeshGenerationError(LayermarkError):
    """Relief or mesh construction failed."""


class EncodingError(LayermarkError):
    """STL, 3MF or zip serialization failed."""


class DegenerateClusterWarning(UserWarning):
    """A color cluster ended up with no pixels; its mean centroid is kept."""
