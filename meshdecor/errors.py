"""Error types raised at the boundary of the decoration core."""


class MeshDecorError(Exception):
    """Base class for every error raised by meshdecor."""


class InvalidMeshId(MeshDecorError, LookupError):
    def __init__(self, mesh_id):
        super().__init__(f"Unknown submesh id: {mesh_id!r}")
        self.mesh_id = mesh_id


class NoUVDataError(MeshDecorError, ValueError):
    """The submesh carries no usable UV attribute."""

    def __init__(self, mesh_id, reason: str = "no UV attribute"):
        super().__init__(f"Submesh {mesh_id!r} has no UV data ({reason})")
        self.mesh_id = mesh_id
        self.reason = reason


class InvalidRayError(MeshDecorError, ValueError):
    pass


class StaleReferenceError(MeshDecorError, RuntimeError):
    """The asset targeted by an operation was disposed or replaced."""


class RasterizationOverflow(MeshDecorError):
    """
    Non-fatal: a word is wider than the content area, or the text block is
    taller than the raster. The text is rendered anyway; instances are
    recorded on the produced texture and logged, never raised.
    """

    def __init__(self, message: str, line: str = "", measured: float = 0.0, limit: float = 0.0):
        super().__init__(message)
        self.line = line
        self.measured = measured
        self.limit = limit


class AssetMalformed(MeshDecorError, ValueError):
    """The loaded hierarchy holds no usable drawable geometry."""
