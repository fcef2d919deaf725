"""
UV inspection images.

Draws a submesh's UV layout into a square raster: translucent triangle fills
first, triangle edges on top, and, when the submesh already has a texture,
a faint copy of it underneath as a spatial reference.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from PIL import Image, ImageDraw

from meshdecor import config
from meshdecor.errors import NoUVDataError
from meshdecor.materials import texture_of

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class UVProjection:
    mesh_id: str
    # (M, 3, 2) triangle corners in pixel space
    triangles: np.ndarray
    image: Image.Image
    has_background: bool = False

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def close(self) -> None:
        self.image.close()


def uv_to_pixels(uvs: np.ndarray, width: int, height: int) -> np.ndarray:
    """Map (u, v) in [0, 1]^2 to raster pixels; v is flipped since raster rows grow downwards."""
    uvs = np.asarray(uvs, dtype=np.float64)
    px = np.empty_like(uvs)
    px[..., 0] = uvs[..., 0] * width
    px[..., 1] = (1.0 - uvs[..., 1]) * height
    return px


class UVProjector:
    def __init__(self, width: int = config.UV_IMAGE_SIZE, height: Optional[int] = None,
                 background=config.UV_BACKGROUND, fill=config.UV_FILL,
                 stroke=config.UV_STROKE, stroke_width: int = config.UV_STROKE_WIDTH,
                 preview_opacity: float = config.UV_PREVIEW_OPACITY):
        self.width = int(width)
        self.height = int(height if height is not None else width)
        self.background = tuple(background)
        self.fill = tuple(fill)
        self.stroke = tuple(stroke)
        self.stroke_width = int(stroke_width)
        self.preview_opacity = float(preview_opacity)

    def _preview(self, texture: Image.Image) -> Image.Image:
        preview = texture.convert("RGBA").resize((self.width, self.height), Image.LANCZOS)
        alpha = preview.getchannel("A").point(lambda a: int(a * self.preview_opacity))
        preview.putalpha(alpha)
        return preview

    def project(self, submesh, texture: Optional[Image.Image] = None) -> UVProjection:
        """
        Raises NoUVDataError when the submesh has no UV attribute or the UV
        buffer does not match its vertices. Texture defaults to the
        submesh's current material texture.
        """
        mesh = submesh.mesh
        if mesh.uvs is None or len(mesh.uvs) == 0:
            raise NoUVDataError(submesh.id)
        if len(mesh.uvs) != mesh.vertex_count:
            raise NoUVDataError(submesh.id, f"{len(mesh.uvs)} UVs for {mesh.vertex_count} vertices")

        tris = mesh.triangles()
        corners = uv_to_pixels(mesh.uvs[tris], self.width, self.height)

        image = Image.new("RGBA", (self.width, self.height), self.background)
        if texture is None:
            texture = texture_of(submesh.material)
        has_background = texture is not None
        if has_background:
            image.alpha_composite(self._preview(texture))

        draw = ImageDraw.Draw(image, "RGBA")
        # Fills first so every edge stays visible over neighbouring fills
        for tri in corners:
            draw.polygon([tuple(p) for p in tri], fill=self.fill)
        for tri in corners:
            points = [tuple(p) for p in tri]
            draw.line(points + [points[0]], fill=self.stroke, width=self.stroke_width)

        logger.info("[uv] Projected %d triangles of %s", len(corners), submesh.id)
        return UVProjection(mesh_id=submesh.id, triangles=corners, image=image,
                            has_background=has_background)
