"""
Per-submesh material overrides.

A loaded asset often shares one material between many submeshes. Recolouring
must never touch that shared instance, so each edited submesh gets its own
PBRMaterial, created once and mutated on later edits. Texture maps of the
captured material are passed by reference so the override keeps them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
from PIL import Image, ImageColor
from trimesh.visual.material import PBRMaterial, SimpleMaterial

from meshdecor.resources import ResourceLedger

logger = logging.getLogger(__name__)

# Texture slots carried over from a captured PBR material
_PBR_KEEP = (
    "baseColorTexture", "normalTexture", "occlusionTexture", "emissiveTexture",
    "metallicRoughnessTexture", "emissiveFactor", "metallicFactor",
    "roughnessFactor", "alphaMode", "alphaCutoff", "doubleSided",
)


# ──────────────────────────────────────────────────────────────────────────────
# Colour helpers
# ──────────────────────────────────────────────────────────────────────────────

def to_rgba(value) -> np.ndarray:
    """
    Parse a colour into a (4,) uint8 RGBA array.

    Accepts CSS-style strings ("#ff8800", "red", "rgb(...)"), RGB / RGBA
    sequences of ints in [0, 255] or floats in [0, 1].
    """
    if isinstance(value, str):
        rgb = ImageColor.getrgb(value)
        arr = np.array(rgb, dtype=np.float64)
    else:
        arr = np.asarray(value, dtype=np.float64).ravel()
        if arr.size not in (3, 4):
            raise ValueError(f"Colour needs 3 or 4 components, got {arr.size}")
        is_float = np.issubdtype(np.asarray(value).dtype, np.floating)
        if is_float and arr.max(initial=0.0) <= 1.0:
            arr = arr * 255.0
    if arr.size == 3:
        arr = np.append(arr, 255.0)
    return np.clip(np.round(arr), 0, 255).astype(np.uint8)


def rgba_to_hex(rgba) -> str:
    r, g, b = (int(c) for c in np.asarray(rgba).ravel()[:3])
    return f"#{r:02x}{g:02x}{b:02x}"


def base_color_of(material) -> Optional[np.ndarray]:
    """Resolved base colour of a trimesh material, or None when it has none."""
    if isinstance(material, PBRMaterial):
        factor = material.baseColorFactor
        if factor is None:
            return np.array([255, 255, 255, 255], dtype=np.uint8)
        return to_rgba(np.asarray(factor, dtype=np.uint8))
    if isinstance(material, SimpleMaterial):
        return to_rgba(np.asarray(material.diffuse, dtype=np.uint8))
    return None


def texture_of(material) -> Optional[Image.Image]:
    """Diffuse / base-colour image of a trimesh material, if any."""
    if isinstance(material, PBRMaterial):
        return material.baseColorTexture
    return getattr(material, "image", None)


def _image_of(texture) -> Optional[Image.Image]:
    if texture is None:
        return None
    if isinstance(texture, Image.Image):
        return texture
    return getattr(texture, "image", None)


# ──────────────────────────────────────────────────────────────────────────────
# Overrides
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class MaterialOverride:
    """Colour (as given by the caller) plus an optional replacement texture."""
    color: object
    texture: object = None

    @property
    def rgba(self) -> np.ndarray:
        return to_rgba(self.color)


class MaterialOverrideApplier:
    def __init__(self, ledger: Optional[ResourceLedger] = None):
        self.ledger = ledger if ledger is not None else ResourceLedger()
        self._dedicated: Dict[str, PBRMaterial] = {}
        # per submesh: (source texture object, owned image copy)
        self._textures: Dict[str, tuple] = {}

    def dedicated(self, mesh_id: str) -> Optional[PBRMaterial]:
        return self._dedicated.get(mesh_id)

    def _create_for(self, submesh) -> PBRMaterial:
        original = submesh.original_material
        kwargs = {"name": f"{submesh.id}_override"}
        if isinstance(original, PBRMaterial):
            for key in _PBR_KEEP:
                value = getattr(original, key, None)
                if value is not None:
                    kwargs[key] = value
        elif isinstance(original, SimpleMaterial):
            if getattr(original, "image", None) is not None:
                kwargs["baseColorTexture"] = original.image
        else:
            kwargs.update(metallicFactor=0.2, roughnessFactor=0.5)
        material = PBRMaterial(**kwargs)
        self.ledger.track(material, "material")
        logger.debug("[material] Created dedicated material for %s", submesh.id)
        return material

    def _swap_texture(self, submesh, material: PBRMaterial, texture) -> None:
        previous = self._textures.pop(submesh.id, None)
        if previous is not None:
            self.ledger.release(previous[1])
        image = _image_of(texture)
        if image is None:
            material.baseColorTexture = texture_of(submesh.original_material)
            return
        owned = self.ledger.track(image.copy(), "texture")
        self._textures[submesh.id] = (texture, owned)
        material.baseColorTexture = owned

    def apply(self, submesh, override: MaterialOverride) -> PBRMaterial:
        """
        Point submesh at its dedicated material carrying the override colour.
        Returns the material in use. A repeated call with an unchanged
        override creates nothing.
        """
        rgba = override.rgba
        material = self._dedicated.get(submesh.id)
        current_source = self._textures.get(submesh.id, (None, None))[0]

        if material is not None:
            same_color = np.array_equal(base_color_of(material), rgba)
            same_texture = current_source is override.texture
            if same_color and same_texture:
                submesh.material = material
                return material
        else:
            material = self._create_for(submesh)
            self._dedicated[submesh.id] = material

        material.baseColorFactor = rgba
        if current_source is not override.texture:
            self._swap_texture(submesh, material, override.texture)
        submesh.material = material
        logger.debug("[material] %s -> %s", submesh.id, rgba_to_hex(rgba))
        return material

    def restore(self, submesh) -> None:
        """Reinstate the captured material and free the dedicated one."""
        material = self._dedicated.pop(submesh.id, None)
        if material is not None:
            self.ledger.release(material)
        texture = self._textures.pop(submesh.id, None)
        if texture is not None:
            self.ledger.release(texture[1])
        submesh.material = submesh.original_material

    def dispose(self) -> None:
        for material in self._dedicated.values():
            self.ledger.release(material)
        for _source, owned in self._textures.values():
            self.ledger.release(owned)
        self._dedicated.clear()
        self._textures.clear()
