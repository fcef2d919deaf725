"""
Session facade
==============
The single entry point a UI drives: load an asset, recolour submeshes,
synthesize text textures, inspect UVs and stamp decals. Results are returned
to the caller and also published to connected listeners:

    asset_normalized  {"center", "scale", "submeshList"}
    texture_ready     RasterTexture
    uv_ready          UVProjection
    uv_error          NoUVDataError
    decal_placed      Decal
    decal_failed      reason string

Every asset swap bumps ``generation``; work issued against an older
generation is discarded when it completes.
"""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import trimesh

from meshdecor import config
from meshdecor.decals import Decal, DecalProjector
from meshdecor.errors import AssetMalformed, InvalidMeshId, InvalidRayError, NoUVDataError, StaleReferenceError
from meshdecor.materials import MaterialOverrideApplier
from meshdecor.normalizer import AssetNormalizer, Normalization
from meshdecor.registry import MeshRegistry, SubMesh
from meshdecor.resources import ResourceLedger
from meshdecor.scene import SceneTree
from meshdecor.text import DebouncedTextRenderer, RasterTexture, TextStyle, TextureRasterizer
from meshdecor.uv import UVProjection, UVProjector

logger = logging.getLogger(__name__)

EVENTS = ("asset_normalized", "texture_ready", "uv_ready", "uv_error", "decal_placed", "decal_failed")


@dataclass(eq=False)
class MeshAsset:
    generation: int
    tree: SceneTree
    registry: MeshRegistry
    normalization: Normalization

    @property
    def submeshes(self) -> List[SubMesh]:
        return list(self.registry)

    def summary(self) -> dict:
        return {
            "center": self.normalization.center.tolist(),
            "scale": self.normalization.scale,
            "submeshList": self.registry.ids,
        }


class DecorSession:
    def __init__(self, target_size: float = config.TARGET_SIZE,
                 rasterizer: Optional[TextureRasterizer] = None,
                 uv_projector: Optional[UVProjector] = None,
                 debounce: float = config.DEBOUNCE_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.ledger = ResourceLedger()
        self.normalizer = AssetNormalizer(target_size)
        self.rasterizer = rasterizer if rasterizer is not None else TextureRasterizer()
        self.uv_projector = uv_projector if uv_projector is not None else UVProjector()
        self.debouncer = DebouncedTextRenderer(self.rasterizer, window=debounce, clock=clock)

        self.asset: Optional[MeshAsset] = None
        self.decals: Optional[DecalProjector] = None
        self.generation = 0
        self.texture: Optional[RasterTexture] = None
        self.uv_image: Optional[UVProjection] = None
        self._text_generation = 0
        self._listeners: Dict[str, List[Callable]] = defaultdict(list)

    # ── events ────────────────────────────────────────────────────────────
    def connect(self, event: str, callback: Callable) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event {event!r}; expected one of {EVENTS}")
        self._listeners[event].append(callback)

    def disconnect(self, event: str, callback: Callable) -> None:
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: str, payload) -> None:
        for callback in list(self._listeners.get(event, [])):
            callback(payload)

    # ── asset ─────────────────────────────────────────────────────────────
    def load_asset(self, hierarchy) -> MeshAsset:
        """
        Adopt a parsed hierarchy (SceneTree, trimesh.Scene or trimesh.Trimesh).

        Raises AssetMalformed when it holds no usable drawable; the
        previously loaded asset then stays active untouched.
        """
        if isinstance(hierarchy, (trimesh.Scene, trimesh.Trimesh)):
            tree = SceneTree.from_trimesh(hierarchy)
        elif isinstance(hierarchy, SceneTree):
            tree = hierarchy
        else:
            raise AssetMalformed(f"Cannot load {type(hierarchy).__name__} as an asset")

        registry = MeshRegistry(MaterialOverrideApplier(self.ledger))
        if not registry.register(tree):
            registry.dispose()
            raise AssetMalformed("Asset contains no drawable geometry")
        normalization = self.normalizer.normalize(tree)

        self._drop_asset()
        self.generation += 1
        self.asset = MeshAsset(generation=self.generation, tree=tree,
                               registry=registry, normalization=normalization)
        self.decals = DecalProjector(registry, self.ledger)
        logger.info("[asset] Loaded generation %d with %d submeshes", self.generation, len(registry))
        self._emit("asset_normalized", self.asset.summary())
        return self.asset

    def _drop_asset(self) -> None:
        if self.decals is not None:
            self.decals.clear()
            self.decals = None
        if self.asset is not None:
            self.asset.registry.dispose()
            self.asset = None
        self._release_uv()

    # ── colours ───────────────────────────────────────────────────────────
    def set_mesh_color(self, mesh_id: str, color) -> None:
        if self.asset is None:
            raise InvalidMeshId(mesh_id)
        self.asset.registry.set_color(mesh_id, color)

    def get_mesh_color(self, mesh_id: str):
        if self.asset is None:
            raise InvalidMeshId(mesh_id)
        return self.asset.registry.get_color(mesh_id)

    def set_mesh_texture(self, mesh_id: str, texture=None) -> None:
        """Use texture (default: the current text texture) as the submesh's base colour map."""
        if self.asset is None:
            raise InvalidMeshId(mesh_id)
        texture = texture if texture is not None else self.texture
        image = getattr(texture, "image", texture)
        self.asset.registry.set_texture(mesh_id, image)

    def restore_mesh(self, mesh_id: str) -> None:
        if self.asset is None:
            raise InvalidMeshId(mesh_id)
        self.asset.registry.restore(mesh_id)

    def mesh_info(self) -> List[dict]:
        return [] if self.asset is None else self.asset.registry.mesh_info()

    # ── text ──────────────────────────────────────────────────────────────
    def _commit_texture(self, texture: RasterTexture) -> RasterTexture:
        if self.texture is not None:
            self.ledger.release(self.texture)
        self.texture = self.ledger.track(texture, "texture")
        self._emit("texture_ready", texture)
        return texture

    def synthesize_text(self, text: str, style: Optional[TextStyle] = None) -> Optional[RasterTexture]:
        """Rasterize now. Returns None for empty text and keeps the current texture."""
        texture = self.rasterizer.synthesize(text, style)
        if texture is None:
            return None
        return self._commit_texture(texture)

    def request_text(self, text: str, style: Optional[TextStyle] = None, now: Optional[float] = None) -> int:
        """Queue a debounced rasterization; returns its request generation."""
        self._text_generation = self.generation
        return self.debouncer.submit(text, style, now)

    def tick(self, now: Optional[float] = None) -> Optional[RasterTexture]:
        """
        Drive the debounce window. Commits the newest request once it is due,
        unless a newer request or an asset swap has superseded it.
        """
        result = self.debouncer.poll(now)
        if result is None or result.texture is None:
            return None
        if not self.debouncer.is_current(result.generation) or self._text_generation != self.generation:
            logger.info("[text] Discarding stale texture from request %d", result.generation)
            result.texture.close()
            return None
        return self._commit_texture(result.texture)

    # ── UV ────────────────────────────────────────────────────────────────
    def _release_uv(self) -> None:
        if self.uv_image is not None:
            self.ledger.release(self.uv_image)
            self.uv_image = None

    def extract_uv(self, mesh_id: str) -> UVProjection:
        """Raises NoUVDataError (after emitting uv_error) for submeshes without UVs."""
        if self.asset is None:
            raise InvalidMeshId(mesh_id)
        submesh = self.asset.registry.get(mesh_id)
        try:
            projection = self.uv_projector.project(submesh)
        except NoUVDataError as exc:
            logger.warning("[uv] %s", exc)
            self._emit("uv_error", exc)
            raise
        self._release_uv()
        self.uv_image = self.ledger.track(projection, "uv")
        self._emit("uv_ready", projection)
        return projection

    # ── decals ────────────────────────────────────────────────────────────
    def place_decal(self, ray, size=0.5, rotation: float = 0.0, texture=None) -> Optional[Decal]:
        """
        Stamp a decal where ray first hits the asset, textured with texture
        (default: the current text texture). Returns None and emits
        decal_failed on a miss or when the asset is gone; a degenerate ray
        raises InvalidRayError.
        """
        if self.decals is None:
            self._emit("decal_failed", "no asset loaded")
            return None
        generation = self.generation
        texture = texture if texture is not None else self.texture
        try:
            decal = self.decals.place_decal(ray, size, rotation, texture)
        except InvalidRayError as exc:
            self._emit("decal_failed", str(exc))
            raise
        except StaleReferenceError as exc:
            logger.info("[decal] %s", exc)
            self._emit("decal_failed", str(exc))
            return None

        if generation != self.generation:
            self._emit("decal_failed", "asset changed during placement")
            return None
        if decal is None:
            self._emit("decal_failed", "miss")
            return None
        self._emit("decal_placed", decal)
        return decal

    def remove_decal(self, decal_id: int) -> bool:
        return self.decals is not None and self.decals.remove(decal_id)

    def clear_decals(self) -> None:
        if self.decals is not None:
            self.decals.clear()

    def decal_list(self) -> List[Decal]:
        return [] if self.decals is None else list(self.decals.decals)

    # ── teardown ──────────────────────────────────────────────────────────
    def dispose(self) -> None:
        """Free everything; in-flight requests are invalidated."""
        self.debouncer.cancel()
        self._drop_asset()
        if self.texture is not None:
            self.ledger.release(self.texture)
            self.texture = None
        self.ledger.release_all()
        self.generation += 1
        logger.info("[asset] Session disposed")
