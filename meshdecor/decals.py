"""
Decal placement
===============
A decal is an oriented box centred on a surface hit point. Triangles of the
hit submesh are clipped against that box, and what survives is re-emitted
as a small textured patch lying on the surface, nudged along the normal.

Decals are kept in insertion order; later decals draw after earlier ones
and never write depth, so overlapping decals do not z-fight.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import trimesh
from PIL import Image
from trimesh.intersections import slice_faces_plane
from trimesh.transformations import transform_points
from trimesh.util import unitize
from trimesh.visual.material import PBRMaterial
from trimesh.visual.texture import TextureVisuals

from meshdecor import config
from meshdecor.errors import StaleReferenceError
from meshdecor.raycast import Ray, RayHit, raycast
from meshdecor.resources import ResourceLedger
from meshdecor.scene import compute_normals

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Basis & clipping
# ──────────────────────────────────────────────────────────────────────────────

def tangent_basis(normal, rotation: float = 0.0,
                  up=config.WORLD_UP, right=config.WORLD_RIGHT,
                  parallel_threshold: float = config.DECAL_PARALLEL_THRESHOLD) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Orthonormal (tangent, bitangent, normal) around normal, rotated by
    rotation degrees about it. World-up is the reference direction unless
    the normal is nearly parallel to it, then world-right is used.
    """
    n = np.asarray(normal, dtype=np.float64)
    if np.linalg.norm(n) <= 1e-12:
        raise ValueError("Cannot build a basis around a zero-length normal")
    n = unitize(n)
    ref = np.asarray(up, dtype=np.float64)
    if abs(float(np.dot(n, ref))) > parallel_threshold:
        ref = np.asarray(right, dtype=np.float64)
    tangent = unitize(np.cross(ref, n))
    bitangent = np.cross(n, tangent)

    if rotation:
        a = math.radians(rotation)
        c, s = math.cos(a), math.sin(a)
        tangent, bitangent = c * tangent + s * bitangent, -s * tangent + c * bitangent
    return tangent, bitangent, n


def clip_to_box(vertices: np.ndarray, faces: np.ndarray, half: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Keep the part of a local-space triangle mesh inside the box |p| <= half,
    slicing it with the six box planes. Returns (vertices, faces).
    """
    for axis in range(3):
        for sign in (1.0, -1.0):
            if len(faces) == 0:
                return np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int64)
            # slice_faces_plane keeps the side the plane normal points to
            plane_normal = np.zeros(3)
            plane_normal[axis] = -sign
            vertices, faces, _uv = slice_faces_plane(
                vertices=vertices,
                faces=faces,
                plane_normal=plane_normal,
                plane_origin=-plane_normal * half[axis],
            )
    return vertices, faces


# ──────────────────────────────────────────────────────────────────────────────
# Data
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(eq=False)
class DecalPatch:
    vertices: np.ndarray   # (K, 3) world space
    faces: np.ndarray      # (F, 3)
    uvs: np.ndarray        # (K, 2)
    normals: np.ndarray    # (K, 3)

    @property
    def is_empty(self) -> bool:
        return len(self.faces) == 0

    @property
    def triangle_count(self) -> int:
        return len(self.faces)

    def to_trimesh(self, texture: Optional[Image.Image] = None) -> trimesh.Trimesh:
        mesh = trimesh.Trimesh(vertices=self.vertices, faces=self.faces,
                               vertex_normals=self.normals, process=False)
        material = PBRMaterial(baseColorTexture=texture, alphaMode="BLEND", doubleSided=True)
        mesh.visual = TextureVisuals(uv=self.uvs, material=material)
        return mesh


@dataclass(eq=False)
class Decal:
    id: int
    mesh_id: str
    origin: np.ndarray
    normal: np.ndarray
    tangent: np.ndarray
    bitangent: np.ndarray
    size: Tuple[float, float, float]
    rotation: float
    patch: DecalPatch
    texture: Optional[Image.Image] = None
    render_order: int = 0
    depth_write: bool = False
    normal_offset: float = config.DECAL_NORMAL_OFFSET

    def summary(self) -> dict:
        return {
            "id": self.id,
            "mesh_id": self.mesh_id,
            "origin": self.origin.tolist(),
            "normal": self.normal.tolist(),
            "size": list(self.size),
            "rotation": self.rotation,
            "render_order": self.render_order,
            "triangles": self.patch.triangle_count,
            "textured": self.texture is not None,
        }


def _decal_size(size, depth_ratio: float) -> np.ndarray:
    dims = np.atleast_1d(np.asarray(size, dtype=np.float64))
    if dims.size == 1:
        dims = np.array([dims[0], dims[0]])
    if dims.size == 2:
        dims = np.append(dims, max(dims) * depth_ratio)
    if dims.size != 3 or np.any(dims <= 0):
        raise ValueError(f"Decal size must be positive, got {size!r}")
    return dims


# ──────────────────────────────────────────────────────────────────────────────
# Projector
# ──────────────────────────────────────────────────────────────────────────────

class DecalProjector:
    def __init__(self, registry, ledger: Optional[ResourceLedger] = None,
                 depth_ratio: float = config.DECAL_DEPTH_RATIO,
                 normal_offset: float = config.DECAL_NORMAL_OFFSET,
                 parallel_threshold: float = config.DECAL_PARALLEL_THRESHOLD,
                 eps: float = config.RAY_EPSILON):
        self.registry = registry
        self.ledger = ledger if ledger is not None else ResourceLedger()
        self.depth_ratio = depth_ratio
        self.normal_offset = normal_offset
        self.parallel_threshold = parallel_threshold
        self.eps = eps
        self.decals: List[Decal] = []
        self._next_id = 0
        self._next_order = 0

    def _live_tree(self):
        tree = self.registry.tree
        if self.registry.disposed or tree is None:
            raise StaleReferenceError("Target asset was disposed")
        return tree

    def raycast(self, ray) -> Optional[RayHit]:
        if not isinstance(ray, Ray):
            ray = Ray.create(*ray)
        tree = self._live_tree()
        snapshot = tree.snapshot()
        hit = raycast(ray, list(self.registry), snapshot, self.eps)
        if self.registry.disposed or self.registry.tree is not tree:
            raise StaleReferenceError("Target asset changed during raycast")
        return hit

    def build_decal_patch(self, point, normal, size, rotation: float = 0.0,
                          mesh_id: Optional[str] = None) -> DecalPatch:
        """
        Clip the target geometry (one submesh, or all) against the decal box
        oriented by the tangent basis at point. UVs span [0, 1] across the box.
        """
        tree = self._live_tree()
        snapshot = tree.snapshot()
        point = np.asarray(point, dtype=np.float64)
        tangent, bitangent, n = tangent_basis(normal, rotation, parallel_threshold=self.parallel_threshold)
        dims = _decal_size(size, self.depth_ratio)
        half = dims / 2.0
        basis = np.stack([tangent, bitangent, n], axis=1)

        targets = [self.registry.get(mesh_id)] if mesh_id is not None else list(self.registry)
        parts = []
        for sub in targets:
            faces = sub.mesh.triangles()
            if len(faces) == 0:
                continue
            world = snapshot.world[sub.node_index]
            local = (transform_points(sub.mesh.positions, world) - point) @ basis
            corners = local[faces]
            # all three corners beyond the same slab
            outside = np.any(np.all(corners > half, axis=1) | np.all(corners < -half, axis=1), axis=1)
            vertices, kept = clip_to_box(local, faces[~outside], half)
            if len(kept):
                parts.append((vertices, kept))

        if not parts:
            empty = np.zeros((0, 3))
            return DecalPatch(vertices=empty, faces=np.zeros((0, 3), dtype=np.int64),
                              uvs=np.zeros((0, 2)), normals=empty.copy())

        offsets = np.cumsum([0] + [len(v) for v, _ in parts[:-1]])
        local_v = np.concatenate([v for v, _ in parts], axis=0)
        faces = np.concatenate([f + o for (_, f), o in zip(parts, offsets)], axis=0).astype(np.int64)
        # slivers left where a plane grazes a vertex
        area = np.linalg.norm(np.cross(local_v[faces[:, 1]] - local_v[faces[:, 0]],
                                       local_v[faces[:, 2]] - local_v[faces[:, 0]]), axis=1)
        faces = faces[area > 1e-12]
        uvs = np.clip(local_v[:, :2] / dims[:2] + 0.5, 0.0, 1.0)
        world_v = point + local_v @ basis.T + n * self.normal_offset
        normals = compute_normals(world_v, faces, len(world_v))
        unset = np.linalg.norm(normals, axis=1) < 0.5
        normals[unset] = n
        return DecalPatch(vertices=world_v, faces=faces, uvs=uvs, normals=normals)

    def place_decal(self, ray, size=0.5, rotation: float = 0.0, texture=None) -> Optional[Decal]:
        """
        Cast ray, build a patch at the closest hit and append the decal.
        Returns None when nothing is hit or the clipped patch is empty.
        Raises InvalidRayError for a degenerate ray and
        StaleReferenceError when the asset is gone.
        """
        hit = self.raycast(ray)
        if hit is None:
            logger.info("[decal] Ray missed all geometry")
            return None

        patch = self.build_decal_patch(hit.point, hit.normal, size, rotation, mesh_id=hit.mesh_id)
        if patch.is_empty:
            logger.info("[decal] Patch at %s clipped to nothing", hit.mesh_id)
            return None

        tangent, bitangent, normal = tangent_basis(hit.normal, rotation, parallel_threshold=self.parallel_threshold)
        image = texture if isinstance(texture, Image.Image) or texture is None else getattr(texture, "image", None)
        owned = None
        if image is not None:
            owned = self.ledger.track(image.copy(), "texture")
        self.ledger.track(patch, "decal")

        decal = Decal(
            id=self._next_id,
            mesh_id=hit.mesh_id,
            origin=hit.point,
            normal=normal,
            tangent=tangent,
            bitangent=bitangent,
            size=tuple(float(x) for x in _decal_size(size, self.depth_ratio)),
            rotation=float(rotation),
            patch=patch,
            texture=owned,
            render_order=self._next_order,
            normal_offset=self.normal_offset,
        )
        self._next_id += 1
        self._next_order += 1
        self.decals.append(decal)
        logger.info("[decal] Placed decal %d on %s (%d triangles)", decal.id, hit.mesh_id, patch.triangle_count)
        return decal

    def _release(self, decal: Decal) -> None:
        self.ledger.release(decal.patch)
        if decal.texture is not None:
            self.ledger.release(decal.texture)

    def remove(self, decal_id: int) -> bool:
        for i, decal in enumerate(self.decals):
            if decal.id == decal_id:
                del self.decals[i]
                self._release(decal)
                return True
        return False

    def clear(self) -> None:
        for decal in self.decals:
            self._release(decal)
        self.decals.clear()
