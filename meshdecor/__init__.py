"""Mesh decoration core: recolour submeshes, synthesize text textures, inspect UVs, place decals."""
from meshdecor.decals import Decal, DecalPatch, DecalProjector, tangent_basis
from meshdecor.errors import (
    AssetMalformed, InvalidMeshId, InvalidRayError, MeshDecorError,
    NoUVDataError, RasterizationOverflow, StaleReferenceError,
)
from meshdecor.export import export_glb, snapshot
from meshdecor.logging_config import setup_logging
from meshdecor.materials import MaterialOverride, MaterialOverrideApplier
from meshdecor.normalizer import AssetNormalizer, Normalization
from meshdecor.raycast import Ray, RayHit
from meshdecor.registry import MeshRegistry, SubMesh
from meshdecor.resources import ResourceLedger
from meshdecor.scene import MeshData, NodeKind, SceneSnapshot, SceneTree
from meshdecor.session import DecorSession, MeshAsset
from meshdecor.text import DebouncedTextRenderer, FontCache, RasterTexture, TextStyle, TextureRasterizer
from meshdecor.uv import UVProjection, UVProjector

__version__ = "0.1.0"
