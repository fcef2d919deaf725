"""
Registry of the colourable submeshes of one loaded asset.

Ids are assigned once per asset: the node name when it is present and unique
within the asset, otherwise mesh_<index> where index counts drawables in
traversal order.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from meshdecor.errors import InvalidMeshId
from meshdecor.materials import (
    MaterialOverride, MaterialOverrideApplier, base_color_of, rgba_to_hex, to_rgba,
)
from meshdecor.scene import MeshData, SceneTree

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class SubMesh:
    id: str
    node_index: int
    name: str
    mesh: MeshData
    # Captured at registration; restore() puts this exact object back
    original_material: object = None
    material: object = None

    @property
    def triangle_count(self) -> int:
        return self.mesh.triangle_count

    @property
    def has_uv(self) -> bool:
        return self.mesh.has_uv


class MeshRegistry:
    def __init__(self, applier: Optional[MaterialOverrideApplier] = None):
        self.applier = applier if applier is not None else MaterialOverrideApplier()
        self.tree: Optional[SceneTree] = None
        self._submeshes: Dict[str, SubMesh] = {}
        self._overrides: Dict[str, MaterialOverride] = {}
        self.disposed = False

    def __len__(self) -> int:
        return len(self._submeshes)

    def __iter__(self) -> Iterator[SubMesh]:
        return iter(self._submeshes.values())

    def __contains__(self, mesh_id) -> bool:
        return mesh_id in self._submeshes

    @property
    def ids(self) -> List[str]:
        return list(self._submeshes)

    def register(self, tree) -> List[SubMesh]:
        """
        Walk the tree once and register every drawable with triangles.
        Anything that is not a usable SceneTree registers nothing.
        """
        self._submeshes.clear()
        self._overrides.clear()
        self.disposed = False
        if not isinstance(tree, SceneTree):
            logger.warning("[registry] Nothing to register in %s", type(tree).__name__)
            self.tree = None
            return []
        self.tree = tree

        found = []
        for index, node, _world in tree.drawables():
            if node.mesh.vertex_count == 0 or node.mesh.triangle_count == 0:
                logger.warning("[registry] Skipping empty drawable %r", node.name or index)
                continue
            found.append((index, node))

        name_counts = Counter(node.name for _index, node in found if node.name)
        taken = {name for name, count in name_counts.items() if count == 1}
        for position, (index, node) in enumerate(found):
            if node.name and name_counts[node.name] == 1:
                mesh_id = node.name
            else:
                mesh_id = f"mesh_{position}"
                suffix = 1
                while mesh_id in taken:
                    mesh_id = f"mesh_{position}_{suffix}"
                    suffix += 1
                taken.add(mesh_id)
            self._submeshes[mesh_id] = SubMesh(
                id=mesh_id,
                node_index=index,
                name=node.name,
                mesh=node.mesh,
                original_material=node.material,
                material=node.material,
            )

        logger.info("[registry] Registered %d submeshes", len(self._submeshes))
        return list(self._submeshes.values())

    def get(self, mesh_id: str) -> SubMesh:
        try:
            return self._submeshes[mesh_id]
        except KeyError:
            raise InvalidMeshId(mesh_id) from None

    def override(self, mesh_id: str) -> Optional[MaterialOverride]:
        self.get(mesh_id)
        return self._overrides.get(mesh_id)

    def get_color(self, mesh_id: str):
        """Override colour exactly as it was set, else the captured material's colour as hex."""
        submesh = self.get(mesh_id)
        override = self._overrides.get(mesh_id)
        if override is not None:
            return override.color
        rgba = base_color_of(submesh.original_material)
        return None if rgba is None else rgba_to_hex(rgba)

    def set_color(self, mesh_id: str, color, texture=None) -> MaterialOverride:
        """Record the override and re-apply it immediately. Keeps a previously set texture when none is given."""
        submesh = self.get(mesh_id)
        to_rgba(color)
        previous = self._overrides.get(mesh_id)
        if texture is None and previous is not None:
            texture = previous.texture
        override = MaterialOverride(color=color, texture=texture)
        self._overrides[mesh_id] = override
        self.applier.apply(submesh, override)
        return override

    def set_texture(self, mesh_id: str, texture) -> MaterialOverride:
        submesh = self.get(mesh_id)
        previous = self._overrides.get(mesh_id)
        if previous is not None:
            color = previous.color
        else:
            rgba = base_color_of(submesh.original_material)
            color = "#ffffff" if rgba is None else rgba_to_hex(rgba)
        override = MaterialOverride(color=color, texture=texture)
        self._overrides[mesh_id] = override
        self.applier.apply(submesh, override)
        return override

    def restore(self, mesh_id: str) -> None:
        submesh = self.get(mesh_id)
        self._overrides.pop(mesh_id, None)
        self.applier.restore(submesh)

    def mesh_info(self) -> List[dict]:
        return [
            {
                "id": sub.id,
                "name": sub.name,
                "color": self.get_color(sub.id),
                "triangles": sub.triangle_count,
                "has_uv": sub.has_uv,
                "overridden": sub.id in self._overrides,
            }
            for sub in self._submeshes.values()
        ]

    def dispose(self) -> None:
        """Release every captured reference so the previous asset can be freed."""
        self.applier.dispose()
        for sub in self._submeshes.values():
            sub.material = None
            sub.original_material = None
        self._submeshes.clear()
        self._overrides.clear()
        self.tree = None
        self.disposed = True
        logger.debug("[registry] Disposed")
