import json

import pytest
import trimesh

from meshdecor.errors import StaleReferenceError
from meshdecor.export import build_scene, export_glb, snapshot
from meshdecor.session import DecorSession
from meshdecor.text import TextStyle, TextureRasterizer
from tests.conftest import FakeMeasure


@pytest.fixture
def decorated(quad_tree):
    session = DecorSession(rasterizer=TextureRasterizer(measure=FakeMeasure()))
    session.load_asset(quad_tree)
    session.set_mesh_color("quad", "#ff0000")
    session.synthesize_text("HI", TextStyle(width=64, height=64, padding=4, font_size=16))
    session.place_decal(((0, 0, 5), (0, 0, -1)), size=1.0)
    return session


def test_snapshot_is_json_ready(decorated):
    data = snapshot(decorated)
    json.dumps(data)

    assert data["asset"]["scale"] == pytest.approx(3.0)
    (sub,) = data["submeshes"]
    assert sub["id"] == "quad"
    assert sub["color_override"] == "#ff0000"
    assert sub["material"]["color"] == "#ff0000"
    (decal,) = data["decals"]
    assert decal["mesh_id"] == "quad"
    assert decal["textured"] is True


def test_snapshot_without_asset():
    data = snapshot(DecorSession())
    assert data["asset"] is None
    assert data["submeshes"] == [] and data["decals"] == []


def test_scene_holds_submeshes_and_decals(decorated):
    scene = build_scene(decorated)
    assert set(scene.geometry) == {"quad", "decal_0"}


def test_export_glb_bytes_and_file(decorated, tmp_path):
    data = export_glb(decorated)
    assert data[:4] == b"glTF"

    path = str(tmp_path / "out.glb")
    assert export_glb(decorated, path) == path
    loaded = trimesh.load(path, force="scene")
    assert len(loaded.geometry) == 2


def test_export_without_asset_is_stale():
    with pytest.raises(StaleReferenceError):
        export_glb(DecorSession())
