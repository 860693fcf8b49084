from pathlib import Path

import pytest
from pygltflib import GLTF2

from massing.models.mesh import BuildingMesh, MeshNode
from massing.services.artifacts.gltf_writer import write_mesh_gltf
from massing.services.geometry import to_points
from massing.services.mesh_builder import BuildingMeshOptions, build_building_mesh


def test_building_mesh_written_as_glb(tmp_path):
    footprint = to_points([(-10, -10), (10, -10), (10, 0), (0, 0), (0, 10), (-10, 10)])
    mesh = build_building_mesh(footprint, BuildingMeshOptions(floors=3, floor_height=3.5)).mesh
    path = write_mesh_gltf(mesh, out_dir=str(tmp_path), filename="tower")
    assert Path(path).exists()
    assert Path(path).name == "tower.glb"

    gltf = GLTF2().load(path)
    assert len(gltf.meshes) == len(mesh.root.all_solids()) + len(mesh.root.all_lines())
    names = {n.name for n in gltf.nodes}
    assert {"Building", "Floor_1", "Floor_3", "Roof", "VerticalEdges"} <= names
    top = gltf.accessors[gltf.meshes[0].primitives[0].attributes.POSITION]
    assert top.count > 0


def test_artifact_dir_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("ARTIFACT_DIR", str(tmp_path / "out"))
    mesh = build_building_mesh(to_points([(0, 0), (5, 0), (5, 5), (0, 5)]),
                               BuildingMeshOptions(floors=1, floor_height=3)).mesh
    path = write_mesh_gltf(mesh)
    assert Path(path).parent == tmp_path / "out"


def test_empty_mesh_rejected(tmp_path):
    with pytest.raises(ValueError):
        write_mesh_gltf(BuildingMesh(root=MeshNode(name="Building")), out_dir=str(tmp_path))
