from __future__ import annotations

import os
import time
import uuid
from pathlib import Path
from typing import List, Optional

import numpy as np
from pygltflib import (
    ARRAY_BUFFER,
    ELEMENT_ARRAY_BUFFER,
    FLOAT,
    GLTF2,
    LINE_STRIP,
    LINES,
    SCALAR,
    TRIANGLES,
    UNSIGNED_INT,
    VEC3,
    Accessor,
    Asset,
    Attributes,
    Buffer,
    BufferView,
    Material,
    Mesh,
    Node,
    PbrMetallicRoughness,
    Primitive,
    Scene,
)

from massing.models.mesh import BuildingMesh, LineGeometry, MeshNode, SolidGeometry


def _pack_floats(arr: np.ndarray) -> bytes:
    return np.ascontiguousarray(arr, dtype=np.float32).tobytes()


def _pack_uint(arr: np.ndarray) -> bytes:
    return np.ascontiguousarray(arr, dtype=np.uint32).tobytes()


def _rgba(color: int, opacity: float) -> List[float]:
    return [((color >> 16) & 0xFF) / 255.0, ((color >> 8) & 0xFF) / 255.0, (color & 0xFF) / 255.0, float(opacity)]


def write_mesh_gltf(mesh: BuildingMesh,
                    out_dir: Optional[str] = None,
                    filename: Optional[str] = None) -> str:
    """
    Write a building mesh as a binary glTF (.glb):
      - one glTF node per mesh node, same hierarchy
      - solids as indexed TRIANGLES with POSITION/NORMAL and a colored material
      - line geometry as LINE_STRIP / LINES
    Coordinates are local meters, Y up.
    """
    if mesh.root.is_empty():
        raise ValueError("mesh has no geometry to export")

    base_dir = Path(out_dir or os.getenv("ARTIFACT_DIR", "./artifacts"))
    base_dir.mkdir(parents=True, exist_ok=True)
    stem = filename or f"building_{int(time.time())}_{uuid.uuid4().hex[:8]}"
    path = base_dir / f"{stem}.glb"

    gltf = GLTF2(asset=Asset(version="2.0"))
    nodes: List[Node] = []
    meshes: List[Mesh] = []
    materials: List[Material] = []

    bin_chunks: List[bytes] = []
    accessors: List[Accessor] = []
    buffer_views: List[BufferView] = []

    def add_view(data: bytes, target: int) -> int:
        buffer_views.append(BufferView(buffer=0, byteOffset=sum(len(c) for c in bin_chunks),
                                       byteLength=len(data), target=target))
        bin_chunks.append(data)
        return len(buffer_views) - 1

    def add_vec3(values: np.ndarray) -> int:
        view = add_view(_pack_floats(values), ARRAY_BUFFER)
        accessors.append(Accessor(bufferView=view, componentType=FLOAT, count=int(values.shape[0]), type=VEC3,
                                  min=[float(v) for v in values.min(axis=0)],
                                  max=[float(v) for v in values.max(axis=0)]))
        return len(accessors) - 1

    def add_material(color: int, opacity: float) -> int:
        materials.append(Material(
            pbrMetallicRoughness=PbrMetallicRoughness(baseColorFactor=_rgba(color, opacity),
                                                      metallicFactor=0.0, roughnessFactor=0.9),
            alphaMode="BLEND" if opacity < 1.0 else "OPAQUE",
        ))
        return len(materials) - 1

    def add_mesh_node(name: str, primitive: Primitive) -> int:
        meshes.append(Mesh(name=name, primitives=[primitive]))
        nodes.append(Node(name=name, mesh=len(meshes) - 1))
        return len(nodes) - 1

    def add_solid(solid: SolidGeometry) -> Optional[int]:
        if solid.vertex_count == 0 or solid.triangle_count == 0:
            return None
        position = add_vec3(solid.positions)
        normal = add_vec3(solid.normals)
        view = add_view(_pack_uint(solid.indices), ELEMENT_ARRAY_BUFFER)
        accessors.append(Accessor(bufferView=view, componentType=UNSIGNED_INT,
                                  count=int(solid.indices.shape[0]), type=SCALAR))
        primitive = Primitive(attributes=Attributes(POSITION=position, NORMAL=normal),
                              indices=len(accessors) - 1,
                              material=add_material(solid.color, solid.opacity),
                              mode=TRIANGLES)
        return add_mesh_node(solid.name, primitive)

    def add_line(line: LineGeometry) -> Optional[int]:
        if len(line.points) < 2:
            return None
        position = add_vec3(np.asarray(line.points, dtype=np.float32).reshape(-1, 3))
        primitive = Primitive(attributes=Attributes(POSITION=position),
                              material=add_material(line.color, 1.0),
                              mode=LINE_STRIP if line.strip else LINES)
        return add_mesh_node(line.name, primitive)

    def add_node(node: MeshNode) -> int:
        children: List[int] = []
        for solid in node.solids:
            idx = add_solid(solid)
            if idx is not None:
                children.append(idx)
        for line in node.lines:
            idx = add_line(line)
            if idx is not None:
                children.append(idx)
        for child in node.children:
            children.append(add_node(child))
        nodes.append(Node(name=node.name, children=children))
        return len(nodes) - 1

    root = add_node(mesh.root)

    bin_blob = b"".join(bin_chunks)
    gltf.buffers = [Buffer(byteLength=len(bin_blob))]
    gltf.bufferViews = buffer_views
    gltf.accessors = accessors
    gltf.materials = materials
    gltf.meshes = meshes
    gltf.nodes = nodes
    gltf.scenes = [Scene(nodes=[root])]
    gltf.scene = 0

    gltf.set_binary_blob(bin_blob)
    gltf.save_binary(str(path))
    return str(path)


__all__ = ["write_mesh_gltf"]
