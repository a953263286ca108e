"""Parse a GLB file into a Scene: node hierarchy, rest-pose transforms, skins, constraints."""

import json
import struct

import numpy as np

from .scene import Axis, Node, ParentConstraint, Scene, SkinnedMesh

# ---------------------------------------------------------------------------
# GLB constants
# ---------------------------------------------------------------------------
GLB_MAGIC = 0x46546C67
GLB_VERSION = 2
CHUNK_JSON = 0x4E4F534A
CHUNK_BIN = 0x004E4942

# glTF component type → (struct fmt, byte size)
_COMP = {
    5120: ("b", 1),
    5121: ("B", 1),
    5122: ("h", 2),
    5123: ("H", 2),
    5125: ("I", 4),
    5126: ("f", 4),
}

# glTF type → element count
_TYPE_COUNT = {
    "SCALAR": 1,
    "VEC2": 2,
    "VEC3": 3,
    "VEC4": 4,
    "MAT2": 4,
    "MAT3": 9,
    "MAT4": 16,
}

CONSTRAINT_KEY = "parentConstraint"


class GLBFormatError(ValueError):
    pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _read_accessor(gltf: dict, buf: bytes, acc_idx: int) -> np.ndarray:
    """Read a glTF accessor into a numpy array."""
    acc = gltf["accessors"][acc_idx]
    bv = gltf["bufferViews"][acc["bufferView"]]
    comp_type = acc["componentType"]
    fmt, bsz = _COMP[comp_type]
    count = acc["count"]
    n_components = _TYPE_COUNT[acc["type"]]
    byte_offset = bv.get("byteOffset", 0) + acc.get("byteOffset", 0)
    byte_stride = bv.get("byteStride", 0)

    if byte_stride and byte_stride != bsz * n_components:
        # Strided access
        out = np.empty((count, n_components), dtype=np.float64)
        for i in range(count):
            off = byte_offset + i * byte_stride
            out[i] = struct.unpack_from(f"<{n_components}{fmt}", buf, off)
        return out

    total = count * n_components
    data = struct.unpack_from(f"<{total}{fmt}", buf, byte_offset)
    return np.array(data, dtype=np.float64).reshape(count, n_components)


def _trs_to_mat4(t, r_xyzw, s) -> np.ndarray:
    """Build a 4x4 matrix from translation, rotation (xyzw), scale."""
    x, y, z, w = r_xyzw
    m = np.eye(4, dtype=np.float64)
    m[0, 0] = (1 - 2 * (y * y + z * z)) * s[0]
    m[0, 1] = (2 * (x * y - z * w)) * s[1]
    m[0, 2] = (2 * (x * z + y * w)) * s[2]
    m[1, 0] = (2 * (x * y + z * w)) * s[0]
    m[1, 1] = (1 - 2 * (x * x + z * z)) * s[1]
    m[1, 2] = (2 * (y * z - x * w)) * s[2]
    m[2, 0] = (2 * (x * z - y * w)) * s[0]
    m[2, 1] = (2 * (y * z + x * w)) * s[1]
    m[2, 2] = (1 - 2 * (x * x + y * y)) * s[2]
    m[0, 3] = t[0]
    m[1, 3] = t[1]
    m[2, 3] = t[2]
    return m


def _node_local_matrix(node: dict) -> np.ndarray:
    """Local 4x4 (row-major) of a glTF node, from ``matrix`` or TRS."""
    if "matrix" in node:
        return np.array(node["matrix"], dtype=np.float64).reshape(4, 4).T  # col-major→row-major
    t = node.get("translation", [0.0, 0.0, 0.0])
    r = node.get("rotation", [0.0, 0.0, 0.0, 1.0])  # glTF default = identity xyzw
    s = node.get("scale", [1.0, 1.0, 1.0])
    return _trs_to_mat4(t, r, s)


def _index(items: list, index, what: str):
    """``items[index]`` for a glTF index, rejecting negatives and non-integers."""
    if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(items):
        raise GLBFormatError(f"{what} index {index!r} out of range")
    return items[index]


def _axis_from_json(value) -> Axis:
    axis = Axis.NONE
    for name in value or ():
        axis |= Axis[name.upper()]
    return axis


def _constraint_from_extras(extras: dict, nodes: list):
    data = extras.get(CONSTRAINT_KEY)
    if data is None:
        return None
    try:
        source = _index(nodes, data["source"], f"{CONSTRAINT_KEY} source")
    except (KeyError, IndexError, TypeError):
        raise GLBFormatError(f"bad {CONSTRAINT_KEY} source: {data!r}") from None
    return ParentConstraint(
        source=source,
        weight=float(data.get("weight", 1.0)),
        source_weight=float(data.get("sourceWeight", 1.0)),
        locked=bool(data.get("locked", True)),
        active=bool(data.get("active", True)),
        translation_axis=_axis_from_json(data.get("translationAxis", ["x", "y", "z"])),
        rotation_axis=_axis_from_json(data.get("rotationAxis", ["x", "y", "z"])),
    )


# ---------------------------------------------------------------------------
# Main parser
# ---------------------------------------------------------------------------

def read_glb(raw: bytes):
    """Split GLB bytes into (glTF json dict, BIN chunk bytes)."""
    if len(raw) < 20:
        raise GLBFormatError("file too short for a GLB header")

    # --- GLB header ---
    magic, version, total_len = struct.unpack_from("<III", raw, 0)
    if magic != GLB_MAGIC:
        raise GLBFormatError("not a GLB file")
    if version != GLB_VERSION:
        raise GLBFormatError(f"unsupported GLB version {version}")

    # --- JSON chunk ---
    json_len, json_type = struct.unpack_from("<II", raw, 12)
    if json_type != CHUNK_JSON:
        raise GLBFormatError("first chunk is not JSON")
    json_bytes = raw[20 : 20 + json_len]
    try:
        gltf = json.loads(json_bytes.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise GLBFormatError(f"bad JSON chunk: {e}") from None
    if not isinstance(gltf, dict):
        raise GLBFormatError("JSON chunk is not an object")

    # --- BIN chunk (optional) ---
    bin_buffer = b""
    bin_offset = 20 + json_len
    if bin_offset + 8 <= min(total_len, len(raw)):
        bin_len, bin_type = struct.unpack_from("<II", raw, bin_offset)
        if bin_type == CHUNK_BIN:
            bin_buffer = raw[bin_offset + 8 : bin_offset + 8 + bin_len]

    return gltf, bin_buffer


def build_scene(gltf: dict, bin_buffer: bytes = b"") -> Scene:
    """Turn a glTF json tree into linked Nodes and SkinnedMeshes."""
    gltf_nodes = gltf.get("nodes", [])
    nodes = []
    for ni, gn in enumerate(gltf_nodes):
        try:
            matrix = _node_local_matrix(gn)
        except (IndexError, TypeError, ValueError):
            raise GLBFormatError(f"node {ni} has a bad transform") from None
        nodes.append(Node(gn.get("name", f"node_{ni}"), matrix=matrix, payload=gn))

    for ni, gn in enumerate(gltf_nodes):
        for ci in gn.get("children", []):
            if not 0 <= ci < len(nodes) or ci == ni:
                raise GLBFormatError(f"node {ni} has invalid child {ci}")
            if nodes[ci].parent is not None:
                raise GLBFormatError(f"node {ci} has more than one parent")
            nodes[ni].attach(nodes[ci])

    for node in nodes:
        depth, parent = 0, node.parent
        while parent is not None:
            depth += 1
            if depth > len(nodes):
                raise GLBFormatError(f"node hierarchy has a cycle through {node.name!r}")
            parent = parent.parent

    for node in nodes:
        constraint = _constraint_from_extras(node.payload.get("extras") or {}, nodes)
        if constraint is not None:
            node.add_constraint(constraint)

    skins = gltf.get("skins", [])
    meshes = []
    for ni, gn in enumerate(gltf_nodes):
        if "skin" not in gn:
            continue
        skin = _index(skins, gn["skin"], f"node {ni} skin")
        skeleton = skin.get("skeleton")
        if "joints" not in skin:
            raise GLBFormatError(f"skin {gn['skin']} has no joints")
        meshes.append(SkinnedMesh(
            node=nodes[ni],
            root_bone=_index(nodes, skeleton, f"skin {gn['skin']} skeleton") if skeleton is not None else None,
            bones=[_index(nodes, j, f"skin {gn['skin']} joint") for j in skin["joints"]],
            inverse_bind_matrices=skin.get("inverseBindMatrices"),
            skin_name=skin.get("name"),
        ))

    roots = [node for node in nodes if node.parent is None]
    return Scene(nodes=nodes, roots=roots, meshes=meshes, gltf=gltf, bin_buffer=bin_buffer)


def parse_glb(path: str) -> Scene:
    """Parse a GLB file and return its scene graph."""
    with open(path, "rb") as f:
        raw = f.read()
    gltf, bin_buffer = read_glb(raw)
    return build_scene(gltf, bin_buffer)


def read_inverse_bind_matrices(scene: Scene, mesh: SkinnedMesh):
    """(N, 4, 4) row-major inverse bind matrices of a mesh's skin, or None."""
    if mesh.inverse_bind_matrices is None:
        return None
    try:
        ibm_raw = _read_accessor(scene.gltf, scene.bin_buffer, mesh.inverse_bind_matrices)  # (N, 16)
    except (KeyError, IndexError, TypeError, struct.error) as e:
        raise GLBFormatError(f"{mesh.name}: bad inverseBindMatrices accessor ({e})") from None
    if ibm_raw.shape[1] != 16:
        raise GLBFormatError(f"{mesh.name}: inverseBindMatrices is not MAT4")
    # glTF stores matrices column-major
    return ibm_raw.reshape(-1, 4, 4).transpose(0, 2, 1)
