"""Write a (merged) Scene back to GLB: reindexed nodes, rebuilt skins, stored constraints."""

import copy
import json
import logging
import struct

import numpy as np

from .glb_parser import CHUNK_BIN, CHUNK_JSON, CONSTRAINT_KEY, GLB_MAGIC, GLB_VERSION
from .scene import Axis, ParentConstraint

log = logging.getLogger(__name__)

_TRS_KEYS = ("matrix", "translation", "rotation", "scale")


# ---------- matrix → TRS decomposition ----------

def _decompose_trs(m):
    """Decompose a row-major 4x4 matrix into glTF TRS (rotation xyzw)."""
    m = np.asarray(m, dtype=np.float64)
    t = m[:3, 3].tolist()

    sx = np.linalg.norm(m[:3, 0])
    sy = np.linalg.norm(m[:3, 1])
    sz = np.linalg.norm(m[:3, 2])
    s = [float(sx), float(sy), float(sz)]

    R = np.column_stack([
        m[:3, 0] / max(sx, 1e-10),
        m[:3, 1] / max(sy, 1e-10),
        m[:3, 2] / max(sz, 1e-10),
    ])
    if np.linalg.det(R) < 0:
        R[:, 0] *= -1
        s[0] *= -1

    # Shepperd's method → xyzw
    tr = R[0, 0] + R[1, 1] + R[2, 2]
    if tr > 0:
        r = np.sqrt(1 + tr)
        q = 0.5 / r
        x, y, z, w = (R[2,1]-R[1,2])*q, (R[0,2]-R[2,0])*q, (R[1,0]-R[0,1])*q, 0.5*r
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        r = np.sqrt(1 + R[0,0] - R[1,1] - R[2,2])
        q = 0.5 / r
        x, y, z, w = 0.5*r, (R[0,1]+R[1,0])*q, (R[0,2]+R[2,0])*q, (R[2,1]-R[1,2])*q
    elif R[1, 1] > R[2, 2]:
        r = np.sqrt(1 + R[1,1] - R[0,0] - R[2,2])
        q = 0.5 / r
        x, y, z, w = (R[0,1]+R[1,0])*q, 0.5*r, (R[1,2]+R[2,1])*q, (R[0,2]-R[2,0])*q
    else:
        r = np.sqrt(1 + R[2,2] - R[0,0] - R[1,1])
        q = 0.5 / r
        x, y, z, w = (R[0,2]+R[2,0])*q, (R[1,2]+R[2,1])*q, 0.5*r, (R[1,0]-R[0,1])*q

    rot = [float(x), float(y), float(z), float(w)]
    return [float(v) for v in t], rot, s


def _axis_to_json(axis: Axis):
    return [name.lower() for name in ("X", "Y", "Z") if Axis[name] in axis]


def _constraint_to_json(constraint: ParentConstraint, new_index: dict):
    return {
        "source": new_index[constraint.source],
        "weight": constraint.weight,
        "sourceWeight": constraint.source_weight,
        "locked": constraint.locked,
        "active": constraint.active,
        "translationAxis": _axis_to_json(constraint.translation_axis),
        "rotationAxis": _axis_to_json(constraint.rotation_axis),
    }


def _node_to_json(node, new_index):
    gn = copy.deepcopy(node.payload)
    gn.pop("children", None)
    gn.pop("skin", None)
    gn["name"] = node.name

    if node.moved:
        for key in _TRS_KEYS:
            gn.pop(key, None)
        t, r, s = _decompose_trs(node.matrix)
        gn["translation"] = t
        gn["rotation"] = r
        gn["scale"] = s

    children = [new_index[c] for c in node.children if not c.destroyed]
    if children:
        gn["children"] = children

    extras = dict(gn.get("extras") or {})
    extras.pop(CONSTRAINT_KEY, None)
    constraint = node.get_constraint(ParentConstraint)
    if constraint is not None:
        if constraint.source.destroyed:
            log.warning("dropping constraint on %r: source %r was removed", node.name, constraint.source.name)
        else:
            extras[CONSTRAINT_KEY] = _constraint_to_json(constraint, new_index)
    if extras:
        gn["extras"] = extras
    else:
        gn.pop("extras", None)
    return gn


def _skin_to_json(mesh, new_index):
    joints = []
    for slot, bone in enumerate(mesh.bones):
        if bone.destroyed:
            raise ValueError(f"{mesh.name}: bone slot {slot} references removed node {bone.name!r}")
        joints.append(new_index[bone])
    if len(set(joints)) != len(joints):
        log.warning("%s: skin lists the same joint more than once", mesh.name)

    skin = {"joints": joints}
    if mesh.root_bone is not None and not mesh.root_bone.destroyed:
        skin["skeleton"] = new_index[mesh.root_bone]
    if mesh.inverse_bind_matrices is not None:
        skin["inverseBindMatrices"] = mesh.inverse_bind_matrices
    if mesh.skin_name:
        skin["name"] = mesh.skin_name
    return skin


def _remap_animations(animations, new_index_by_old):
    out = []
    for anim in animations:
        channels = []
        used_samplers = {}
        for ch in anim.get("channels", []):
            target = dict(ch.get("target", {}))
            if "node" in target:
                new_node = new_index_by_old.get(target["node"])
                if new_node is None:
                    continue
                target["node"] = new_node
            old_sampler = ch["sampler"]
            if old_sampler not in used_samplers:
                used_samplers[old_sampler] = len(used_samplers)
            channels.append({**ch, "sampler": used_samplers[old_sampler], "target": target})

        if not channels:
            log.info("dropping animation %r: every channel targeted a removed node", anim.get("name"))
            continue

        samplers = anim.get("samplers", [])
        new_anim = dict(anim)
        new_anim["channels"] = channels
        new_anim["samplers"] = [samplers[old] for old in sorted(used_samplers, key=used_samplers.get)]
        out.append(new_anim)
    return out


def scene_to_gltf(scene) -> dict:
    """glTF json for ``scene`` with removed nodes dropped and indices rewritten."""
    gltf = copy.deepcopy(scene.gltf)

    live = [node for node in scene.nodes if not node.destroyed]
    new_index = {node: i for i, node in enumerate(live)}
    old_index = {node: i for i, node in enumerate(scene.nodes)}
    new_index_by_old = {old_index[node]: new_index[node] for node in live if node in old_index}

    gltf["nodes"] = [_node_to_json(node, new_index) for node in live]

    # Skins: one per distinct binding, shared by identical bindings
    skins = []
    skin_lookup = {}
    for mesh in scene.meshes:
        if mesh.node.destroyed:
            continue
        skin = _skin_to_json(mesh, new_index)
        key = json.dumps(skin, sort_keys=True)
        if key not in skin_lookup:
            skin_lookup[key] = len(skins)
            skins.append(skin)
        gltf["nodes"][new_index[mesh.node]]["skin"] = skin_lookup[key]
    if skins:
        gltf["skins"] = skins
    else:
        gltf.pop("skins", None)

    for gscene in gltf.get("scenes", []):
        gscene["nodes"] = [
            new_index_by_old[ni] for ni in gscene.get("nodes", [])
            if ni in new_index_by_old and scene.nodes[ni].parent is None
        ]

    if "animations" in gltf:
        gltf["animations"] = _remap_animations(gltf["animations"], new_index_by_old)
        if not gltf["animations"]:
            del gltf["animations"]

    return gltf


def pack_glb(gltf: dict, bin_buffer: bytes = b"") -> bytes:
    """Serialize a glTF json tree plus BIN chunk into GLB bytes."""
    gltf = dict(gltf)
    bin_pad = (4 - len(bin_buffer) % 4) % 4
    bin_buffer = bin_buffer + b"\x00" * bin_pad
    if bin_buffer and gltf.get("buffers"):
        buffers = [dict(b) for b in gltf["buffers"]]
        buffers[0]["byteLength"] = len(bin_buffer)
        gltf["buffers"] = buffers

    json_str = json.dumps(gltf, separators=(",", ":"))
    json_bytes = json_str.encode("utf-8")
    # Pad JSON to 4-byte alignment with spaces
    json_pad = (4 - len(json_bytes) % 4) % 4
    json_bytes += b" " * json_pad

    # Header: 12 bytes, JSON chunk: 8 + len(json_bytes), BIN chunk: 8 + len(bin_buffer)
    total_length = 12 + 8 + len(json_bytes)
    if bin_buffer:
        total_length += 8 + len(bin_buffer)

    parts = [
        struct.pack("<III", GLB_MAGIC, GLB_VERSION, total_length),
        struct.pack("<II", len(json_bytes), CHUNK_JSON),
        json_bytes,
    ]
    if bin_buffer:
        parts.append(struct.pack("<II", len(bin_buffer), CHUNK_BIN))
        parts.append(bin_buffer)
    return b"".join(parts)


def write_glb(scene, output_path: str):
    """Write ``scene`` to ``output_path`` as GLB."""
    glb_bytes = pack_glb(scene_to_gltf(scene), scene.bin_buffer)
    with open(output_path, "wb") as f:
        f.write(glb_bytes)
    return output_path
