"""Build a trimesh.Scene preview of armatures: a sphere per bone, a cylinder per link."""

import numpy as np
import trimesh


def _quat_xyzw_to_matrix(x, y, z, w):
    """Convert quaternion (xyzw) to 3x3 rotation matrix."""
    return np.array([
        [1 - 2*(y*y + z*z), 2*(x*y - w*z),     2*(x*z + w*y)],
        [2*(x*y + w*z),     1 - 2*(x*x + z*z), 2*(y*z - w*x)],
        [2*(x*z - w*y),     2*(y*z + w*x),     1 - 2*(x*x + y*y)],
    ], dtype=np.float64)


def _bone_transform(start, end):
    """Compute 4x4 transform for a unit Z-cylinder to span start→end.

    The unit cylinder has height=1 along Z, centered at origin.
    Returns transform matrix, or None if degenerate.
    """
    direction = end - start
    length = np.linalg.norm(direction)
    if length < 1e-10:
        return None

    midpoint = (start + end) / 2.0
    d = direction / length
    z = np.array([0, 0, 1], dtype=np.float64)
    dot = np.dot(z, d)

    if dot > 0.9999:
        R = np.eye(3)
    elif dot < -0.9999:
        R = _quat_xyzw_to_matrix(1.0, 0.0, 0.0, 0.0)  # 180° around X
    else:
        cross = np.cross(z, d)
        axis = cross / np.linalg.norm(cross)
        half = np.arccos(np.clip(dot, -1, 1)) / 2
        R = _quat_xyzw_to_matrix(
            axis[0]*np.sin(half), axis[1]*np.sin(half),
            axis[2]*np.sin(half), np.cos(half))

    # Apply non-uniform scale: [1, 1, length]
    RS = R.copy()
    RS[:, 2] *= length

    mat = np.eye(4)
    mat[:3, :3] = RS
    mat[:3, 3] = midpoint
    return mat


def build_preview(roots, colors, categories=None, sphere_radius=0.01):
    """
    Build a trimesh.Scene from the rest pose of every bone under ``roots``.

    ``categories`` maps a node to a key of ``colors`` ("main", "extra",
    "unmatched"); unlisted nodes are "main". Links are coloured by the child.
    """
    categories = categories or {}
    scene = trimesh.Scene()
    bone_radius = sphere_radius * 0.3

    count = 0
    for root in roots:
        if root is None or root.destroyed:
            continue
        positions = {}
        for node in root.iter_subtree():
            positions[node] = node.world_matrix()[:3, 3].astype(np.float64)
            color = colors[categories.get(node, "main")]

            sphere = trimesh.creation.icosphere(subdivisions=1, radius=sphere_radius)
            sphere.visual.face_colors = color
            transform = np.eye(4)
            transform[:3, 3] = positions[node]
            scene.add_geometry(
                sphere,
                node_name=f"joint_{count}_{node.name}",
                geom_name=f"joint_{count}_geom",
                transform=transform,
            )

            parent = node.parent
            if node is not root and parent in positions:
                mat = _bone_transform(positions[parent], positions[node])
                if mat is not None:
                    cyl = trimesh.creation.cylinder(radius=bone_radius, height=1.0, sections=6)
                    cyl.visual.face_colors = color
                    scene.add_geometry(
                        cyl,
                        node_name=f"bone_{count}_{node.name}",
                        geom_name=f"bone_{count}_geom",
                        transform=mat,
                    )
            count += 1

    return scene
