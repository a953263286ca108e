"""Tree builders shared by the tests."""

import os
import sys

script_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(script_dir)
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import numpy as np

from armature_merge.scene import Node, SkinnedMesh


def translation(x, y, z):
    m = np.eye(4)
    m[:3, 3] = [x, y, z]
    return m


def build_tree(root_name, paths, offsets=None):
    """Root node plus children given as slash paths, parents listed first.

    ``offsets`` maps a path to a local translation.
    """
    offsets = offsets or {}
    root = Node(root_name)
    nodes = {}
    for path in paths:
        parent_path, _, name = path.rpartition("/")
        parent = nodes[parent_path] if parent_path else root
        offset = offsets.get(path)
        nodes[path] = parent.add_child(name, matrix=translation(*offset) if offset else None)
    return root, nodes


def mesh_for(bones, root_bone=None, name="Body"):
    return SkinnedMesh(node=Node(name), root_bone=root_bone, bones=list(bones))
