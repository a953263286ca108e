"""Resolve a bone of one armature against another, by relative path or by name."""

from typing import Optional

from .scene import Node


def path_to(node: Node, ancestor: Node) -> Optional[list]:
    """Names from the first child of ``ancestor`` down to ``node``.

    Returns None when ``ancestor`` is not reached walking up from ``node``
    (``node`` itself is never its own descendant).
    """
    names = []
    current = node
    while current is not None:
        parent = current.parent
        if parent is None:
            return None
        names.append(current.name)
        if parent is ancestor:
            names.reverse()
            return names
        current = parent
    return None


def resolve_by_path(root: Node, segments) -> Optional[Node]:
    """Descend from ``root`` one exact name at a time; first sibling wins."""
    if segments is None:
        return None
    current = root
    for name in segments:
        for child in current.children:
            if child.name == name:
                current = child
                break
        else:
            return None
    return current


def find_child_recursive(root: Node, name: str) -> Optional[Node]:
    """First node named ``name`` below ``root`` in pre-order (root excluded)."""
    for node in root.iter_subtree(include_self=False):
        if node.name == name:
            return node
    return None


def resolve_bone(bone: Node, main_root: Node, merge_root: Node, ignore_path=False) -> Optional[Node]:
    if ignore_path:
        return find_child_recursive(main_root, bone.name)
    return resolve_by_path(main_root, path_to(bone, merge_root))
