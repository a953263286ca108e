"""In-memory scene graph the merge operates on: nodes, skinned meshes, constraints."""

import enum
import weakref
from dataclasses import dataclass, field
from typing import Optional

import numpy as np


class Axis(enum.Flag):
    NONE = 0
    X = enum.auto()
    Y = enum.auto()
    Z = enum.auto()
    ALL = X | Y | Z


@dataclass
class ParentConstraint:
    """Makes the owning node follow ``source`` in translation and rotation."""

    source: "Node"
    weight: float = 1.0
    source_weight: float = 1.0
    locked: bool = True
    active: bool = True
    translation_axis: Axis = Axis.ALL
    rotation_axis: Axis = Axis.ALL


class Node:
    """A named transform in a tree.

    ``parent`` is a weak back-reference; a node is owned by its parent's
    ``children`` list (or by the scene for top-level nodes).
    """

    def __init__(self, name, matrix=None, payload=None):
        self.name = name
        self.children = []
        self.matrix = np.eye(4) if matrix is None else np.asarray(matrix, dtype=np.float64)
        self.constraints = []
        self.payload = payload if payload is not None else {}
        self.destroyed = False
        self.moved = False
        self._parent_ref = None

    def __repr__(self):
        state = " destroyed" if self.destroyed else ""
        return f"<Node {self.name!r}{state}>"

    @property
    def parent(self) -> Optional["Node"]:
        return self._parent_ref() if self._parent_ref is not None else None

    def add_child(self, name, matrix=None, payload=None) -> "Node":
        child = Node(name, matrix=matrix, payload=payload)
        child._parent_ref = weakref.ref(self)
        self.children.append(child)
        return child

    def attach(self, child: "Node"):
        """Append an existing parentless node as the last child."""
        if child.parent is not None:
            raise ValueError(f"{child!r} already has a parent")
        child._parent_ref = weakref.ref(self)
        self.children.append(child)

    def world_matrix(self) -> np.ndarray:
        world = self.matrix
        node = self.parent
        while node is not None:
            world = node.matrix @ world
            node = node.parent
        return world

    def set_parent(self, parent: Optional["Node"], keep_world=True):
        """Move this node under ``parent`` (``None`` makes it top-level).

        With ``keep_world`` the local matrix is recomputed so the node stays
        where it is in world space.
        """
        if self.destroyed:
            raise ValueError(f"cannot reparent destroyed {self!r}")
        node = parent
        while node is not None:
            if node is self:
                raise ValueError(f"cannot parent {self!r} under its own descendant")
            node = node.parent

        world = self.world_matrix()
        old_parent = self.parent
        if old_parent is not None:
            old_parent.children.remove(self)

        if parent is None:
            self._parent_ref = None
            local = world
        else:
            parent.children.append(self)
            self._parent_ref = weakref.ref(parent)
            local = np.linalg.inv(parent.world_matrix()) @ world

        if keep_world:
            self.matrix = local
        self.moved = True

    def iter_subtree(self, include_self=True):
        """Pre-order walk of this node's subtree."""
        stack = [self] if include_self else list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def destroy(self):
        """Detach from the parent and mark the whole subtree destroyed."""
        parent = self.parent
        if parent is not None:
            parent.children.remove(self)
        self._parent_ref = None
        for node in self.iter_subtree():
            node.destroyed = True

    def get_constraint(self, kind=ParentConstraint):
        for constraint in self.constraints:
            if isinstance(constraint, kind):
                return constraint
        return None

    def add_constraint(self, constraint):
        self.constraints.append(constraint)
        return constraint


@dataclass
class SkinnedMesh:
    """A mesh node's skin binding: root bone plus one bone per weight slot."""

    node: Node
    root_bone: Optional[Node]
    bones: list
    inverse_bind_matrices: Optional[int] = None
    skin_name: Optional[str] = None

    @property
    def name(self):
        return self.node.name


@dataclass
class Scene:
    """Everything read from one asset: node list in file order, top-level nodes, meshes."""

    nodes: list
    roots: list
    meshes: list = field(default_factory=list)
    gltf: dict = field(default_factory=dict)
    bin_buffer: bytes = b""

    def find(self, name) -> Optional[Node]:
        """First live node called ``name``, in pre-order from the top-level nodes."""
        for root in self.roots:
            if root.destroyed or root.parent is not None:
                continue
            for node in root.iter_subtree():
                if node.name == name:
                    return node
        return None

    def find_mesh(self, name) -> Optional[SkinnedMesh]:
        for mesh in self.meshes:
            if mesh.name == name and not mesh.node.destroyed:
                return mesh
        return None
