"""Merge a secondary armature into a main one for skinned meshes."""

from .extra_bones import ExtraBonesAction
from .merge import ConfigurationError, MergeReport, merge_armatures
from .scene import Axis, Node, ParentConstraint, Scene, SkinnedMesh

__all__ = [
    "Axis",
    "ConfigurationError",
    "ExtraBonesAction",
    "MergeReport",
    "Node",
    "ParentConstraint",
    "Scene",
    "SkinnedMesh",
    "merge_armatures",
]
