"""Merge one armature into another: remap, attach extra bones, prune.

    report = merge_armatures(main_root, merge_root, meshes,
                             extra_bones_action="move", remove_unused=True)
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from .extra_bones import ExtraBonesAction, resolve_extra_bones
from .prune import remove_unused_bones
from .remap import remap_bones

log = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """The merge was refused before anything was touched."""


@dataclass
class MergeReport:
    remapped_count: int = 0
    unmatched_count: int = 0
    extra_action_count: int = 0
    removed_count: int = 0
    scale_mismatch: bool = False
    matched_bones: dict = field(default_factory=dict)
    unmatched_bones: list = field(default_factory=list)
    extra_bones: list = field(default_factory=list)

    def __str__(self):
        return (f"Armature merged ({self.remapped_count} remapped, {self.unmatched_count} unmatched, "
                f"{self.extra_action_count} extra, {self.removed_count} removed)")


def local_scale(node) -> np.ndarray:
    return np.linalg.norm(node.matrix[:3, :3], axis=0)


def validate(main_root, merge_root, meshes):
    if main_root is None or merge_root is None:
        raise ConfigurationError("Must provide both armatures")
    if main_root is merge_root:
        raise ConfigurationError("Main and merge armature must be different nodes")
    if not meshes:
        raise ConfigurationError("Must have at least one new mesh")
    if any(mesh is None for mesh in meshes):
        raise ConfigurationError("New meshes cannot be empty")


def merge_armatures(main_root, merge_root, meshes, extra_bones_action=ExtraBonesAction.NONE,
                    remove_unused=False, ignore_bone_path=False, keep_bones=()) -> MergeReport:
    """Merge ``merge_root``'s armature into ``main_root``'s for ``meshes``.

    ``keep_bones`` are never removed by ``remove_unused``, nor are their
    ancestors; pass the bones of skinned meshes left out of ``meshes``.

    Raises ConfigurationError (without mutating anything) for missing roots
    or an empty / incomplete mesh list.
    """
    meshes = list(meshes) if meshes is not None else []
    validate(main_root, merge_root, meshes)
    try:
        action = ExtraBonesAction.parse(extra_bones_action)
    except ValueError as e:
        raise ConfigurationError(str(e)) from None

    report = MergeReport()
    if not np.allclose(local_scale(main_root), local_scale(merge_root), rtol=0.0, atol=1e-6):
        log.warning("Armature scales are not equal, scaling issues may occur")
        report.scale_mismatch = True

    if ignore_bone_path:
        log.info("Ignoring bone paths: bones are matched by name, first match wins")

    matches = remap_bones(main_root, merge_root, meshes, ignore_path=ignore_bone_path)
    report.remapped_count = matches.remapped
    report.unmatched_count = matches.unresolved
    report.matched_bones = dict(matches.matched)
    report.unmatched_bones = list(matches.unmatched)

    report.extra_bones, moved = resolve_extra_bones(
        matches.unmatched, matches.matched, merge_root, action)
    report.extra_action_count = len(report.extra_bones)

    if remove_unused:
        still_attached = [bone for bone in matches.unmatched if bone not in moved]
        still_attached.extend(keep_bones)
        report.removed_count = remove_unused_bones(matches.matched, still_attached)

    log.info("%s", report)
    return report
