"""Point every merged mesh's bones at the equivalent main-armature bones."""

import logging
from dataclasses import dataclass, field

from .bone_paths import resolve_bone

log = logging.getLogger(__name__)


@dataclass
class BoneMatches:
    """Merge-armature bones split into matched (with their main bone) and unmatched."""

    matched: dict = field(default_factory=dict)  # merge bone -> main bone, first match wins
    unmatched: list = field(default_factory=list)
    remapped: int = 0  # per slot
    unresolved: int = 0  # per slot
    _unmatched_set: set = field(default_factory=set, repr=False)

    def add_match(self, bone, found):
        if bone not in self.matched:
            self.matched[bone] = found

    def add_unmatched(self, bone):
        if bone not in self._unmatched_set:
            self._unmatched_set.add(bone)
            self.unmatched.append(bone)

    def is_unmatched(self, bone):
        return bone in self._unmatched_set


def remap_bones(main_root, merge_root, meshes, ignore_path=False, matches=None):
    """Rewrite ``root_bone`` and ``bones`` of each mesh in place.

    Unresolved root bones fall back to ``main_root``. Unresolved slots keep
    their original bone so the mesh still deforms.
    """
    if matches is None:
        matches = BoneMatches()

    for mesh in meshes:
        found_root = None
        if mesh.root_bone is not None:
            found_root = resolve_bone(mesh.root_bone, main_root, merge_root, ignore_path)
        mesh.root_bone = main_root if found_root is None else found_root

        new_bones = list(mesh.bones)
        for slot, bone in enumerate(mesh.bones):
            found = resolve_bone(bone, main_root, merge_root, ignore_path)
            if found is None:
                log.debug("%s: slot %d bone %r unmatched", mesh.name, slot, bone.name)
                matches.add_unmatched(bone)
                matches.unresolved += 1
                continue

            new_bones[slot] = found
            matches.add_match(bone, found)
            matches.remapped += 1

        mesh.bones = new_bones

    return matches
