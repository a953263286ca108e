"""Remove merge bones that no mesh needs once remapping is done."""

import logging

log = logging.getLogger(__name__)


def has_excluded_descendant(bone, excluded):
    for node in bone.iter_subtree(include_self=False):
        if node in excluded:
            return True
    return False


def remove_unused_bones(matched, excluded):
    """Destroy each matched merge bone whose subtree holds no ``excluded`` bone.

    ``excluded`` are the unmatched bones still parented inside the merge
    armature, plus any bone other meshes still use. Returns the number of
    destroy requests; a destroyed subtree counts once.
    """
    excluded = set(excluded)
    removed = 0
    for bone in matched:
        if bone.destroyed:
            continue
        if bone in excluded:
            log.debug("keeping %r, still used by another mesh", bone.name)
            continue
        if has_excluded_descendant(bone, excluded):
            log.debug("keeping %r, still holds unmatched bones", bone.name)
            continue
        bone.destroy()
        removed += 1
    return removed
