"""Attach merge bones that have no main-armature equivalent to their nearest matched ancestor."""

import enum
import logging

from .scene import Axis, ParentConstraint

log = logging.getLogger(__name__)


class ExtraBonesAction(enum.Enum):
    NONE = "none"
    MOVE = "move"  # reparent onto the matched main bone
    CONSTRAIN = "constrain"  # matched merge bone follows the matched main bone

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            choices = ", ".join(a.value for a in cls)
            raise ValueError(f"unknown extra bones action {value!r} (expected one of: {choices})") from None


def ancestor_chain(bone, merge_root):
    """Parents of ``bone`` nearest first, stopping before ``merge_root``."""
    chain = []
    node = bone.parent
    while node is not None and node is not merge_root:
        chain.append(node)
        node = node.parent
    return chain


def find_matched_parent(chain, matched):
    for node in chain:
        if node in matched:
            return node, matched[node]
    return None


def resolve_extra_bones(unmatched, matched, merge_root, action):
    """Apply ``action`` to each unmatched bone with a matched ancestor.

    Ancestor chains are captured for every bone before anything moves, so
    the result does not depend on the order of ``unmatched``.

    Returns (bones that were handled, set of bones moved out of the merge armature).
    """
    action = ExtraBonesAction.parse(action)
    moved = set()
    if action is ExtraBonesAction.NONE:
        return [], moved

    chains = [(bone, ancestor_chain(bone, merge_root)) for bone in unmatched]

    handled = []
    for bone, chain in chains:
        pair = find_matched_parent(chain, matched)
        if pair is None:
            log.debug("%r has no matched ancestor, left in place", bone.name)
            continue
        merge_parent, main_parent = pair

        if action is ExtraBonesAction.MOVE:
            bone.set_parent(main_parent)
            moved.add(bone)
        elif merge_parent.get_constraint(ParentConstraint) is None:
            merge_parent.add_constraint(ParentConstraint(
                source=main_parent,
                weight=1.0,
                locked=True,
                translation_axis=Axis.ALL,
                rotation_axis=Axis.ALL,
            ))

        handled.append(bone)

    return handled, moved
