import os
import sys
import unittest

import numpy as np

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from armature_helpers import build_tree
from armature_merge.extra_bones import ExtraBonesAction, ancestor_chain, resolve_extra_bones
from armature_merge.scene import Axis, ParentConstraint


class TestExtraBones(unittest.TestCase):
    def setUp(self):
        self.main, self.main_nodes = build_tree(
            "Root", ["Hips", "Hips/Spine"],
            offsets={"Hips": (0, 1, 0), "Hips/Spine": (0, 0.4, 0)})
        self.merge, self.merge_nodes = build_tree(
            "Root2", ["Hips", "Hips/Spine", "Hips/Spine/Tail", "Hips/Spine/Tail/TailTip", "Ears", "Ears/Ear"],
            offsets={"Hips": (0, 1, 0), "Hips/Spine": (0, 0.4, 0), "Hips/Spine/Tail": (0, 0, -0.1),
                     "Hips/Spine/Tail/TailTip": (0, 0, -0.3)})
        m = self.merge_nodes
        self.matched = {m["Hips"]: self.main_nodes["Hips"], m["Hips/Spine"]: self.main_nodes["Hips/Spine"]}

    def test_ancestor_chain_stops_before_merge_root(self):
        chain = ancestor_chain(self.merge_nodes["Hips/Spine/Tail/TailTip"], self.merge)
        self.assertEqual([n.name for n in chain], ["Tail", "Spine", "Hips"])

    def test_move_reparents_onto_matched_main_bone(self):
        tail = self.merge_nodes["Hips/Spine/Tail"]
        handled, moved = resolve_extra_bones([tail], self.matched, self.merge, ExtraBonesAction.MOVE)

        self.assertEqual(handled, [tail])
        self.assertEqual(moved, {tail})
        self.assertIs(tail.parent, self.main_nodes["Hips/Spine"])
        np.testing.assert_allclose(tail.world_matrix()[:3, 3], [0, 1.4, -0.1])
        # The tail's own children travel with it
        self.assertIs(self.merge_nodes["Hips/Spine/Tail/TailTip"].parent, tail)

    def test_nearest_matched_ancestor_skips_unmatched_parents(self):
        tip = self.merge_nodes["Hips/Spine/Tail/TailTip"]
        resolve_extra_bones([tip], self.matched, self.merge, "move")
        self.assertIs(tip.parent, self.main_nodes["Hips/Spine"])
        np.testing.assert_allclose(tip.world_matrix()[:3, 3], [0, 1.4, -0.4])

    def test_result_does_not_depend_on_order(self):
        m = self.merge_nodes
        tail, tip = m["Hips/Spine/Tail"], m["Hips/Spine/Tail/TailTip"]
        resolve_extra_bones([tip, tail], self.matched, self.merge, ExtraBonesAction.MOVE)
        parents_a = (tail.parent, tip.parent)

        self.setUp()
        m = self.merge_nodes
        tail, tip = m["Hips/Spine/Tail"], m["Hips/Spine/Tail/TailTip"]
        resolve_extra_bones([tail, tip], self.matched, self.merge, ExtraBonesAction.MOVE)
        parents_b = (tail.parent, tip.parent)

        self.assertEqual([p.name for p in parents_a], [p.name for p in parents_b])
        self.assertIs(parents_b[0], self.main_nodes["Hips/Spine"])
        self.assertIs(parents_b[1], self.main_nodes["Hips/Spine"])

    def test_bone_without_matched_ancestor_is_left_alone(self):
        ear = self.merge_nodes["Ears/Ear"]
        handled, moved = resolve_extra_bones([ear], self.matched, self.merge, ExtraBonesAction.MOVE)
        self.assertEqual(handled, [])
        self.assertEqual(moved, set())
        self.assertIs(ear.parent, self.merge_nodes["Ears"])

    def test_merge_root_is_never_a_matched_ancestor(self):
        ears = self.merge_nodes["Ears"]
        matched = dict(self.matched)
        matched[self.merge] = self.main
        handled, _ = resolve_extra_bones([ears], matched, self.merge, ExtraBonesAction.MOVE)
        self.assertEqual(handled, [])
        self.assertIs(ears.parent, self.merge)

    def test_constrain_adds_one_follow_constraint(self):
        m = self.merge_nodes
        tail, tip = m["Hips/Spine/Tail"], m["Hips/Spine/Tail/TailTip"]
        handled, moved = resolve_extra_bones([tail, tip], self.matched, self.merge, ExtraBonesAction.CONSTRAIN)

        self.assertEqual(len(handled), 2)
        self.assertEqual(moved, set())
        spine = m["Hips/Spine"]
        self.assertEqual(len(spine.constraints), 1)
        constraint = spine.get_constraint(ParentConstraint)
        self.assertIs(constraint.source, self.main_nodes["Hips/Spine"])
        self.assertEqual(constraint.weight, 1.0)
        self.assertTrue(constraint.locked)
        self.assertEqual(constraint.translation_axis, Axis.ALL)
        self.assertEqual(constraint.rotation_axis, Axis.ALL)
        # Nothing is reparented
        self.assertIs(tail.parent, spine)

    def test_constrain_keeps_existing_constraint(self):
        spine = self.merge_nodes["Hips/Spine"]
        existing = spine.add_constraint(ParentConstraint(source=self.main_nodes["Hips"]))
        handled, _ = resolve_extra_bones([self.merge_nodes["Hips/Spine/Tail"]], self.matched, self.merge,
                                         ExtraBonesAction.CONSTRAIN)
        self.assertEqual(len(handled), 1)
        self.assertEqual(spine.constraints, [existing])

    def test_none_does_nothing(self):
        tail = self.merge_nodes["Hips/Spine/Tail"]
        handled, moved = resolve_extra_bones([tail], self.matched, self.merge, ExtraBonesAction.NONE)
        self.assertEqual((handled, moved), ([], set()))
        self.assertIs(tail.parent, self.merge_nodes["Hips/Spine"])

    def test_parse(self):
        self.assertIs(ExtraBonesAction.parse("MOVE"), ExtraBonesAction.MOVE)
        self.assertIs(ExtraBonesAction.parse(ExtraBonesAction.CONSTRAIN), ExtraBonesAction.CONSTRAIN)
        with self.assertRaises(ValueError):
            ExtraBonesAction.parse("reparent")


if __name__ == "__main__":
    unittest.main()
