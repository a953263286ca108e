import gc
import os
import sys
import unittest

import numpy as np

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from armature_helpers import build_tree, translation
from armature_merge.scene import Axis, Node, ParentConstraint, Scene


class TestNode(unittest.TestCase):
    def setUp(self):
        self.root, self.nodes = build_tree(
            "Root", ["Hips", "Hips/Spine", "Hips/Spine/Tail", "Leg"],
            offsets={"Hips": (0, 1, 0), "Hips/Spine": (0, 0.5, 0), "Hips/Spine/Tail": (0, 0, -0.2),
                     "Leg": (0.2, 0, 0)},
        )

    def test_world_matrix_composes_parents(self):
        world = self.nodes["Hips/Spine/Tail"].world_matrix()
        np.testing.assert_allclose(world[:3, 3], [0, 1.5, -0.2])

    def test_set_parent_keeps_world_position(self):
        tail = self.nodes["Hips/Spine/Tail"]
        leg = self.nodes["Leg"]
        tail.set_parent(leg)

        self.assertIs(tail.parent, leg)
        self.assertIn(tail, leg.children)
        self.assertNotIn(tail, self.nodes["Hips/Spine"].children)
        self.assertTrue(tail.moved)
        np.testing.assert_allclose(tail.world_matrix()[:3, 3], [0, 1.5, -0.2])
        np.testing.assert_allclose(tail.matrix[:3, 3], [-0.2, 1.5, -0.2])

    def test_set_parent_without_keep_world(self):
        tail = self.nodes["Hips/Spine/Tail"]
        tail.set_parent(self.nodes["Leg"], keep_world=False)
        np.testing.assert_allclose(tail.matrix[:3, 3], [0, 0, -0.2])

    def test_cannot_parent_under_own_descendant(self):
        with self.assertRaises(ValueError):
            self.nodes["Hips"].set_parent(self.nodes["Hips/Spine/Tail"])

    def test_destroy_detaches_and_marks_subtree(self):
        hips = self.nodes["Hips"]
        hips.destroy()
        self.assertNotIn(hips, self.root.children)
        self.assertIsNone(hips.parent)
        self.assertTrue(self.nodes["Hips/Spine"].destroyed)
        self.assertTrue(self.nodes["Hips/Spine/Tail"].destroyed)
        self.assertFalse(self.nodes["Leg"].destroyed)
        with self.assertRaises(ValueError):
            hips.set_parent(self.root)

    def test_parent_is_a_weak_reference(self):
        orphan_parent = Node("Temp")
        child = orphan_parent.add_child("Child")
        del orphan_parent
        gc.collect()
        self.assertIsNone(child.parent)

    def test_iter_subtree_is_preorder(self):
        names = [n.name for n in self.root.iter_subtree()]
        self.assertEqual(names, ["Root", "Hips", "Spine", "Tail", "Leg"])
        names = [n.name for n in self.root.iter_subtree(include_self=False)]
        self.assertEqual(names, ["Hips", "Spine", "Tail", "Leg"])

    def test_constraints(self):
        spine = self.nodes["Hips/Spine"]
        self.assertIsNone(spine.get_constraint(ParentConstraint))
        constraint = spine.add_constraint(ParentConstraint(source=self.nodes["Leg"]))
        self.assertIs(spine.get_constraint(ParentConstraint), constraint)
        self.assertEqual(constraint.translation_axis, Axis.X | Axis.Y | Axis.Z)
        self.assertEqual(constraint.weight, 1.0)
        self.assertTrue(constraint.locked)


class TestScene(unittest.TestCase):
    def test_find_skips_destroyed_and_nested_roots(self):
        root_a = Node("A")
        spine = root_a.add_child("Spine")
        root_b = Node("B", matrix=translation(1, 0, 0))
        spine_b = root_b.add_child("Spine")
        scene = Scene(nodes=[root_a, spine, root_b, spine_b], roots=[root_a, root_b])

        self.assertIs(scene.find("Spine"), spine)
        spine.destroy()
        self.assertIs(scene.find("Spine"), spine_b)
        root_b.set_parent(root_a)
        self.assertIs(scene.find("B"), root_b)
        self.assertIsNone(scene.find("Nope"))


if __name__ == "__main__":
    unittest.main()
