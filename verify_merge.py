#!/usr/bin/env python3
"""Check a merged GLB: where each skin's bones live and how well they fit the bind pose.

For every skinned mesh, counts bone slots under the main armature versus
elsewhere, and compares each joint's rest world matrix with its inverse bind
matrix (world @ IBM should be identity when the bone sits where the mesh was
bound).

Usage:
    python verify_merge.py merged.glb --main-root Armature
"""

import argparse
import sys
from pathlib import Path

import numpy as np

from armature_merge.glb_parser import GLBFormatError, parse_glb, read_inverse_bind_matrices


def bind_pose_errors(scene, mesh):
    """Per-slot translation drift of world @ IBM away from identity, or None without IBMs."""
    ibms = read_inverse_bind_matrices(scene, mesh)
    if ibms is None:
        return None
    if len(ibms) != len(mesh.bones):
        raise ValueError(f"{mesh.name}: {len(ibms)} inverse bind matrices for {len(mesh.bones)} bones")
    world = np.stack([bone.world_matrix() for bone in mesh.bones])  # (N, 4, 4)
    residual = np.einsum('nij,njk->nik', world, ibms)
    return np.linalg.norm(residual[:, :3, 3], axis=-1)


def main():
    parser = argparse.ArgumentParser(description="Verify bone references of a merged GLB")
    parser.add_argument("glb", help="Merged GLB")
    parser.add_argument("--main-root", required=True, help="Name of the main armature root node")
    parser.add_argument("--tolerance", type=float, default=1e-3,
                        help="Bind-pose translation drift reported as a mismatch (default: 1e-3)")
    args = parser.parse_args()

    glb_path = Path(args.glb)
    if not glb_path.exists():
        print(f"Error: {glb_path} not found", file=sys.stderr)
        sys.exit(1)

    try:
        scene = parse_glb(str(glb_path))
    except GLBFormatError as e:
        print(f"Error: {glb_path}: {e}", file=sys.stderr)
        sys.exit(1)

    main_root = scene.find(args.main_root)
    if main_root is None:
        print(f"Error: main armature root {args.main_root!r} not found", file=sys.stderr)
        sys.exit(1)
    main_bones = set(main_root.iter_subtree())

    print(f"{'='*65}")
    print(f"{glb_path.name}: {len(scene.meshes)} skinned meshes, main armature {main_root.name!r}")
    print(f"{'='*65}")

    problems = 0
    print(f"\n  {'Mesh':<30s} {'Slots':>6s} {'Main':>6s} {'Other':>6s} {'MaxDrift':>9s}")
    print(f"  {'-'*30} {'-'*6} {'-'*6} {'-'*6} {'-'*9}")
    for mesh in scene.meshes:
        in_main = sum(1 for bone in mesh.bones if bone in main_bones)
        outside = len(mesh.bones) - in_main
        try:
            drift = bind_pose_errors(scene, mesh)
        except ValueError as e:
            print(f"  {mesh.name:<30s} {e}")
            problems += 1
            continue
        max_drift = f"{drift.max():9.5f}" if drift is not None and len(drift) else f"{'-':>9s}"
        print(f"  {mesh.name:<30s} {len(mesh.bones):6d} {in_main:6d} {outside:6d} {max_drift}")

        if mesh.root_bone is not None and mesh.root_bone not in main_bones:
            print(f"    root bone {mesh.root_bone.name!r} is outside the main armature")
        for slot, bone in enumerate(mesh.bones):
            if bone not in main_bones:
                print(f"    slot {slot}: {bone.name!r} outside the main armature")
        if drift is not None:
            for slot in np.flatnonzero(drift > args.tolerance):
                print(f"    slot {slot}: {mesh.bones[slot].name!r} drifts {drift[slot]:.5f} from its bind pose")
                problems += 1

    print(f"\n{'='*65}")
    print(f"DONE ({problems} problem(s))")
    print(f"{'='*65}")
    if problems:
        sys.exit(1)


if __name__ == "__main__":
    main()
