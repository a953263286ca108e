#!/usr/bin/env python3
"""CLI: merge one armature of a GLB file into another.

Usage:
    python merge_armatures.py avatar.glb --main-root Armature --merge-root Armature.001 \
        --extra-bones move --remove-unused --output merged.glb
"""

import argparse
import logging
import sys
from pathlib import Path

from armature_merge.config import load_config
from armature_merge.extra_bones import ExtraBonesAction
from armature_merge.glb_parser import GLBFormatError, parse_glb
from armature_merge.glb_writer import write_glb
from armature_merge.merge import ConfigurationError, merge_armatures

logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(message)s")


def meshes_bound_to(scene, merge_root):
    """Skinned meshes with at least one bone (or the root bone) under ``merge_root``."""
    merge_bones = set(merge_root.iter_subtree())
    return [
        mesh for mesh in scene.meshes
        if mesh.root_bone in merge_bones or any(bone in merge_bones for bone in mesh.bones)
    ]


def bones_used_outside(scene, meshes):
    """Bones and root bones of the skinned meshes that are not being merged."""
    selected = set(id(mesh) for mesh in meshes)
    bones = set()
    for mesh in scene.meshes:
        if id(mesh) in selected or mesh.node.destroyed:
            continue
        bones.update(mesh.bones)
        if mesh.root_bone is not None:
            bones.add(mesh.root_bone)
    return bones


def preview_categories(report):
    """Bone → preview category for bones the merge attached or left unmatched."""
    categories = {}
    for bone in report.unmatched_bones:
        if not bone.destroyed:
            categories[bone] = "unmatched"
    for bone in report.extra_bones:
        if not bone.destroyed:
            categories[bone] = "extra"
    return categories


def main():
    parser = argparse.ArgumentParser(
        description="Merge a secondary armature into a main armature for skinned meshes in a GLB file",
    )
    parser.add_argument("input", help="Input .glb containing both armatures")
    parser.add_argument("--main-root", required=True, help="Name of the main armature root node")
    parser.add_argument("--merge-root", required=True, help="Name of the armature root node to merge")
    parser.add_argument("--mesh", action="append", default=None,
                        help="Skinned mesh node to merge (repeatable; default: every mesh bound to the merge armature)")
    parser.add_argument("--extra-bones", choices=[a.value for a in ExtraBonesAction], default=None,
                        help="What to do with bones missing from the main armature")
    parser.add_argument("--remove-unused", action="store_true", default=None,
                        help="Remove merge bones left unused after remapping")
    parser.add_argument("--ignore-bone-path", action="store_true", default=None,
                        help="Match bones by name anywhere in the main armature instead of by path")
    parser.add_argument("--config", type=str, default=None, help="YAML config (default: config.yaml)")
    parser.add_argument("--output", type=str, default=None,
                        help="Output GLB path (default: <input_stem>_merged.glb)")
    parser.add_argument("--preview", type=str, default=None,
                        help="Also write a skeleton preview GLB of the merged armature")
    parser.add_argument("--verbose", action="store_true", help="Log every bone decision")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    in_path = Path(args.input)
    if not in_path.exists():
        print(f"Error: {in_path} not found", file=sys.stderr)
        sys.exit(1)

    try:
        cfg = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"Error: bad config: {e}", file=sys.stderr)
        sys.exit(1)

    options = cfg.merge
    if args.extra_bones is not None:
        options.extra_bones_action = ExtraBonesAction.parse(args.extra_bones)
    if args.remove_unused is not None:
        options.remove_unused_bones = args.remove_unused
    if args.ignore_bone_path is not None:
        options.ignore_bone_path = args.ignore_bone_path

    out_path = Path(args.output) if args.output else in_path.with_name(in_path.stem + "_merged.glb")
    out_path.parent.mkdir(parents=True, exist_ok=True)

    print(f"Parsing {in_path} ...")
    try:
        scene = parse_glb(str(in_path))
    except GLBFormatError as e:
        print(f"Error: {in_path}: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"  {len(scene.nodes)} nodes, {len(scene.meshes)} skinned meshes")

    main_root = scene.find(args.main_root)
    merge_root = scene.find(args.merge_root)
    if main_root is None:
        print(f"Error: main armature root {args.main_root!r} not found", file=sys.stderr)
        sys.exit(1)
    if merge_root is None:
        print(f"Error: merge armature root {args.merge_root!r} not found", file=sys.stderr)
        sys.exit(1)

    if args.mesh:
        meshes = [scene.find_mesh(name) for name in args.mesh]
        for name, mesh in zip(args.mesh, meshes):
            if mesh is None:
                print(f"Error: no skinned mesh named {name!r}", file=sys.stderr)
                sys.exit(1)
    else:
        meshes = meshes_bound_to(scene, merge_root)

    print(f"Merging {len(meshes)} mesh(es) "
          f"(extra bones: {options.extra_bones_action.value}, "
          f"remove unused: {options.remove_unused_bones}, "
          f"ignore bone path: {options.ignore_bone_path}) ...")
    try:
        report = merge_armatures(
            main_root, merge_root, meshes,
            extra_bones_action=options.extra_bones_action,
            remove_unused=options.remove_unused_bones,
            ignore_bone_path=options.ignore_bone_path,
            keep_bones=bones_used_outside(scene, meshes),
        )
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Writing {out_path} ...")
    try:
        write_glb(scene, str(out_path))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.preview:
        from armature_merge.scene_builder import build_preview

        preview_path = Path(args.preview)
        preview_path.parent.mkdir(parents=True, exist_ok=True)
        preview = build_preview(
            [main_root, merge_root], cfg.preview.colors,
            categories=preview_categories(report),
            sphere_radius=cfg.preview.sphere_radius,
        )
        preview_path.write_bytes(preview.export(file_type="glb"))
        print(f"Preview: {preview_path}")

    print(f"Done! {report} → {out_path} ({out_path.stat().st_size / 1024:.1f} KB)")


if __name__ == "__main__":
    main()
