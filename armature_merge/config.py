import yaml
from dataclasses import dataclass, field
from pathlib import Path

from .extra_bones import ExtraBonesAction

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"

# Named color → RGBA (0-255)
_COLOR_NAME_TO_RGBA = {
    "blue": [0, 0, 255, 255],
    "green": [0, 180, 0, 255],
    "red": [255, 0, 0, 255],
    "skyblue": [135, 206, 235, 255],
    "cyan": [0, 255, 255, 255],
    "purple": [128, 0, 128, 255],
    "gray": [128, 128, 128, 255],
    "black": [40, 40, 40, 255],
    "pink": [255, 192, 203, 255],
    "orange": [255, 165, 0, 255],
    "yellow": [255, 255, 0, 255],
}

# Bone categories shown by the preview
BONE_CATEGORIES = ("main", "extra", "unmatched")


@dataclass
class MergeOptions:
    extra_bones_action: ExtraBonesAction = ExtraBonesAction.NONE
    remove_unused_bones: bool = False
    ignore_bone_path: bool = False


@dataclass
class PreviewOptions:
    sphere_radius: float = 0.01
    colors: dict = field(default_factory=lambda: {
        "main": _COLOR_NAME_TO_RGBA["skyblue"],
        "extra": _COLOR_NAME_TO_RGBA["orange"],
        "unmatched": _COLOR_NAME_TO_RGBA["red"],
    })


@dataclass
class Config:
    merge: MergeOptions = field(default_factory=MergeOptions)
    preview: PreviewOptions = field(default_factory=PreviewOptions)


def color_rgba(name):
    """RGBA for a named colour, or pass an explicit [r, g, b, a] through."""
    if isinstance(name, (list, tuple)):
        return [int(c) for c in name]
    return list(_COLOR_NAME_TO_RGBA.get(str(name).lower(), _COLOR_NAME_TO_RGBA["black"]))


def load_config(path=None) -> Config:
    """Read ``config.yaml``; missing keys keep their defaults.

    With no ``path`` the repository's ``config.yaml`` is used when present.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH
        if not path.exists():
            return Config()

    with open(path) as f:
        cfg = yaml.safe_load(f) or {}

    merge_cfg = cfg.get("merge") or {}
    merge = MergeOptions(
        extra_bones_action=ExtraBonesAction.parse(merge_cfg.get("extra_bones_action", "none")),
        remove_unused_bones=bool(merge_cfg.get("remove_unused_bones", False)),
        ignore_bone_path=bool(merge_cfg.get("ignore_bone_path", False)),
    )

    preview_cfg = cfg.get("preview") or {}
    preview = PreviewOptions()
    if "sphere_radius" in preview_cfg:
        preview.sphere_radius = float(preview_cfg["sphere_radius"])
    for category, color in (preview_cfg.get("color_map") or {}).items():
        if category not in BONE_CATEGORIES:
            raise ValueError(f"unknown bone category {category!r} in color_map")
        preview.colors[category] = color_rgba(color)

    return Config(merge=merge, preview=preview)
