"""Assign uploaded variant images to the color group they belong to.

Resolution order per file:
1. the positional ``variantColors`` entry, when one was sent per file
2. a ``[Color]`` tag in the form field name (``variantImages[Red]``)
3. a declared color contained in the field name (longest match wins)
4. the first declared color

Steps 1 and 2 only accept declared colors. Nothing is ever dropped:
every fallback to step 4 is logged and reported as a warning.
"""
import logging
import re

logger = logging.getLogger(__name__)

_COLOR_TAG = re.compile(r"\[([^\]]+)\]")


class ImageGrouping:
    def __init__(self, colors):
        self.by_color = {color: [] for color in colors}
        self.warnings = []

    def files_for(self, color):
        return self.by_color.get(color, [])

    def warn(self, message):
        logger.warning(message)
        self.warnings.append(message)

    @property
    def assigned_count(self):
        return sum(len(files) for files in self.by_color.values())


def field_name(file):
    """Form field name of an uploaded file (werkzeug FileStorage.name)."""
    return getattr(file, "name", None) or getattr(file, "fieldname", None) or ""


def declared_colors(colors):
    seen = []
    for color in colors or []:
        color = (color or "").strip()
        if color and color not in seen:
            seen.append(color)
    return seen


def _lookup(color, declared, by_lower):
    color = (color or "").strip()
    if not color:
        return None
    if color in declared:
        return color
    return by_lower.get(color.lower())


def _match_field_name(name, declared, by_lower):
    tag = _COLOR_TAG.search(name)
    if tag:
        color = _lookup(tag.group(1), declared, by_lower)
        if color:
            return color

    lowered = name.lower()
    candidates = [c for c in declared if c.lower() in lowered]
    if not candidates:
        return None
    # "Light Blue" beats "Blue"; ties keep declaration order
    return max(candidates, key=len)


def group_images_by_color(files, colors, color_map=None):
    """Group ``files`` by color.

    Args:
        files: uploaded files, in upload order
        colors: colors declared for the product
        color_map: optional list of colors parallel to ``files``

    Returns:
        ImageGrouping with ``by_color`` (declared color → files in upload
        order) and ``warnings``.
    """
    declared = declared_colors(colors)
    grouping = ImageGrouping(declared)
    files = list(files or [])
    if not files:
        return grouping

    if not declared:
        grouping.warn(f"{len(files)} image(s) uploaded but no colors declared")
        return grouping

    by_lower = {c.lower(): c for c in declared}
    positional = color_map is not None and len(color_map) == len(files)
    if color_map and not positional:
        grouping.warn(
            f"variantColors has {len(color_map)} entries for {len(files)} images; "
            "grouping by field name"
        )

    for index, file in enumerate(files):
        name = field_name(file)
        color = None

        if positional:
            color = _lookup(color_map[index], declared, by_lower)
            if color is None:
                grouping.warn(
                    f"Image #{index + 1} mapped to undeclared color "
                    f"{color_map[index]!r}; grouping by field name"
                )

        if color is None:
            color = _match_field_name(name, declared, by_lower)

        if color is None:
            color = declared[0]
            grouping.warn(
                f"Image #{index + 1} ({name or 'unnamed field'}) matched no color; "
                f"assigned to {color!r}"
            )

        grouping.by_color[color].append(file)

    return grouping
