"""
Palette utilities for discrete channels.

NO pandas imports. Callers extract category values and order; these helpers
just assign visual values.
"""

import colorsys
from typing import Any, Dict, List, Mapping, Optional, Sequence

import matplotlib
import matplotlib.colors as mcolors

from ..errors import SpecError


STANDARD_PALETTE = [
    "#1f77b4", "#ff7f0e", "#2ca02c", "#d62728", "#9467bd",
    "#8c564b", "#e377c2", "#7f7f7f", "#bcbd22", "#17becf",
]

# Color-blind safe qualitative palette (Okabe & Ito).
OKABE_ITO_PALETTE = [
    "#E69F00", "#56B4E9", "#009E73", "#F0E442",
    "#0072B2", "#D55E00", "#CC79A7", "#000000",
]

GREYS_PALETTE = ["#252525", "#636363", "#969696", "#bdbdbd", "#d9d9d9"]

NAMED_PALETTES = {
    'standard': STANDARD_PALETTE,
    'okabe_ito': OKABE_ITO_PALETTE,
    'greys': GREYS_PALETTE,
}

# matplotlib marker codes; renderers translate for other backends.
SHAPE_PALETTE = ['o', '^', 's', 'D', 'v', 'P', 'X', '*']


def check_color(name: str, color: Any) -> None:
    """Raise SpecError unless matplotlib understands ``color``."""
    if not mcolors.is_color_like(color):
        raise SpecError(f"{name} is not a valid color: {color!r}")


def normalize_color(color: Any) -> str:
    """Convert any color format to hex string."""
    try:
        return mcolors.to_hex(color)
    except (ValueError, TypeError):
        return str(color)


def to_rgba_string(color: Any, alpha: float = 1.0) -> str:
    """Convert any color to rgba() string for Plotly fill."""
    try:
        r, g, b, _ = mcolors.to_rgba(color)
        return f"rgba({int(r*255)},{int(g*255)},{int(b*255)},{alpha})"
    except (ValueError, TypeError):
        return f"rgba(128,128,128,{alpha})"


def _generate_distinct_color(index: int) -> str:
    """Generate additional distinct colors when the palette is exhausted."""
    hue = (index * 0.618033988749895) % 1.0  # Golden-ratio spacing
    r, g, b = colorsys.hsv_to_rgb(hue, 0.65, 0.85)
    return normalize_color((r, g, b))


def create_color_lookup(
    unique_values: Sequence[Any],
    palette: Optional[List[str]] = None,
) -> Dict[Any, str]:
    """Default value→color mapping, extended with generated colors past the palette."""
    palette = [normalize_color(c) for c in (palette or STANDARD_PALETTE)]
    lookup = {}
    for i, v in enumerate(unique_values):
        lookup[v] = palette[i] if i < len(palette) else _generate_distinct_color(i - len(palette))
    return lookup


def named_palette(name: str, n: int) -> List[str]:
    """Resolve a palette name to at least ``n`` colors.

    Qualitative names return their fixed list (which may be shorter than n;
    the caller decides whether that is an error). Any matplotlib colormap name
    is sampled evenly.
    """
    if name in NAMED_PALETTES:
        return list(NAMED_PALETTES[name])
    try:
        cmap = matplotlib.colormaps[name]
    except KeyError:
        raise SpecError(
            f"Unknown palette {name!r}; use one of {sorted(NAMED_PALETTES)} or a matplotlib colormap"
        ) from None
    if n <= 1:
        return [normalize_color(cmap(0.0))]
    return [normalize_color(cmap(i / (n - 1))) for i in range(n)]


def resolve_palette(
    channel: str,
    categories: Sequence[Any],
    values: Optional[Sequence[str]] = None,
    mapping: Optional[Mapping[Any, str]] = None,
    name: Optional[str] = None,
) -> Dict[Any, str]:
    """Assign a visual value to every category of a discrete channel.

    Rules:
    - ``mapping`` must cover every category.
    - ``values`` / ``name`` are assigned in category order and must have at
      least as many entries as there are categories.
    - With nothing given, colors come from STANDARD_PALETTE (extended with
      generated distinct colors) and shapes from SHAPE_PALETTE.
    """
    cats = list(categories)
    is_shape = channel == 'shape'
    norm = (lambda v: v) if is_shape else normalize_color

    if mapping is not None:
        missing = [c for c in cats if c not in mapping]
        if missing:
            raise SpecError(f"{channel} palette has no value for categories {missing}")
        return {c: norm(mapping[c]) for c in cats}

    if values is None and name is not None:
        values = named_palette(name, len(cats))

    if values is not None:
        if len(values) < len(cats):
            raise SpecError(
                f"{channel} palette has {len(values)} values but the data has "
                f"{len(cats)} categories: {cats}"
            )
        return {c: norm(values[i]) for i, c in enumerate(cats)}

    if is_shape:
        if len(cats) > len(SHAPE_PALETTE):
            raise SpecError(
                f"The default shape palette has {len(SHAPE_PALETTE)} shapes but the data has "
                f"{len(cats)} categories; supply an explicit shape palette"
            )
        return {c: SHAPE_PALETTE[i] for i, c in enumerate(cats)}

    return create_color_lookup(cats)


__all__ = [
    'STANDARD_PALETTE', 'OKABE_ITO_PALETTE', 'GREYS_PALETTE', 'NAMED_PALETTES', 'SHAPE_PALETTE',
    'normalize_color', 'to_rgba_string', 'create_color_lookup', 'named_palette', 'resolve_palette',
]
