"""Style module: palettes, themes and render sizing."""

from .colors import (
    STANDARD_PALETTE, OKABE_ITO_PALETTE, SHAPE_PALETTE,
    check_color, normalize_color, to_rgba_string, create_color_lookup, named_palette, resolve_palette,
)
from .defaults import RenderStyle, default_style, paper_style
from .themes import Theme, BASE_THEMES, resolve_theme

__all__ = [
    'STANDARD_PALETTE', 'OKABE_ITO_PALETTE', 'SHAPE_PALETTE',
    'check_color', 'normalize_color', 'to_rgba_string', 'create_color_lookup', 'named_palette', 'resolve_palette',
    'RenderStyle', 'default_style', 'paper_style',
    'Theme', 'BASE_THEMES', 'resolve_theme',
]
