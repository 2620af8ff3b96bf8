"""
Render sizing for charts and figures.
"""

from dataclasses import dataclass


@dataclass
class RenderStyle:
    """Backend-agnostic sizing configuration (inches)."""
    # Sizing (per panel)
    height_per_row: float = 3.2
    width_per_col: float = 3.6
    min_height: float = 3.5
    min_width: float = 4.5

    # Export
    dpi: int = 150
    px_per_inch: int = 100  # Plotly pixel scaling

    # Spacing between facet panels (inches)
    panel_spacing: float = 0.08


def default_style() -> RenderStyle:
    return RenderStyle()


def paper_style() -> RenderStyle:
    return RenderStyle(
        height_per_row=2.6,
        width_per_col=2.9,
        min_height=2.8,
        min_width=3.4,
        dpi=300,
    )
