"""
Facet layout planning and chart geometry.

FacetSpec = layout behaviour only (rows/cols/wrap, sharing, panel sizing)
plan_facets() = grid positions + strip labels + tick text suppression
chart_margins() = decoration space around a chart's panels, in inches

Geometry is estimated from the chart IR alone so the composer can size and
align charts without a rendering backend.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .ir import FacetSpec, RenderableChart
from .style.defaults import RenderStyle

PT = 1.0 / 72.0  # inches per point

# Filter value no row matches.
_NO_VALUE = object()


@dataclass
class FacetCell:
    """Position and row filter for one facet panel."""
    key: Tuple[Any, Any]
    row: int  # 1-based
    col: int  # 1-based
    filters: Dict[str, Any]
    strip_top: Optional[str] = None
    strip_right: Optional[str] = None
    show_x_text: bool = True
    show_y_text: bool = True


def plan_facets(
    facet: Optional[FacetSpec],
    row_vals: Sequence[Any] = (),
    col_vals: Sequence[Any] = (),
    wrap_vals: Sequence[Any] = (),
) -> Tuple[int, int, List[FacetCell]]:
    """Compute the panel grid for a facet specification.

    NOTE: row/col/wrap values are VALUES, not column names. The builder reads
    them from the table in its fixed category order.
    """
    if facet is None:
        return 1, 1, [FacetCell(key=(None, None), row=1, col=1, filters={})]

    cells: List[FacetCell] = []
    if facet.wrap is not None:
        n = max(1, len(wrap_vals))
        n_cols = facet.ncol or int(math.ceil(math.sqrt(n)))
        n_cols = min(n_cols, n)
        n_rows = int(math.ceil(n / n_cols))
        for i, val in enumerate(wrap_vals):
            r, c = (i // n_cols) + 1, (i % n_cols) + 1
            cells.append(FacetCell(
                key=(val, None), row=r, col=c,
                filters={facet.wrap: val}, strip_top=str(val),
            ))
    else:
        rows = list(row_vals) if facet.rows else [None]
        cols = list(col_vals) if facet.cols else [None]
        n_rows, n_cols = len(rows), len(cols)
        for r, row_val in enumerate(rows, start=1):
            for c, col_val in enumerate(cols, start=1):
                filters = {}
                if facet.rows:
                    filters[facet.rows] = row_val
                if facet.cols:
                    filters[facet.cols] = col_val
                cells.append(FacetCell(
                    key=(row_val, col_val), row=r, col=c, filters=filters,
                    strip_top=str(col_val) if facet.cols and r == 1 else None,
                    strip_right=str(row_val) if facet.rows and c == n_cols else None,
                ))

    if not cells:
        # No facet values at all: one empty panel that no faceted row falls into.
        n_rows, n_cols = 1, 1
        cells.append(FacetCell(
            key=(None, None), row=1, col=1,
            filters={column: _NO_VALUE for column in facet.columns},
        ))

    # Tick text suppression: shared axes only label the outer panels
    occupied = {(cell.row, cell.col) for cell in cells}
    for cell in cells:
        cell.show_x_text = (not facet.sharex) or (cell.row + 1, cell.col) not in occupied
        cell.show_y_text = (not facet.sharey) or cell.col == 1
    return n_rows, n_cols, cells


def compute_figure_size(
    n_rows: int,
    n_cols: int,
    style: RenderStyle,
) -> Tuple[float, float]:
    """Compute (width, height) in inches from grid dimensions and style."""
    width = max(style.min_width, n_cols * style.width_per_col)
    height = max(style.min_height, n_rows * style.height_per_row)
    return width, height


# ==============================================================================
# Geometry
# ==============================================================================

@dataclass(frozen=True)
class Box:
    """Rectangle in figure-fraction coordinates."""
    left: float
    bottom: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def top(self) -> float:
        return self.bottom + self.height

    def inset(self, margins: 'Margins', fig_width: float, fig_height: float) -> 'Box':
        """Shrink by margins given in inches."""
        left = self.left + margins.left / fig_width
        bottom = self.bottom + margins.bottom / fig_height
        width = max(self.width - (margins.left + margins.right) / fig_width, 1e-3)
        height = max(self.height - (margins.bottom + margins.top) / fig_height, 1e-3)
        return Box(left, bottom, width, height)


@dataclass(frozen=True)
class Margins:
    """Decoration space around the plotted area, in inches."""
    left: float = 0.0
    right: float = 0.0
    bottom: float = 0.0
    top: float = 0.0

    def union(self, other: 'Margins') -> 'Margins':
        return Margins(
            max(self.left, other.left), max(self.right, other.right),
            max(self.bottom, other.bottom), max(self.top, other.top),
        )


def format_tick(value: float) -> str:
    return f"{value:g}"


def text_width(text: str, size: float) -> float:
    """Approximate rendered width of ``text`` in inches."""
    return len(text) * size * 0.55 * PT


def tick_texts(axis) -> List[str]:
    if axis.categories is not None:
        return [str(c) for c in axis.categories]
    if axis.breaks:
        return [format_tick(b) for b in axis.breaks]
    lo, hi = axis.limits
    return [format_tick(round(lo, 2)), format_tick(round(hi, 2))]


def strip_height(chart: RenderableChart) -> float:
    strip = chart.layout.strip
    rel = strip.size_rel if strip is not None else 0.8
    return chart.theme.base_size * rel * 2.0 * PT


def title_slack(chart: RenderableChart) -> float:
    """Free height in the title line; ``title_vjust`` places the title within it."""
    return chart.theme.title_size * 0.4 * PT


def y_tick_width(chart: RenderableChart) -> float:
    theme = chart.theme
    texts = [t for p in chart.panels for t in tick_texts(p.y)]
    if not texts:
        return 0.0
    return max(text_width(t, theme.tick_size) for t in texts) + 5.0 * PT


def x_tick_height(chart: RenderableChart) -> float:
    theme = chart.theme
    line = theme.tick_size * 1.2 * PT
    if not theme.x_text_angle:
        return line + 5.0 * PT
    texts = [t for p in chart.panels for t in tick_texts(p.x)]
    longest = max((text_width(t, theme.tick_size) for t in texts), default=0.0)
    angle = math.radians(abs(theme.x_text_angle))
    return longest * math.sin(angle) + line * math.cos(angle) + 5.0 * PT


def legend_extent(chart: RenderableChart) -> Tuple[float, float]:
    """(width, height) in inches of the stacked legends."""
    theme = chart.theme
    if not chart.legends or not theme.legend_visible:
        return 0.0, 0.0
    key = theme.base_size * 1.6 * PT
    widths, height = [], 0.0
    for legend in chart.legends:
        labels = [e.label for e in legend.entries]
        label_w = max((text_width(t, theme.tick_size) for t in labels), default=0.0)
        widths.append(max(text_width(legend.title, theme.base_size), key + label_w) + 11 * PT)
        height += key * (len(legend.entries) + 1) + 5.5 * PT
    return max(widths), height


def chart_margins(chart: RenderableChart) -> Margins:
    """Estimate decoration space around a chart's plotted area."""
    theme = chart.theme
    fs = theme.base_size
    pad = 5.5 * PT
    left = right = bottom = top = pad

    if not theme.hide_y_text and any(p.y.show_text for p in chart.panels):
        left += y_tick_width(chart)
    if chart.y_label:
        left += fs * 1.4 * PT
    if not theme.hide_x_text and any(p.x.show_text for p in chart.panels):
        bottom += x_tick_height(chart)
    if chart.x_label:
        bottom += fs * 1.4 * PT
    if chart.caption:
        bottom += fs * 0.8 * 1.4 * PT
    if chart.title:
        top += theme.title_size * 1.4 * PT
    if chart.subtitle:
        top += fs * 1.4 * PT
    if chart.has_strips:
        top += strip_height(chart)
    if chart.has_row_strips:
        right += strip_height(chart)

    legend_w, legend_h = legend_extent(chart)
    position = theme.legend_position
    if position == 'right':
        right += legend_w
    elif position == 'left':
        left += legend_w
    elif position == 'bottom':
        bottom += min(legend_h, 2.5 * fs * PT * len(chart.legends))
    elif position == 'top':
        top += min(legend_h, 2.5 * fs * PT * len(chart.legends))
    return Margins(left, right, bottom, top)


def panel_gaps(chart: RenderableChart, style: RenderStyle) -> Tuple[float, float]:
    """(horizontal, vertical) gap between facet panels, in inches."""
    wgap = hgap = style.panel_spacing
    layout = chart.layout
    if not layout.sharey and not chart.theme.hide_y_text:
        wgap += y_tick_width(chart)
    if not layout.sharex and not chart.theme.hide_x_text:
        hgap += x_tick_height(chart)
    if any(p.strip_top for p in chart.panels if p.row > 1):
        hgap += strip_height(chart)
    return wgap, hgap


def chart_size(chart: RenderableChart, style: RenderStyle) -> Tuple[float, float]:
    """Natural (width, height) in inches for rendering a chart on its own."""
    width, height = compute_figure_size(chart.layout.n_rows, chart.layout.n_cols, style)
    m = chart_margins(chart)
    return width + m.left + m.right, height + m.top + m.bottom


__all__ = [
    'FacetCell', 'plan_facets', 'compute_figure_size',
    'Box', 'Margins', 'chart_margins', 'panel_gaps', 'chart_size',
    'format_tick', 'text_width', 'tick_texts', 'strip_height', 'PT',
    'x_tick_height', 'y_tick_width', 'legend_extent',
]
