"""
Figure Composer: arranges built charts into one multi-panel figure.

FigureLayout = grid shape, weights, labels, alignment (validated on construction)
compose()    = checks the items against the layout, returns a CompositeFigure
placements() = cell and plotted-area boxes for every leaf chart

Every failure happens in FigureLayout or compose(); a CompositeFigure always
has a valid geometry.
"""

import logging
import string
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from .errors import LayoutError
from .ir import RenderableChart
from .layout import PT, Box, Margins, chart_margins

log = logging.getLogger(__name__)

LABEL_STYLES = ('auto', 'AUTO')


class Spacer:
    """An intentionally empty cell. Occupies one slot of the layout."""

    def __repr__(self) -> str:
        return 'Spacer()'


@dataclass(frozen=True)
class FigureLayout:
    """
    Grid arrangement for a composite figure.

    Parameters
    ----------
    nrow, ncol : int
        Grid shape; the figure takes exactly ``nrow * ncol`` items.
    widths, heights : sequence of float, optional
        Relative column widths / row heights. Equal when omitted.
    labels : 'auto', 'AUTO' or sequence of str, optional
        Per-cell tags: a, b, c... / A, B, C... or explicit text per cell.
    align : bool
        Give every chart at this level the same decoration margins so their
        plotted areas line up.
    size : (width, height)
        Figure size in inches when this layout is the outermost one.
    """
    nrow: int = 1
    ncol: int = 1
    widths: Optional[Tuple[float, ...]] = None
    heights: Optional[Tuple[float, ...]] = None
    labels: Optional[Union[str, Tuple[str, ...]]] = None
    align: bool = True
    size: Tuple[float, float] = (8.0, 6.0)
    title: Optional[str] = None
    label_size: float = 14.0
    spacing: float = 0.1  # inches between cells

    def __post_init__(self):
        for name in ('nrow', 'ncol'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise LayoutError(f"{name} must be a positive integer, got {value!r}")
        object.__setattr__(self, 'widths', self._weights('widths', self.widths, self.ncol))
        object.__setattr__(self, 'heights', self._weights('heights', self.heights, self.nrow))

        if isinstance(self.labels, str):
            if self.labels not in LABEL_STYLES:
                raise LayoutError(f"labels must be one of {LABEL_STYLES} or a sequence, got {self.labels!r}")
        elif self.labels is not None:
            object.__setattr__(self, 'labels', tuple(str(label) for label in self.labels))

        width, height = self.size
        if width <= 0 or height <= 0:
            raise LayoutError(f"size must be positive, got {self.size}")
        object.__setattr__(self, 'size', (float(width), float(height)))
        if self.label_size <= 0:
            raise LayoutError(f"label_size must be positive, got {self.label_size}")
        if self.spacing < 0:
            raise LayoutError(f"spacing must be non-negative, got {self.spacing}")

    @staticmethod
    def _weights(name: str, weights: Optional[Sequence[float]], n: int) -> Tuple[float, ...]:
        if weights is None:
            return tuple(1.0 for _ in range(n))
        weights = tuple(float(w) for w in weights)
        if len(weights) != n:
            raise LayoutError(f"{name} needs {n} entries, got {len(weights)}")
        if any(w <= 0 for w in weights):
            raise LayoutError(f"{name} must all be positive, got {weights}")
        return weights

    @property
    def cells(self) -> int:
        return self.nrow * self.ncol


# --- Cells ---

@dataclass(frozen=True)
class ChartCell:
    chart: RenderableChart


@dataclass(frozen=True)
class NestedCell:
    figure: 'CompositeFigure'


@dataclass(frozen=True)
class SpacerCell:
    pass


Cell = Union[ChartCell, NestedCell, SpacerCell]


@dataclass
class Placement:
    """Where one leaf chart goes, in figure-fraction coordinates."""
    path: Tuple[int, ...]  # cell index at each nesting level
    chart: RenderableChart
    cell_box: Box
    plot_box: Box
    label: Optional[str] = None


@dataclass
class Tag:
    """A cell label and the cell box it annotates."""
    text: str
    box: Box


@dataclass(frozen=True)
class CompositeFigure:
    """Composed figure. Produced only by ``compose``."""
    layout: FigureLayout
    cells: Tuple[Cell, ...]
    labels: Tuple[Optional[str], ...]

    @property
    def charts(self) -> List[RenderableChart]:
        """Leaf charts in reading order, descending into nested figures."""
        out = []
        for cell in self.cells:
            if isinstance(cell, ChartCell):
                out.append(cell.chart)
            elif isinstance(cell, NestedCell):
                out.extend(cell.figure.charts)
        return out

    def figure_size(self, size: Optional[Tuple[float, float]] = None) -> Tuple[float, float]:
        return tuple(size) if size is not None else self.layout.size

    def placements(self, size: Optional[Tuple[float, float]] = None) -> List[Placement]:
        return self._arrange(size)[0]

    def tags(self, size: Optional[Tuple[float, float]] = None) -> List[Tag]:
        return self._arrange(size)[1]

    def title_box(self, size: Optional[Tuple[float, float]] = None) -> Optional[Box]:
        if not self.layout.title:
            return None
        fig_w, fig_h = self.figure_size(size)
        height = _title_height(self.layout) / fig_h
        return Box(0.0, 1.0 - height, 1.0, height)

    def _arrange(self, size):
        fig_w, fig_h = self.figure_size(size)
        area = Box(0.0, 0.0, 1.0, 1.0)
        if self.layout.title:
            area = area.inset(Margins(top=_title_height(self.layout)), fig_w, fig_h)
        placements: List[Placement] = []
        tags: List[Tag] = []
        _place(self, area, (), fig_w, fig_h, placements, tags)
        return placements, tags


def _title_height(layout: FigureLayout) -> float:
    return layout.label_size * 1.2 * 1.6 * PT


def _grid_boxes(layout: FigureLayout, area: Box, fig_w: float, fig_h: float) -> List[Box]:
    """Cell boxes in row-major order."""
    hs = layout.spacing / fig_w
    vs = layout.spacing / fig_h
    avail_w = max(area.width - hs * (layout.ncol - 1), 1e-3)
    avail_h = max(area.height - vs * (layout.nrow - 1), 1e-3)
    total_w, total_h = sum(layout.widths), sum(layout.heights)
    col_w = [avail_w * w / total_w for w in layout.widths]
    row_h = [avail_h * h / total_h for h in layout.heights]

    boxes = []
    top = area.top
    for r in range(layout.nrow):
        left = area.left
        bottom = top - row_h[r]
        for c in range(layout.ncol):
            boxes.append(Box(left, bottom, col_w[c], row_h[r]))
            left += col_w[c] + hs
        top = bottom - vs
    return boxes


def _place(
    figure: CompositeFigure,
    area: Box,
    path: Tuple[int, ...],
    fig_w: float,
    fig_h: float,
    placements: List[Placement],
    tags: List[Tag],
) -> None:
    layout = figure.layout
    boxes = _grid_boxes(layout, area, fig_w, fig_h)
    label_band = layout.label_size * 1.4 * PT if any(figure.labels) else 0.0

    margins = {}
    for i, cell in enumerate(figure.cells):
        if isinstance(cell, ChartCell):
            m = chart_margins(cell.chart)
            margins[i] = Margins(m.left, m.right, m.bottom, m.top + label_band)
    if layout.align and margins:
        shared = Margins()
        for m in margins.values():
            shared = shared.union(m)
        margins = {i: shared for i in margins}

    for i, (cell, box) in enumerate(zip(figure.cells, boxes)):
        label = figure.labels[i]
        if label:
            tags.append(Tag(text=label, box=box))
        if isinstance(cell, ChartCell):
            placements.append(Placement(
                path=path + (i,), chart=cell.chart, cell_box=box,
                plot_box=box.inset(margins[i], fig_w, fig_h), label=label,
            ))
        elif isinstance(cell, NestedCell):
            inner = box.inset(Margins(top=label_band), fig_w, fig_h)
            _place(cell.figure, inner, path + (i,), fig_w, fig_h, placements, tags)


def _auto_label(index: int, upper: bool) -> str:
    letters = string.ascii_uppercase if upper else string.ascii_lowercase
    label = ''
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        label = letters[rem] + label
    return label


def compose(layout: FigureLayout, charts: Sequence[Union[RenderableChart, CompositeFigure, Spacer]]) -> CompositeFigure:
    """
    Arrange charts into a composite figure.

    ``charts`` fills the grid in row-major order. Nested CompositeFigures and
    Spacer() each take exactly one slot.

    Raises
    ------
    LayoutError
        If the item count differs from ``layout.nrow * layout.ncol``, an item
        is not a chart/figure/spacer, or explicit labels do not match the
        cell count.
    """
    if not isinstance(layout, FigureLayout):
        raise LayoutError(f"compose expects a FigureLayout, got {type(layout).__name__}")
    items = list(charts)
    if len(items) != layout.cells:
        raise LayoutError(
            f"A {layout.nrow}x{layout.ncol} layout has {layout.cells} cells "
            f"but {len(items)} items were given"
        )

    cells: List[Cell] = []
    for i, item in enumerate(items):
        if isinstance(item, RenderableChart):
            cells.append(ChartCell(item))
        elif isinstance(item, CompositeFigure):
            cells.append(NestedCell(item))
        elif isinstance(item, Spacer) or item is Spacer:
            cells.append(SpacerCell())
        else:
            raise LayoutError(
                f"Item {i} is a {type(item).__name__}; expected a built chart, "
                f"a composite figure or Spacer()"
            )

    if layout.labels is None:
        labels: List[Optional[str]] = [None] * len(cells)
    elif isinstance(layout.labels, str):
        upper = layout.labels == 'AUTO'
        labels, n = [], 0
        for cell in cells:
            if isinstance(cell, SpacerCell):
                labels.append(None)
            else:
                labels.append(_auto_label(n, upper))
                n += 1
    else:
        if len(layout.labels) != len(cells):
            raise LayoutError(f"{len(layout.labels)} labels given for {len(cells)} cells")
        labels = [label or None for label in layout.labels]

    figure = CompositeFigure(layout=layout, cells=tuple(cells), labels=tuple(labels))
    log.debug("Composed %dx%d figure with %d leaf charts", layout.nrow, layout.ncol, len(figure.charts))
    return figure


__all__ = [
    'Spacer', 'FigureLayout', 'ChartCell', 'NestedCell', 'SpacerCell',
    'CompositeFigure', 'Placement', 'Tag', 'compose',
]
