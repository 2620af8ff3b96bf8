"""
Intermediate Representation (IR) & Specification Types.

Two halves:
- Specification: Aes, LayerSpec, the adjustment dataclasses and ChartSpec.
  All frozen; derivation goes through builder.with_layer / with_adjustment.
- Realized chart: TraceData, AxisData, PanelData, LegendData, RenderableChart.
  Backend agnostic; renderers only read these.
"""

import math
import numbers
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import numpy as np

from .errors import SpecError
from .style.colors import check_color
from .style.themes import BASE_THEMES
from .table import DataTable


# ==============================================================================
# Specification
# ==============================================================================

class Geom(str, Enum):
    POINT = 'point'
    LINE = 'line'
    BAR = 'bar'
    HISTOGRAM = 'histogram'
    DENSITY = 'density'
    BOXPLOT = 'boxplot'
    SMOOTH = 'smooth'
    ERRORBAR = 'errorbar'
    RIBBON = 'ribbon'
    REFLINE = 'refline'
    ELLIPSE = 'ellipse'


CHANNELS = ('x', 'y', 'color', 'fill', 'shape', 'size', 'alpha', 'group', 'ymin', 'ymax')
DISCRETE_CHANNELS = ('color', 'fill', 'shape')
POSITIONS = ('identity', 'stack', 'dodge', 'jitter')
LINETYPES = {'solid': '-', 'dashed': '--', 'dotted': ':', 'dashdot': '-.'}
SMOOTH_METHODS = ('lm',)


@dataclass(frozen=True)
class Aes:
    """Mapping from data columns to visual channels."""
    x: Optional[str] = None
    y: Optional[str] = None
    color: Optional[str] = None
    fill: Optional[str] = None
    shape: Optional[str] = None
    size: Optional[str] = None
    alpha: Optional[str] = None
    group: Optional[str] = None
    ymin: Optional[str] = None
    ymax: Optional[str] = None

    def items(self) -> Iterator[Tuple[str, str]]:
        for name in CHANNELS:
            column = getattr(self, name)
            if column is not None:
                yield name, column

    def merged(self, other: 'Aes') -> 'Aes':
        """Return self overridden by the channels ``other`` sets."""
        return replace(self, **dict(other.items()))


def _check_unit(name: str, value: Optional[float]) -> None:
    if value is None:
        return
    if (not isinstance(value, numbers.Real) or isinstance(value, bool)
            or math.isnan(value) or not 0.0 <= value <= 1.0):
        raise SpecError(f"{name} must lie in [0, 1], got {value!r}")


@dataclass(frozen=True)
class LayerSpec:
    """One geometry-drawing step. Validated on construction."""
    geom: Geom
    mapping: Aes = field(default_factory=Aes)
    data: Optional[DataTable] = None
    inherit_aes: bool = True
    # Fixed visual parameters
    color: Optional[str] = None
    fill: Optional[str] = None
    alpha: Optional[float] = None
    size: Optional[float] = None
    shape: Optional[str] = None
    linetype: str = 'solid'
    # Geometry parameters
    position: str = 'identity'
    width: Optional[float] = None
    bins: Optional[int] = None
    binwidth: Optional[float] = None
    bw_adjust: float = 1.0
    method: str = 'lm'
    level: float = 0.95
    se: bool = True
    xintercept: Optional[float] = None
    yintercept: Optional[float] = None
    slope: Optional[float] = None
    intercept: Optional[float] = None
    show_legend: bool = True

    def __post_init__(self):
        try:
            object.__setattr__(self, 'geom', Geom(self.geom))
        except ValueError:
            raise SpecError(f"Unknown geometry {self.geom!r}") from None
        if not isinstance(self.mapping, Aes):
            raise SpecError(f"mapping must be an Aes, got {type(self.mapping).__name__}")
        if self.data is not None and not isinstance(self.data, DataTable):
            raise SpecError("Layer data must be a DataTable")
        for name in ('color', 'fill'):
            if getattr(self, name) is not None:
                check_color(name, getattr(self, name))
        _check_unit('alpha', self.alpha)
        if self.size is not None and self.size < 0:
            raise SpecError(f"size must be non-negative, got {self.size}")
        if self.width is not None and self.width <= 0:
            raise SpecError(f"width must be positive, got {self.width}")
        if self.bins is not None and (int(self.bins) != self.bins or self.bins < 1):
            raise SpecError(f"bins must be a positive integer, got {self.bins}")
        if self.binwidth is not None and self.binwidth <= 0:
            raise SpecError(f"binwidth must be positive, got {self.binwidth}")
        if self.bw_adjust <= 0:
            raise SpecError(f"bw_adjust must be positive, got {self.bw_adjust}")
        if not 0.0 < self.level < 1.0:
            raise SpecError(f"level must lie in (0, 1), got {self.level}")
        if self.position not in POSITIONS:
            raise SpecError(f"position must be one of {POSITIONS}, got {self.position!r}")
        if self.linetype not in LINETYPES:
            raise SpecError(f"linetype must be one of {tuple(LINETYPES)}, got {self.linetype!r}")
        if self.method not in SMOOTH_METHODS:
            raise SpecError(f"method must be one of {SMOOTH_METHODS}, got {self.method!r}")
        if self.geom is Geom.REFLINE:
            given = [
                self.xintercept is not None,
                self.yintercept is not None,
                self.slope is not None or self.intercept is not None,
            ]
            if sum(given) != 1:
                raise SpecError(
                    "refline needs exactly one of xintercept, yintercept, or slope/intercept"
                )


# --- Adjustments ---

@dataclass(frozen=True)
class ScaleSpec:
    """Coordinate scale override for one axis."""
    axis: str
    limits: Optional[Tuple[float, float]] = None
    breaks: Optional[Tuple[float, ...]] = None
    expand: Optional[Tuple[float, float]] = None  # (multiplicative, additive)

    def __post_init__(self):
        if self.axis not in ('x', 'y'):
            raise SpecError(f"axis must be 'x' or 'y', got {self.axis!r}")
        if self.limits is not None:
            lo, hi = self.limits
            if not lo < hi:
                raise SpecError(f"limits must be increasing, got {self.limits}")
            object.__setattr__(self, 'limits', (float(lo), float(hi)))
        if self.breaks is not None:
            object.__setattr__(self, 'breaks', tuple(float(b) for b in self.breaks))
        if self.expand is not None:
            mult, add = self.expand
            if mult < 0 or add < 0:
                raise SpecError(f"expand must be non-negative, got {self.expand}")
            object.__setattr__(self, 'expand', (float(mult), float(add)))

    @property
    def kind(self) -> str:
        return f"scale_{self.axis}"


@dataclass(frozen=True)
class PaletteSpec:
    """Category → visual value mapping for a discrete channel.

    At most one of ``values`` (assigned in category order), ``mapping``
    (explicit per category) or ``name`` (named palette) may be given;
    none means the default palette.
    """
    channel: str
    values: Optional[Tuple[str, ...]] = None
    mapping: Optional[Tuple[Tuple[Any, str], ...]] = None
    name: Optional[str] = None

    def __post_init__(self):
        if self.channel not in DISCRETE_CHANNELS:
            raise SpecError(f"palette channel must be one of {DISCRETE_CHANNELS}, got {self.channel!r}")
        if self.mapping is not None and isinstance(self.mapping, dict):
            object.__setattr__(self, 'mapping', tuple(self.mapping.items()))
        if self.values is not None:
            object.__setattr__(self, 'values', tuple(self.values))
        given = sum(v is not None for v in (self.values, self.mapping, self.name))
        if given > 1:
            raise SpecError("Give only one of values, mapping or name for a palette")
        if self.values is not None and not self.values:
            raise SpecError("An explicit palette needs at least one value")
        if self.channel != 'shape':
            for value in self.values or ():
                check_color(f"{self.channel} palette value", value)
            for category, value in self.mapping or ():
                check_color(f"{self.channel} palette value for {category!r}", value)

    @property
    def kind(self) -> str:
        return f"palette_{self.channel}"


LEGEND_POSITIONS = ('right', 'left', 'top', 'bottom', 'none')


@dataclass(frozen=True)
class ThemeSpec:
    """Named base theme plus optional field overrides (None keeps the base)."""
    base: str = 'grey'
    base_size: Optional[float] = None
    grid_major: Optional[bool] = None
    grid_minor: Optional[bool] = None
    legend_position: Optional[Union[str, Tuple[float, float]]] = None
    title_hjust: Optional[float] = None
    title_vjust: Optional[float] = None
    hide_x_text: Optional[bool] = None
    hide_y_text: Optional[bool] = None
    x_text_angle: Optional[float] = None
    panel_border: Optional[bool] = None

    def __post_init__(self):
        if self.base not in BASE_THEMES:
            raise SpecError(f"Unknown base theme {self.base!r}; choose from {sorted(BASE_THEMES)}")
        if self.base_size is not None and self.base_size <= 0:
            raise SpecError(f"base_size must be positive, got {self.base_size}")
        _check_unit('title_hjust', self.title_hjust)
        _check_unit('title_vjust', self.title_vjust)
        pos = self.legend_position
        if pos is not None:
            if isinstance(pos, str):
                if pos not in LEGEND_POSITIONS:
                    raise SpecError(f"legend_position must be one of {LEGEND_POSITIONS} or (x, y)")
            else:
                pos = tuple(pos)
                if len(pos) != 2:
                    raise SpecError("Inside legend_position needs two coordinates")
                for v in pos:
                    _check_unit('legend_position', v)
                object.__setattr__(self, 'legend_position', (float(pos[0]), float(pos[1])))

    @property
    def kind(self) -> str:
        return 'theme'

    def overrides(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != 'base' and getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class LabelSpec:
    """Titles and axis/legend text."""
    title: Optional[str] = None
    subtitle: Optional[str] = None
    caption: Optional[str] = None
    x: Optional[str] = None
    y: Optional[str] = None
    color: Optional[str] = None
    fill: Optional[str] = None
    shape: Optional[str] = None
    size: Optional[str] = None

    @property
    def kind(self) -> str:
        return 'labels'


@dataclass(frozen=True)
class StripStyle:
    fill: str = '#d9d9d9'
    text_color: str = '#1a1a1a'
    bold: bool = False
    size_rel: float = 0.8


@dataclass(frozen=True)
class FacetSpec:
    """Panel partitioning by categorical columns.

    Grid faceting uses ``rows``/``cols``; wrap faceting uses ``wrap`` with an
    optional ``ncol``. ``free_space`` sizes grid panels by their axis span.
    """
    rows: Optional[str] = None
    cols: Optional[str] = None
    wrap: Optional[str] = None
    ncol: Optional[int] = None
    sharex: bool = True
    sharey: bool = True
    free_space: bool = False
    strip: StripStyle = field(default_factory=StripStyle)

    def __post_init__(self):
        grid = self.rows is not None or self.cols is not None
        if grid and self.wrap is not None:
            raise SpecError("Use either rows/cols (grid) or wrap faceting, not both")
        if not grid and self.wrap is None:
            raise SpecError("A facet needs rows, cols or wrap")
        if self.ncol is not None and (self.ncol < 1 or self.wrap is None):
            raise SpecError("ncol must be positive and only applies to wrap faceting")
        if self.free_space and self.wrap is not None:
            raise SpecError("free_space is only supported for grid faceting")

    @property
    def kind(self) -> str:
        return 'facet'

    @property
    def columns(self) -> Tuple[str, ...]:
        return tuple(c for c in (self.rows, self.cols, self.wrap) if c is not None)


Adjustment = Union[ScaleSpec, PaletteSpec, ThemeSpec, LabelSpec, FacetSpec]
ADJUSTMENT_TYPES = (ScaleSpec, PaletteSpec, ThemeSpec, LabelSpec, FacetSpec)


@dataclass(frozen=True)
class ChartSpec:
    """Ordered layers plus global adjustments. Immutable."""
    mapping: Aes = field(default_factory=Aes)
    layers: Tuple[LayerSpec, ...] = ()
    adjustments: Tuple[Adjustment, ...] = ()

    def adjustment(self, kind: str) -> Optional[Adjustment]:
        for adj in self.adjustments:
            if adj.kind == kind:
                return adj
        return None

    def __add__(self, other):
        from .builder import with_adjustment, with_layer
        if isinstance(other, LayerSpec):
            return with_layer(self, other)
        if isinstance(other, ADJUSTMENT_TYPES):
            return with_adjustment(self, other)
        return NotImplemented


# ==============================================================================
# Realized chart
# ==============================================================================

@dataclass
class TraceStyle:
    """Uniform visual style for a trace."""
    color: Optional[str] = None
    fill: Optional[str] = None
    alpha: float = 1.0
    size: float = 1.0           # marker diameter or line width, points
    shape: str = 'o'
    linestyle: str = '-'
    zorder: int = 1


@dataclass(eq=False)
class TraceData:
    """One drawable element of a panel, already in data coordinates."""
    geom: Geom
    x: np.ndarray
    y: np.ndarray
    style: TraceStyle
    layer_index: int = 0
    label: Optional[str] = None
    legend_key: Optional[Tuple[Any, ...]] = None
    # Per-point mapped aesthetics
    sizes: Optional[np.ndarray] = None
    alphas: Optional[np.ndarray] = None
    # Bars / areas
    base: Optional[np.ndarray] = None
    width: Optional[float] = None
    # Bands / error bars
    band_lower: Optional[np.ndarray] = None
    band_upper: Optional[np.ndarray] = None
    # Boxplots: matplotlib ``bxp`` stat dicts, one per x position
    box_stats: Optional[List[Dict[str, Any]]] = None
    # Reference lines
    slope: Optional[float] = None
    intercept: Optional[float] = None
    orientation: Optional[str] = None  # 'h', 'v' or 'ab'

    def extent(self, axis: str) -> Optional[Tuple[float, float]]:
        """Data extent along an axis, or None if the trace has no finite data."""
        arrays = []
        if axis == 'x':
            arrays.append(self.x)
            if self.width is not None and len(self.x):
                arrays.append(self.x - self.width / 2)
                arrays.append(self.x + self.width / 2)
            if self.orientation == 'ab':
                arrays = []
        else:
            arrays.append(self.y)
            for extra in (self.base, self.band_lower, self.band_upper):
                if extra is not None:
                    arrays.append(extra)
            if self.box_stats:
                for st in self.box_stats:
                    arrays.append(np.array([st['whislo'], st['whishi']], dtype=float))
                    arrays.append(np.asarray(st['fliers'], dtype=float))
            if self.orientation == 'ab':
                arrays = []
        values = [np.asarray(a, dtype=float).ravel() for a in arrays if a is not None and len(a)]
        if not values:
            return None
        joined = np.concatenate(values)
        joined = joined[np.isfinite(joined)]
        if joined.size == 0:
            return None
        return float(joined.min()), float(joined.max())


@dataclass
class AxisData:
    domain: Tuple[float, float]
    limits: Tuple[float, float]
    breaks: Optional[Tuple[float, ...]] = None
    categories: Optional[Tuple[str, ...]] = None
    show_text: bool = True

    @property
    def is_discrete(self) -> bool:
        return self.categories is not None


@dataclass
class PanelData:
    """A single facet cell."""
    key: Tuple[Any, Any]
    row: int                      # 1-based
    col: int                      # 1-based
    traces: List[TraceData]
    x: AxisData
    y: AxisData
    strip_top: Optional[str] = None
    strip_right: Optional[str] = None


@dataclass
class LegendEntry:
    label: str
    color: Optional[str] = None
    fill: Optional[str] = None
    shape: Optional[str] = None
    size: Optional[float] = None


@dataclass
class LegendData:
    column: str
    channels: Tuple[str, ...]
    title: str
    entries: List[LegendEntry]
    geoms: Tuple[Geom, ...] = ()


@dataclass
class LayoutPlan:
    """Computed facet grid for rendering."""
    n_rows: int
    n_cols: int
    width_ratios: Tuple[float, ...]
    height_ratios: Tuple[float, ...]
    sharex: bool = True
    sharey: bool = True
    strip: Optional[StripStyle] = None


@dataclass
class RenderableChart:
    """Everything a renderer needs; produced only by ``build``."""
    panels: List[PanelData]
    legends: List[LegendData]
    theme: Any
    layout: LayoutPlan
    title: Optional[str] = None
    subtitle: Optional[str] = None
    caption: Optional[str] = None
    x_label: Optional[str] = None
    y_label: Optional[str] = None
    dropped_rows: int = 0

    def panel(self, row: int = 1, col: int = 1) -> PanelData:
        for p in self.panels:
            if p.row == row and p.col == col:
                return p
        raise KeyError(f"No panel at row {row}, col {col}")

    @property
    def has_strips(self) -> bool:
        return any(p.strip_top for p in self.panels)

    @property
    def has_row_strips(self) -> bool:
        return any(p.strip_right for p in self.panels)


__all__ = [
    'Geom', 'Aes', 'LayerSpec',
    'ScaleSpec', 'PaletteSpec', 'ThemeSpec', 'LabelSpec', 'StripStyle', 'FacetSpec',
    'Adjustment', 'ChartSpec',
    'TraceStyle', 'TraceData', 'AxisData', 'PanelData', 'LegendEntry', 'LegendData',
    'LayoutPlan', 'RenderableChart',
]
