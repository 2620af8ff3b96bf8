"""
Chart Builder: turns a ChartSpec and a DataTable into a RenderableChart.

Pipeline (all pure, no rendering):
1. Validate every layer's mapping against its data (SpecError on mismatch).
2. Drop rows with missing mapped values, then rows outside scale limits.
3. Resolve discrete palettes in fixed category order.
4. Plan facet panels; restrict every layer to each panel's rows.
5. Compute per-geometry statistics into TraceData, in layer order.
6. Train axis domains (shared or free) and expand them into limits.
7. Assemble legends and labels.
"""

import logging
import warnings
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from matplotlib.ticker import MaxNLocator

from . import stats
from .config import (
    ALPHA_RANGE,
    DEFAULT_BAND_ALPHA,
    DEFAULT_BAND_FILL,
    DEFAULT_BAR_FILL,
    DEFAULT_BAR_WIDTH,
    DEFAULT_BOX_FILL,
    DEFAULT_BOX_WIDTH,
    DEFAULT_ERRORBAR_WIDTH,
    DEFAULT_EXPAND,
    DEFAULT_INK,
    DEFAULT_JITTER_WIDTH,
    DEFAULT_LINE_WIDTH,
    DEFAULT_POINT_SIZE,
    DEFAULT_SMOOTH_WIDTH,
    DISCRETE_EXPAND,
    EMPTY_DOMAIN,
    SIZE_RANGE,
    BuildOptions,
)
from .errors import SpecError
from .ir import (
    ADJUSTMENT_TYPES,
    DISCRETE_CHANNELS,
    LINETYPES,
    Adjustment,
    Aes,
    AxisData,
    ChartSpec,
    FacetSpec,
    Geom,
    LabelSpec,
    LayerSpec,
    LayoutPlan,
    LegendData,
    LegendEntry,
    PanelData,
    RenderableChart,
    ScaleSpec,
    TraceData,
    TraceStyle,
)
from .layout import FacetCell, plan_facets
from .style.colors import resolve_palette
from .style.themes import resolve_theme
from .table import ColumnKind, DataTable

log = logging.getLogger(__name__)

NUM = ColumnKind.NUMERIC
CAT = ColumnKind.CATEGORICAL
IDENT = ColumnKind.IDENTIFIER

CHANNEL_KINDS = {
    'x': (NUM, CAT),
    'y': (NUM, CAT),
    'color': (CAT,),
    'fill': (CAT,),
    'shape': (CAT,),
    'size': (NUM,),
    'alpha': (NUM,),
    'group': (CAT, IDENT),
    'ymin': (NUM,),
    'ymax': (NUM,),
}

REQUIRED_CHANNELS = {
    Geom.POINT: ('x', 'y'),
    Geom.LINE: ('x', 'y'),
    Geom.BAR: ('x',),
    Geom.HISTOGRAM: ('x',),
    Geom.DENSITY: ('x',),
    Geom.BOXPLOT: ('y',),
    Geom.SMOOTH: ('x', 'y'),
    Geom.ERRORBAR: ('x', 'ymin', 'ymax'),
    Geom.RIBBON: ('x', 'ymin', 'ymax'),
    Geom.REFLINE: (),
    Geom.ELLIPSE: ('x', 'y'),
}

NUMERIC_POSITIONS = {
    Geom.HISTOGRAM: ('x',),
    Geom.DENSITY: ('x',),
    Geom.SMOOTH: ('x', 'y'),
    Geom.RIBBON: ('x',),
    Geom.ELLIPSE: ('x', 'y'),
    Geom.BOXPLOT: ('y',),
    Geom.BAR: ('y',),
}

# Geometries that compute their own y and must not have one mapped.
STAT_Y = (Geom.HISTOGRAM, Geom.DENSITY)


# ==============================================================================
# Spec derivation
# ==============================================================================

def with_layer(spec: ChartSpec, layer: LayerSpec) -> ChartSpec:
    """Return a new spec with ``layer`` drawn above every existing layer."""
    if not isinstance(layer, LayerSpec):
        raise SpecError(f"Expected a LayerSpec, got {type(layer).__name__}")
    return replace(spec, layers=spec.layers + (layer,))


def with_adjustment(spec: ChartSpec, adjustment: Adjustment) -> ChartSpec:
    """Return a new spec with ``adjustment`` replacing any of the same kind."""
    if not isinstance(adjustment, ADJUSTMENT_TYPES):
        raise SpecError(f"Expected a scale/palette/theme/labels/facet adjustment, got {type(adjustment).__name__}")
    kept = tuple(a for a in spec.adjustments if a.kind != adjustment.kind)
    return replace(spec, adjustments=kept + (adjustment,))


# ==============================================================================
# Layer preparation
# ==============================================================================

@dataclass
class _Layer:
    """A validated layer with its (filtered) data and chart-wide ranges."""
    index: int
    spec: LayerSpec
    mapping: Aes
    table: DataTable
    x_res: float = 1.0
    x_range: Optional[Tuple[float, float]] = None
    edges: Optional[np.ndarray] = None
    size_range: Optional[Tuple[float, float]] = None
    alpha_range: Optional[Tuple[float, float]] = None

    @property
    def geom(self) -> Geom:
        return self.spec.geom


def _validate_layer(index: int, layer: LayerSpec, base: Aes, table: DataTable) -> _Layer:
    mapping = base.merged(layer.mapping) if layer.inherit_aes else layer.mapping
    data = layer.data if layer.data is not None else table
    geom = layer.geom

    if geom is Geom.REFLINE:
        # Reference lines ignore data mappings entirely.
        return _Layer(index=index, spec=layer, mapping=Aes(), table=data)

    if geom in STAT_Y and mapping.y is not None:
        if layer.mapping.y is not None or not layer.inherit_aes:
            raise SpecError(f"Layer {index} ({geom.value}) computes y itself; do not map y")
        mapping = replace(mapping, y=None)

    for channel in REQUIRED_CHANNELS[geom]:
        if getattr(mapping, channel) is None:
            raise SpecError(f"Layer {index} ({geom.value}) requires the '{channel}' channel")

    numeric_only = NUMERIC_POSITIONS.get(geom, ())
    for channel, column in mapping.items():
        allowed = (NUM,) if channel in numeric_only else CHANNEL_KINDS[channel]
        try:
            data.require(column, allowed, channel)
        except SpecError as exc:
            raise SpecError(f"Layer {index} ({geom.value}): {exc}") from None
    return _Layer(index=index, spec=layer, mapping=mapping, table=data)


def _warn_dropped(n: int, reason: str, layer: _Layer) -> None:
    message = f"Removed {n} rows {reason} (layer {layer.index}: {layer.geom.value})"
    log.info(message)
    warnings.warn(message, RuntimeWarning, stacklevel=4)


def _drop_missing(layer: _Layer) -> Tuple[_Layer, int]:
    columns = [c for _, c in layer.mapping.items()]
    mask = layer.table.missing_mask(columns)
    n = int(mask.sum())
    if n:
        _warn_dropped(n, "containing missing values", layer)
        layer = replace(layer, table=layer.table.filter(~mask))
    return layer, n


def _apply_limits(
    layer: _Layer,
    scales: Dict[str, Optional[ScaleSpec]],
    options: BuildOptions,
) -> Tuple[_Layer, int]:
    """Drop rows whose numeric position falls outside explicit scale limits."""
    table = layer.table
    outside = np.zeros(len(table), dtype=bool)
    for axis in ('x', 'y'):
        scale = scales.get(axis)
        if scale is None or scale.limits is None:
            continue
        lo, hi = scale.limits
        channels = [axis] if axis == 'x' else ['y', 'ymin', 'ymax']
        for channel in channels:
            column = getattr(layer.mapping, channel)
            if column is None or table.kind(column) is not NUM:
                continue
            values = table.values(column)
            outside |= (values < lo) | (values > hi)
    n = int(outside.sum())
    if n:
        if options.strict_limits:
            raise SpecError(
                f"{n} rows of layer {layer.index} ({layer.geom.value}) fall outside the scale limits"
            )
        _warn_dropped(n, "outside the scale limits", layer)
        layer = replace(layer, table=table.filter(~outside))
    return layer, n


def _resolution(values: np.ndarray) -> float:
    uniq = np.unique(values[np.isfinite(values)])
    if uniq.size < 2:
        return 1.0
    return float(np.diff(uniq).min())


def _finite_range(values: np.ndarray) -> Optional[Tuple[float, float]]:
    values = values[np.isfinite(values)]
    if values.size == 0:
        return None
    return float(values.min()), float(values.max())


def _layer_ranges(layer: _Layer) -> _Layer:
    """Layer-wide ranges shared by all panels (bins and grids rescope under a free x)."""
    m, table = layer.mapping, layer.table
    updates: Dict[str, Any] = {}
    if m.x is not None and table.kind(m.x) is NUM:
        xs = table.values(m.x)
        updates['x_res'] = _resolution(xs)
        updates['x_range'] = _finite_range(xs)
        if layer.geom is Geom.HISTOGRAM and updates['x_range'] is not None:
            updates['edges'] = stats.bin_edges(
                xs, bins=layer.spec.bins, binwidth=layer.spec.binwidth,
                value_range=updates['x_range'],
            )
    if m.size is not None:
        updates['size_range'] = _finite_range(table.values(m.size))
    if m.alpha is not None:
        updates['alpha_range'] = _finite_range(table.values(m.alpha))
    return replace(layer, **updates)


def _axis_kind(layers: Sequence[_Layer], axis: str) -> Optional[ColumnKind]:
    kinds = {}
    for layer in layers:
        column = getattr(layer.mapping, axis)
        if column is not None:
            kinds.setdefault(layer.table.kind(column), column)
    if len(kinds) > 1:
        raise SpecError(
            f"The {axis} axis is mapped to both categorical and numeric columns: {list(kinds.values())}"
        )
    return next(iter(kinds), None)


def _union_categories(layers: Sequence[_Layer], channel: str) -> List[Any]:
    seen: List[Any] = []
    for layer in layers:
        column = getattr(layer.mapping, channel)
        if column is None:
            continue
        for value in layer.table.categories(column):
            if value not in seen:
                seen.append(value)
    return seen


def _resolve_palettes(layers: Sequence[_Layer], spec: ChartSpec) -> Dict[str, Dict[Any, Any]]:
    palettes: Dict[str, Dict[Any, Any]] = {}
    for channel in DISCRETE_CHANNELS:
        if not any(getattr(layer.mapping, channel) for layer in layers):
            continue
        cats = _union_categories(layers, channel)
        adj = spec.adjustment(f"palette_{channel}")
        if adj is None:
            palettes[channel] = resolve_palette(channel, cats)
        else:
            mapping = dict(adj.mapping) if adj.mapping is not None else None
            palettes[channel] = resolve_palette(
                channel, cats, values=adj.values, mapping=mapping, name=adj.name,
            )
    return palettes


# ==============================================================================
# Traces
# ==============================================================================

@dataclass
class _Context:
    palettes: Dict[str, Dict[Any, Any]]
    axis_categories: Dict[str, Optional[List[Any]]]
    options: BuildOptions


def _positions(table: DataTable, column: Optional[str], categories: Optional[List[Any]]) -> np.ndarray:
    if column is None:
        return np.zeros(len(table))
    if categories is not None:
        codes = pd.Categorical(table.values(column), categories=categories).codes
        return codes.astype(float)
    return table.values(column)


def _rescale(values: np.ndarray, domain: Optional[Tuple[float, float]], out: Tuple[float, float]) -> np.ndarray:
    if domain is None or domain[1] == domain[0]:
        return np.full(len(values), (out[0] + out[1]) / 2)
    frac = (values - domain[0]) / (domain[1] - domain[0])
    return out[0] + frac * (out[1] - out[0])


def _group_rows(layer: _Layer, table: DataTable, ctx: _Context) -> List[Tuple[Dict[str, Any], np.ndarray]]:
    """Split rows by every discrete channel, in fixed category order."""
    channels = [(ch, getattr(layer.mapping, ch)) for ch in ('color', 'fill', 'shape', 'group')]
    channels = [(ch, col) for ch, col in channels if col is not None]
    if not channels:
        return [({}, np.arange(len(table)))]

    codes = {}
    cats_by_channel = {}
    for ch, col in channels:
        cats = list(ctx.palettes[ch]) if ch in ctx.palettes else layer.table.categories(col)
        cats_by_channel[ch] = cats
        codes[ch] = pd.Categorical(table.values(col), categories=cats).codes
    frame = pd.DataFrame(codes)
    groups = []
    for key, rows in sorted(frame.groupby(list(codes), sort=True).indices.items()):
        key = key if isinstance(key, tuple) else (key,)
        values = {ch: cats_by_channel[ch][code] for ch, code in zip(codes, key)}
        groups.append((values, np.asarray(rows)))
    return groups


def _style(layer: _Layer, group: Dict[str, Any], ctx: _Context, **defaults) -> TraceStyle:
    spec = layer.spec
    color = ctx.palettes['color'][group['color']] if 'color' in group else (spec.color or defaults.get('color'))
    fill = ctx.palettes['fill'][group['fill']] if 'fill' in group else (spec.fill or defaults.get('fill'))
    shape = ctx.palettes['shape'][group['shape']] if 'shape' in group else (spec.shape or 'o')
    alpha = spec.alpha if spec.alpha is not None else defaults.get('alpha', 1.0)
    size = spec.size if spec.size is not None else defaults.get('size', DEFAULT_LINE_WIDTH)
    return TraceStyle(
        color=color, fill=fill, alpha=alpha, size=size, shape=shape,
        linestyle=LINETYPES[spec.linetype], zorder=layer.index + 1,
    )


def _label(group: Dict[str, Any]) -> Optional[str]:
    for ch in ('color', 'fill', 'shape'):
        if ch in group:
            return str(group[ch])
    return None


def _legend_key(layer: _Layer, group: Dict[str, Any]) -> Optional[Tuple[Any, ...]]:
    if not layer.spec.show_legend:
        return None
    key = tuple((ch, group[ch]) for ch in DISCRETE_CHANNELS if ch in group)
    return key or None


def _trace(layer, group, x, y, **kwargs) -> TraceData:
    style = kwargs.pop('style')
    return TraceData(
        geom=layer.geom, x=np.asarray(x, dtype=float), y=np.asarray(y, dtype=float),
        style=style, layer_index=layer.index, label=_label(group),
        legend_key=_legend_key(layer, group), **kwargs,
    )


def _point_traces(layer, table, groups, ctx, panel_index):
    m, spec = layer.mapping, layer.spec
    xs = _positions(table, m.x, ctx.axis_categories['x'])
    ys = _positions(table, m.y, ctx.axis_categories['y'])
    traces = []
    for g_idx, (group, rows) in enumerate(groups):
        x = xs[rows].copy()
        if spec.position == 'jitter':
            rng = np.random.default_rng([ctx.options.jitter_seed, layer.index, panel_index, g_idx])
            amount = spec.width if spec.width is not None else DEFAULT_JITTER_WIDTH * layer.x_res
            x = x + rng.uniform(-amount, amount, size=len(x))
        sizes = alphas = None
        if m.size is not None:
            sizes = _rescale(table.values(m.size)[rows], layer.size_range, SIZE_RANGE)
        if m.alpha is not None:
            alphas = _rescale(table.values(m.alpha)[rows], layer.alpha_range, ALPHA_RANGE)
        style = _style(layer, group, ctx, color=DEFAULT_INK, size=DEFAULT_POINT_SIZE)
        traces.append(_trace(layer, group, x, ys[rows], style=style, sizes=sizes, alphas=alphas))
    return traces


def _line_traces(layer, table, groups, ctx, panel_index):
    m = layer.mapping
    xs = _positions(table, m.x, ctx.axis_categories['x'])
    ys = _positions(table, m.y, ctx.axis_categories['y'])
    traces = []
    for group, rows in groups:
        order = np.argsort(xs[rows], kind='stable')
        style = _style(layer, group, ctx, color=DEFAULT_INK)
        traces.append(_trace(layer, group, xs[rows][order], ys[rows][order], style=style))
    return traces


def _apply_position(layer: _Layer, pieces: List[Dict[str, Any]], width: float) -> None:
    """Stack or dodge bar-like pieces in place. Each piece has 'x', 'top', 'base'."""
    position = layer.spec.position
    if position == 'stack':
        running: Dict[float, float] = {}
        for piece in pieces:
            base = np.array([running.get(x, 0.0) for x in piece['x']])
            piece['base'] = base
            piece['top'] = base + piece['top']
            for x, top in zip(piece['x'], piece['top']):
                running[x] = top
    elif position == 'dodge':
        # Groups sharing an x split the slot; every piece gets the same width.
        members: Dict[float, List[int]] = {}
        for i, piece in enumerate(pieces):
            for x in piece['x']:
                members.setdefault(x, []).append(i)
        n = max((len(ids) for ids in members.values()), default=1)
        for i, piece in enumerate(pieces):
            offsets = []
            for x in piece['x']:
                ids = members[x]
                rank = ids.index(i)
                offsets.append((rank - (len(ids) - 1) / 2) * width / n)
            piece['x'] = piece['x'] + np.array(offsets, dtype=float)
            piece['width'] = width / n


def _bar_traces(layer, table, groups, ctx, panel_index):
    m, spec = layer.mapping, layer.spec
    xs = _positions(table, m.x, ctx.axis_categories['x'])
    ys = table.values(m.y) if m.y is not None else None
    res = 1.0 if ctx.axis_categories['x'] is not None else layer.x_res
    width = (spec.width or DEFAULT_BAR_WIDTH) * res
    pieces = []
    for group, rows in groups:
        frame = pd.DataFrame({'x': xs[rows], 'y': ys[rows] if ys is not None else 1.0})
        agg = frame.groupby('x', sort=True)['y'].sum()
        pieces.append({
            'group': group, 'x': agg.index.to_numpy(dtype=float),
            'top': agg.to_numpy(dtype=float), 'base': np.zeros(len(agg)), 'width': width,
        })
    _apply_position(layer, pieces, width)
    return [
        _trace(
            layer, p['group'], p['x'], p['top'], base=p['base'], width=p['width'],
            style=_style(layer, p['group'], ctx, color=None, fill=DEFAULT_BAR_FILL),
        )
        for p in pieces
    ]


def _histogram_traces(layer, table, groups, ctx, panel_index):
    m = layer.mapping
    if layer.edges is None:
        return []
    xs = table.values(m.x)
    pieces = []
    for group, rows in groups:
        centres, counts, width = stats.bin_counts(xs[rows], layer.edges)
        pieces.append({'group': group, 'x': centres, 'top': counts, 'base': np.zeros(len(centres)), 'width': width})
    if pieces:
        _apply_position(layer, pieces, pieces[0]['width'])
    return [
        _trace(
            layer, p['group'], p['x'], p['top'], base=p['base'], width=p['width'],
            style=_style(layer, p['group'], ctx, color=None, fill=DEFAULT_BAR_FILL),
        )
        for p in pieces
    ]


def _density_traces(layer, table, groups, ctx, panel_index):
    m, spec = layer.mapping, layer.spec
    if layer.x_range is None:
        return []
    grid = stats.density_grid(*layer.x_range)
    xs = table.values(m.x)
    running = np.zeros_like(grid)
    traces = []
    for group, rows in groups:
        density = stats.kernel_density(xs[rows], grid, bw_adjust=spec.bw_adjust)
        if density is None:
            warnings.warn(
                f"Density for group {group or 'all'} in layer {layer.index} needs at least two distinct values; skipped",
                RuntimeWarning, stacklevel=3,
            )
            continue
        base = running.copy() if spec.position == 'stack' else np.zeros_like(grid)
        top = base + density
        if spec.position == 'stack':
            running = top
        style = _style(layer, group, ctx, color=DEFAULT_INK, fill=None)
        traces.append(_trace(layer, group, grid, top, base=base, style=style))
    return traces


def _boxplot_traces(layer, table, groups, ctx, panel_index):
    m, spec = layer.mapping, layer.spec
    xs = _positions(table, m.x, ctx.axis_categories['x'])
    ys = table.values(m.y)
    res = 1.0 if ctx.axis_categories['x'] is not None or m.x is None else layer.x_res
    width = (spec.width or DEFAULT_BOX_WIDTH) * res
    pieces = []
    for group, rows in groups:
        positions = np.unique(xs[rows])
        box = [stats.box_stats(ys[rows][xs[rows] == x]) for x in positions]
        pieces.append({'group': group, 'x': positions, 'top': np.array([b['q3'] for b in box]),
                       'base': np.zeros(len(positions)), 'width': width, 'box': box})
    if spec.position == 'dodge':
        _apply_position(layer, pieces, width)
    return [
        _trace(
            layer, p['group'], p['x'], [b['med'] for b in p['box']], width=p['width'],
            box_stats=p['box'],
            style=_style(layer, p['group'], ctx, color=DEFAULT_INK, fill=DEFAULT_BOX_FILL),
        )
        for p in pieces
    ]


def _smooth_traces(layer, table, groups, ctx, panel_index):
    m, spec = layer.mapping, layer.spec
    xs, ys = table.values(m.x), table.values(m.y)
    traces = []
    for group, rows in groups:
        x_fit, y_fit, lower, upper = stats.linear_fit_band(xs[rows], ys[rows], level=spec.level)
        if x_fit is None:
            continue
        style = _style(layer, group, ctx, color='#3366ff', fill=DEFAULT_BAND_FILL,
                       size=DEFAULT_SMOOTH_WIDTH, alpha=DEFAULT_BAND_ALPHA)
        band = {'band_lower': lower, 'band_upper': upper} if spec.se else {}
        traces.append(_trace(layer, group, x_fit, y_fit, style=style, **band))
    return traces


def _errorbar_traces(layer, table, groups, ctx, panel_index):
    m, spec = layer.mapping, layer.spec
    xs = _positions(table, m.x, ctx.axis_categories['x'])
    lo, hi = table.values(m.ymin), table.values(m.ymax)
    res = 1.0 if ctx.axis_categories['x'] is not None else layer.x_res
    width = (spec.width or DEFAULT_ERRORBAR_WIDTH) * res
    pieces = []
    for group, rows in groups:
        pieces.append({'group': group, 'x': xs[rows], 'top': hi[rows], 'base': lo[rows], 'width': width})
    if spec.position == 'dodge':
        _apply_position(layer, pieces, width)
    return [
        _trace(
            layer, p['group'], p['x'], (p['base'] + p['top']) / 2, width=p['width'],
            band_lower=p['base'], band_upper=p['top'],
            style=_style(layer, p['group'], ctx, color=DEFAULT_INK),
        )
        for p in pieces
    ]


def _ribbon_traces(layer, table, groups, ctx, panel_index):
    m = layer.mapping
    xs, lo, hi = table.values(m.x), table.values(m.ymin), table.values(m.ymax)
    traces = []
    for group, rows in groups:
        order = np.argsort(xs[rows], kind='stable')
        lower, upper = lo[rows][order], hi[rows][order]
        style = _style(layer, group, ctx, color=None, fill=DEFAULT_BAND_FILL, alpha=DEFAULT_BAND_ALPHA)
        traces.append(_trace(layer, group, xs[rows][order], (lower + upper) / 2,
                             band_lower=lower, band_upper=upper, style=style))
    return traces


def _ellipse_traces(layer, table, groups, ctx, panel_index):
    m, spec = layer.mapping, layer.spec
    xs, ys = table.values(m.x), table.values(m.y)
    traces = []
    for group, rows in groups:
        ex, ey = stats.confidence_ellipse(xs[rows], ys[rows], level=spec.level)
        if ex is None:
            continue
        style = _style(layer, group, ctx, color=DEFAULT_INK)
        traces.append(_trace(layer, group, ex, ey, style=style))
    return traces


def _refline_traces(layer, table, groups, ctx, panel_index):
    spec = layer.spec
    style = _style(layer, {}, ctx, color=DEFAULT_INK)
    empty = np.array([])
    if spec.xintercept is not None:
        return [_trace(layer, {}, [spec.xintercept], empty, style=style, orientation='v')]
    if spec.yintercept is not None:
        return [_trace(layer, {}, empty, [spec.yintercept], style=style, orientation='h')]
    return [_trace(layer, {}, empty, empty, style=style, orientation='ab',
                   slope=spec.slope if spec.slope is not None else 0.0,
                   intercept=spec.intercept if spec.intercept is not None else 0.0)]


GEOM_BUILDERS = {
    Geom.POINT: _point_traces,
    Geom.LINE: _line_traces,
    Geom.BAR: _bar_traces,
    Geom.HISTOGRAM: _histogram_traces,
    Geom.DENSITY: _density_traces,
    Geom.BOXPLOT: _boxplot_traces,
    Geom.SMOOTH: _smooth_traces,
    Geom.ERRORBAR: _errorbar_traces,
    Geom.RIBBON: _ribbon_traces,
    Geom.REFLINE: _refline_traces,
    Geom.ELLIPSE: _ellipse_traces,
}


def _restrict(layer: _Layer, filters: Dict[str, Any]) -> DataTable:
    """Rows of a layer matching facet ``filters``.

    Filters on columns the layer's data lacks are ignored, so such layers
    repeat in every panel.
    """
    table = layer.table
    mask = np.ones(len(table), dtype=bool)
    for column, value in filters.items():
        if column in table:
            mask &= table.values(column) == value
    return table.filter(mask)


def _x_scope(facet: FacetSpec, cell: FacetCell) -> Dict[str, Any]:
    """Filters selecting the rows that train a free x scale for ``cell``."""
    if facet.wrap is not None:
        return cell.filters
    return {facet.cols: cell.filters[facet.cols]} if facet.cols in cell.filters else {}


def _rescope_x(layer: _Layer, filters: Dict[str, Any]) -> _Layer:
    """Recompute bin edges and the density grid range from the scoped rows."""
    scoped = _layer_ranges(replace(layer, table=_restrict(layer, filters), edges=None))
    if scoped.x_range is None:
        return layer
    return replace(layer, x_range=scoped.x_range, edges=scoped.edges)


# ==============================================================================
# Scales
# ==============================================================================

def _union_extent(extents: Sequence[Optional[Tuple[float, float]]]) -> Optional[Tuple[float, float]]:
    found = [e for e in extents if e is not None]
    if not found:
        return None
    return min(e[0] for e in found), max(e[1] for e in found)


def _panel_extent(traces: Sequence[TraceData], axis: str) -> Optional[Tuple[float, float]]:
    return _union_extent([t.extent(axis) for t in traces])


def _make_axis(
    extent: Optional[Tuple[float, float]],
    scale: Optional[ScaleSpec],
    categories: Optional[List[Any]],
    show_text: bool,
) -> AxisData:
    if categories is not None:
        n = len(categories)
        domain = (0.0, float(max(n - 1, 0)))
        mult, add = scale.expand if scale and scale.expand else DISCRETE_EXPAND
        span = domain[1] - domain[0]
        limits = (domain[0] - span * mult - add, domain[1] + span * mult + add)
        return AxisData(domain=domain, limits=limits, breaks=tuple(float(i) for i in range(n)),
                        categories=tuple(str(c) for c in categories), show_text=show_text)

    if scale is not None and scale.limits is not None:
        domain = scale.limits
    else:
        domain = extent if extent is not None else EMPTY_DOMAIN
    mult, add = scale.expand if scale and scale.expand else DEFAULT_EXPAND
    lo, hi = domain
    span = hi - lo
    pad = span * mult + add if span > 0 else max(abs(lo) * 0.05, 0.5)
    return AxisData(
        domain=(float(lo), float(hi)),
        limits=(float(lo - pad), float(hi + pad)),
        breaks=scale.breaks if scale is not None else None,
        show_text=show_text,
    )


def _train_axes(
    cells: List[FacetCell],
    traces_by_cell: List[List[TraceData]],
    scales: Dict[str, Optional[ScaleSpec]],
    axis_categories: Dict[str, Optional[List[Any]]],
    sharex: bool,
    sharey: bool,
    is_wrap: bool,
) -> List[Tuple[AxisData, AxisData]]:
    """Shared axes use the union over all panels; free axes use their own
    panel (wrap) or their own column/row (grid)."""
    extents = {ax: [_panel_extent(tr, ax) for tr in traces_by_cell] for ax in ('x', 'y')}

    def trained(axis: str, i: int, shared: bool, line_of) -> Optional[Tuple[float, float]]:
        if shared:
            return _union_extent(extents[axis])
        if is_wrap:
            return extents[axis][i]
        same_line = [j for j, c in enumerate(cells) if line_of(c) == line_of(cells[i])]
        return _union_extent([extents[axis][j] for j in same_line])

    axes = []
    for i, cell in enumerate(cells):
        x_ext = trained('x', i, sharex, lambda c: c.col)
        y_ext = trained('y', i, sharey, lambda c: c.row)
        axes.append((
            _make_axis(x_ext, scales['x'], axis_categories['x'], cell.show_x_text),
            _make_axis(y_ext, scales['y'], axis_categories['y'], cell.show_y_text),
        ))
    return axes


# ==============================================================================
# Legends & labels
# ==============================================================================

def _legends(
    layers: Sequence[_Layer],
    palettes: Dict[str, Dict[Any, Any]],
    labels: LabelSpec,
) -> List[LegendData]:
    by_column: Dict[str, List[str]] = {}
    geoms: Dict[str, List[Geom]] = {}
    for layer in layers:
        if not layer.spec.show_legend:
            continue
        for ch in DISCRETE_CHANNELS:
            column = getattr(layer.mapping, ch)
            if column is None:
                continue
            chans = by_column.setdefault(column, [])
            if ch not in chans:
                chans.append(ch)
            if layer.geom not in geoms.setdefault(column, []):
                geoms[column].append(layer.geom)

    legends = []
    for column, channels in by_column.items():
        cats = []
        for layer in layers:
            for ch in channels:
                if getattr(layer.mapping, ch) == column:
                    cats.extend(c for c in layer.table.categories(column) if c not in cats)
        cats = [c for c in palettes[channels[0]] if c in cats]
        entries = [
            LegendEntry(
                label=str(cat),
                color=palettes['color'][cat] if 'color' in channels else None,
                fill=palettes['fill'][cat] if 'fill' in channels else None,
                shape=palettes['shape'][cat] if 'shape' in channels else None,
            )
            for cat in cats
        ]
        title = next((getattr(labels, ch) for ch in channels if getattr(labels, ch)), column)
        legends.append(LegendData(column=column, channels=tuple(channels), title=title,
                                  entries=entries, geoms=tuple(geoms[column])))

    sized = [layer for layer in layers if layer.mapping.size is not None and layer.spec.show_legend]
    if sized:
        column = sized[0].mapping.size
        rng = _union_extent([layer.size_range for layer in sized])
        if rng is not None:
            ticks = [t for t in MaxNLocator(nbins=4).tick_values(*rng) if rng[0] <= t <= rng[1]]
            entries = [
                LegendEntry(label=f"{t:g}", size=float(_rescale(np.array([t]), rng, SIZE_RANGE)[0]))
                for t in ticks
            ]
            legends.append(LegendData(column=column, channels=('size',), title=labels.size or column,
                                      entries=entries, geoms=(Geom.POINT,)))
    return legends


def _axis_title(layers: Sequence[_Layer], axis: str, override: Optional[str]) -> Optional[str]:
    if override is not None:
        return override
    for layer in layers:
        column = getattr(layer.mapping, axis)
        if column is not None:
            return column
    if axis == 'y':
        for layer in layers:
            if layer.geom in (Geom.HISTOGRAM, Geom.BAR):
                return 'count'
            if layer.geom is Geom.DENSITY:
                return 'density'
    return None


# ==============================================================================
# Build
# ==============================================================================

def build(
    table: DataTable,
    spec: ChartSpec,
    options: Optional[BuildOptions] = None,
) -> RenderableChart:
    """Realize ``spec`` against ``table``.

    Deterministic and side-effect free apart from RuntimeWarnings for dropped
    rows. Raises SpecError for any mapping, palette or facet mismatch.
    """
    if not isinstance(table, DataTable):
        raise SpecError(f"build expects a DataTable, got {type(table).__name__}")
    if not isinstance(spec, ChartSpec):
        raise SpecError(f"build expects a ChartSpec, got {type(spec).__name__}")
    options = options or BuildOptions()

    theme = resolve_theme(spec.adjustment('theme'))
    labels = spec.adjustment('labels') or LabelSpec()
    facet = spec.adjustment('facet')
    scales = {'x': spec.adjustment('scale_x'), 'y': spec.adjustment('scale_y')}

    # 1. Validate
    layers = [_validate_layer(i, layer, spec.mapping, table) for i, layer in enumerate(spec.layers)]
    if facet is not None:
        for column in facet.columns:
            table.require(column, (CAT, NUM, IDENT), 'facet')

    # 2. Drop missing values, resolve palettes, then apply limits
    dropped = 0
    cleaned = []
    for layer in layers:
        layer, n = _drop_missing(layer)
        dropped += n
        cleaned.append(layer)
    palettes = _resolve_palettes(cleaned, spec)
    axis_kinds = {ax: _axis_kind(cleaned, ax) for ax in ('x', 'y')}
    layers = []
    for layer in cleaned:
        layer, n = _apply_limits(layer, scales, options)
        dropped += n
        layers.append(_layer_ranges(layer))

    axis_categories = {
        ax: (_union_categories(layers, ax) if axis_kinds[ax] is CAT else None) for ax in ('x', 'y')
    }
    ctx = _Context(palettes=palettes, axis_categories=axis_categories, options=options)

    # 3. Facet panels
    def facet_values(column: Optional[str]) -> List[Any]:
        if column is None:
            return []
        values = [] if len(table) == 0 else table.categories(column)
        for layer in layers:
            if layer.table is not table and column in layer.table:
                values.extend(v for v in layer.table.categories(column) if v not in values)
        return values

    n_rows, n_cols, cells = plan_facets(
        facet,
        row_vals=facet_values(facet.rows) if facet else (),
        col_vals=facet_values(facet.cols) if facet else (),
        wrap_vals=facet_values(facet.wrap) if facet else (),
    )

    sharex = facet.sharex if facet else True
    sharey = facet.sharey if facet else True

    # 4. Traces, in layer order within each panel
    traces_by_cell: List[List[TraceData]] = []
    for panel_index, cell in enumerate(cells):
        traces: List[TraceData] = []
        for layer in layers:
            sub = _restrict(layer, cell.filters)
            if len(sub) == 0 and layer.geom is not Geom.REFLINE:
                continue
            if not sharex and layer.geom in STAT_Y:
                layer = _rescope_x(layer, _x_scope(facet, cell))
            groups = [({}, np.arange(len(sub)))] if layer.geom is Geom.REFLINE else _group_rows(layer, sub, ctx)
            traces.extend(GEOM_BUILDERS[layer.geom](layer, sub, groups, ctx, panel_index))
        traces_by_cell.append(traces)

    # 5. Scales
    axes = _train_axes(cells, traces_by_cell, scales, axis_categories, sharex, sharey,
                       is_wrap=bool(facet and facet.wrap))
    panels = [
        PanelData(key=cell.key, row=cell.row, col=cell.col, traces=traces, x=x_axis, y=y_axis,
                  strip_top=cell.strip_top, strip_right=cell.strip_right)
        for cell, traces, (x_axis, y_axis) in zip(cells, traces_by_cell, axes)
    ]

    width_ratios = tuple(1.0 for _ in range(n_cols))
    height_ratios = tuple(1.0 for _ in range(n_rows))
    if facet is not None and facet.free_space:
        width_ratios = tuple(
            _span(next(p.x for p in panels if p.col == c)) for c in range(1, n_cols + 1)
        )
        height_ratios = tuple(
            _span(next(p.y for p in panels if p.row == r)) for r in range(1, n_rows + 1)
        )

    plan = LayoutPlan(
        n_rows=n_rows, n_cols=n_cols,
        width_ratios=width_ratios, height_ratios=height_ratios,
        sharex=sharex, sharey=sharey,
        strip=facet.strip if facet else None,
    )

    chart = RenderableChart(
        panels=panels,
        legends=_legends(layers, palettes, labels),
        theme=theme,
        layout=plan,
        title=labels.title,
        subtitle=labels.subtitle,
        caption=labels.caption,
        x_label=_axis_title(layers, 'x', labels.x),
        y_label=_axis_title(layers, 'y', labels.y),
        dropped_rows=dropped,
    )
    log.debug("Built chart: %d layers, %dx%d panels, %d rows dropped",
              len(layers), n_rows, n_cols, dropped)
    return chart


def _span(axis: AxisData) -> float:
    lo, hi = axis.limits
    return max(hi - lo, 1e-9)


__all__ = ['build', 'with_layer', 'with_adjustment']
