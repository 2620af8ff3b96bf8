"""
Shorthand constructors for layers and adjustments.

    chart = (
        lp.chart(lp.aes(x='flipper_length_mm', y='body_mass_g'))
        + lp.geom_point(lp.aes(color='species'), alpha=0.8)
        + lp.geom_smooth()
        + lp.labs(title='Penguin size')
    )

Each helper returns the corresponding frozen spec object; all validation
happens in the spec constructors.
"""

from typing import Any, Dict, Optional, Sequence, Tuple

from .errors import SpecError
from .ir import (
    Aes,
    ChartSpec,
    FacetSpec,
    Geom,
    LabelSpec,
    LayerSpec,
    PaletteSpec,
    ScaleSpec,
    StripStyle,
    ThemeSpec,
)


def aes(x: Optional[str] = None, y: Optional[str] = None, **channels: str) -> Aes:
    return Aes(x=x, y=y, **channels)


def chart(mapping: Optional[Aes] = None) -> ChartSpec:
    """Start an empty chart with chart-wide default mappings."""
    return ChartSpec(mapping=mapping or Aes())


def _layer(geom: Geom, mapping: Optional[Aes], params: Dict[str, Any], **defaults) -> LayerSpec:
    for key, value in defaults.items():
        params.setdefault(key, value)
    return LayerSpec(geom=geom, mapping=mapping or Aes(), **params)


def geom_point(mapping: Optional[Aes] = None, **params) -> LayerSpec:
    return _layer(Geom.POINT, mapping, params)


def geom_jitter(mapping: Optional[Aes] = None, **params) -> LayerSpec:
    return _layer(Geom.POINT, mapping, params, position='jitter')


def geom_line(mapping: Optional[Aes] = None, **params) -> LayerSpec:
    return _layer(Geom.LINE, mapping, params)


def geom_bar(mapping: Optional[Aes] = None, **params) -> LayerSpec:
    """Bars: counts per x, or summed ``y`` when y is mapped. Stacks by default."""
    return _layer(Geom.BAR, mapping, params, position='stack')


def geom_histogram(mapping: Optional[Aes] = None, **params) -> LayerSpec:
    return _layer(Geom.HISTOGRAM, mapping, params, position='stack')


def geom_density(mapping: Optional[Aes] = None, **params) -> LayerSpec:
    return _layer(Geom.DENSITY, mapping, params)


def geom_boxplot(mapping: Optional[Aes] = None, **params) -> LayerSpec:
    return _layer(Geom.BOXPLOT, mapping, params, position='dodge')


def geom_smooth(mapping: Optional[Aes] = None, **params) -> LayerSpec:
    return _layer(Geom.SMOOTH, mapping, params)


def geom_errorbar(mapping: Optional[Aes] = None, **params) -> LayerSpec:
    return _layer(Geom.ERRORBAR, mapping, params)


def geom_ribbon(mapping: Optional[Aes] = None, **params) -> LayerSpec:
    return _layer(Geom.RIBBON, mapping, params)


def geom_hline(yintercept: float, **params) -> LayerSpec:
    return _layer(Geom.REFLINE, None, params, yintercept=yintercept, linetype='dashed')


def geom_vline(xintercept: float, **params) -> LayerSpec:
    return _layer(Geom.REFLINE, None, params, xintercept=xintercept, linetype='dashed')


def geom_abline(slope: float = 1.0, intercept: float = 0.0, **params) -> LayerSpec:
    return _layer(Geom.REFLINE, None, params, slope=slope, intercept=intercept, linetype='dashed')


def stat_ellipse(mapping: Optional[Aes] = None, **params) -> LayerSpec:
    return _layer(Geom.ELLIPSE, mapping, params)


# --- Adjustments ---

def xlim(low: float, high: float) -> ScaleSpec:
    return ScaleSpec('x', limits=(low, high))


def ylim(low: float, high: float) -> ScaleSpec:
    return ScaleSpec('y', limits=(low, high))


def scale_x(limits=None, breaks=None, expand=None) -> ScaleSpec:
    return ScaleSpec('x', limits=limits, breaks=breaks, expand=expand)


def scale_y(limits=None, breaks=None, expand=None) -> ScaleSpec:
    return ScaleSpec('y', limits=limits, breaks=breaks, expand=expand)


def scale_manual(channel: str, values: Optional[Sequence[str]] = None, mapping=None) -> PaletteSpec:
    """Explicit palette: ``values`` in category order or a ``mapping`` dict."""
    return PaletteSpec(channel, values=values, mapping=mapping)


def scale_palette(channel: str, name: str) -> PaletteSpec:
    return PaletteSpec(channel, name=name)


def labs(**labels: str) -> LabelSpec:
    return LabelSpec(**labels)


def theme(base: str = 'grey', **overrides) -> ThemeSpec:
    return ThemeSpec(base=base, **overrides)


def facet_wrap(column: str, ncol: Optional[int] = None, scales: str = 'fixed',
               strip: Optional[StripStyle] = None) -> FacetSpec:
    sharex, sharey = _scales(scales)
    return FacetSpec(wrap=column, ncol=ncol, sharex=sharex, sharey=sharey,
                     strip=strip or StripStyle())


def facet_grid(rows: Optional[str] = None, cols: Optional[str] = None, scales: str = 'fixed',
               space: str = 'fixed', strip: Optional[StripStyle] = None) -> FacetSpec:
    sharex, sharey = _scales(scales)
    return FacetSpec(rows=rows, cols=cols, sharex=sharex, sharey=sharey,
                     free_space=space == 'free', strip=strip or StripStyle())


SCALE_MODES = {
    'fixed': (True, True),
    'free': (False, False),
    'free_x': (False, True),
    'free_y': (True, False),
}


def _scales(mode: str) -> Tuple[bool, bool]:
    try:
        return SCALE_MODES[mode]
    except KeyError:
        raise SpecError(f"scales must be one of {sorted(SCALE_MODES)}, got {mode!r}") from None


__all__ = [
    'aes', 'chart',
    'geom_point', 'geom_jitter', 'geom_line', 'geom_bar', 'geom_histogram', 'geom_density',
    'geom_boxplot', 'geom_smooth', 'geom_errorbar', 'geom_ribbon',
    'geom_hline', 'geom_vline', 'geom_abline', 'stat_ellipse',
    'xlim', 'ylim', 'scale_x', 'scale_y', 'scale_manual', 'scale_palette',
    'labs', 'theme', 'facet_wrap', 'facet_grid',
]
