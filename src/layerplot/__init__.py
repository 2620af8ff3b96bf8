"""
layerplot - Layered-grammar plotting core.

Usage:
    import layerplot as lp

    table = lp.DataTable(penguins_df)
    spec = (
        lp.chart(lp.aes(x='flipper_length_mm', y='body_mass_g'))
        + lp.geom_point(lp.aes(color='species'))
        + lp.facet_wrap('island')
    )
    chart = lp.build(table, spec)
    fig = lp.render(chart, backend='matplotlib', output_path='penguins.png')

    figure = lp.compose(lp.FigureLayout(nrow=1, ncol=2, labels='auto'), [chart, other])
    lp.render(figure, output_path='panel.png')
"""

from pathlib import Path
from typing import Any, Optional, Union

from .errors import SpecError, LayoutError
from .config import BuildOptions
from .table import DataTable, ColumnKind
from .ir import (
    Geom, Aes, LayerSpec, ScaleSpec, PaletteSpec, ThemeSpec, LabelSpec, StripStyle, FacetSpec,
    ChartSpec, RenderableChart,
)
from .builder import build, with_layer, with_adjustment
from .compose import FigureLayout, CompositeFigure, Spacer, compose
from .layers import (
    aes, chart,
    geom_point, geom_jitter, geom_line, geom_bar, geom_histogram, geom_density,
    geom_boxplot, geom_smooth, geom_errorbar, geom_ribbon,
    geom_hline, geom_vline, geom_abline, stat_ellipse,
    xlim, ylim, scale_x, scale_y, scale_manual, scale_palette,
    labs, theme, facet_wrap, facet_grid,
)
from .stats import summarize
from .style.defaults import RenderStyle, default_style, paper_style

BACKENDS = ('matplotlib', 'plotly', 'both')


def render(
    obj: Union[RenderableChart, CompositeFigure],
    backend: str = 'matplotlib',
    style: Optional[RenderStyle] = None,
    output_path: Optional[Union[str, Path]] = None,
    dpi: Optional[int] = None,
) -> Any:
    """Render a built chart or composite figure to the specified backend.

    Composite figures render with matplotlib only. With ``backend='both'`` a
    dict ``{'plotly': ..., 'matplotlib': ...}`` is returned and, when
    ``output_path`` is given, both ``.html`` and ``.png`` files are written.
    """
    from .renderers.plotly import render_plotly
    from .renderers.matplotlib import render_matplotlib, render_composite_matplotlib

    if backend not in BACKENDS:
        raise ValueError(f"backend must be one of {BACKENDS}, got {backend!r}")
    is_composite = isinstance(obj, CompositeFigure)
    if not is_composite and not isinstance(obj, RenderableChart):
        raise ValueError(f"render expects a built chart or composite figure, got {type(obj).__name__}")
    if is_composite and backend != 'matplotlib':
        raise ValueError("Composite figures can only be rendered with the matplotlib backend")

    style = style or default_style()
    dpi = dpi or style.dpi

    results = {}

    if backend in ('plotly', 'both'):
        fig_plotly = render_plotly(obj, style)
        if output_path and backend == 'plotly':
            fig_plotly.write_html(str(output_path))
        results['plotly'] = fig_plotly

    if backend in ('matplotlib', 'both'):
        if is_composite:
            fig_mpl = render_composite_matplotlib(obj, style)
        else:
            fig_mpl = render_matplotlib(obj, style)
        if output_path and backend == 'matplotlib':
            fig_mpl.savefig(str(output_path), dpi=dpi)
        results['matplotlib'] = fig_mpl

    if backend == 'both' and output_path:
        path = Path(output_path)
        results['plotly'].write_html(str(path.with_suffix('.html')))
        results['matplotlib'].savefig(str(path.with_suffix('.png')), dpi=dpi)

    return results if backend == 'both' else results.get(backend)


__version__ = '0.1.0'

__all__ = [
    'SpecError', 'LayoutError', 'BuildOptions',
    'DataTable', 'ColumnKind',
    'Geom', 'Aes', 'LayerSpec', 'ScaleSpec', 'PaletteSpec', 'ThemeSpec', 'LabelSpec',
    'StripStyle', 'FacetSpec', 'ChartSpec', 'RenderableChart',
    'build', 'with_layer', 'with_adjustment',
    'FigureLayout', 'CompositeFigure', 'Spacer', 'compose',
    'aes', 'chart',
    'geom_point', 'geom_jitter', 'geom_line', 'geom_bar', 'geom_histogram', 'geom_density',
    'geom_boxplot', 'geom_smooth', 'geom_errorbar', 'geom_ribbon',
    'geom_hline', 'geom_vline', 'geom_abline', 'stat_ellipse',
    'xlim', 'ylim', 'scale_x', 'scale_y', 'scale_manual', 'scale_palette',
    'labs', 'theme', 'facet_wrap', 'facet_grid',
    'summarize',
    'RenderStyle', 'default_style', 'paper_style',
    'render',
]
