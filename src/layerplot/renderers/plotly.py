"""
Plotly renderer for built charts.
"""

from typing import Set

import numpy as np
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from ..ir import Geom, PanelData, RenderableChart, TraceData
from ..layout import chart_size, title_slack
from ..style.colors import to_rgba_string
from ..style.defaults import RenderStyle

SYMBOLS = {
    'o': 'circle', '^': 'triangle-up', 's': 'square', 'D': 'diamond',
    'v': 'triangle-down', 'P': 'cross', 'X': 'x', '*': 'star',
}
PX_PER_PT = 96 / 72
DASHES = {'-': 'solid', '--': 'dash', ':': 'dot', '-.': 'dashdot'}


def render_plotly(chart: RenderableChart, style: RenderStyle) -> go.Figure:
    """Render a built chart to a Plotly figure."""
    layout = chart.layout
    theme = chart.theme
    width, height = chart_size(chart, style)

    fig = make_subplots(
        rows=layout.n_rows,
        cols=layout.n_cols,
        column_widths=_normalized(layout.width_ratios),
        row_heights=_normalized(layout.height_ratios),
        horizontal_spacing=_spacing(0.04 if layout.sharey else 0.08, layout.n_cols),
        vertical_spacing=_spacing(0.08 if chart.has_strips else 0.05, layout.n_rows),
    )

    seen: Set = set()
    for panel in chart.panels:
        row, col = panel.row, panel.col
        for trace in panel.traces:
            _add_trace(fig, trace, panel, row, col, seen)
        _configure_axes(fig, panel, chart)

    _add_facet_labels(fig, chart)

    title = chart.title
    if chart.subtitle:
        title = f"{title or ''}<br><sup>{chart.subtitle}</sup>"
    if chart.caption:
        fig.add_annotation(
            text=chart.caption, xref='paper', yref='paper', x=1.0, y=0.0,
            yshift=-60, showarrow=False, xanchor='right', yanchor='top',
            font=dict(size=theme.base_size * 0.8),
        )

    legend_config = dict(x=1.02, y=1)
    if isinstance(theme.legend_position, tuple):
        legend_config = dict(x=theme.legend_position[0], y=theme.legend_position[1])
    elif theme.legend_position == 'bottom':
        legend_config = dict(orientation='h', x=0.5, xanchor='center', y=-0.15)
    elif theme.legend_position == 'top':
        legend_config = dict(orientation='h', x=0.5, xanchor='center', y=1.08)
    elif theme.legend_position == 'left':
        legend_config = dict(x=-0.15, y=1)
    if chart.legends:
        legend_config['title'] = dict(text=' / '.join(lg.title for lg in chart.legends if lg.entries))

    fig.update_layout(
        title=dict(
            text=title, x=theme.title_hjust, xanchor='left' if theme.title_hjust < 0.5 else 'right',
            y=1.0, yref='container', yanchor='top',
            pad=dict(t=8 + (1.0 - theme.title_vjust) * title_slack(chart) * style.px_per_inch),
        ),
        height=int(height * style.px_per_inch),
        width=int(width * style.px_per_inch),
        hovermode='closest',
        template='plotly_white',
        plot_bgcolor=theme.panel_background,
        paper_bgcolor=theme.plot_background,
        barmode='overlay',
        showlegend=bool(chart.legends) and theme.legend_visible,
        legend=legend_config,
        font=dict(size=theme.base_size, color=theme.text_color),
    )
    return fig


def _spacing(preferred: float, n: int) -> float:
    # make_subplots rejects spacing >= 1 / (n - 1)
    if n < 2:
        return preferred
    return min(preferred, 0.9 / (n - 1))


def _normalized(ratios):
    total = float(sum(ratios))
    return [r / total for r in ratios]


def _configure_axes(fig, panel: PanelData, chart: RenderableChart) -> None:
    theme = chart.theme
    n_rows = chart.layout.n_rows
    for axis, data, update in (('x', panel.x, fig.update_xaxes), ('y', panel.y, fig.update_yaxes)):
        kwargs = dict(
            range=list(data.limits),
            showgrid=theme.grid_major,
            gridcolor=theme.grid_color,
            zeroline=False,
            showline=theme.axis_line or theme.panel_border,
            mirror=theme.panel_border,
            linecolor=theme.text_color,
            ticks='outside' if theme.ticks else '',
        )
        hidden = theme.hide_x_text if axis == 'x' else theme.hide_y_text
        kwargs['showticklabels'] = data.show_text and not hidden
        if data.is_discrete:
            kwargs.update(tickmode='array', tickvals=list(data.breaks), ticktext=list(data.categories))
        elif data.breaks:
            kwargs.update(tickmode='array', tickvals=list(data.breaks))
        if axis == 'x':
            if theme.x_text_angle:
                kwargs['tickangle'] = -theme.x_text_angle
            if panel.row == n_rows:
                kwargs['title_text'] = chart.x_label
        elif panel.col == 1:
            kwargs['title_text'] = chart.y_label
        update(row=panel.row, col=panel.col, **kwargs)


def _legend_flags(trace: TraceData, seen: Set) -> dict:
    if trace.legend_key is None:
        return dict(showlegend=False)
    show = trace.legend_key not in seen
    seen.add(trace.legend_key)
    return dict(name=trace.label, legendgroup=str(trace.legend_key), showlegend=show)


def _add_trace(fig, trace: TraceData, panel: PanelData, row: int, col: int, seen: Set) -> None:
    st = trace.style
    geom = trace.geom
    rc = dict(row=row, col=col)

    if geom is Geom.POINT:
        sizes = trace.sizes if trace.sizes is not None else st.size
        fig.add_trace(go.Scatter(
            x=trace.x, y=trace.y, mode='markers',
            marker=dict(
                color=st.color or st.fill, size=np.asarray(sizes) * PX_PER_PT,
                symbol=SYMBOLS.get(st.shape, st.shape),
                opacity=trace.alphas if trace.alphas is not None else st.alpha,
            ),
            **_legend_flags(trace, seen),
        ), **rc)
    elif geom in (Geom.LINE, Geom.ELLIPSE):
        fig.add_trace(go.Scatter(
            x=trace.x, y=trace.y, mode='lines',
            line=dict(color=st.color, width=st.size, dash=DASHES.get(st.linestyle, 'solid')),
            opacity=st.alpha, **_legend_flags(trace, seen),
        ), **rc)
    elif geom in (Geom.BAR, Geom.HISTOGRAM):
        fig.add_trace(go.Bar(
            x=trace.x, y=trace.y - trace.base, base=trace.base, width=trace.width,
            marker=dict(color=st.fill, line=dict(color=st.color or st.fill, width=0.5)),
            opacity=st.alpha, **_legend_flags(trace, seen),
        ), **rc)
    elif geom is Geom.DENSITY:
        if st.fill:
            _add_band_trace(fig, trace.x, trace.base, trace.y, st.fill, st.alpha, **rc)
        fig.add_trace(go.Scatter(
            x=trace.x, y=trace.y, mode='lines',
            line=dict(color=st.color, width=st.size, dash=DASHES.get(st.linestyle, 'solid')),
            **_legend_flags(trace, seen),
        ), **rc)
    elif geom is Geom.BOXPLOT:
        boxes = trace.box_stats
        fig.add_trace(go.Box(
            x=trace.x,
            q1=[b['q1'] for b in boxes], median=[b['med'] for b in boxes],
            q3=[b['q3'] for b in boxes],
            lowerfence=[b['whislo'] for b in boxes], upperfence=[b['whishi'] for b in boxes],
            width=trace.width, fillcolor=to_rgba_string(st.fill, st.alpha),
            line=dict(color=st.color), boxpoints=False,
            **_legend_flags(trace, seen),
        ), **rc)
        fx = np.concatenate([np.full(len(b['fliers']), x) for x, b in zip(trace.x, boxes)] or [np.array([])])
        fy = np.concatenate([np.asarray(b['fliers'], dtype=float) for b in boxes] or [np.array([])])
        if fx.size:
            fig.add_trace(go.Scatter(
                x=fx, y=fy, mode='markers', marker=dict(color=st.color, size=4),
                showlegend=False, hoverinfo='skip',
            ), **rc)
    elif geom is Geom.SMOOTH:
        if trace.band_lower is not None:
            _add_band_trace(fig, trace.x, trace.band_lower, trace.band_upper, st.fill, st.alpha, **rc)
        fig.add_trace(go.Scatter(
            x=trace.x, y=trace.y, mode='lines',
            line=dict(color=st.color, width=st.size, dash=DASHES.get(st.linestyle, 'solid')),
            **_legend_flags(trace, seen),
        ), **rc)
    elif geom is Geom.ERRORBAR:
        fig.add_trace(go.Scatter(
            x=trace.x, y=trace.y, mode='markers',
            marker=dict(color=st.color, size=1),
            error_y=dict(
                type='data', symmetric=False,
                array=trace.band_upper - trace.y, arrayminus=trace.y - trace.band_lower,
                color=st.color, thickness=st.size, width=4,
            ),
            **_legend_flags(trace, seen),
        ), **rc)
    elif geom is Geom.RIBBON:
        _add_band_trace(fig, trace.x, trace.band_lower, trace.band_upper, st.fill, st.alpha, **rc)
    elif geom is Geom.REFLINE:
        line = dict(color=st.color, width=st.size, dash=DASHES.get(st.linestyle, 'solid'))
        if trace.orientation == 'v':
            fig.add_vline(x=float(trace.x[0]), line=line, **rc)
        elif trace.orientation == 'h':
            fig.add_hline(y=float(trace.y[0]), line=line, **rc)
        else:
            xs = np.array(panel.x.limits)
            fig.add_trace(go.Scatter(
                x=xs, y=trace.intercept + trace.slope * xs, mode='lines',
                line=line, showlegend=False, hoverinfo='skip',
            ), **rc)


def _add_band_trace(fig, x, lower, upper, color, alpha, row: int, col: int) -> None:
    """Add a fill band (upper + lower with fill)."""
    # Upper bound (invisible)
    fig.add_trace(
        go.Scatter(
            x=x, y=upper,
            mode='lines', line=dict(width=0),
            showlegend=False, hoverinfo='skip',
        ),
        row=row, col=col
    )
    fig.add_trace(
        go.Scatter(
            x=x, y=lower,
            mode='lines', line=dict(width=0),
            fill='tonexty', fillcolor=to_rgba_string(color, alpha),
            showlegend=False, hoverinfo='skip',
        ),
        row=row, col=col
    )


def _add_facet_labels(fig, chart: RenderableChart) -> None:
    """Add facet strip labels as annotations anchored to each subplot."""
    strip = chart.layout.strip
    size = chart.theme.base_size * (strip.size_rel if strip else 0.8)
    for panel in chart.panels:
        if panel.strip_top:
            fig.add_annotation(
                text=f"<b>{panel.strip_top}</b>" if strip and strip.bold else panel.strip_top,
                xref='x domain', yref='y domain', x=0.5, y=1.0,
                showarrow=False, xanchor='center', yanchor='bottom',
                bgcolor=strip.fill if strip else None, font=dict(size=size),
                row=panel.row, col=panel.col,
            )
        if panel.strip_right:
            fig.add_annotation(
                text=f"<b>{panel.strip_right}</b>" if strip and strip.bold else panel.strip_right,
                xref='x domain', yref='y domain', x=1.02, y=0.5,
                showarrow=False, xanchor='left', yanchor='middle', textangle=90,
                bgcolor=strip.fill if strip else None, font=dict(size=size),
                row=panel.row, col=panel.col,
            )


__all__ = ['render_plotly']
