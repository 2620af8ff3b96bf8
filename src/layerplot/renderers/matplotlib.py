"""
Matplotlib renderer for built charts and composite figures.

Every chart is drawn into a caller-supplied plotted-area box, so a lone chart
and a chart inside a composite go through the same code.
"""

from typing import List, Optional, Tuple

import matplotlib.pyplot as plt
from matplotlib.gridspec import GridSpec
from matplotlib.lines import Line2D
from matplotlib.patches import Patch, Rectangle
from matplotlib.ticker import AutoMinorLocator

from ..compose import CompositeFigure
from ..config import DEFAULT_POINT_SIZE
from ..ir import Geom, LegendData, PanelData, RenderableChart, TraceData
from ..layout import (
    PT,
    Box,
    chart_margins,
    chart_size,
    panel_gaps,
    strip_height,
    title_slack,
    x_tick_height,
    y_tick_width,
)
from ..style.defaults import RenderStyle


def _marker_area(diameter):
    return diameter ** 2


def render_matplotlib(
    chart: RenderableChart,
    style: RenderStyle,
    size: Optional[Tuple[float, float]] = None,
) -> plt.Figure:
    """Render a single chart to a new Matplotlib figure."""
    width, height = size or chart_size(chart, style)
    fig = plt.figure(figsize=(width, height))
    fig.patch.set_facecolor(chart.theme.plot_background)
    cell = Box(0.0, 0.0, 1.0, 1.0)
    draw_chart(fig, chart, cell, cell.inset(chart_margins(chart), width, height), style)
    return fig


def render_composite_matplotlib(
    figure: CompositeFigure,
    style: RenderStyle,
    size: Optional[Tuple[float, float]] = None,
) -> plt.Figure:
    """Render a composite figure: every leaf chart in its placement, plus tags."""
    width, height = figure.figure_size(size)
    fig = plt.figure(figsize=(width, height))
    fig.patch.set_facecolor('#ffffff')
    layout = figure.layout

    for placement in figure.placements((width, height)):
        draw_chart(fig, placement.chart, placement.cell_box, placement.plot_box, style)

    for tag in figure.tags((width, height)):
        fig.text(
            tag.box.left, tag.box.top, tag.text,
            ha='left', va='top', fontsize=layout.label_size, fontweight='bold',
        )

    title_box = figure.title_box((width, height))
    if title_box is not None:
        fig.text(
            0.5, title_box.bottom + title_box.height / 2, layout.title,
            ha='center', va='center', fontsize=layout.label_size * 1.2, fontweight='bold',
        )
    return fig


def draw_chart(
    fig: plt.Figure,
    chart: RenderableChart,
    cell_box: Box,
    plot_box: Box,
    style: RenderStyle,
) -> List[plt.Axes]:
    """Draw ``chart`` with its panels filling ``plot_box`` (figure fraction)."""
    fig_w, fig_h = fig.get_size_inches()
    layout = chart.layout
    theme = chart.theme

    wgap, hgap = panel_gaps(chart, style)
    panel_w = max((plot_box.width * fig_w - wgap * (layout.n_cols - 1)) / layout.n_cols, 1e-3)
    panel_h = max((plot_box.height * fig_h - hgap * (layout.n_rows - 1)) / layout.n_rows, 1e-3)
    gs = GridSpec(
        layout.n_rows, layout.n_cols, figure=fig,
        left=plot_box.left, right=plot_box.right,
        bottom=plot_box.bottom, top=plot_box.top,
        width_ratios=layout.width_ratios, height_ratios=layout.height_ratios,
        wspace=wgap / panel_w, hspace=hgap / panel_h,
    )

    axes = []
    for panel in chart.panels:
        ax = fig.add_subplot(gs[panel.row - 1, panel.col - 1])
        _style_axes(ax, panel, chart)
        for trace in panel.traces:
            _draw_trace(ax, trace, panel)
        _draw_strips(ax, panel, chart, fig_h, fig_w)
        axes.append(ax)

    _draw_labels(fig, chart, cell_box, plot_box, fig_w, fig_h)
    if chart.legends and theme.legend_visible:
        _draw_legends(fig, chart, cell_box, plot_box, fig_w, fig_h)
    return axes


# --- Panels ---

def _style_axes(ax, panel: PanelData, chart: RenderableChart) -> None:
    theme = chart.theme
    ax.set_facecolor(theme.panel_background)
    ax.set_xlim(panel.x.limits)
    ax.set_ylim(panel.y.limits)

    for axis, data in ((ax.xaxis, panel.x), (ax.yaxis, panel.y)):
        if data.is_discrete:
            axis.set_ticks(list(data.breaks))
            axis.set_ticklabels(list(data.categories))
        elif data.breaks:
            axis.set_ticks(list(data.breaks))

    if theme.grid_major:
        ax.grid(True, which='major', color=theme.grid_color, linewidth=0.8)
    if theme.grid_minor:
        for axis, data in ((ax.xaxis, panel.x), (ax.yaxis, panel.y)):
            if not data.is_discrete:
                axis.set_minor_locator(AutoMinorLocator(2))
                axis.grid(True, which='minor', color=theme.grid_color, linewidth=0.4)
        ax.tick_params(which='minor', length=0)
    ax.set_axisbelow(True)

    for name, spine in ax.spines.items():
        visible = theme.panel_border or (theme.axis_line and name in ('left', 'bottom'))
        spine.set_visible(visible)
        spine.set_color(theme.text_color)

    ax.tick_params(
        which='major', labelsize=theme.tick_size, colors=theme.text_color,
        length=3.0 if theme.ticks else 0.0,
        labelbottom=panel.x.show_text and not theme.hide_x_text,
        labelleft=panel.y.show_text and not theme.hide_y_text,
    )
    if theme.x_text_angle:
        for label in ax.get_xticklabels():
            label.set_rotation(theme.x_text_angle)
            label.set_ha('right')


def _draw_trace(ax, trace: TraceData, panel: PanelData) -> None:
    st = trace.style
    geom = trace.geom

    if geom is Geom.POINT:
        sizes = _marker_area(trace.sizes if trace.sizes is not None else st.size)
        ax.scatter(
            trace.x, trace.y, s=sizes, c=st.color or st.fill, marker=st.shape,
            alpha=trace.alphas if trace.alphas is not None else st.alpha,
            edgecolors='none', zorder=st.zorder,
        )
    elif geom in (Geom.LINE, Geom.ELLIPSE):
        ax.plot(trace.x, trace.y, color=st.color, linewidth=st.size,
                linestyle=st.linestyle, alpha=st.alpha, zorder=st.zorder)
    elif geom in (Geom.BAR, Geom.HISTOGRAM):
        ax.bar(
            trace.x, trace.y - trace.base, bottom=trace.base, width=trace.width,
            color=st.fill, edgecolor=st.color or 'none', alpha=st.alpha, zorder=st.zorder,
        )
    elif geom is Geom.DENSITY:
        if st.fill:
            ax.fill_between(trace.x, trace.base, trace.y, color=st.fill,
                            alpha=st.alpha, linewidth=0, zorder=st.zorder)
        ax.plot(trace.x, trace.y, color=st.color, linewidth=st.size,
                linestyle=st.linestyle, zorder=st.zorder)
    elif geom is Geom.BOXPLOT:
        ax.bxp(
            trace.box_stats, positions=list(trace.x), widths=trace.width,
            patch_artist=True, manage_ticks=False, zorder=st.zorder,
            boxprops=dict(facecolor=st.fill, edgecolor=st.color, alpha=st.alpha),
            medianprops=dict(color=st.color, linewidth=1.5),
            whiskerprops=dict(color=st.color),
            capprops=dict(color=st.color),
            flierprops=dict(marker='o', markerfacecolor=st.color, markeredgecolor='none', markersize=4),
        )
    elif geom is Geom.SMOOTH:
        if trace.band_lower is not None:
            ax.fill_between(trace.x, trace.band_lower, trace.band_upper, color=st.fill,
                            alpha=st.alpha, linewidth=0, zorder=st.zorder)
        ax.plot(trace.x, trace.y, color=st.color, linewidth=st.size,
                linestyle=st.linestyle, zorder=st.zorder)
    elif geom is Geom.ERRORBAR:
        half = trace.width / 2
        ax.vlines(trace.x, trace.band_lower, trace.band_upper, color=st.color,
                  linewidth=st.size, alpha=st.alpha, zorder=st.zorder)
        for ends in (trace.band_lower, trace.band_upper):
            ax.hlines(ends, trace.x - half, trace.x + half, color=st.color,
                      linewidth=st.size, alpha=st.alpha, zorder=st.zorder)
    elif geom is Geom.RIBBON:
        ax.fill_between(trace.x, trace.band_lower, trace.band_upper, color=st.fill,
                        alpha=st.alpha, linewidth=0, zorder=st.zorder)
    elif geom is Geom.REFLINE:
        kwargs = dict(color=st.color, linewidth=st.size, linestyle=st.linestyle,
                      alpha=st.alpha, zorder=st.zorder)
        if trace.orientation == 'v':
            ax.axvline(trace.x[0], **kwargs)
        elif trace.orientation == 'h':
            ax.axhline(trace.y[0], **kwargs)
        else:
            ax.axline((0.0, trace.intercept), slope=trace.slope, **kwargs)


def _draw_strips(ax, panel: PanelData, chart: RenderableChart, fig_h: float, fig_w: float) -> None:
    if not (panel.strip_top or panel.strip_right):
        return
    strip = chart.layout.strip
    theme = chart.theme
    band = strip_height(chart)
    pos = ax.get_position()
    text_kw = dict(
        fontsize=theme.base_size * (strip.size_rel if strip else 0.8),
        color=strip.text_color if strip else theme.text_color,
        fontweight='bold' if strip and strip.bold else 'normal',
        transform=ax.transAxes, ha='center', va='center', clip_on=False,
    )
    fill = strip.fill if strip else '#d9d9d9'
    if panel.strip_top:
        h = band / max(pos.height * fig_h, 1e-3)
        ax.add_patch(Rectangle((0.0, 1.0), 1.0, h, transform=ax.transAxes,
                               facecolor=fill, edgecolor='none', clip_on=False))
        ax.text(0.5, 1.0 + h / 2, panel.strip_top, **text_kw)
    if panel.strip_right:
        w = band / max(pos.width * fig_w, 1e-3)
        ax.add_patch(Rectangle((1.0, 0.0), w, 1.0, transform=ax.transAxes,
                               facecolor=fill, edgecolor='none', clip_on=False))
        ax.text(1.0 + w / 2, 0.5, panel.strip_right, rotation=-90, **text_kw)


# --- Chart decorations ---

def _draw_labels(fig, chart: RenderableChart, cell_box: Box, plot_box: Box, fig_w: float, fig_h: float) -> None:
    theme = chart.theme
    fs = theme.base_size
    pad = 5.5 * PT

    if chart.x_label:
        below = pad
        if not theme.hide_x_text and any(p.x.show_text for p in chart.panels):
            below += x_tick_height(chart)
        fig.text(plot_box.left + plot_box.width / 2, plot_box.bottom - below / fig_h,
                 chart.x_label, ha='center', va='top', fontsize=fs, color=theme.text_color)
    if chart.y_label:
        beside = pad
        if not theme.hide_y_text and any(p.y.show_text for p in chart.panels):
            beside += y_tick_width(chart)
        fig.text(plot_box.left - beside / fig_w, plot_box.bottom + plot_box.height / 2,
                 chart.y_label, ha='right', va='center', rotation=90, fontsize=fs,
                 color=theme.text_color)
    if chart.caption:
        fig.text(plot_box.right, cell_box.bottom + pad / fig_h, chart.caption,
                 ha='right', va='bottom', fontsize=fs * 0.8, color=theme.text_color)

    # Title block stacks upwards from the strips (and a top legend, if any).
    above = pad + (strip_height(chart) if chart.has_strips else 0.0)
    if theme.legend_position == 'top' and chart.legends:
        above += 2.5 * fs * PT * len(chart.legends)
    hjust = theme.title_hjust
    ha = 'left' if hjust < 1 / 3 else ('right' if hjust > 2 / 3 else 'center')
    x = plot_box.left + hjust * plot_box.width
    if chart.subtitle:
        fig.text(x, plot_box.top + above / fig_h, chart.subtitle, ha=ha, va='bottom',
                 fontsize=fs, color=theme.text_color)
        above += fs * 1.4 * PT
    if chart.title:
        above += theme.title_vjust * title_slack(chart)
        fig.text(x, plot_box.top + above / fig_h, chart.title, ha=ha, va='bottom',
                 fontsize=theme.title_size, color=theme.text_color)


def _legend_handles(legend: LegendData, theme) -> list:
    handles = []
    points = Geom.POINT in legend.geoms or 'shape' in legend.channels or 'size' in legend.channels
    for entry in legend.entries:
        if points:
            color = entry.color or entry.fill or theme.text_color
            size = entry.size or DEFAULT_POINT_SIZE
            handles.append(Line2D([], [], linestyle='', marker=entry.shape or 'o',
                                  markersize=size, markerfacecolor=color,
                                  markeredgecolor='none', label=entry.label))
        elif entry.fill is not None:
            handles.append(Patch(facecolor=entry.fill, edgecolor=entry.color or 'none', label=entry.label))
        else:
            handles.append(Line2D([], [], color=entry.color, linewidth=1.5, label=entry.label))
    return handles


def _draw_legends(fig, chart: RenderableChart, cell_box: Box, plot_box: Box, fig_w: float, fig_h: float) -> None:
    theme = chart.theme
    position = theme.legend_position
    fs = theme.base_size
    key = fs * 1.6 * PT
    pad = 5.5 * PT
    strip_w = strip_height(chart) if chart.has_row_strips else 0.0

    offset = 0.0
    for legend in chart.legends:
        handles = _legend_handles(legend, theme)
        kwargs = dict(handles=handles, title=legend.title, fontsize=theme.tick_size,
                      title_fontsize=fs, frameon=False, bbox_transform=fig.transFigure)
        if position == 'right':
            anchor = (plot_box.right + (strip_w + pad) / fig_w, plot_box.top - offset / fig_h)
            fig.legend(loc='upper left', bbox_to_anchor=anchor, **kwargs)
        elif position == 'left':
            anchor = (cell_box.left + pad / fig_w, plot_box.top - offset / fig_h)
            fig.legend(loc='upper left', bbox_to_anchor=anchor, **kwargs)
        elif position == 'bottom':
            anchor = (plot_box.left + plot_box.width / 2, cell_box.bottom + offset / fig_h)
            fig.legend(loc='lower center', ncol=max(len(handles), 1), bbox_to_anchor=anchor, **kwargs)
        elif position == 'top':
            top = plot_box.top + (strip_height(chart) if chart.has_strips else 0.0) / fig_h
            anchor = (plot_box.left + plot_box.width / 2, top + offset / fig_h)
            fig.legend(loc='lower center', ncol=max(len(handles), 1), bbox_to_anchor=anchor, **kwargs)
        else:
            x, y = position
            anchor = (plot_box.left + x * plot_box.width, plot_box.bottom + y * plot_box.height - offset / fig_h)
            fig.legend(loc='center', bbox_to_anchor=anchor, **kwargs)

        if position in ('top', 'bottom'):
            offset += 2.5 * fs * PT
        else:
            offset += key * (len(legend.entries) + 1) + pad


__all__ = ['render_matplotlib', 'render_composite_matplotlib', 'draw_chart']
