"""Renderers module: Matplotlib and Plotly backends."""

from .plotly import render_plotly
from .matplotlib import render_matplotlib, render_composite_matplotlib

__all__ = ['render_plotly', 'render_matplotlib', 'render_composite_matplotlib']
