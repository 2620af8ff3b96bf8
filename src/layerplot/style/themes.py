"""
Theme presets.

A Theme is the fully resolved set of non-data styling. ThemeSpec picks a base
preset by name and overrides individual fields.
"""

from dataclasses import dataclass, replace
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class Theme:
    name: str = 'grey'
    base_size: float = 11.0
    panel_background: str = '#ebebeb'
    plot_background: str = '#ffffff'
    grid_color: str = '#ffffff'
    grid_major: bool = True
    grid_minor: bool = True
    axis_line: bool = False
    panel_border: bool = False
    ticks: bool = True
    text_color: str = '#1a1a1a'
    legend_position: Union[str, Tuple[float, float]] = 'right'
    title_hjust: float = 0.0
    title_vjust: float = 1.0
    hide_x_text: bool = False
    hide_y_text: bool = False
    x_text_angle: float = 0.0

    @property
    def tick_size(self) -> float:
        return self.base_size * 0.8

    @property
    def title_size(self) -> float:
        return self.base_size * 1.2

    @property
    def legend_visible(self) -> bool:
        return self.legend_position != 'none'


def theme_grey() -> Theme:
    return Theme()


def theme_minimal() -> Theme:
    return Theme(
        name='minimal',
        panel_background='#ffffff',
        grid_color='#ebebeb',
        ticks=False,
    )


def theme_classic() -> Theme:
    return Theme(
        name='classic',
        panel_background='#ffffff',
        grid_major=False,
        grid_minor=False,
        axis_line=True,
    )


def theme_bw() -> Theme:
    return Theme(
        name='bw',
        panel_background='#ffffff',
        grid_color='#ebebeb',
        panel_border=True,
    )


BASE_THEMES = {
    'grey': theme_grey,
    'minimal': theme_minimal,
    'classic': theme_classic,
    'bw': theme_bw,
}


def resolve_theme(spec: Optional["ThemeSpec"] = None) -> Theme:
    """Apply a ThemeSpec's overrides on top of its base preset."""
    if spec is None:
        return theme_grey()
    return replace(BASE_THEMES[spec.base](), **spec.overrides())


__all__ = ['Theme', 'theme_grey', 'theme_minimal', 'theme_classic', 'theme_bw',
           'BASE_THEMES', 'resolve_theme']
