"""
Build configuration and shared numeric defaults.

Contains the constants used when training scales and computing layer
statistics, plus the BuildOptions knob for caller-chosen strictness.
"""

from dataclasses import dataclass

# ==============================================================================
# Scale training
# ==============================================================================

DEFAULT_EXPAND = (0.05, 0.0)        # (multiplicative, additive) for numeric axes
DISCRETE_EXPAND = (0.0, 0.6)        # categorical axes pad by 0.6 of a slot
EMPTY_DOMAIN = (0.0, 1.0)           # panels with no data

# ==============================================================================
# Layer statistics
# ==============================================================================

DEFAULT_BINS = 30
DENSITY_GRID_POINTS = 512
SMOOTH_GRID_POINTS = 80
ELLIPSE_SEGMENTS = 51
BOX_WHISKER_COEF = 1.5
DEFAULT_BAR_WIDTH = 0.9             # fraction of the x resolution
DEFAULT_BOX_WIDTH = 0.75
DEFAULT_ERRORBAR_WIDTH = 0.5
DEFAULT_JITTER_WIDTH = 0.4

# ==============================================================================
# Mapped aesthetic ranges
# ==============================================================================

SIZE_RANGE = (2.0, 10.0)            # marker diameter in points
ALPHA_RANGE = (0.1, 1.0)

# Geometry defaults (points for markers, line widths in points)
DEFAULT_POINT_SIZE = 4.0
DEFAULT_LINE_WIDTH = 1.0
DEFAULT_SMOOTH_WIDTH = 1.6
DEFAULT_INK = '#333333'
DEFAULT_BAR_FILL = '#595959'
DEFAULT_BOX_FILL = '#ffffff'
DEFAULT_BAND_FILL = '#999999'
DEFAULT_BAND_ALPHA = 0.4


@dataclass(frozen=True)
class BuildOptions:
    """Caller-chosen behaviour for ``build``.

    strict_limits : bool
        If True, rows falling outside explicit scale limits raise SpecError
        instead of being dropped with a RuntimeWarning.
    jitter_seed : int
        Seed for the jitter position adjustment; fixed so builds stay pure.
    """
    strict_limits: bool = False
    jitter_seed: int = 0


__all__ = [
    'BuildOptions',
    'DEFAULT_EXPAND', 'DISCRETE_EXPAND', 'EMPTY_DOMAIN',
    'DEFAULT_BINS', 'DENSITY_GRID_POINTS', 'SMOOTH_GRID_POINTS', 'ELLIPSE_SEGMENTS',
    'BOX_WHISKER_COEF', 'SIZE_RANGE', 'ALPHA_RANGE',
]
