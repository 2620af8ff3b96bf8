"""
Generic statistical utilities for layers.

Thin wrappers over numpy / scipy / pandas. The builder calls these per panel
and per group; none of them know about specs or tables except ``summarize``.
"""

from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from .config import (
    BOX_WHISKER_COEF,
    DEFAULT_BINS,
    DENSITY_GRID_POINTS,
    ELLIPSE_SEGMENTS,
    SMOOTH_GRID_POINTS,
)
from .errors import SpecError
from .table import DataTable


def bin_edges(
    values: np.ndarray,
    bins: Optional[int] = None,
    binwidth: Optional[float] = None,
    value_range: Optional[Tuple[float, float]] = None,
) -> np.ndarray:
    """Histogram bin edges shared by every group in a panel.

    ``binwidth`` takes precedence over ``bins``; edges are anchored so the
    first bin is centred on the minimum.
    """
    values = np.asarray(values, dtype=float)
    lo, hi = value_range if value_range is not None else (values.min(), values.max())
    if binwidth is not None:
        start = lo - binwidth / 2
        n = max(1, int(np.ceil((hi - start) / binwidth + 1e-9)))
        return start + binwidth * np.arange(n + 1)
    if lo == hi:
        lo, hi = lo - 0.5, hi + 0.5
    return np.histogram_bin_edges(values, bins=bins or DEFAULT_BINS, range=(lo, hi))


def bin_counts(values: np.ndarray, edges: np.ndarray) -> Tuple[np.ndarray, np.ndarray, float]:
    """Return (bin centres, counts, bin width)."""
    counts, _ = np.histogram(np.asarray(values, dtype=float), bins=edges)
    centres = (edges[:-1] + edges[1:]) / 2
    return centres, counts.astype(float), float(edges[1] - edges[0])


def kernel_density(
    values: np.ndarray,
    grid: np.ndarray,
    bw_adjust: float = 1.0,
) -> Optional[np.ndarray]:
    """Gaussian KDE evaluated on ``grid``.

    Returns None when the density is undefined (fewer than two points or zero
    variance).
    """
    from scipy.stats import gaussian_kde

    values = np.asarray(values, dtype=float)
    if len(values) < 2 or np.allclose(values, values[0]):
        return None
    kde = gaussian_kde(values)
    kde.set_bandwidth(kde.factor * bw_adjust)
    return kde(grid)


def density_grid(lo: float, hi: float, n: int = DENSITY_GRID_POINTS) -> np.ndarray:
    return np.linspace(lo, hi, n)


def box_stats(values: np.ndarray, coef: float = BOX_WHISKER_COEF) -> Dict[str, Any]:
    """Five-number summary with Tukey whiskers, in matplotlib ``bxp`` format."""
    values = np.asarray(values, dtype=float)
    q1, med, q3 = np.percentile(values, [25, 50, 75])
    iqr = q3 - q1
    lo_fence, hi_fence = q1 - coef * iqr, q3 + coef * iqr
    inside = values[(values >= lo_fence) & (values <= hi_fence)]
    whislo = float(inside.min()) if inside.size else float(q1)
    whishi = float(inside.max()) if inside.size else float(q3)
    fliers = values[(values < lo_fence) | (values > hi_fence)]
    return {
        'med': float(med),
        'q1': float(q1),
        'q3': float(q3),
        'whislo': whislo,
        'whishi': whishi,
        'fliers': np.sort(fliers),
    }


def linear_fit_band(
    x: np.ndarray,
    y: np.ndarray,
    level: float = 0.95,
    n_points: int = SMOOTH_GRID_POINTS,
) -> Tuple[Optional[np.ndarray], Optional[np.ndarray], Optional[np.ndarray], Optional[np.ndarray]]:
    """
    Least-squares line with a confidence band for the mean response.

    Returns
    -------
    x_fit, y_fit, lower, upper : np.ndarray or None
        All None when fewer than three distinct points are available.
    """
    from scipy import stats as scipy_stats

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    mask = ~(np.isnan(x) | np.isnan(y))
    x, y = x[mask], y[mask]
    if len(x) < 3 or np.unique(x).size < 2:
        return None, None, None, None

    result = scipy_stats.linregress(x, y)
    x_fit = np.linspace(x.min(), x.max(), n_points)
    y_fit = result.intercept + result.slope * x_fit

    n = len(x)
    resid = y - (result.intercept + result.slope * x)
    s_err = np.sqrt(np.sum(resid ** 2) / (n - 2))
    sxx = np.sum((x - x.mean()) ** 2)
    t_crit = scipy_stats.t.ppf((1 + level) / 2, n - 2)
    half = t_crit * s_err * np.sqrt(1.0 / n + (x_fit - x.mean()) ** 2 / sxx)
    return x_fit, y_fit, y_fit - half, y_fit + half


def confidence_ellipse(
    x: np.ndarray,
    y: np.ndarray,
    level: float = 0.95,
    segments: int = ELLIPSE_SEGMENTS,
) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
    """Normal-theory confidence ellipse outline (closed path)."""
    from scipy.stats import chi2

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if len(x) < 3:
        return None, None
    cov = np.cov(x, y)
    if not np.all(np.isfinite(cov)) or np.linalg.det(cov) <= 0:
        return None, None
    eigvals, eigvecs = np.linalg.eigh(cov)
    radius = np.sqrt(chi2.ppf(level, df=2))
    theta = np.linspace(0, 2 * np.pi, segments)
    circle = np.stack([np.cos(theta), np.sin(theta)])
    outline = eigvecs @ (np.sqrt(eigvals)[:, None] * circle) * radius
    return outline[0] + x.mean(), outline[1] + y.mean()


def summarize(
    table: DataTable,
    value: str,
    by: Sequence[str],
) -> DataTable:
    """Per-group mean, standard deviation, count and standard error.

    The result feeds bar + error-bar layers (``ymin``/``ymax`` = mean ∓ sd).
    """
    frame = table.frame
    missing = [c for c in [value, *by] if c not in frame.columns]
    if missing:
        raise SpecError(f"Missing required columns: {missing}")
    grouped = frame.dropna(subset=[value, *by]).groupby(list(by), observed=True, sort=True)[value]
    summary = grouped.agg(mean='mean', sd='std', n='count').reset_index()
    summary['sd'] = summary['sd'].fillna(0.0)
    summary['se'] = summary['sd'] / np.sqrt(summary['n'])
    summary['ymin'] = summary['mean'] - summary['sd']
    summary['ymax'] = summary['mean'] + summary['sd']
    kinds = {c: table.kind(c) for c in by}
    return DataTable(summary, kinds=kinds)


__all__ = [
    'bin_edges', 'bin_counts', 'kernel_density', 'density_grid', 'box_stats',
    'linear_fit_band', 'confidence_ellipse', 'summarize',
]
