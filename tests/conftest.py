"""Shared fixtures: a deterministic synthetic penguins table and figure cleanup."""

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

import layerplot as lp

# species: (flipper mean, body mass mean, bill length mean, bill depth mean, islands)
SPECIES = {
    "Adelie": (190.0, 3700.0, 38.8, 18.3, ["Torgersen", "Biscoe", "Dream"]),
    "Chinstrap": (196.0, 3730.0, 48.8, 18.4, ["Dream"]),
    "Gentoo": (217.0, 5076.0, 47.5, 15.0, ["Biscoe"]),
}
N_PER_SPECIES = 30
MISSING_MASS_ROWS = [3, 40]   # Adelie/Torgersen and Chinstrap/Dream
MISSING_SEX_ROWS = [5]


def make_penguins(n_per_species: int = N_PER_SPECIES, seed: int = 0) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    rows = []
    for species, (flipper, mass, bill_len, bill_dep, islands) in SPECIES.items():
        for i in range(n_per_species):
            rows.append({
                "id": f"{species[:3].lower()}-{i:02d}",
                "species": species,
                "island": islands[i % len(islands)],
                "flipper_length_mm": round(flipper + rng.normal(0, 6.5), 1),
                "body_mass_g": round(mass + rng.normal(0, 450), 0),
                "bill_length_mm": round(bill_len + rng.normal(0, 2.8), 1),
                "bill_depth_mm": round(bill_dep + rng.normal(0, 1.1), 1),
                "sex": "male" if i % 2 == 0 else "female",
            })
    frame = pd.DataFrame(rows)
    frame.loc[MISSING_MASS_ROWS, "body_mass_g"] = np.nan
    frame["sex"] = frame["sex"].astype(object)
    frame.loc[MISSING_SEX_ROWS, "sex"] = None
    return frame


@pytest.fixture
def penguins_frame() -> pd.DataFrame:
    return make_penguins()


@pytest.fixture
def penguins(penguins_frame) -> lp.DataTable:
    return lp.DataTable(penguins_frame, identifiers=["id"])


@pytest.fixture
def complete_penguins(penguins_frame) -> lp.DataTable:
    """Penguins without missing values, for tests that must not warn."""
    return lp.DataTable(penguins_frame.dropna().reset_index(drop=True), identifiers=["id"])


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


def assert_charts_equal(a: lp.RenderableChart, b: lp.RenderableChart) -> None:
    """Structural equality of two built charts (traces hold numpy arrays)."""
    assert len(a.panels) == len(b.panels)
    for pa, pb in zip(a.panels, b.panels):
        assert (pa.row, pa.col, pa.key) == (pb.row, pb.col, pb.key)
        assert pa.x == pb.x
        assert pa.y == pb.y
        assert len(pa.traces) == len(pb.traces)
        for ta, tb in zip(pa.traces, pb.traces):
            assert ta.geom == tb.geom
            assert ta.layer_index == tb.layer_index
            assert ta.style == tb.style
            assert ta.label == tb.label
            np.testing.assert_array_equal(ta.x, tb.x)
            np.testing.assert_array_equal(ta.y, tb.y)
    assert a.legends == b.legends
    assert a.layout == b.layout
    assert (a.x_label, a.y_label, a.title) == (b.x_label, b.y_label, b.title)
