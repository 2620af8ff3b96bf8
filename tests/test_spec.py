"""Tests for specification objects and copy-on-append derivation."""

import dataclasses

import numpy as np
import pytest

import layerplot as lp
from layerplot import (
    Aes,
    ChartSpec,
    FacetSpec,
    Geom,
    LabelSpec,
    LayerSpec,
    PaletteSpec,
    ScaleSpec,
    SpecError,
    ThemeSpec,
    with_adjustment,
    with_layer,
)


class TestLayerValidation:
    def test_opacity_above_one_rejected(self):
        with pytest.raises(SpecError, match="alpha"):
            LayerSpec(Geom.POINT, alpha=1.5)

    def test_opacity_rejected_through_factory(self):
        with pytest.raises(SpecError):
            lp.geom_point(alpha=1.5)

    def test_negative_opacity_rejected(self):
        with pytest.raises(SpecError):
            LayerSpec(Geom.LINE, alpha=-0.1)

    def test_numpy_scalar_opacity_accepted(self):
        assert lp.geom_point(alpha=np.float32(0.5)).alpha == pytest.approx(0.5)

    def test_boolean_opacity_rejected(self):
        with pytest.raises(SpecError, match="alpha"):
            LayerSpec(Geom.POINT, alpha=True)

    @pytest.mark.parametrize("params", [{"color": "notacolor"}, {"fill": "#12345"}])
    def test_invalid_fixed_color_rejected(self, params):
        with pytest.raises(SpecError, match="not a valid color"):
            LayerSpec(Geom.POINT, **params)

    def test_fixed_colors_in_any_matplotlib_format(self):
        layer = LayerSpec(Geom.BAR, color="tab:blue", fill=(0.2, 0.4, 0.6))
        assert layer.fill == (0.2, 0.4, 0.6)

    def test_geom_from_string(self):
        assert LayerSpec("point").geom is Geom.POINT

    def test_unknown_geom(self):
        with pytest.raises(SpecError, match="Unknown geometry"):
            LayerSpec("pie")

    def test_unknown_position(self):
        with pytest.raises(SpecError, match="position"):
            LayerSpec(Geom.BAR, position="fill")

    def test_unknown_linetype(self):
        with pytest.raises(SpecError, match="linetype"):
            LayerSpec(Geom.LINE, linetype="wiggly")

    @pytest.mark.parametrize("params", [
        {},
        {"xintercept": 1.0, "yintercept": 2.0},
        {"yintercept": 2.0, "slope": 1.0},
    ])
    def test_refline_needs_exactly_one_form(self, params):
        with pytest.raises(SpecError, match="refline"):
            LayerSpec(Geom.REFLINE, **params)

    def test_mapping_must_be_aes(self):
        with pytest.raises(SpecError, match="Aes"):
            LayerSpec(Geom.POINT, mapping={"x": "a"})

    def test_layers_are_frozen(self):
        layer = lp.geom_point()
        with pytest.raises(dataclasses.FrozenInstanceError):
            layer.alpha = 0.5


class TestAdjustmentValidation:
    def test_scale_limits_must_increase(self):
        with pytest.raises(SpecError, match="increasing"):
            ScaleSpec("x", limits=(5, 1))

    def test_scale_axis(self):
        with pytest.raises(SpecError):
            ScaleSpec("z")

    def test_palette_single_source(self):
        with pytest.raises(SpecError, match="only one"):
            PaletteSpec("color", values=["red"], name="viridis")

    def test_palette_channel_must_be_discrete(self):
        with pytest.raises(SpecError):
            PaletteSpec("size", values=["red"])

    def test_palette_values_must_be_colors(self):
        with pytest.raises(SpecError, match="notacolor"):
            lp.scale_manual("color", values=["red", "notacolor"])

    def test_palette_mapping_values_must_be_colors(self):
        with pytest.raises(SpecError, match="Gentoo"):
            lp.scale_manual("fill", mapping={"Adelie": "orange", "Gentoo": "not-a-color"})

    def test_shape_palette_values_are_not_colors(self):
        assert PaletteSpec("shape", values=["o", "s"]).values == ("o", "s")

    def test_palette_mapping_is_hashable(self):
        palette = lp.scale_manual("color", mapping={"Adelie": "orange"})
        assert palette.mapping == (("Adelie", "orange"),)
        hash(palette)

    def test_unknown_base_theme(self):
        with pytest.raises(SpecError, match="base theme"):
            ThemeSpec(base="solarized")

    @pytest.mark.parametrize("position", ["middle", (0.5, 1.2), (0.5,)])
    def test_legend_position(self, position):
        with pytest.raises(SpecError):
            ThemeSpec(legend_position=position)

    def test_title_alignment_range(self):
        with pytest.raises(SpecError):
            ThemeSpec(title_hjust=2.0)

    @pytest.mark.parametrize("params", [
        {},
        {"rows": "sex", "wrap": "island"},
        {"rows": "sex", "ncol": 2},
        {"wrap": "island", "free_space": True},
    ])
    def test_facet_rules(self, params):
        with pytest.raises(SpecError):
            FacetSpec(**params)

    def test_facet_scales_mode(self):
        with pytest.raises(SpecError, match="scales"):
            lp.facet_wrap("island", scales="loose")
        facet = lp.facet_grid(cols="species", scales="free_x", space="free")
        assert (facet.sharex, facet.sharey, facet.free_space) == (False, True, True)


class TestDerivation:
    def test_with_layer_does_not_mutate(self):
        spec = ChartSpec(mapping=Aes(x="a", y="b"))
        layer = lp.geom_point()
        derived = with_layer(spec, layer)
        assert spec.layers == ()
        assert derived.layers == (layer,)
        assert derived.mapping == spec.mapping

    def test_appended_layers_keep_order(self):
        first, second, third = lp.geom_point(), lp.geom_smooth(), lp.geom_hline(0.0)
        spec = with_layer(with_layer(with_layer(ChartSpec(), first), second), third)
        assert [layer.geom for layer in spec.layers] == [Geom.POINT, Geom.SMOOTH, Geom.REFLINE]

    def test_with_adjustment_does_not_mutate(self):
        spec = ChartSpec()
        titled = with_adjustment(spec, LabelSpec(title="first"))
        retitled = with_adjustment(titled, LabelSpec(title="second"))
        assert spec.adjustments == ()
        assert titled.adjustment("labels").title == "first"
        assert retitled.adjustment("labels").title == "second"
        assert len(retitled.adjustments) == 1

    def test_adjustments_of_different_kinds_accumulate(self):
        spec = ChartSpec() + lp.xlim(0, 1) + lp.ylim(0, 2) + lp.theme("bw")
        assert {adj.kind for adj in spec.adjustments} == {"scale_x", "scale_y", "theme"}

    def test_plus_operator(self):
        spec = lp.chart(lp.aes(x="a", y="b"))
        derived = spec + lp.geom_point() + lp.labs(title="t")
        assert len(derived.layers) == 1
        assert derived.adjustment("labels").title == "t"
        assert spec.layers == () and spec.adjustments == ()

    def test_plus_rejects_other_types(self):
        with pytest.raises(TypeError):
            ChartSpec() + 3

    def test_with_layer_rejects_non_layers(self):
        with pytest.raises(SpecError):
            with_layer(ChartSpec(), LabelSpec())

    def test_with_adjustment_rejects_non_adjustments(self):
        with pytest.raises(SpecError):
            with_adjustment(ChartSpec(), lp.geom_point())

    def test_aes_merge(self):
        merged = Aes(x="a", y="b", color="c").merged(Aes(y="d"))
        assert merged == Aes(x="a", y="d", color="c")
