"""Tests for style validation, parsing and presets."""

import pytest

from qrforge.errors import InvalidStyle
from qrforge.style import (
    OCCLUSION_BUDGET,
    PRESETS,
    Gradient,
    LogoBorder,
    LogoPosition,
    LogoShadow,
    LogoStyle,
    StyleModel,
    check_contrast,
    parse_color,
    preset,
)


def test_defaults_are_valid():
    style = StyleModel()
    assert style.validate() is style
    assert (style.size_px, style.margin_modules, style.error_correction) == (400, 4, "M")


class TestParseColor:
    def test_hex(self):
        assert parse_color("#FF0000") == (255, 0, 0, 255)

    def test_hex_with_alpha(self):
        assert parse_color("#00000080") == (0, 0, 0, 128)

    def test_named_and_tuple(self):
        assert parse_color("white") == (255, 255, 255, 255)
        assert parse_color((1, 2, 3)) == (1, 2, 3, 255)

    def test_invalid(self):
        with pytest.raises(InvalidStyle) as exc:
            parse_color("#GGGGGG", "foreground")
        assert exc.value.field == "foreground"


class TestValidation:
    @pytest.mark.parametrize("size", [99, 1001, 400.5, True])
    def test_size_range(self, size):
        with pytest.raises(InvalidStyle) as exc:
            StyleModel(size_px=size).validate()
        assert exc.value.field == "size_px"

    @pytest.mark.parametrize("margin", [-1, 11])
    def test_margin_range(self, margin):
        with pytest.raises(InvalidStyle):
            StyleModel(margin_modules=margin).validate()

    def test_bounds_are_inclusive(self):
        StyleModel(size_px=100, margin_modules=0).validate()
        StyleModel(size_px=1000, margin_modules=10).validate()

    def test_unknown_ecc(self):
        with pytest.raises(InvalidStyle) as exc:
            StyleModel(error_correction="X").validate()
        assert exc.value.field == "error_correction"

    def test_unknown_dot_style(self):
        with pytest.raises(InvalidStyle):
            StyleModel(dot_style="hearts").validate()

    def test_bad_foreground(self):
        with pytest.raises(InvalidStyle) as exc:
            StyleModel(foreground="not-a-colour").validate()
        assert exc.value.field == "foreground"

    def test_bad_gradient(self):
        with pytest.raises(InvalidStyle):
            StyleModel(gradient=Gradient(kind="conic")).validate()

    @pytest.mark.parametrize("size_pct", [4, 31])
    def test_logo_size_range(self, size_pct):
        with pytest.raises(InvalidStyle) as exc:
            StyleModel(error_correction="H", logo=LogoStyle("logo.png", size_pct=size_pct)).validate()
        assert exc.value.field == "logo.size_pct"

    def test_logo_needs_ref(self):
        with pytest.raises(InvalidStyle):
            StyleModel(logo=LogoStyle("")).validate()

    def test_logo_opacity_range(self):
        with pytest.raises(InvalidStyle):
            StyleModel(logo=LogoStyle("logo.png", opacity=1.5)).validate()

    def test_shadow_offset_range(self):
        with pytest.raises(InvalidStyle):
            StyleModel(logo=LogoStyle("logo.png", shadow=LogoShadow(offset_x=25))).validate()

    def test_border_style(self):
        with pytest.raises(InvalidStyle):
            StyleModel(logo=LogoStyle("logo.png", border=LogoBorder(style="wavy"))).validate()

    def test_low_contrast_only_warns(self, caplog):
        StyleModel(foreground="#EEEEEE", background="#FFFFFF").validate()
        assert any("Contrast ratio" in r.getMessage() for r in caplog.records)


class TestOcclusionBudget:
    def test_large_logo_rejected_at_low_ecc(self):
        # 30% square hides 9% of the canvas; L allows 3.5%
        style = StyleModel(error_correction="L", logo=LogoStyle("logo.png", size_pct=30))
        with pytest.raises(InvalidStyle) as exc:
            style.validate()
        assert exc.value.field == "logo.size_pct"

    def test_same_logo_accepted_at_high_ecc(self):
        StyleModel(error_correction="H", logo=LogoStyle("logo.png", size_pct=30)).validate()

    def test_plate_margin_counts(self):
        logo = LogoStyle("logo.png", size_pct=25, margin_px=0, background_color="#FFFFFF")
        StyleModel(error_correction="M", logo=logo).validate()

        padded = LogoStyle("logo.png", size_pct=25, margin_px=20, background_color="#FFFFFF")
        with pytest.raises(InvalidStyle):
            StyleModel(error_correction="M", logo=padded).validate()

    def test_circle_occludes_less_than_square(self):
        canvas = (400, 400)
        square = LogoStyle("logo.png", size_pct=20).occluded_region(canvas).area
        circle = LogoStyle("logo.png", size_pct=20, shape="circle").occluded_region(canvas).area
        assert circle < square

    def test_budget_grows_with_ecc(self):
        levels = ["L", "M", "Q", "H"]
        assert [OCCLUSION_BUDGET[lvl] for lvl in levels] == sorted(OCCLUSION_BUDGET.values())


class TestClipRegionFromStyle:
    def test_centred_footprint(self):
        region = LogoStyle("logo.png", size_pct=20).clip_region((400, 400))
        assert (region.left, region.top, region.side) == (160, 160, 80)
        assert region.center == (200.0, 200.0)

    def test_position(self):
        logo = LogoStyle("logo.png", size_pct=10, position=LogoPosition(25, 75))
        region = logo.clip_region((400, 400))
        assert region.center == (100.0, 300.0)


class TestFromDict:
    def test_nested_form(self):
        style = StyleModel.from_dict({
            "size_px": 300,
            "error_correction": "q",
            "gradient": {"kind": "radial", "start": "#000000", "end": "#333333"},
            "logo": {"image_ref": "logo.png", "size_pct": 15, "shape": "circle",
                     "border": {"width_px": 3, "style": "dashed"}},
        })
        assert style.size_px == 300
        assert style.error_correction == "Q"
        assert style.gradient == Gradient("radial", "#000000", "#333333")
        assert style.logo.shape == "circle"
        assert style.logo.border == LogoBorder(width_px=3, style="dashed")

    def test_flat_camel_case_form(self):
        style = StyleModel.from_dict({
            "size": 500,
            "margin": 2,
            "errorCorrection": "H",
            "foregroundColor": "#111111",
            "backgroundColor": "#FAFAFA",
            "dotStyle": "dots",
            "cornerStyle": "rounded",
            "gradientType": "linear",
            "gradientColors": {"start": "#FF0000", "end": "#0000FF", "direction": 90},
            "logo": "data:image/png;base64,AAAA",
            "logoSize": 18,
            "logoPadding": 6,
            "logoBackgroundColor": "#FFFFFF",
            "logoShape": "rounded",
            "logoOpacity": 0.8,
            "logoRotation": 15,
            "logoPosition": {"x": 40, "y": 60},
            "logoShadow": {"enabled": True, "x": 2, "y": 3, "blur": 5},
            "logoEffects": {"grayscale": True, "brightness": 120},
        })
        assert (style.size_px, style.margin_modules, style.error_correction) == (500, 2, "H")
        assert style.dot_style == "dots" and style.corner_style == "rounded"
        assert style.gradient == Gradient("linear", "#FF0000", "#0000FF", 90)
        logo = style.logo
        assert logo.image_ref.startswith("data:")
        assert (logo.size_pct, logo.margin_px, logo.shape) == (18, 6, "rounded")
        assert logo.background_color == "#FFFFFF"
        assert (logo.opacity, logo.rotation_deg) == (0.8, 15)
        assert logo.position == LogoPosition(40, 60)
        assert logo.shadow == LogoShadow(offset_x=2, offset_y=3, blur_px=5)
        assert logo.filters.grayscale and logo.filters.brightness_pct == 120
        style.validate()

    def test_disabled_shadow(self):
        style = StyleModel.from_dict({"logo": "x.png", "logoShadow": {"enabled": False}})
        assert style.logo.shadow is None

    def test_logo_keys_ignored_without_logo(self):
        style = StyleModel.from_dict({"logoSize": 20})
        assert style.logo is None


class TestPresets:
    @pytest.mark.parametrize("name", sorted(PRESETS))
    def test_every_preset_validates(self, name):
        preset(name).validate()

    def test_overrides(self):
        style = preset("classic", size=600, foregroundColor="#123456")
        assert style.size_px == 600
        assert style.foreground == "#123456"

    def test_preset_logo_settings_apply_with_logo(self):
        style = preset("branded", logo="logo.png")
        assert style.logo.background_color == "#FFFFFF"
        assert style.logo.size_pct == 20
        style.validate()

    def test_unknown_preset(self):
        with pytest.raises(InvalidStyle):
            preset("vaporwave")


def test_contrast_ratio_extremes():
    assert check_contrast((0, 0, 0), (255, 255, 255)) == pytest.approx(21.0)
    assert check_contrast((10, 20, 30), (10, 20, 30)) == pytest.approx(1.0)
