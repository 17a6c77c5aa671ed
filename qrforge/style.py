"""Style Model: immutable visual parameters, colour parsing, validation and presets."""

import re
from dataclasses import dataclass, field, replace

from PIL import ImageColor

from qrforge.errors import InvalidStyle
from qrforge.geometry import SHAPES, ClipRegion
from qrforge.logging import audit, get_logger, trace

log = get_logger("style")

ECC_LEVELS = ("L", "M", "Q", "H")
DOT_STYLES = ("square", "dots", "rounded", "classy", "sharp")
CORNER_STYLES = ("square", "dots", "rounded")
GRADIENT_KINDS = ("linear", "radial")
BORDER_STYLES = ("solid", "dashed", "dotted")
OUTPUT_FORMATS = ("PNG", "JPEG", "WEBP")

SIZE_RANGE = (100, 1000)
MARGIN_RANGE = (0, 10)
LOGO_SIZE_PCT_RANGE = (5, 30)

# Largest fraction of the canvas a logo (plus its plate) may hide: half of the
# nominal recovery capacity of each ECC level (7 / 15 / 25 / 30 %).
OCCLUSION_BUDGET = {"L": 0.035, "M": 0.075, "Q": 0.125, "H": 0.15}

RGBA = tuple[int, int, int, int]


def parse_color(value, field_name: str = "color") -> RGBA:
    """Normalise a colour (hex, rgb(), named, or tuple) to an RGBA tuple."""
    if isinstance(value, (tuple, list)):
        if len(value) not in (3, 4) or not all(isinstance(c, int) and 0 <= c <= 255 for c in value):
            raise InvalidStyle(f"{field_name}: invalid colour {value!r}", field=field_name)
        return tuple(value) if len(value) == 4 else (*value, 255)
    try:
        return ImageColor.getcolor(str(value), "RGBA")
    except ValueError as e:
        raise InvalidStyle(f"{field_name}: invalid colour {value!r}", field=field_name) from e


# ---------------------------------------------------------------------------
# WCAG contrast ratio
# ---------------------------------------------------------------------------

def _linearize(channel: int) -> float:
    """Convert sRGB channel (0-255) to linear light value."""
    c = channel / 255.0
    return c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4


def _luminance(rgb: tuple[int, ...]) -> float:
    """Relative luminance per WCAG 2.0."""
    r, g, b = [_linearize(ch) for ch in rgb[:3]]
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def check_contrast(fg: tuple[int, ...], bg: tuple[int, ...]) -> float:
    """WCAG contrast ratio between two RGB colours (1.0 - 21.0)."""
    l1 = _luminance(fg)
    l2 = _luminance(bg)
    if l1 < l2:
        l1, l2 = l2, l1
    return (l1 + 0.05) / (l2 + 0.05)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

def _check_range(name: str, value, lo, hi):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not lo <= value <= hi:
        raise InvalidStyle(f"{name} must be between {lo} and {hi}, got {value!r}", field=name)


def _check_choice(name: str, value, choices):
    if value not in choices:
        raise InvalidStyle(f"{name} must be one of {', '.join(choices)}, got {value!r}", field=name)


@dataclass(frozen=True)
class Gradient:
    kind: str = "linear"
    start: str = "#000000"
    end: str = "#000000"
    angle: float = 0.0

    def validate(self) -> None:
        _check_choice("gradient.kind", self.kind, GRADIENT_KINDS)
        parse_color(self.start, "gradient.start")
        parse_color(self.end, "gradient.end")
        _check_range("gradient.angle", self.angle, -360, 360)


@dataclass(frozen=True)
class LogoBorder:
    width_px: int = 2
    color: str = "#000000"
    style: str = "solid"

    def validate(self) -> None:
        _check_range("logo.border.width_px", self.width_px, 1, 20)
        parse_color(self.color, "logo.border.color")
        _check_choice("logo.border.style", self.style, BORDER_STYLES)


@dataclass(frozen=True)
class LogoShadow:
    color: str = "#00000080"
    blur_px: float = 4
    offset_x: int = 0
    offset_y: int = 0

    def validate(self) -> None:
        parse_color(self.color, "logo.shadow.color")
        _check_range("logo.shadow.blur_px", self.blur_px, 0, 20)
        _check_range("logo.shadow.offset_x", self.offset_x, -20, 20)
        _check_range("logo.shadow.offset_y", self.offset_y, -20, 20)


@dataclass(frozen=True)
class LogoFilters:
    blur_px: float = 0
    brightness_pct: float = 100
    contrast_pct: float = 100
    grayscale: bool = False
    invert: bool = False
    sepia: bool = False

    def validate(self) -> None:
        _check_range("logo.filters.blur_px", self.blur_px, 0, 10)
        _check_range("logo.filters.brightness_pct", self.brightness_pct, 0, 200)
        _check_range("logo.filters.contrast_pct", self.contrast_pct, 0, 200)


@dataclass(frozen=True)
class LogoPosition:
    x_pct: float = 50
    y_pct: float = 50


@dataclass(frozen=True)
class LogoStyle:
    image_ref: str
    size_pct: float = 20
    margin_px: int = 0
    shape: str = "square"
    corner_radius_px: int = 12
    background_color: str | None = None
    border: LogoBorder | None = None
    shadow: LogoShadow | None = None
    opacity: float = 1.0
    rotation_deg: float = 0.0
    position: LogoPosition = field(default_factory=LogoPosition)
    filters: LogoFilters | None = None

    def footprint_px(self, canvas_px: int) -> int:
        return max(1, int(canvas_px * self.size_pct / 100))

    def clip_region(self, canvas_size: tuple[int, int]) -> ClipRegion:
        """The region every logo drawing step is constrained to."""
        w, h = canvas_size
        side = self.footprint_px(min(w, h))
        cx = w * self.position.x_pct / 100
        cy = h * self.position.y_pct / 100
        return ClipRegion.for_footprint(self.shape, cx, cy, side, self.corner_radius_px)

    def occluded_region(self, canvas_size: tuple[int, int]) -> ClipRegion:
        region = self.clip_region(canvas_size)
        if self.background_color is not None:
            return region.expanded(self.margin_px)
        return region

    def validate(self) -> None:
        if not self.image_ref:
            raise InvalidStyle("logo.image_ref is required", field="logo.image_ref")
        _check_range("logo.size_pct", self.size_pct, *LOGO_SIZE_PCT_RANGE)
        _check_range("logo.margin_px", self.margin_px, 0, 50)
        _check_choice("logo.shape", self.shape, SHAPES)
        _check_range("logo.corner_radius_px", self.corner_radius_px, 0, 500)
        _check_range("logo.opacity", self.opacity, 0, 1)
        _check_range("logo.rotation_deg", self.rotation_deg, -360, 360)
        _check_range("logo.position.x_pct", self.position.x_pct, 0, 100)
        _check_range("logo.position.y_pct", self.position.y_pct, 0, 100)
        if self.background_color is not None:
            parse_color(self.background_color, "logo.background_color")
        for part in (self.border, self.shadow, self.filters):
            if part is not None:
                part.validate()


@dataclass(frozen=True)
class StyleModel:
    size_px: int = 400
    margin_modules: int = 4
    error_correction: str = "M"
    foreground: str = "#000000"
    background: str = "#FFFFFF"
    gradient: Gradient | None = None
    dot_style: str = "square"
    corner_style: str = "square"
    logo: LogoStyle | None = None

    @property
    def foreground_rgba(self) -> RGBA:
        return parse_color(self.foreground, "foreground")

    @property
    def background_rgba(self) -> RGBA:
        return parse_color(self.background, "background")

    def without_logo(self) -> "StyleModel":
        return replace(self, logo=None)

    @trace
    def validate(self) -> "StyleModel":
        """Reject out-of-range values before any raster work.

        Returns self so calls can be chained.

        Raises:
            InvalidStyle: naming the offending field.
        """
        if isinstance(self.size_px, bool) or not isinstance(self.size_px, int):
            raise InvalidStyle(f"size_px must be an integer, got {self.size_px!r}", field="size_px")
        _check_range("size_px", self.size_px, *SIZE_RANGE)
        if isinstance(self.margin_modules, bool) or not isinstance(self.margin_modules, int):
            raise InvalidStyle(f"margin_modules must be an integer, got {self.margin_modules!r}",
                               field="margin_modules")
        _check_range("margin_modules", self.margin_modules, *MARGIN_RANGE)
        _check_choice("error_correction", self.error_correction, ECC_LEVELS)
        _check_choice("dot_style", self.dot_style, DOT_STYLES)
        _check_choice("corner_style", self.corner_style, CORNER_STYLES)
        fg = self.foreground_rgba
        bg = self.background_rgba
        if self.gradient is not None:
            self.gradient.validate()

        if self.logo is not None:
            self.logo.validate()
            canvas = (self.size_px, self.size_px)
            occluded = self.logo.occluded_region(canvas).area / (self.size_px * self.size_px)
            budget = OCCLUSION_BUDGET[self.error_correction]
            if occluded > budget:
                raise InvalidStyle(
                    f"logo hides {occluded:.1%} of the code; ECC {self.error_correction} "
                    f"allows at most {budget:.1%}",
                    field="logo.size_pct",
                )

        inks = [fg] if self.gradient is None else [
            parse_color(self.gradient.start), parse_color(self.gradient.end)]
        ratio = min(check_contrast(ink, bg) for ink in inks)
        if ratio < 4.5:
            log.warning("Contrast ratio %.1f:1 is below 4.5:1 - scannability at risk", ratio)

        audit("style.validated", logger=log,
              size_px=self.size_px, ecc=self.error_correction,
              dot_style=self.dot_style, corner_style=self.corner_style,
              gradient=self.gradient.kind if self.gradient else None,
              logo=self.logo is not None, contrast_ratio=f"{ratio:.1f}:1")
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "StyleModel":
        """Build a style from a mapping.

        Accepts the nested snake_case form (``{"logo": {"image_ref": ...}}``)
        as well as the flat camelCase form used by web forms
        (``foregroundColor``, ``gradientType``/``gradientColors``,
        ``logo`` + ``logoSize``/``logoPadding``/``logoShadow`` ...).
        """
        d = {_snake(k): v for k, v in data.items()}
        kwargs = {}
        for name, keys in _STYLE_KEYS.items():
            for key in keys:
                if d.get(key) is not None:
                    kwargs[name] = d[key]
                    break
        if "error_correction" in kwargs:
            kwargs["error_correction"] = str(kwargs["error_correction"]).upper()

        if isinstance(d.get("gradient"), dict):
            kwargs["gradient"] = _gradient_from_dict(d["gradient"])
        elif d.get("gradient_type") and d.get("gradient_colors"):
            colors = {_snake(k): v for k, v in d["gradient_colors"].items()}
            kwargs["gradient"] = Gradient(
                kind=d["gradient_type"],
                start=colors.get("start", "#000000"),
                end=colors.get("end", "#000000"),
                angle=colors.get("direction", colors.get("angle", 0.0)),
            )

        logo = d.get("logo")
        if isinstance(logo, dict):
            kwargs["logo"] = _logo_from_dict(logo)
        elif isinstance(logo, str) and logo:
            flat = {k[len("logo_"):]: v for k, v in d.items() if k.startswith("logo_")}
            kwargs["logo"] = _logo_from_dict({"image_ref": logo, **flat})
        return cls(**kwargs)


_STYLE_KEYS = {
    "size_px": ("size_px", "size"),
    "margin_modules": ("margin_modules", "margin"),
    "error_correction": ("error_correction", "error_correction_level", "ecc"),
    "foreground": ("foreground", "foreground_color"),
    "background": ("background", "background_color"),
    "dot_style": ("dot_style",),
    "corner_style": ("corner_style",),
}


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", name).lower()


def _pick(d: dict, cls, aliases: dict | None = None) -> dict:
    aliases = aliases or {}
    fields = cls.__dataclass_fields__
    out = {}
    for key, value in d.items():
        name = aliases.get(key, key)
        if name in fields and value is not None:
            out[name] = value
    return out


def _gradient_from_dict(data: dict) -> Gradient:
    d = {_snake(k): v for k, v in data.items()}
    return Gradient(**_pick(d, Gradient, {"type": "kind", "from": "start", "to": "end", "direction": "angle"}))


def _logo_from_dict(data: dict) -> LogoStyle:
    d = {_snake(k): v for k, v in data.items()}
    kwargs = _pick(d, LogoStyle, {
        "ref": "image_ref", "image": "image_ref", "size": "size_pct", "padding": "margin_px",
        "margin": "margin_px", "rotation": "rotation_deg", "radius": "corner_radius_px",
        "effects": "filters",
    })

    border = kwargs.get("border")
    if isinstance(border, dict):
        b = {_snake(k): v for k, v in border.items()}
        kwargs["border"] = LogoBorder(**_pick(b, LogoBorder, {"width": "width_px"})) if b.get(
            "width", b.get("width_px", 1)) else None

    shadow = kwargs.get("shadow")
    if isinstance(shadow, dict):
        s = {_snake(k): v for k, v in shadow.items()}
        enabled = s.pop("enabled", True)
        kwargs["shadow"] = LogoShadow(**_pick(s, LogoShadow, {
            "x": "offset_x", "y": "offset_y", "blur": "blur_px"})) if enabled else None

    filters = kwargs.get("filters")
    if isinstance(filters, dict):
        f = {_snake(k): v for k, v in filters.items()}
        kwargs["filters"] = LogoFilters(**_pick(f, LogoFilters, {
            "blur": "blur_px", "brightness": "brightness_pct", "contrast": "contrast_pct"}))

    position = kwargs.get("position")
    if isinstance(position, dict):
        p = {_snake(k): v for k, v in position.items()}
        kwargs["position"] = LogoPosition(**_pick(p, LogoPosition, {"x": "x_pct", "y": "y_pct"}))
    return LogoStyle(**kwargs)


# ---------------------------------------------------------------------------
# Named presets
# ---------------------------------------------------------------------------

PRESETS: dict[str, dict] = {
    "classic": {
        "dotStyle": "square", "size": 300, "margin": 4,
        "foregroundColor": "#000000", "backgroundColor": "#FFFFFF", "errorCorrection": "M",
    },
    "modern": {
        "dotStyle": "rounded", "size": 300, "margin": 4,
        "gradientType": "linear",
        "gradientColors": {"start": "#4F46E5", "end": "#9333EA", "direction": 45},
        "backgroundColor": "#FFFFFF", "errorCorrection": "M",
    },
    "minimal": {
        "dotStyle": "dots", "size": 300, "margin": 4,
        "foregroundColor": "#374151", "backgroundColor": "#F3F4F6", "errorCorrection": "M",
    },
    "branded": {
        "dotStyle": "classy", "size": 300, "margin": 4,
        "foregroundColor": "#2563EB", "backgroundColor": "#FFFFFF", "errorCorrection": "H",
        "logoSize": 20, "logoPadding": 2, "logoBackgroundColor": "#FFFFFF",
    },
    "corporate": {
        "dotStyle": "classy", "size": 400, "margin": 6,
        "foregroundColor": "#1E293B", "backgroundColor": "#F8FAFC", "errorCorrection": "H",
        "logoSize": 25, "logoPadding": 4, "logoBackgroundColor": "#FFFFFF",
    },
    "neon": {
        "dotStyle": "rounded", "size": 300, "margin": 4,
        "gradientType": "linear",
        "gradientColors": {"start": "#FF0080", "end": "#7928CA", "direction": 30},
        "backgroundColor": "#000000", "errorCorrection": "Q",
    },
}


def preset(name: str, **overrides) -> StyleModel:
    """Build a style from a named preset, with flat-form overrides applied.

    Logo settings in a preset only take effect once ``logo=<ref>`` is given.
    """
    if name not in PRESETS:
        raise InvalidStyle(f"unknown preset {name!r}; choose from {', '.join(PRESETS)}", field="preset")
    return StyleModel.from_dict({**PRESETS[name], **overrides})
