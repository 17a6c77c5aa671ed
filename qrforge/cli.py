"""qrforge CLI: render styled QR codes from the command line."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from qrforge.config import Settings
from qrforge.content import parse_content
from qrforge.errors import InvalidStyle, QRForgeError, ValidationCode, ValidationError
from qrforge.logging import audit, get_logger, setup_logging
from qrforge.style import BORDER_STYLES, CORNER_STYLES, DOT_STYLES, ECC_LEVELS, PRESETS, StyleModel

log = get_logger("cli")

CONTENT_TYPES = ["url", "text", "email", "phone", "sms", "wifi", "vcard", "location"]


def _parse_fields(pairs: list[str]) -> dict:
    """Turn ``key=value`` arguments into a dict."""
    fields = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValidationError(ValidationCode.MISSING_FIELD, f"expected key=value, got {pair!r}")
        fields[key.strip()] = value
    return fields


def _load_json(path: str | None) -> dict:
    if not path:
        return {}
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _content_from_args(args) -> dict:
    data = _load_json(getattr(args, "content", None))
    data.update(_parse_fields(args.field))
    data["type"] = args.type
    return data


def _style_overrides(args) -> dict:
    """Style flags in the flat form understood by StyleModel.from_dict."""
    flat = {
        "size": args.size,
        "margin": args.margin,
        "errorCorrection": args.ecc,
        "foregroundColor": args.fg,
        "backgroundColor": args.bg,
        "dotStyle": args.dot_style,
        "cornerStyle": args.corner_style,
        "logo": args.logo,
        "logoSize": args.logo_size,
        "logoPadding": args.logo_margin,
        "logoShape": args.logo_shape,
        "logoRadius": args.logo_radius,
        "logoBackgroundColor": args.logo_bg,
        "logoOpacity": args.logo_opacity,
        "logoRotation": args.logo_rotation,
    }
    if args.gradient:
        flat["gradientType"] = args.gradient
        flat["gradientColors"] = {
            "start": args.gradient_start, "end": args.gradient_end, "direction": args.angle,
        }
    if args.logo_x is not None or args.logo_y is not None:
        flat["logoPosition"] = {"x": args.logo_x if args.logo_x is not None else 50,
                                "y": args.logo_y if args.logo_y is not None else 50}
    if args.logo_border:
        flat["logoBorder"] = {"width": args.logo_border, "color": args.logo_border_color,
                              "style": args.logo_border_style}
    if args.logo_shadow:
        flat["logoShadow"] = {"x": args.shadow_x, "y": args.shadow_y, "blur": args.shadow_blur,
                              "color": args.shadow_color}
    effects = {
        "blur": args.logo_blur, "brightness": args.logo_brightness, "contrast": args.logo_contrast,
        "grayscale": args.logo_grayscale or None, "invert": args.logo_invert or None,
        "sepia": args.logo_sepia or None,
    }
    if any(v is not None for v in effects.values()):
        flat["logoEffects"] = {k: v for k, v in effects.items() if v is not None}
    return {k: v for k, v in flat.items() if v is not None}


def build_style(args) -> StyleModel:
    if args.preset and args.preset not in PRESETS:
        raise InvalidStyle(f"unknown preset {args.preset!r}", field="preset")
    base = dict(PRESETS[args.preset]) if args.preset else {}
    base.update(_load_json(args.style))
    base.update(_style_overrides(args))
    return StyleModel.from_dict(base)


def cmd_render(args, settings: Settings):
    """Render a styled QR code to a file."""
    from qrforge.assets import default_asset_store
    from qrforge.content import encode_content
    from qrforge.pipeline import render_styled_code

    descriptor = parse_content(_content_from_args(args))
    style = build_style(args)
    fmt = args.format or Path(args.output).suffix.lstrip(".") or settings.output_format

    data = asyncio.run(render_styled_code(
        descriptor, style,
        assets=default_asset_store(settings),
        fmt=fmt,
        best_effort_logo=args.best_effort_logo or settings.best_effort_logo,
        verify_scan=args.verify,
    ))

    # Only touch the filesystem once the whole render has succeeded
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    print(f"Generated: {output} ({style.size_px}x{style.size_px}, {len(data)} bytes)")
    print(f"  Payload: {encode_content(descriptor)!r}")


def cmd_payload(args, settings: Settings):
    """Print the encoded payload for a content descriptor."""
    from qrforge.content import encode_content

    print(encode_content(parse_content(_content_from_args(args))))


def cmd_verify(args, settings: Settings):
    """Verify a QR code image."""
    from PIL import Image

    from qrforge.verify import verify

    img = Image.open(args.image)
    results = verify(img, expected_data=args.expected)

    all_pass = True
    for r in results:
        status = "PASS" if r.success else "FAIL"
        if not r.success:
            all_pass = False
        print(f"  [{r.decoder:12s}] {status} | {r.decode_time_ms:6.1f}ms | {r.decoded_data or r.error}")

    sys.exit(0 if all_pass else 1)


def cmd_presets(args, settings: Settings):
    """List the named style presets."""
    for name, values in PRESETS.items():
        print(f"{name:10s} {json.dumps(values, sort_keys=True)}")


def _add_content_args(p):
    p.add_argument("type", choices=CONTENT_TYPES, help="Content type")
    p.add_argument("-f", "--field", action="append", default=[], metavar="KEY=VALUE",
                   help="Content field, e.g. -f url=example.com (repeatable)")
    p.add_argument("--content", default=None, help="JSON file with content fields")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qrforge", description="qrforge: styled QR code renderer")

    # Global logging flags
    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=None, help="Write JSON logs to file")
    parser.add_argument("--json-logs", action="store_true", help="JSON log lines on the console")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- render ---
    p_render = subparsers.add_parser("render", help="Render a styled QR code")
    _add_content_args(p_render)
    p_render.add_argument("-o", "--output", default="output/qr.png", help="Output file path")
    p_render.add_argument("--format", default=None, type=str.upper, choices=["PNG", "JPEG", "WEBP"],
                          help="Output format (default: from the output suffix)")
    p_render.add_argument("--style", default=None, help="JSON file with style settings")
    p_render.add_argument("--preset", default=None, choices=sorted(PRESETS), help="Named style preset")
    p_render.add_argument("--size", type=int, default=None, help="Image size in pixels (100-1000)")
    p_render.add_argument("--margin", type=int, default=None, help="Quiet zone in modules (0-10)")
    p_render.add_argument("-e", "--ecc", default=None, choices=ECC_LEVELS, help="Error correction level")
    p_render.add_argument("--fg", default=None, help="Foreground colour (e.g. '#000000')")
    p_render.add_argument("--bg", default=None, help="Background colour")
    p_render.add_argument("--gradient", default=None, choices=["linear", "radial"], help="Gradient ink fill")
    p_render.add_argument("--gradient-start", default="#000000", help="Gradient start colour")
    p_render.add_argument("--gradient-end", default="#000000", help="Gradient end colour")
    p_render.add_argument("--angle", type=float, default=0.0, help="Linear gradient angle in degrees")
    p_render.add_argument("--dot-style", default=None, choices=DOT_STYLES, help="Data module shape")
    p_render.add_argument("--corner-style", default=None, choices=CORNER_STYLES, help="Finder pattern style")
    p_render.add_argument("--logo", default=None, help="Logo path, http(s) URL or data: URI")
    p_render.add_argument("--logo-size", type=float, default=None, help="Logo size in %% of the image (5-30)")
    p_render.add_argument("--logo-margin", type=int, default=None, help="Plate margin around the logo (px)")
    p_render.add_argument("--logo-shape", default=None, choices=["square", "circle", "rounded"])
    p_render.add_argument("--logo-radius", type=int, default=None, help="Corner radius for rounded logos (px)")
    p_render.add_argument("--logo-bg", default=None, help="Logo plate colour")
    p_render.add_argument("--logo-opacity", type=float, default=None, help="Logo opacity 0-1")
    p_render.add_argument("--logo-rotation", type=float, default=None, help="Logo rotation in degrees")
    p_render.add_argument("--logo-x", type=float, default=None, help="Logo centre X in %%")
    p_render.add_argument("--logo-y", type=float, default=None, help="Logo centre Y in %%")
    p_render.add_argument("--logo-border", type=int, default=None, help="Logo border width (px)")
    p_render.add_argument("--logo-border-color", default="#000000")
    p_render.add_argument("--logo-border-style", default="solid", choices=BORDER_STYLES)
    p_render.add_argument("--logo-shadow", action="store_true", help="Drop shadow under the logo")
    p_render.add_argument("--shadow-x", type=int, default=0)
    p_render.add_argument("--shadow-y", type=int, default=0)
    p_render.add_argument("--shadow-blur", type=float, default=4)
    p_render.add_argument("--shadow-color", default="#00000080")
    p_render.add_argument("--logo-blur", type=float, default=None)
    p_render.add_argument("--logo-brightness", type=float, default=None, help="Brightness in %%")
    p_render.add_argument("--logo-contrast", type=float, default=None, help="Contrast in %%")
    p_render.add_argument("--logo-grayscale", action="store_true")
    p_render.add_argument("--logo-invert", action="store_true")
    p_render.add_argument("--logo-sepia", action="store_true")
    p_render.add_argument("--best-effort-logo", action="store_true",
                          help="Render without the logo if it cannot be loaded")
    p_render.add_argument("--verify", action="store_true", help="Fail unless the result scans back")

    # --- payload ---
    p_payload = subparsers.add_parser("payload", help="Print the encoded payload")
    _add_content_args(p_payload)

    # --- verify ---
    p_ver = subparsers.add_parser("verify", help="Verify a QR code image")
    p_ver.add_argument("image", help="Path to QR code image")
    p_ver.add_argument("--expected", default=None, help="Expected decoded data (fails if mismatch)")

    # --- presets ---
    subparsers.add_parser("presets", help="List style presets")

    return parser


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = Settings()

    # Setup logging before any command runs
    level = "DEBUG" if args.verbose else settings.log_level
    setup_logging(level=level, log_file=args.log_file or settings.log_file,
                  json_format=args.json_logs or settings.json_logs)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    commands = {
        "render": cmd_render,
        "payload": cmd_payload,
        "verify": cmd_verify,
        "presets": cmd_presets,
    }
    try:
        commands[args.command](args, settings)
    except (ValidationError, InvalidStyle) as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(2)
    except QRForgeError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
    audit("cli.done", logger=log, command=args.command)


if __name__ == "__main__":
    main()
