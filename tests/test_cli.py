"""Tests for the command-line interface."""

import base64
import io
import json

import pytest
from PIL import Image

from qrforge.cli import build_parser, build_style, main


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


def test_payload_command(capsys):
    main(["payload", "wifi", "-f", "ssid=Home", "-f", "password=p@ss", "-f", "security=WPA"])
    assert capsys.readouterr().out.strip() == "WIFI:T:WPA;S:Home;P:p@ss;H:false;"


def test_payload_validation_error_exits_2(capsys):
    assert _run(["payload", "phone", "-f", "number=abc"]) == 2
    assert "invalid_phone" in capsys.readouterr().err


def test_field_without_equals_exits_2(capsys):
    assert _run(["payload", "url", "-f", "example.com"]) == 2


def test_render_writes_file(tmp_path, capsys):
    out = tmp_path / "nested" / "code.png"
    main(["render", "url", "-f", "url=example.com", "--size", "240", "--dot-style", "rounded",
          "-o", str(out)])
    img = Image.open(out)
    assert img.size == (240, 240)
    assert "https://example.com" in capsys.readouterr().out


def test_render_format_from_suffix(tmp_path):
    out = tmp_path / "code.jpg"
    main(["render", "text", "-f", "text=hi", "--size", "200", "-o", str(out)])
    assert Image.open(out).format == "JPEG"


def test_render_with_data_uri_logo(tmp_path):
    buf = io.BytesIO()
    Image.new("RGBA", (10, 10), (255, 0, 0, 255)).save(buf, format="PNG")
    ref = "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()

    out = tmp_path / "logo.png"
    main(["render", "url", "-f", "url=example.com", "--size", "400", "-e", "H",
          "--logo", ref, "--logo-size", "20", "-o", str(out)])
    assert Image.open(out).convert("RGBA").getpixel((200, 200)) == (255, 0, 0, 255)


def test_invalid_style_exits_2_and_writes_nothing(tmp_path):
    out = tmp_path / "never.png"
    assert _run(["render", "url", "-f", "url=example.com", "--size", "50", "-o", str(out)]) == 2
    assert not out.exists()


def test_logo_failure_exits_1_and_writes_nothing(tmp_path):
    out = tmp_path / "never.png"
    code = _run(["render", "url", "-f", "url=example.com", "-e", "H",
                 "--logo", str(tmp_path / "missing.png"), "-o", str(out)])
    assert code == 1
    assert not out.exists()


def test_style_file_and_flags_merge(tmp_path):
    style_file = tmp_path / "style.json"
    style_file.write_text(json.dumps({"size": 500, "foregroundColor": "#112233", "dotStyle": "dots"}))
    args = build_parser().parse_args(["render", "url", "--preset", "classic", "--style", str(style_file),
                                      "--dot-style", "sharp", "--gradient", "radial",
                                      "--gradient-start", "#000000", "--gradient-end", "#444444"])
    style = build_style(args)
    assert style.size_px == 500
    assert style.foreground == "#112233"
    assert style.dot_style == "sharp"
    assert style.gradient.kind == "radial"


def test_logo_flags_build_logo_style():
    args = build_parser().parse_args(["render", "url", "--logo", "logo.png", "--logo-shape", "circle",
                                      "--logo-border", "3", "--logo-border-style", "dotted",
                                      "--logo-shadow", "--shadow-x", "2", "--logo-grayscale",
                                      "--logo-x", "40"])
    logo = build_style(args).logo
    assert logo.shape == "circle"
    assert logo.border.width_px == 3 and logo.border.style == "dotted"
    assert logo.shadow.offset_x == 2
    assert logo.filters.grayscale
    assert (logo.position.x_pct, logo.position.y_pct) == (40, 50)


def test_presets_command(capsys):
    main(["presets"])
    out = capsys.readouterr().out
    assert "classic" in out and "neon" in out


def test_no_command_prints_help(capsys):
    assert _run([]) == 1
    assert "usage" in capsys.readouterr().out
