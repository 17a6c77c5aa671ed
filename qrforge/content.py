"""Content Encoder: typed content descriptors -> canonical QR payload strings."""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Union
from urllib.parse import quote, urlsplit

from qrforge.errors import ValidationCode, ValidationError
from qrforge.logging import audit, get_logger, trace

log = get_logger("content")

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")
# a scheme with no authority part, e.g. "mailto:"; "host:8080" is a port
_OPAQUE_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:(?!//|\d)")
_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_PHONE_RE = re.compile(r"\+?[0-9 \-()]+")

VCARD_LINE_END = "\n"


class WifiSecurity(Enum):
    WEP = "WEP"
    WPA = "WPA"
    OPEN = "nopass"


# ---------------------------------------------------------------------------
# Descriptor variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Link:
    url: str


@dataclass(frozen=True)
class PlainText:
    text: str


@dataclass(frozen=True)
class Email:
    address: str
    subject: str | None = None
    body: str | None = None


@dataclass(frozen=True)
class Phone:
    number: str


@dataclass(frozen=True)
class Sms:
    number: str
    message: str | None = None


@dataclass(frozen=True)
class WifiCredential:
    ssid: str
    password: str | None = None
    security: WifiSecurity = WifiSecurity.WPA
    hidden: bool = False


@dataclass(frozen=True)
class ContactCard:
    first_name: str
    last_name: str | None = None
    organization: str | None = None
    title: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class GeoPoint:
    latitude: float | None = None
    longitude: float | None = None
    label: str | None = None


ContentDescriptor = Union[Link, PlainText, Email, Phone, Sms, WifiCredential, ContactCard, GeoPoint]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _pct(value: str) -> str:
    """Percent-encode everything outside the RFC 3986 unreserved set."""
    return quote(value, safe="")


def _check_phone(number: str) -> str:
    if not number or not _PHONE_RE.fullmatch(number):
        raise ValidationError(ValidationCode.INVALID_PHONE, f"invalid phone number: {number!r}", field="number")
    return number


def _escape_wifi(value: str) -> str:
    # backslash first so the escapes added below are not doubled
    for ch in ("\\", ";", ",", '"'):
        value = value.replace(ch, "\\" + ch)
    return value


def _escape_vcard(value: str) -> str:
    value = value.replace("\\", "\\\\").replace(";", "\\;").replace(",", "\\,")
    return value.replace("\r\n", "\\n").replace("\n", "\\n")


def _format_coord(value: float) -> str:
    text = f"{value:.7f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


# ---------------------------------------------------------------------------
# Per-variant encoders
# ---------------------------------------------------------------------------

def _encode_link(d: Link) -> str:
    url = d.url.strip()
    if not url:
        raise ValidationError(ValidationCode.EMPTY, "url is empty", field="url")
    if _OPAQUE_SCHEME_RE.match(url):
        raise ValidationError(ValidationCode.INVALID_URL, f"not a web url: {d.url!r}", field="url")
    if not _SCHEME_RE.match(url):
        url = "https://" + url
    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError on a malformed port
    except ValueError as e:
        raise ValidationError(ValidationCode.INVALID_URL, f"invalid url: {d.url!r}", field="url") from e
    if not parts.scheme or not parts.hostname or any(ch.isspace() for ch in url):
        raise ValidationError(ValidationCode.INVALID_URL, f"invalid url: {d.url!r}", field="url")
    return url


def _encode_text(d: PlainText) -> str:
    if len(d.text) == 0:
        raise ValidationError(ValidationCode.EMPTY, "text is empty", field="text")
    return d.text


def _encode_email(d: Email) -> str:
    if not _EMAIL_RE.fullmatch(d.address or ""):
        raise ValidationError(ValidationCode.INVALID_EMAIL, f"invalid email: {d.address!r}", field="address")
    params = []
    if d.subject:
        params.append(f"subject={_pct(d.subject)}")
    if d.body:
        params.append(f"body={_pct(d.body)}")
    query = "?" + "&".join(params) if params else ""
    return f"mailto:{d.address}{query}"


def _encode_phone(d: Phone) -> str:
    return f"tel:{_check_phone(d.number)}"


def _encode_sms(d: Sms) -> str:
    number = _check_phone(d.number)
    if d.message:
        return f"sms:{number}?body={_pct(d.message)}"
    return f"sms:{number}"


def _encode_wifi(d: WifiCredential) -> str:
    if not d.ssid:
        raise ValidationError(ValidationCode.MISSING_FIELD, "ssid is required", field="ssid")
    password = _escape_wifi(d.password or "")
    hidden = "true" if d.hidden else "false"
    return f"WIFI:T:{d.security.value};S:{_escape_wifi(d.ssid)};P:{password};H:{hidden};"


def _encode_vcard(d: ContactCard) -> str:
    if not d.first_name:
        raise ValidationError(ValidationCode.MISSING_FIELD, "first name is required", field="first_name")
    first = _escape_vcard(d.first_name)
    last = _escape_vcard(d.last_name or "")
    lines = [
        "BEGIN:VCARD",
        "VERSION:3.0",
        f"N:{last};{first}",
        f"FN:{first} {last}",
    ]
    optional = [
        ("EMAIL", d.email, False),
        ("TEL", d.phone, False),
        ("ORG", d.organization, True),
        ("TITLE", d.title, True),
        ("ADR", d.address, True),
        ("URL", d.website, False),
    ]
    for key, value, escape in optional:
        if not value:
            continue
        value = _escape_vcard(value) if escape else value
        if key == "ADR":
            value = f";;{value};;;;"
        lines.append(f"{key}:{value}")
    lines.append("END:VCARD")
    return VCARD_LINE_END.join(lines)


def _encode_geo(d: GeoPoint) -> str:
    if d.label:
        return f"geo:0,0?q={_pct(d.label)}"
    if d.latitude is None or d.longitude is None:
        raise ValidationError(ValidationCode.MISSING_FIELD, "latitude and longitude are required", field="latitude")
    lat, lon = float(d.latitude), float(d.longitude)
    if not (math.isfinite(lat) and math.isfinite(lon)) or not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise ValidationError(ValidationCode.INVALID_COORDINATES, f"coordinates out of range: {lat}, {lon}",
                              field="latitude")
    return f"geo:{_format_coord(lat)},{_format_coord(lon)}"


_ENCODERS = {
    Link: _encode_link,
    PlainText: _encode_text,
    Email: _encode_email,
    Phone: _encode_phone,
    Sms: _encode_sms,
    WifiCredential: _encode_wifi,
    ContactCard: _encode_vcard,
    GeoPoint: _encode_geo,
}


@trace
def encode_content(descriptor: ContentDescriptor) -> str:
    """Turn a content descriptor into its canonical payload string.

    Raises:
        ValidationError: a field is missing or malformed. No partial payload
            is ever returned.
    """
    encoder = _ENCODERS.get(type(descriptor))
    if encoder is None:
        raise ValidationError(ValidationCode.UNSUPPORTED_TYPE,
                              f"unsupported content type: {type(descriptor).__name__}")
    payload = encoder(descriptor)
    audit("content.encoded", logger=log, kind=type(descriptor).__name__, length=len(payload))
    return payload


# ---------------------------------------------------------------------------
# Loose mappings -> descriptors
# ---------------------------------------------------------------------------

_TYPE_NAMES = {
    "url": Link, "link": Link,
    "text": PlainText,
    "email": Email,
    "phone": Phone,
    "sms": Sms,
    "wifi": WifiCredential,
    "vcard": ContactCard, "contact": ContactCard,
    "location": GeoPoint, "geo": GeoPoint,
}

# Alternate key spellings accepted from forms and JSON bodies
_FIELD_ALIASES = {
    Email: {"email": "address"},
    Phone: {"phone": "number"},
    Sms: {"phone": "number"},
    WifiCredential: {"networkType": "security", "encryption": "security"},
    ContactCard: {"firstName": "first_name", "lastName": "last_name"},
    GeoPoint: {"lat": "latitude", "lon": "longitude", "lng": "longitude", "name": "label"},
}

_SECURITY_NAMES = {
    "WEP": WifiSecurity.WEP,
    "WPA": WifiSecurity.WPA, "WPA2": WifiSecurity.WPA, "WPA3": WifiSecurity.WPA,
    "NOPASS": WifiSecurity.OPEN, "OPEN": WifiSecurity.OPEN, "NONE": WifiSecurity.OPEN, "": WifiSecurity.OPEN,
}


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", name).lower()


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def parse_content(data: dict) -> ContentDescriptor:
    """Build a descriptor from a ``{"type": ..., ...}`` mapping.

    Keys may be camelCase or snake_case; unknown keys (``title`` etc.) are
    ignored.
    """
    kind = str(data.get("type", "")).lower()
    cls = _TYPE_NAMES.get(kind)
    if cls is None:
        raise ValidationError(ValidationCode.UNSUPPORTED_TYPE, f"unsupported content type: {kind!r}", field="type")

    aliases = _FIELD_ALIASES.get(cls, {})
    fields = set(cls.__dataclass_fields__)
    kwargs = {}
    for key, value in data.items():
        if key == "type" or value is None:
            continue
        name = aliases.get(key) or _snake(key)
        if name in fields:
            kwargs[name] = value

    if cls is WifiCredential:
        if "security" in kwargs and not isinstance(kwargs["security"], WifiSecurity):
            token = str(kwargs["security"]).upper()
            if token not in _SECURITY_NAMES:
                raise ValidationError(ValidationCode.INVALID_SECURITY, f"unknown wifi security: {token!r}",
                                      field="security")
            kwargs["security"] = _SECURITY_NAMES[token]
        if "hidden" in kwargs:
            kwargs["hidden"] = _to_bool(kwargs["hidden"])
    elif cls is GeoPoint:
        for key in ("latitude", "longitude"):
            if key in kwargs:
                try:
                    kwargs[key] = float(kwargs[key])
                except (TypeError, ValueError) as e:
                    raise ValidationError(ValidationCode.INVALID_COORDINATES, f"{key} is not a number",
                                          field=key) from e

    try:
        return cls(**kwargs)
    except TypeError as e:
        missing = next((f for f in cls.__dataclass_fields__ if f not in kwargs), None)
        raise ValidationError(ValidationCode.MISSING_FIELD, f"{cls.__name__}: {e}", field=missing) from e
