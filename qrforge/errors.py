"""Typed error taxonomy for the render pipeline.

Callers map these to transport responses via ``code`` / ``to_dict()``.
"""

from enum import Enum


class ValidationCode(str, Enum):
    EMPTY = "empty"
    INVALID_URL = "invalid_url"
    INVALID_EMAIL = "invalid_email"
    INVALID_PHONE = "invalid_phone"
    MISSING_FIELD = "missing_field"
    INVALID_COORDINATES = "invalid_coordinates"
    INVALID_SECURITY = "invalid_security"
    UNSUPPORTED_TYPE = "unsupported_type"


class SymbolCode(str, Enum):
    PAYLOAD_TOO_LARGE = "payload_too_large"


class QRForgeError(Exception):
    """Base class for every error raised by qrforge."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "code": str(self.code), "message": self.message}


class ValidationError(QRForgeError):
    """A content descriptor field is missing or malformed."""

    def __init__(self, code: ValidationCode, message: str, field: str | None = None):
        super().__init__(message)
        self.code = code
        self.field = field

    def __str__(self):
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        return {**super().to_dict(), "code": self.code.value, "field": self.field}


class SymbolError(QRForgeError):
    """The payload does not fit a QR symbol at the requested ECC level."""

    def __init__(self, message: str, ecc: str, payload_len: int):
        super().__init__(message)
        self.code = SymbolCode.PAYLOAD_TOO_LARGE
        self.ecc = ecc
        self.payload_len = payload_len

    def to_dict(self) -> dict:
        return {**super().to_dict(), "code": self.code.value, "ecc": self.ecc,
                "payload_len": self.payload_len}


class RenderError(QRForgeError):
    """Base class for failures while producing the image."""

    code = "render_failed"


class InvalidStyle(RenderError):
    """A style value is out of range; raised before any raster work."""

    code = "invalid_style"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        return {**super().to_dict(), "field": self.field}


class AssetUnavailable(RenderError):
    """An external image could not be fetched."""

    code = "asset_unavailable"

    def __init__(self, message: str, ref: str | None = None):
        super().__init__(message)
        self.ref = ref

    def to_dict(self) -> dict:
        return {**super().to_dict(), "ref": self.ref}


class LogoLoadFailed(AssetUnavailable):
    """The logo image could not be fetched or decoded."""

    code = "logo_load_failed"


class Unscannable(RenderError):
    """The composed image did not decode back to its payload."""

    code = "unscannable"
