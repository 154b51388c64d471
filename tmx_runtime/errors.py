"""
Error types raised by the runtime

=============================================================================
ERROR TAXONOMY
=============================================================================

Errors split into two families by how they propagate:

FATAL (fail the load, raised to the caller):
    ParseError        the file is unreadable as Tiled data
    IoError           the file could not be read from the asset root
    InvalidPath       a reference escapes the asset root
    ImageDecodeError  Pillow could not decode an image

RECOVERED (caught by the spawn stage, logged and skipped):
    PropertyConversionError  a value does not fit the field kind
    MissingFieldError        a required class/variant field is absent

RegistryError is raised at registration time, before any load.

Every error that concerns a file carries its asset path and shows it in
str(), so a log line always names the offending file.

=============================================================================
"""

from typing import Optional


class TiledError(Exception):
    """Root of every error raised by tmx_runtime."""


class ParseError(TiledError):
    """Structural parse failure: ill-formed XML/JSON or inconsistent data."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"failed to parse {path}: {reason}")


class IoError(TiledError):
    """A file could not be read. The OSError is kept as __cause__."""

    def __init__(self, path: str, reason: str = "file not found or unreadable"):
        self.path = path
        self.reason = reason
        super().__init__(f"cannot read {path}: {reason}")


class InvalidPath(TiledError):
    """A path escapes the asset root, is absolute, or is empty."""

    def __init__(self, path: str, reason: str = "path escapes the asset root"):
        self.path = path
        self.reason = reason
        super().__init__(f"invalid asset path {path!r}: {reason}")


class ImageDecodeError(TiledError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"cannot decode image {path}: {reason}")


class PropertyError(TiledError):
    """Base for property schema and value mismatches."""


class PropertyConversionError(PropertyError):
    """A property value cannot be converted to the declared field kind."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(f"field {field!r}: {message}" if field else message)


class MissingFieldError(PropertyError):
    """A required field is absent and has no declared default."""

    def __init__(self, field: str, owner: str):
        self.field = field
        self.owner = owner
        super().__init__(f"missing required field {field!r} in {owner}")


class RegistryError(TiledError):
    """Invalid registration (duplicate name, frozen registry, bad schema)."""
