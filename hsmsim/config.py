"""
config.py — protocol constants and server settings for the emulator.

Two kinds of knobs live here:
- ProtocolConfig: field widths and codes that define the wire format. These
  are fixed per deployment (a client built for one profile will not talk to a
  server running the other one).
- ServerSettings: where to listen and how hard to protect ourselves
  (frame ceiling, idle timeout) plus the simulated-unavailability rate.

Environment variables (HSMSIM_*) override the defaults so the same build can
be pointed at different ports without code changes.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional

from .errors import ConfigError

LENGTH_FIELD_WIDTH = 6   # ASCII decimal length prefix on every frame
HEADER_WIDTH = 3
COMMAND_ID_WIDTH = 4
MECHANISM_WIDTH = 2      # hash / sign / padding codes
HASH_LENGTH_WIDTH = 6
STATE_WIDTH = 8
SIGNATURE_LENGTH_WIDTH = 6


def _check_code(name: str, value: str, width: int) -> None:
    """Wire codes are fixed-width ASCII; anything else could never match a request."""
    if len(value) != width or not value.isascii():
        raise ConfigError(f"{name} must be {width} ASCII characters, got {value!r}")


@dataclass(frozen=True)
class SigningPolicy:
    """The only mechanism combination this build accepts for command 1103."""
    hash_mechanism: str = "10"   # SHA-1
    sign_mechanism: str = "01"   # RSA
    padding_scheme: str = "01"   # PKCS#1 v1.5

    def __post_init__(self) -> None:
        for name in ("hash_mechanism", "sign_mechanism", "padding_scheme"):
            _check_code(name, getattr(self, name), MECHANISM_WIDTH)


@dataclass(frozen=True)
class ProtocolConfig:
    """
    Wire-format constants for one deployment.

    key_reference_width and signature_width differ between the development and
    production builds; everything derived from them (body width, response
    length) is computed here rather than hard-coded elsewhere.
    """
    header_code: str = "CCE"
    sign_command_id: str = "1103"
    key_reference_width: int = 11
    hash_width: int = 40
    signature_width: int = 256
    signature_fill: bytes = b"A"
    policy: SigningPolicy = field(default_factory=SigningPolicy)

    def __post_init__(self) -> None:
        _check_code("header_code", self.header_code, HEADER_WIDTH)
        _check_code("sign_command_id", self.sign_command_id, COMMAND_ID_WIDTH)
        for name in ("key_reference_width", "hash_width", "signature_width"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.hash_width > 999999 or self.signature_width > 999999:
            raise ConfigError("widths must fit a 6-digit length field")
        if len(self.signature_fill) != 1:
            raise ConfigError("signature_fill must be a single byte")

    @property
    def header_bytes(self) -> bytes:
        return self.header_code.encode("ascii")

    @property
    def command_id_bytes(self) -> bytes:
        return self.sign_command_id.encode("ascii")

    @property
    def body_width(self) -> int:
        """Bytes expected after the header for command 1103 (command id included)."""
        return (
            COMMAND_ID_WIDTH
            + self.key_reference_width
            + 3 * MECHANISM_WIDTH
            + HASH_LENGTH_WIDTH
            + self.hash_width
        )

    @property
    def declared_hash_length(self) -> bytes:
        return f"{self.hash_width:0{HASH_LENGTH_WIDTH}d}".encode("ascii")

    @property
    def placeholder_signature(self) -> bytes:
        return self.signature_fill * self.signature_width

    @classmethod
    def for_profile(cls, name: Optional[str] = None) -> "ProtocolConfig":
        """Look up a named profile; defaults to HSMSIM_PROFILE or 'production'."""
        name = (name or os.environ.get("HSMSIM_PROFILE") or "production").lower()
        try:
            return PROFILES[name]
        except KeyError:
            raise ConfigError(f"Unknown profile {name!r}. Valid: {sorted(PROFILES)}") from None


PRODUCTION = ProtocolConfig()
# The development build signs with a short placeholder so responses stay readable.
DEVELOPMENT = replace(PRODUCTION, signature_width=40)

PROFILES = {
    "production": PRODUCTION,
    "development": DEVELOPMENT,
}


def _env_value(name: str, convert, default):
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return convert(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from exc


def _timeout(raw: str) -> Optional[float]:
    # "0" / "none" switch the idle timeout off entirely.
    if raw.lower() in ("0", "none", "off"):
        return None
    return float(raw)


@dataclass
class ServerSettings:
    """Listener settings plus the hardening limits on each connection."""
    host: str = "127.0.0.1"
    port: int = 4040
    max_frame_size: int = 8192
    idle_timeout: Optional[float] = 300.0   # wait for the next length prefix; a started frame is not timed
    fault_rate: float = 0.0

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"Port must be 0-65535, got {self.port}")
        if not 0 < self.max_frame_size <= 999999:
            raise ConfigError(f"max_frame_size must be 1-999999, got {self.max_frame_size}")
        if self.idle_timeout is not None and self.idle_timeout <= 0:
            raise ConfigError("idle_timeout must be positive (or None to disable)")
        if not 0.0 <= self.fault_rate <= 1.0:
            raise ConfigError(f"fault_rate must be between 0 and 1, got {self.fault_rate}")

    @classmethod
    def from_env(cls) -> "ServerSettings":
        """Build settings from HSMSIM_* environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            host=os.environ.get("HSMSIM_HOST") or defaults.host,
            port=_env_value("HSMSIM_PORT", int, defaults.port),
            max_frame_size=_env_value("HSMSIM_MAX_FRAME", int, defaults.max_frame_size),
            idle_timeout=_env_value("HSMSIM_IDLE_TIMEOUT", _timeout, defaults.idle_timeout),
            fault_rate=_env_value("HSMSIM_FAULT_RATE", float, defaults.fault_rate),
        )
