"""Configuration loading utilities for the scope server."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml


FAILURE_POLICIES = ("log", "abort")


@dataclass(slots=True)
class StatusSettings:
    """Configuration for the embedded read-only status API."""

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class ServerSettings:
    """Configuration for the SCPI control-plane listener."""

    host: str = "0.0.0.0"
    port: int = 5025
    data_plane_poll_interval: float = 0.01
    data_plane_join_timeout: float = 5.0


@dataclass(slots=True)
class IdentitySettings:
    """Fields reported by ``*IDN?``."""

    vendor: str = "Digilent"
    model: str = "Analog Discovery 2"
    serial: str = "SIM000000"
    firmware: str = "1.0"

    def idn(self) -> str:
        return f"{self.vendor},{self.model},{self.serial},{self.firmware}"


@dataclass(slots=True)
class InstrumentSettings:
    """Static description of the instrument and its power-on defaults."""

    channels: int = 2
    memory_depth: int = 1_000_000
    sample_rate: int = 100_000_000
    depths: List[int] = field(default_factory=lambda: [65536])
    rate_floor: float = 1000.0
    hardware_failure_policy: str = "log"
    identity: IdentitySettings = field(default_factory=IdentitySettings)


@dataclass(slots=True)
class BackendDefinition:
    """Backend type plus its implementation-specific settings."""

    type: str = "simulated"
    settings: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Config:
    """Top-level configuration container."""

    server: ServerSettings = field(default_factory=ServerSettings)
    status: StatusSettings = field(default_factory=StatusSettings)
    instrument: InstrumentSettings = field(default_factory=InstrumentSettings)
    backend: BackendDefinition = field(default_factory=BackendDefinition)


class ConfigurationError(RuntimeError):
    """Raised when configuration parsing fails."""


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in configuration file: {path}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Dict[str, Any]:
    body = raw.get(name, {})
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ConfigurationError(f"{name} section must be a mapping")
    return body


def _positive_int(value: Any, label: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{label} must be an integer") from exc
    if number <= 0:
        raise ConfigurationError(f"{label} must be positive")
    return number


def parse_config_dict(raw: Mapping[str, Any]) -> Config:
    """Parse configuration from an in-memory mapping."""

    if not isinstance(raw, Mapping):
        raise ConfigurationError("Configuration root must be a mapping")

    server_raw = _section(raw, "server")
    try:
        server = ServerSettings(
            host=str(server_raw.get("host", "0.0.0.0")),
            port=int(server_raw.get("port", 5025)),
            data_plane_poll_interval=float(server_raw.get("data_plane_poll_interval", 0.01)),
            data_plane_join_timeout=float(server_raw.get("data_plane_join_timeout", 5.0)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid server settings: {exc}") from exc

    status_raw = _section(raw, "status")
    try:
        status = StatusSettings(
            enabled=bool(status_raw.get("enabled", False)),
            host=str(status_raw.get("host", "127.0.0.1")),
            port=int(status_raw.get("port", 0)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid status settings: {exc}") from exc

    instrument_raw = _section(raw, "instrument")
    identity_raw = _section(instrument_raw, "identity")
    defaults = IdentitySettings()
    identity = IdentitySettings(
        vendor=str(identity_raw.get("vendor", defaults.vendor)),
        model=str(identity_raw.get("model", defaults.model)),
        serial=str(identity_raw.get("serial", defaults.serial)),
        firmware=str(identity_raw.get("firmware", defaults.firmware)),
    )

    depths_raw = instrument_raw.get("depths", [65536])
    if not isinstance(depths_raw, list) or not depths_raw:
        raise ConfigurationError("instrument.depths must be a non-empty list")
    depths = [_positive_int(depth, "instrument.depths entry") for depth in depths_raw]

    policy = str(instrument_raw.get("hardware_failure_policy", "log")).lower()
    if policy not in FAILURE_POLICIES:
        raise ConfigurationError(
            f"instrument.hardware_failure_policy must be one of {', '.join(FAILURE_POLICIES)}"
        )

    try:
        rate_floor = float(instrument_raw.get("rate_floor", 1000.0))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("instrument.rate_floor must be a number") from exc

    instrument = InstrumentSettings(
        channels=_positive_int(instrument_raw.get("channels", 2), "instrument.channels"),
        memory_depth=_positive_int(
            instrument_raw.get("memory_depth", 1_000_000), "instrument.memory_depth"
        ),
        sample_rate=_positive_int(
            instrument_raw.get("sample_rate", 100_000_000), "instrument.sample_rate"
        ),
        depths=depths,
        rate_floor=rate_floor,
        hardware_failure_policy=policy,
        identity=identity,
    )

    backend_raw = _section(raw, "backend")
    backend_type = backend_raw.get("type", "simulated")
    if not isinstance(backend_type, str) or not backend_type:
        raise ConfigurationError("backend must define a string 'type'")
    backend = BackendDefinition(
        type=backend_type,
        settings={k: v for k, v in backend_raw.items() if k != "type"},
    )

    return Config(server=server, status=status, instrument=instrument, backend=backend)


def load_config(path: Path) -> Config:
    """Load and validate configuration from a YAML file."""

    raw = _load_yaml(path)
    return parse_config_dict(raw)


def config_to_dict(config: Config) -> Dict[str, Any]:
    """Convert a Config instance back into a serialisable mapping."""

    instrument = config.instrument
    backend_dict: Dict[str, Any] = {"type": config.backend.type}
    backend_dict.update(dict(config.backend.settings))

    return {
        "server": {
            "host": config.server.host,
            "port": config.server.port,
            "data_plane_poll_interval": config.server.data_plane_poll_interval,
            "data_plane_join_timeout": config.server.data_plane_join_timeout,
        },
        "status": {
            "enabled": config.status.enabled,
            "host": config.status.host,
            "port": config.status.port,
        },
        "instrument": {
            "channels": instrument.channels,
            "memory_depth": instrument.memory_depth,
            "sample_rate": instrument.sample_rate,
            "depths": list(instrument.depths),
            "rate_floor": instrument.rate_floor,
            "hardware_failure_policy": instrument.hardware_failure_policy,
            "identity": {
                "vendor": instrument.identity.vendor,
                "model": instrument.identity.model,
                "serial": instrument.identity.serial,
                "firmware": instrument.identity.firmware,
            },
        },
        "backend": backend_dict,
    }
