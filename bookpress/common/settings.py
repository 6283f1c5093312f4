"""
Admin-tunable production settings.

Values come from (lowest to highest precedence) the dataclass defaults, an
optional YAML file, and ``BOOKPRESS_*`` environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

ENV_PREFIX = "BOOKPRESS_"


@dataclass(frozen=True)
class ProductionSettings:
    """
    Knobs that shape a production run.

    Attributes
    ----------
    dpi:
        Print resolution used to convert centimetres to pixels.
    inter_call_delay_seconds:
        Pause between consecutive illustration calls (rate-limit knob).
    retry_attempts:
        Maximum calls per generation request when failures are transient.
    retry_backoff_seconds:
        Fixed pause between retry attempts.
    metadata_strip_width_cm:
        Width of the printer's metadata strip appended to every spread.
    qr_size_cm:
        Edge length of the order QR graphic on the back cover.
    qr_top_ratio:
        Vertical anchor of the QR graphic as a fraction of cover height.
    logo_width_cm / logo_gap_cm:
        Back-cover logo width and the gap kept between logo and QR graphic.
    brand_name / logo_path:
        Wordmark drawn when no logo image is configured.
    include_decorative_barcode:
        Draw the cosmetic barcode box declared by the product.
    jpeg_quality:
        Export quality for composed rasters.
    default_spread_count:
        Spreads requested from the story skeleton when the order does not say.
    """

    dpi: int = 300
    inter_call_delay_seconds: float = 2.0
    retry_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    metadata_strip_width_cm: float = 0.3
    qr_size_cm: float = 2.5
    qr_top_ratio: float = 0.8
    logo_width_cm: float = 3.0
    logo_gap_cm: float = 0.5
    brand_name: str = "RAWY"
    logo_path: str | None = None
    include_decorative_barcode: bool = True
    jpeg_quality: int = 95
    default_spread_count: int = 8

    def __post_init__(self) -> None:
        if self.dpi <= 0:
            raise ValueError("dpi must be positive.")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1.")
        if self.inter_call_delay_seconds < 0 or self.retry_backoff_seconds < 0:
            raise ValueError("Delays must not be negative.")
        if self.metadata_strip_width_cm < 0:
            raise ValueError("metadata_strip_width_cm must not be negative.")
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError("jpeg_quality must fall between 1 and 100.")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProductionSettings":
        known = {item.name: item for item in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            normalized = str(key).strip().lower()
            if normalized not in known:
                raise ValueError(f"Unknown production setting '{key}'.")
            kwargs[normalized] = _coerce(known[normalized].type, value)
        return cls(**kwargs)

    def with_env_overrides(self, environ: Mapping[str, str] | None = None) -> "ProductionSettings":
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for item in fields(self):
            raw = env.get(f"{ENV_PREFIX}{item.name.upper()}")
            if raw is not None:
                overrides[item.name] = _coerce(item.type, raw)
        return replace(self, **overrides) if overrides else self

    def to_dict(self) -> dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


def load_settings(
    path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ProductionSettings:
    """
    Load settings from an optional YAML file, then apply environment overrides.
    """
    settings = ProductionSettings()
    if path is not None:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(data, Mapping):
            raise ValueError("Settings YAML must deserialize to a mapping.")
        settings = ProductionSettings.from_mapping(data)
    return settings.with_env_overrides(environ)


def _coerce(type_hint: Any, value: Any) -> Any:
    hint = str(type_hint)
    if value is None:
        return None
    if hint == "bool":
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if hint == "int":
        return int(value)
    if hint == "float":
        return float(value)
    text = str(value).strip()
    if hint.startswith("str |"):
        return text or None
    return text
