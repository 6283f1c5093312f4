"""
Manifests and the production archive.
"""

from .manifest import (
    ManifestData,
    build_manifest_json,
    build_manifest_text,
    manifest_fields,
    parse_manifest_text,
)
from .packager import ProductionPackage, ProductionPackager

__all__ = [
    "ManifestData",
    "ProductionPackage",
    "ProductionPackager",
    "build_manifest_json",
    "build_manifest_text",
    "manifest_fields",
    "parse_manifest_text",
]
