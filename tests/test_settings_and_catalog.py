"""Tests for production settings and the product catalog."""

import json

import pytest
import yaml

from bookpress.catalog import ProductCatalog
from bookpress.common import InvalidProductSpec, ProductionSettings, load_settings
from conftest import PRODUCT_DATA


def test_defaults():
    settings = ProductionSettings()

    assert settings.dpi == 300
    assert settings.metadata_strip_width_cm == 0.3
    assert settings.qr_size_cm == 2.5
    assert settings.retry_attempts == 3


def test_load_settings_from_yaml_and_environment(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump({"dpi": 150, "brand_name": "Storyloom", "inter_call_delay_seconds": 0.5}))

    settings = load_settings(path, environ={"BOOKPRESS_DPI": "200", "BOOKPRESS_INCLUDE_DECORATIVE_BARCODE": "no"})

    assert settings.dpi == 200
    assert settings.brand_name == "Storyloom"
    assert settings.inter_call_delay_seconds == 0.5
    assert settings.include_decorative_barcode is False


def test_empty_optional_setting_becomes_none():
    settings = ProductionSettings().with_env_overrides({"BOOKPRESS_LOGO_PATH": "  "})
    assert settings.logo_path is None


def test_unknown_setting_is_rejected():
    with pytest.raises(ValueError):
        ProductionSettings.from_mapping({"colour_profile": "cmyk"})


@pytest.mark.parametrize("field, value", [("dpi", 0), ("retry_attempts", 0), ("jpeg_quality", 101)])
def test_invalid_settings(field, value):
    with pytest.raises(ValueError):
        ProductionSettings(**{field: value})


def test_settings_round_trip():
    settings = ProductionSettings(dpi=72, brand_name="Storyloom")
    assert ProductionSettings.from_mapping(settings.to_dict()) == settings


def test_catalog_from_yaml(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text(yaml.safe_dump({"products": [PRODUCT_DATA]}))

    catalog = ProductCatalog.from_file(path)

    assert len(catalog) == 1
    assert "square-20" in catalog
    product = catalog.get("square-20")
    assert product.cover.panel_width_cm == 20.0
    assert product.cover_content.barcode.from_right_cm == 1.5


def test_catalog_from_json_with_snake_case(tmp_path):
    data = {
        "id": "landscape",
        "name": "Landscape",
        "cover": {"total_width_cm": 61.0, "total_height_cm": 21.0, "spine_width_cm": 1.0},
        "page": {"width_cm": 30.0, "height_cm": 20.0},
        "cover_content": {
            "title": {"from_top_cm": 2.0, "width_cm": 20.0},
            "format": {"from_top_cm": 6.0, "width_cm": 18.0},
            "barcode": {"from_top_cm": 16.0, "width_cm": 4.0, "height_cm": 2.0, "from_right_cm": 2.0},
        },
    }
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps([data]))

    product = ProductCatalog.from_file(path).get("landscape")

    assert product.page.width_cm == 30.0
    assert product.margins.top_cm == 0.0


def test_unknown_product_size(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text(yaml.safe_dump([PRODUCT_DATA]))

    with pytest.raises(KeyError):
        ProductCatalog.from_file(path).get("a4")


def test_barcode_box_requires_height(tmp_path):
    data = json.loads(json.dumps(PRODUCT_DATA))
    del data["coverContent"]["barcode"]["heightCm"]
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps([data]))

    with pytest.raises(InvalidProductSpec):
        ProductCatalog.from_file(path)
