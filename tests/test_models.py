"""
Tests for row and variant models.
"""

import pytest
import json
import sys
from pathlib import Path

from pydantic import ValidationError

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from importer_modules.models import (
    RawProductRow, RawVariant, VariantRecord, RowStatus, RunCounters, parse_variants
)


# ============================================================================
# ROW NORMALIZATION TESTS
# ============================================================================

class TestRawProductRowFromRecord:
    """Tests for RawProductRow.from_record."""

    def test_title_alias(self, sofa_record):
        row = RawProductRow.from_record(sofa_record)
        assert row.name == "Sofa"
        assert row.categories == "Living Room|Sectional"
        assert row.price == "$1,299.00"
        assert row.variants is None

    def test_name_wins_over_title(self):
        row = RawProductRow.from_record({"name": "Chair", "title": "Old Title"})
        assert row.name == "Chair"

    def test_variants_json(self, variable_record):
        row = RawProductRow.from_record(variable_record)
        assert len(row.variants) == 2
        assert row.variants[0].sku == "A1"
        assert row.variants[0].display_price == "100"
        assert row.variants[1].attributes == {"attribute_pa_color": "White"}

    def test_images_split_and_deduplicated(self):
        row = RawProductRow.from_record({
            "title": "Lamp",
            "images": "https://x/a.jpg|https://x/b.jpg",
            "thumbnail": "https://x/a.jpg",
        })
        assert row.images == ["https://x/a.jpg", "https://x/b.jpg"]

    def test_description_with_short_description(self):
        row = RawProductRow.from_record({
            "title": "Lamp",
            "description_html": "<p>Long</p>",
            "short_description_text": "Short",
        })
        assert row.description == "<p>Long</p>\n\nShort"

    def test_facets_list(self):
        row = RawProductRow.from_record({"title": "Bed", "facets": ["Bedroom", "Beds"]})
        assert row.categories == "Bedroom|Beds"

    def test_numeric_cells_from_xlsx(self):
        row = RawProductRow.from_record({"title": "Desk", "sku": 1234.0, "price": 99.5})
        assert row.sku == "1234"
        assert row.price == "99.5"

    def test_missing_fields(self):
        row = RawProductRow.from_record({})
        assert row.name == ""
        assert row.images == []
        assert row.variants is None

    def test_stock_column(self):
        row = RawProductRow.from_record({"title": "Desk", "stock_quantity": "0"})
        assert row.stock == "0"


class TestParseVariants:
    """Tests for parse_variants function."""

    def test_invalid_json_is_simple(self):
        assert parse_variants("[{not json") is None

    def test_non_array_is_simple(self):
        assert parse_variants(json.dumps({"sku": "A"})) is None

    def test_empty(self):
        assert parse_variants("") is None
        assert parse_variants(None) is None
        assert parse_variants("[]") == []

    def test_skips_malformed_items(self):
        variants = parse_variants([{"sku": "A"}, "junk", {"sku": "B", "attributes": "bad"}])
        assert [v.sku for v in variants] == ["A"]

    def test_price_alias_and_image_object(self):
        variants = parse_variants([{"sku": 7, "price": 12.5, "image": {"src": "https://x/v.jpg"}}])
        assert variants[0].sku == "7"
        assert variants[0].display_price == "12.5"
        assert variants[0].image == "https://x/v.jpg"

    def test_variation_id(self):
        variant = RawVariant.model_validate({"variation_id": 991, "attributes": {"attribute_size": "L"}})
        assert variant.variation_id == "991"
        assert variant.sku is None


# ============================================================================
# VARIANT RECORD TESTS
# ============================================================================

class TestVariantRecord:
    """Tests for VariantRecord."""

    def test_to_input(self):
        record = VariantRecord(
            sku="A1", price_minor=10000, stock_on_hand=5,
            option_value_ids=["opt-1"], translated_name="Armchair - Black",
            featured_asset_id="asset-1"
        )
        variant_input = record.to_input("prod-1", "es")
        assert variant_input == {
            "productId": "prod-1",
            "sku": "A1",
            "price": 10000,
            "stockOnHand": 5,
            "trackInventory": "INHERIT",
            "translations": [{"languageCode": "es", "name": "Armchair - Black"}],
            "optionIds": ["opt-1"],
            "featuredAssetId": "asset-1",
        }

    def test_no_featured_asset(self):
        record = VariantRecord(sku="A1", translated_name="Armchair")
        assert "featuredAssetId" not in record.to_input("prod-1", "en")

    def test_empty_sku_rejected(self):
        with pytest.raises(ValidationError):
            VariantRecord(sku="  ", translated_name="Armchair")

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            VariantRecord(sku="A", price_minor=-1, translated_name="Armchair")


# ============================================================================
# COUNTER TESTS
# ============================================================================

class TestRunCounters:
    """Tests for RunCounters."""

    def test_record(self):
        counters = RunCounters()
        counters.record(RowStatus.CREATED)
        counters.record(RowStatus.CREATED)
        counters.record(RowStatus.FAILED)
        counters.record(RowStatus.SKIPPED)
        assert (counters.created, counters.failed, counters.skipped) == (2, 1, 1)
        assert counters.total == 4
