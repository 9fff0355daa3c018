"""
Data models for Vendure Catalog Importer.

Source rows arrive loosely shaped (CSV columns, XLSX cells, scraper JSON);
RawProductRow.from_record converts each of them into one explicit shape at
the edge so the import core never branches on the source format.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .utils import split_list


def _text(value) -> str:
    """Coerce a cell value to trimmed text ('' for None)."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _first(record: Dict[str, Any], *keys) -> str:
    """Return the first non-empty value among keys, as text."""
    for key in keys:
        value = _text(record.get(key))
        if value:
            return value
    return ""


class RawVariant(BaseModel):
    """One scraped WooCommerce variation ({sku, display_price, attributes, image})."""

    sku: Optional[str] = None
    display_price: Optional[str] = Field(default=None, alias="price")
    stock_quantity: Optional[Any] = None
    attributes: Dict[str, str] = Field(default_factory=dict)
    image: Optional[str] = None
    variation_id: Optional[str] = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("sku", "display_price", "variation_id", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        text = _text(value)
        return text or None

    @field_validator("attributes", mode="before")
    @classmethod
    def _coerce_attributes(cls, value):
        if not value:
            return {}
        if not isinstance(value, dict):
            raise ValueError("attributes must be an object")
        return {str(k): _text(v) for k, v in value.items()}

    @field_validator("image", mode="before")
    @classmethod
    def _image_src(cls, value):
        # WooCommerce exports images as {"src": ...} objects
        if isinstance(value, dict):
            value = value.get("src") or value.get("url") or value.get("full_src")
        text = _text(value)
        return text or None


class RawProductRow(BaseModel):
    """One product record at the orchestrator boundary."""

    name: str = ""
    slug: str = ""
    description: str = ""
    price: str = ""
    sku: str = ""
    product_id: str = ""
    categories: str = ""
    images: List[str] = Field(default_factory=list)
    variants: Optional[List[RawVariant]] = None
    stock: Optional[Any] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "RawProductRow":
        """
        Build a row from a CSV/XLSX/JSON record.

        Args:
            record: Mapping of column name to cell value

        Returns:
            RawProductRow
        """
        description = _first(record, "description", "description_html", "description_text")
        short_description = _first(record, "short_description_text", "short_description")
        if short_description and short_description != description:
            description = f"{description}\n\n{short_description}" if description else short_description

        categories = record.get("categories")
        if not categories:
            categories = record.get("facets")
        if isinstance(categories, (list, tuple)):
            categories = "|".join(_text(c) for c in categories if _text(c))

        images = []
        for key in ("images", "assets", "thumbnail"):
            for url in split_list(record.get(key)):
                if url not in images:
                    images.append(url)

        return cls(
            name=_first(record, "name", "title"),
            slug=_first(record, "slug"),
            description=description,
            price=_first(record, "price", "regular_price"),
            sku=_first(record, "sku"),
            product_id=_first(record, "product_id", "id"),
            categories=_text(categories),
            images=images,
            variants=parse_variants(record.get("variants_json") or record.get("variants")),
            stock=record.get("stock_quantity") if record.get("stock_quantity") not in (None, "") else record.get("stock_on_hand"),
        )


def parse_variants(raw) -> Optional[List[RawVariant]]:
    """
    Parse the variants field of a row.

    Accepts a JSON array string (CSV/XLSX 'variants_json' column) or an
    already decoded list. Returns None when absent or unusable.
    """
    if raw is None or raw == "":
        return None

    data = raw
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logging.warning(f"  Could not parse variants_json ({e}); treating product as simple")
            return None

    if not isinstance(data, list):
        logging.warning("  variants_json is not a JSON array; treating product as simple")
        return None

    variants = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            variants.append(RawVariant.model_validate(item))
        except ValueError as e:
            logging.warning(f"  Skipping malformed variant {item!r}: {e}")
    return variants


class VariantRecord(BaseModel):
    """One sellable unit ready to be submitted to createProductVariants."""

    sku: str
    price_minor: int = Field(default=0, ge=0)
    stock_on_hand: int = Field(default=0, ge=0)
    option_value_ids: List[str] = Field(default_factory=list)
    translated_name: str
    image_url: Optional[str] = None
    featured_asset_id: Optional[str] = None

    @field_validator("sku")
    @classmethod
    def _sku_not_empty(cls, value):
        if not value or not value.strip():
            raise ValueError("sku must not be empty")
        return value.strip()

    def to_input(self, product_id: str, language: str) -> Dict[str, Any]:
        """Render as a Vendure CreateProductVariantInput."""
        variant_input = {
            "productId": product_id,
            "sku": self.sku,
            "price": self.price_minor,
            "stockOnHand": self.stock_on_hand,
            "trackInventory": "INHERIT",
            "translations": [{"languageCode": language, "name": self.translated_name}],
            "optionIds": list(self.option_value_ids),
        }
        if self.featured_asset_id:
            variant_input["featuredAssetId"] = self.featured_asset_id
        return variant_input


class HierarchyResult(BaseModel):
    """Outcome of resolving one category path."""

    collection_ids: List[str] = Field(default_factory=list)
    term_ids: List[str] = Field(default_factory=list)


class RowStatus(str, Enum):
    CREATED = "created"
    FAILED = "failed"
    SKIPPED = "skipped"


class RowResult(BaseModel):
    """Terminal outcome of one input row, as written to the product output file."""

    row_number: int
    name: str = ""
    slug: str = ""
    status: RowStatus
    product_id: Optional[str] = None
    error: Optional[str] = None
    failed_stage: Optional[str] = None
    reason: Optional[str] = None
    collections_linked: int = 0
    variants_created: int = 0


class RunCounters(BaseModel):
    """Per-run created/failed/skipped counts."""

    created: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.created + self.failed + self.skipped

    def record(self, status: RowStatus):
        if status == RowStatus.CREATED:
            self.created += 1
        elif status == RowStatus.FAILED:
            self.failed += 1
        else:
            self.skipped += 1
