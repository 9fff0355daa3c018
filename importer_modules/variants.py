"""
Variant grouping for Vendure Catalog Importer.

Scraped WooCommerce variations are flat attribute maps
({'attribute_pa_color': 'Black', 'attribute_size': 'L'}). This module derives
one option group per distinct attribute key for the product, one option value
per distinct value, and one VariantRecord per variation.
"""

import hashlib
import logging

from .models import VariantRecord
from .utils import norm_attr_key, option_group_name, option_value_code, parse_int, parse_price


def fallback_sku_base(row, slug):
    """
    SKU base for rows that carry neither sku nor product id.

    Deterministic for a given row: slug first, else a digest of the name.
    """
    base = row.sku or row.product_id or slug
    if base:
        return base
    digest = hashlib.sha1(row.name.encode("utf-8")).hexdigest()[:10]
    return f"SKU-{digest}"


class VariantGroupingEngine:
    """Build the variant list for one product, creating option groups and values as needed."""

    def __init__(self, client, default_stock=100):
        self.client = client
        self.default_stock = default_stock

    def ensure_option_groups(self, product_id, raw_variants):
        """
        Find or create the option groups and values used by a product's variants.

        Args:
            product_id: Product the groups are bound to
            raw_variants: List of RawVariant

        Returns:
            Dictionary of normalized attribute key ->
            {'group_id': id, 'options': {value code: option id}}
        """
        groups = {}

        # Phase 1: one group per distinct normalized key, in order of first appearance
        for variant in raw_variants:
            for raw_key in variant.attributes:
                key = norm_attr_key(raw_key)
                if not key or key in groups:
                    continue

                group = self.client.find_option_group(product_id, key)
                if group:
                    logging.debug(f"    Option group found: {key} ({group['id']})")
                else:
                    group = self.client.create_option_group(product_id, key, option_group_name(key))
                    logging.info(f"  ✓ Option group created: {option_group_name(key)} ({group['id']})")

                self.client.bind_option_group_to_product(product_id, group["id"])
                options = {
                    option["code"]: option["id"]
                    for option in group.get("options") or []
                    if option.get("code") and option.get("id")
                }
                groups[key] = {"group_id": group["id"], "options": options}

        # Phase 2: one value per distinct (group, value code)
        for variant in raw_variants:
            for raw_key, value in variant.attributes.items():
                if not value:
                    continue
                group = groups.get(norm_attr_key(raw_key))
                if not group:
                    continue
                code = option_value_code(value)
                if code in group["options"]:
                    continue

                option = self.client.find_option_value(group["group_id"], code)
                if not option:
                    option = self.client.create_option_value(group["group_id"], code, value)
                    logging.info(f"    ✓ Option created: {value} ({option['id']})")
                group["options"][code] = option["id"]

        return groups

    def _simple_variant(self, row, slug):
        single = row.variants[0] if row.variants else None

        sku = row.sku or row.product_id or (single.sku if single else None) or fallback_sku_base(row, slug)
        price_text = row.price or (single.display_price if single else None)
        stock = parse_int(row.stock, None)
        if stock is None and single is not None:
            stock = parse_int(single.stock_quantity, None)
        if stock is None:
            stock = self.default_stock

        return VariantRecord(
            sku=sku,
            price_minor=parse_price(price_text),
            stock_on_hand=stock,
            translated_name=row.name,
        )

    def materialize_variants(self, product_id, row, slug):
        """
        Build the VariantRecords for a product.

        Rows with zero or one raw variant get a single simple variant built
        from the row itself and no option groups. Otherwise option groups and
        values are ensured first and each raw variant becomes one record.

        Args:
            product_id: Created product id
            row: RawProductRow
            slug: Product slug (used for generated SKUs)

        Returns:
            List of VariantRecord
        """
        raw_variants = row.variants or []
        if len(raw_variants) <= 1:
            record = self._simple_variant(row, slug)
            logging.info(f"→ Simple variant (SKU: {record.sku}, price: {record.price_minor / 100:.2f})")
            return [record]

        logging.info(f"→ Product with {len(raw_variants)} variants, resolving options...")
        groups = self.ensure_option_groups(product_id, raw_variants)
        base = fallback_sku_base(row, slug)

        records = []
        for index, variant in enumerate(raw_variants, start=1):
            option_ids = []
            labels = []
            seen_groups = set()
            for raw_key, value in variant.attributes.items():
                if not value:
                    continue
                key = norm_attr_key(raw_key)
                group = groups.get(key)
                if not group or key in seen_groups:
                    continue
                option_id = group["options"].get(option_value_code(value))
                if option_id:
                    option_ids.append(option_id)
                    labels.append(value)
                    seen_groups.add(key)

            sku = variant.sku or f"{base}-{variant.variation_id or index}"
            price_text = variant.display_price if variant.display_price else row.price
            name = f"{row.name} - {' - '.join(labels)}" if labels else row.name

            records.append(VariantRecord(
                sku=sku,
                price_minor=parse_price(price_text),
                stock_on_hand=parse_int(variant.stock_quantity, self.default_stock),
                option_value_ids=option_ids,
                translated_name=name,
                image_url=variant.image,
            ))

        if not groups:
            logging.warning(f"  ⚠ {len(records)} variants without attributes; the API may reject them")

        return records
