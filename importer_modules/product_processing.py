"""
Product processing logic for Vendure Catalog Importer.

Drives every input row through assets, product creation, categorization and
variant creation. Each step declares once whether its failure fails the row
(FATAL) or is only logged (BEST_EFFORT); this module is the single place where
errors become row outcomes and counters.
"""

import time
import logging
from datetime import datetime
from enum import Enum

import requests

from .assets import AssetUploader
from .config import (
    log_and_status, setup_logging, get_int, get_float, get_bool, SCRIPT_VERSION
)
from .hierarchy import CollectionHierarchyResolver
from .models import RowResult, RowStatus, RunCounters
from .retry import with_retry
from .sources import read_rows
from .state import (
    load_import_state, save_import_state, update_row_in_state, imported_product,
    write_product_output, write_collections_report
)
from .taxonomy import TaxonomyResolver, TermCreationError
from .utils import parse_category_path, to_code
from .variants import VariantGroupingEngine
from .vendure_api import VendureClient, VendureAPIError, VendureAuthError

EXECUTION_MODES = ("resume", "overwrite", "fresh")

# ValueError covers pydantic validation errors on built records
STEP_ERRORS = (VendureAPIError, TermCreationError, requests.exceptions.RequestException, ValueError)


class StepPolicy(Enum):
    FATAL = "fatal"
    BEST_EFFORT = "best_effort"


IMPORT_STEPS = (
    ("assets", StepPolicy.BEST_EFFORT),
    ("create_product", StepPolicy.FATAL),
    ("categorize", StepPolicy.BEST_EFFORT),
    ("variants", StepPolicy.FATAL),
)


class RowFailedError(Exception):
    """A FATAL step failed; the row ends as failed."""

    def __init__(self, stage, message):
        super().__init__(message)
        self.stage = stage


class ImportSetupError(Exception):
    """The run cannot start (authentication or connection failure)."""


class ProductImporter:
    """
    Import rows one by one and keep per-run counters.

    Args:
        client: Remote catalog client (VendureClient or compatible)
        status_fn: Status update function
        default_stock: Stock for variants without their own quantity
        max_images: Maximum product images uploaded per row
        image_workers: Concurrent image uploads
        image_timeout: Image download timeout in seconds
        retries: Retries for transient errors on wrapped mutations
        base_delay_ms: Backoff before the first retry
        sleep: Sleep function (seconds), injectable for tests
        row_delay: Pause between rows in seconds
        execution_mode: 'resume', 'overwrite' or 'fresh'
        state: Restore point from state.load_import_state (None disables it)
    """

    def __init__(self, client, status_fn=None, default_stock=100, max_images=5,
                 image_workers=3, image_timeout=15, retries=3, base_delay_ms=300,
                 sleep=None, row_delay=0.0, execution_mode="resume", state=None,
                 downloader=None):
        self.client = client
        self.status_fn = status_fn
        self.max_images = max_images
        self.retries = retries
        self.base_delay_ms = base_delay_ms
        self.sleep = sleep or time.sleep
        self.row_delay = row_delay
        self.execution_mode = execution_mode
        self.state = state

        self.taxonomy = TaxonomyResolver(client)
        self.hierarchy = CollectionHierarchyResolver(
            client, self.taxonomy, retries=retries, base_delay_ms=base_delay_ms, sleep=self.sleep
        )
        self.variants = VariantGroupingEngine(client, default_stock=default_stock)
        self.assets = AssetUploader(client, workers=image_workers, timeout=image_timeout, downloader=downloader)

        self.counters = RunCounters()
        self.results = []

    def _retry(self, operation):
        return with_retry(operation, retries=self.retries, base_delay_ms=self.base_delay_ms, sleep=self.sleep)

    # --------------------------------------------------------------- steps ----

    def _step_assets(self, ctx):
        row = ctx["row"]
        urls = row.images[:self.max_images]
        if not urls:
            return
        log_and_status(self.status_fn, f"  Images found: {len(row.images)} (uploading up to {len(urls)})")
        uploaded = self.assets.upload_many(urls)
        ctx["asset_ids"] = list(uploaded.values())
        if ctx["asset_ids"]:
            ctx["featured_asset_id"] = ctx["asset_ids"][0]

    def _step_create_product(self, ctx):
        row = ctx["row"]
        log_and_status(self.status_fn, "  → Creating product...")
        product = self.client.create_product(
            row.name, ctx["slug"], row.description,
            asset_ids=ctx["asset_ids"], featured_asset_id=ctx["featured_asset_id"]
        )
        ctx["product_id"] = product["id"]
        log_and_status(self.status_fn, f"  ✓ Product created: ID {product['id']}, slug: {product.get('slug', ctx['slug'])}")

    def _step_categorize(self, ctx):
        row = ctx["row"]
        path = parse_category_path(row.categories)
        if not path:
            return

        product_id = ctx["product_id"]
        hierarchy = self.hierarchy.ensure_hierarchy(path)

        if hierarchy.term_ids:
            try:
                self._retry(lambda: self.client.update_product_terms(product_id, hierarchy.term_ids))
                logging.info(f"  ✓ {len(hierarchy.term_ids)} term(s) assigned to product")
            except STEP_ERRORS as e:
                log_and_status(self.status_fn, f"  ⚠️  Error assigning terms: {e}", "warning")

        linked = 0
        for collection_id in hierarchy.collection_ids:
            try:
                self._retry(lambda: self.client.link_product_to_collection(collection_id, product_id))
                linked += 1
            except STEP_ERRORS as e:
                log_and_status(
                    self.status_fn,
                    f"    ⚠️  Error linking to collection {collection_id}: {e}",
                    "warning"
                )
        ctx["collections_linked"] = linked
        log_and_status(
            self.status_fn,
            f"  ✓ Linked to {linked}/{len(hierarchy.collection_ids)} collection(s)"
        )

    def _step_variants(self, ctx):
        row = ctx["row"]
        product_id = ctx["product_id"]
        records = self.variants.materialize_variants(product_id, row, ctx["slug"])

        first_image = row.images[0] if row.images else None
        variant_urls = [r.image_url for r in records if r.image_url and r.image_url != first_image]
        variant_assets = self.assets.upload_many(variant_urls) if variant_urls else {}
        for record in records:
            record.featured_asset_id = variant_assets.get(record.image_url) or ctx["featured_asset_id"]

        log_and_status(self.status_fn, f"  → Creating {len(records)} variant(s)...")
        results = self.client.create_variants(product_id, records)

        errors = [r for r in results if not r or r.get("errorCode")]
        if errors or len(results) < len(records):
            details = "; ".join(
                f"{(r or {}).get('errorCode', 'UNKNOWN')}: {(r or {}).get('message', '')}" for r in errors
            ) or f"{len(results)} of {len(records)} variants returned"
            raise RowFailedError("variants", f"Variant creation failed: {details}")

        ctx["variants_created"] = len(results)
        log_and_status(self.status_fn, f"  ✓ {len(results)} variant(s) created")

    # ---------------------------------------------------------------- rows ----

    def _finish(self, result, persist=True):
        self.counters.record(result.status)
        self.results.append(result)
        if persist and self.state is not None and result.slug:
            update_row_in_state(self.state, result.model_dump(mode="json"))
            save_import_state(self.state)
        return result

    def import_row(self, row, row_number):
        """
        Import one row.

        Args:
            row: RawProductRow
            row_number: 1-based position in the input

        Returns:
            RowResult (also added to self.results and counted)
        """
        name = (row.name or "").strip()
        if not name:
            log_and_status(self.status_fn, f"  ⊘ Row {row_number}: no product name, skipping", "warning")
            return self._finish(RowResult(
                row_number=row_number, status=RowStatus.SKIPPED, reason="missing_name"
            ))

        slug = to_code(row.slug) if row.slug else to_code(name)
        if not slug:
            log_and_status(self.status_fn, f"  ⊘ Row {row_number}: no usable slug for '{name}', skipping", "warning")
            return self._finish(RowResult(
                row_number=row_number, name=name, status=RowStatus.SKIPPED, reason="missing_slug"
            ))

        ctx = {
            "row": row,
            "slug": slug,
            "asset_ids": [],
            "featured_asset_id": None,
            "product_id": None,
            "collections_linked": 0,
            "variants_created": 0,
        }

        for stage, policy in IMPORT_STEPS:
            step = getattr(self, f"_step_{stage}")
            try:
                step(ctx)
            except RowFailedError as e:
                return self._failed(row_number, name, ctx, e.stage, str(e))
            except STEP_ERRORS as e:
                if policy is StepPolicy.FATAL:
                    return self._failed(row_number, name, ctx, stage, str(e))
                log_and_status(self.status_fn, f"  ⚠️  Step '{stage}' failed, continuing: {e}", "warning")

        log_and_status(self.status_fn, f"  ✅ Imported: {name}")
        return self._finish(RowResult(
            row_number=row_number,
            name=name,
            slug=slug,
            status=RowStatus.CREATED,
            product_id=ctx["product_id"],
            collections_linked=ctx["collections_linked"],
            variants_created=ctx["variants_created"],
        ))

    def _failed(self, row_number, name, ctx, stage, message):
        log_and_status(self.status_fn, f"  ❌ Failed at {stage}: {message}", "error")
        return self._finish(RowResult(
            row_number=row_number,
            name=name,
            slug=ctx["slug"],
            status=RowStatus.FAILED,
            product_id=ctx["product_id"],
            error=message,
            failed_stage=stage,
            collections_linked=ctx["collections_linked"],
        ))

    def _prepare_restore(self, row, row_number):
        """
        Apply the execution mode to a row seen in an earlier run.

        Returns:
            A skipped RowResult when the row must not be imported again, else None
        """
        if self.state is None or self.execution_mode == "fresh":
            return None

        slug = to_code(row.slug) if row.slug else to_code(row.name or "")
        entry = self.state.get("products_dict", {}).get(slug)
        if not entry:
            return None

        done = imported_product(self.state, slug)
        if done and self.execution_mode == "resume":
            log_and_status(
                self.status_fn,
                f"  ✓ Already imported (product {done.get('product_id')}). Skipping.",
                ui_msg="  ✓ Already imported - skipping"
            )
            return RowResult(
                row_number=row_number, name=row.name, slug=slug, status=RowStatus.SKIPPED,
                product_id=done.get("product_id"), reason="already_imported"
            )

        # Overwrite mode, or a product left behind by a failed row
        previous_id = entry.get("product_id")
        if previous_id:
            log_and_status(self.status_fn, f"  Deleting previous product: {previous_id}", ui_msg="  Deleting previous product...")
            try:
                self.client.delete_product(previous_id)
            except STEP_ERRORS as e:
                log_and_status(self.status_fn, f"  ⚠️  Could not delete product {previous_id}: {e}", "warning")
        return None

    def run(self, rows):
        """
        Import all rows sequentially.

        Args:
            rows: List of RawProductRow

        Returns:
            RunCounters
        """
        total = len(rows)
        for index, row in enumerate(rows, start=1):
            title = (row.name or "").strip() or "(no name)"
            log_and_status(
                self.status_fn,
                f"\n[{index}/{total}] Processing: {title}",
                ui_msg=f"[{index}/{total}] {title[:50]}..."
            )

            try:
                skipped = self._prepare_restore(row, index)
                if skipped is not None:
                    # The restore entry keeps its "created" status
                    self._finish(skipped, persist=False)
                    continue
                self.import_row(row, index)
            except (KeyboardInterrupt, ImportSetupError):
                raise
            except Exception as e:
                logging.exception(f"Unexpected error on row {index}")
                self._finish(RowResult(
                    row_number=index, name=title, slug=to_code(row.slug or row.name or ""),
                    status=RowStatus.FAILED, error=str(e), failed_stage="unexpected"
                ))

            if self.row_delay and index < total:
                self.sleep(self.row_delay)

        return self.counters


def connect(cfg, status_fn):
    """
    Log in to the Admin API.

    Returns:
        Authenticated VendureClient

    Raises:
        ImportSetupError: login failed or the API is unreachable
    """
    api_url = cfg.get("ADMIN_API", "").strip()
    if not api_url:
        raise ImportSetupError("ADMIN_API is not configured")

    client = VendureClient(
        api_url,
        cfg.get("ADMIN_USER", ""),
        cfg.get("ADMIN_PASS", ""),
        channel_token=cfg.get("VENDURE_CHANNEL", "").strip() or None,
        language=cfg.get("DEFAULT_LANGUAGE", "en").strip() or "en",
        timeout=get_int(cfg, "REQUEST_TIMEOUT"),
    )

    log_and_status(status_fn, f"→ Connecting to Admin API: {api_url}")
    try:
        client.login()
        me = client.whoami()
    except VendureAuthError as e:
        raise ImportSetupError(str(e)) from e

    channels = me.get("channels") or []
    channel = channels[0].get("code") if channels else "default"
    log_and_status(status_fn, f"✓ Authenticated as: {me.get('identifier')}")
    log_and_status(status_fn, f"✓ Channel: {channel}")
    return client


def process_products(cfg, status_fn, execution_mode="resume", client=None, log_level=logging.INFO):
    """
    Import every row of the configured input file.

    Args:
        cfg: Configuration dictionary
        status_fn: Status update function
        execution_mode: 'resume', 'overwrite' or 'fresh'
        client: Already authenticated client (login is skipped when given)
        log_level: Console logging level

    Returns:
        RunCounters

    Raises:
        InputFileError: input missing or unreadable
        ImportSetupError: cannot authenticate or reach the Admin API
    """
    if execution_mode not in EXECUTION_MODES:
        raise ValueError(f"Unknown execution mode: {execution_mode}")

    input_file = cfg.get("INPUT_FILE", "").strip()
    product_output_file = cfg.get("PRODUCT_OUTPUT_FILE", "").strip()
    collections_output_file = cfg.get("COLLECTIONS_OUTPUT_FILE", "").strip()
    started_at = datetime.now().isoformat()

    setup_logging(cfg.get("LOG_FILE", "").strip(), log_level)

    log_and_status(status_fn, "=" * 80)
    log_and_status(status_fn, f"Vendure Catalog Importer - {SCRIPT_VERSION}")
    log_and_status(status_fn, f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    log_and_status(status_fn, "=" * 80)

    log_and_status(status_fn, f"Loading input file: {input_file}")
    rows = read_rows(input_file)
    log_and_status(status_fn, f"✅ Loaded {len(rows)} row(s)\n")

    if client is None:
        client = connect(cfg, status_fn)

    state = {"products": [], "products_dict": {}} if execution_mode == "fresh" else load_import_state()

    importer = ProductImporter(
        client,
        status_fn=status_fn,
        default_stock=get_int(cfg, "DEFAULT_STOCK_ON_HAND"),
        max_images=get_int(cfg, "MAX_IMAGES"),
        image_workers=get_int(cfg, "IMAGE_WORKERS"),
        image_timeout=get_int(cfg, "IMAGE_TIMEOUT"),
        retries=get_int(cfg, "RETRY_ATTEMPTS"),
        base_delay_ms=get_int(cfg, "RETRY_BASE_DELAY_MS"),
        row_delay=get_float(cfg, "ROW_DELAY_SECONDS"),
        execution_mode=execution_mode,
        state=state,
    )

    log_and_status(status_fn, "=" * 80)
    log_and_status(status_fn, "PROCESSING PRODUCTS")
    log_and_status(status_fn, "=" * 80)
    log_and_status(status_fn, f"Execution Mode: {execution_mode.upper()}")

    try:
        counters = importer.run(rows)
    finally:
        if product_output_file:
            write_product_output(product_output_file, importer.counters, importer.results, started_at)
        if collections_output_file:
            write_collections_report(collections_output_file, importer.hierarchy.created_collections)

    if get_bool(cfg, "REINDEX_AFTER_IMPORT"):
        log_and_status(status_fn, "→ Rebuilding search index...")
        try:
            client.reindex_search()
        except STEP_ERRORS as e:
            log_and_status(status_fn, f"⚠️  Search reindex failed: {e}", "warning")

    log_and_status(status_fn, "\n" + "=" * 80)
    log_and_status(status_fn, "SUMMARY")
    log_and_status(status_fn, "=" * 80)
    log_and_status(status_fn, f"✅ Created: {counters.created}")
    log_and_status(status_fn, f"❌ Failed: {counters.failed}")
    log_and_status(status_fn, f"⊘ Skipped: {counters.skipped}")
    log_and_status(status_fn, f"Total: {counters.total}")
    log_and_status(status_fn, f"Collections created: {len(importer.hierarchy.created_collections)}")
    log_and_status(status_fn, "=" * 80)

    return counters
