"""
Collection hierarchy resolution for Vendure Catalog Importer.

Turns a category path such as ['Living Room', 'Sectional', 'Stationary'] into
one collection per level, parent before child, each filtered on its own level's
taxonomy term. Collections are cached by (parent id, slug), so the same name
under two different parents stays two different nodes.
"""

import logging
import threading

import requests

from .models import HierarchyResult
from .retry import with_retry
from .taxonomy import TermCreationError
from .utils import to_code
from .vendure_api import VendureAPIError

RESOLVE_ERRORS = (TermCreationError, VendureAPIError, requests.exceptions.RequestException)


def cache_key(parent_id, slug):
    """Collection cache key: 'parent::slug', or the bare slug at root level."""
    return f"{parent_id}::{slug}" if parent_id is not None else slug


def scoped_slug(path_slugs):
    """
    Slug used when the plain slug is taken by a collection under another parent.

    Examples:
        ['bedroom', 'modern'] -> 'bedroom-modern'
        ['modern'] -> 'modern-root'
    """
    if len(path_slugs) == 1:
        return f"{path_slugs[0]}-root"
    return "-".join(path_slugs)


class CollectionHierarchyResolver:
    """Get-or-create the chain of collections for a category path."""

    def __init__(self, client, taxonomy, retries=3, base_delay_ms=300, sleep=None):
        self.client = client
        self.taxonomy = taxonomy
        self.retries = retries
        self.base_delay_ms = base_delay_ms
        self.sleep = sleep
        self._cache = {}
        self._lock = threading.RLock()
        self.created_collections = []

    def _find(self, slug, parent_id):
        """
        Look a slug up remotely.

        Returns:
            (collection, parent_matches) or (None, False)
        """
        found = self.client.find_collection_by_slug(slug)
        if not found or not found.get("id"):
            return None, False
        return found, found.get("parent_id") == parent_id

    def _create(self, name, slug, parent_id, term_id, path_slugs):
        collection = with_retry(
            lambda: self.client.create_collection(name, slug, parent_id, term_id),
            retries=self.retries,
            base_delay_ms=self.base_delay_ms,
            sleep=self.sleep,
        )
        self.created_collections.append({
            "id": collection["id"],
            "name": name,
            "slug": slug,
            "parent_id": parent_id,
            "path": list(path_slugs),
        })
        level = "child" if parent_id is not None else "root"
        logging.info(f"    ✓ Collection created: {name} ({level}, ID: {collection['id']})")
        return collection["id"]

    def _ensure_collection(self, name, term_id, parent_id, path_slugs):
        slug = path_slugs[-1]
        key = cache_key(parent_id, slug)
        if key in self._cache:
            return self._cache[key]

        found, parent_matches = self._find(slug, parent_id)
        if found and parent_matches:
            collection_id = found["id"]
        elif found:
            # Slug belongs to a collection under another parent
            alt_slug = scoped_slug(path_slugs)
            logging.info(
                f"    Slug '{slug}' is used under parent {found.get('parent_id')}; "
                f"using '{alt_slug}' under parent {parent_id}"
            )
            alt, alt_parent_matches = self._find(alt_slug, parent_id)
            if alt and alt_parent_matches:
                collection_id = alt["id"]
            elif alt:
                raise VendureAPIError(
                    f"Slugs '{slug}' and '{alt_slug}' both belong to collections under other parents"
                )
            else:
                collection_id = self._create(name, alt_slug, parent_id, term_id, path_slugs)
        else:
            collection_id = self._create(name, slug, parent_id, term_id, path_slugs)

        self._cache[key] = collection_id
        return collection_id

    def ensure_hierarchy(self, path):
        """
        Resolve every level of a category path.

        A failure at one level is logged and stops resolution there: deeper
        levels are skipped, shallower levels are still returned. If the term of
        the failing level was resolved but its collection was not, the term id
        is kept so the product is still tagged.

        Args:
            path: List of category names, root first

        Returns:
            HierarchyResult with collection_ids and term_ids in path order
        """
        result = HierarchyResult()
        if not path:
            return result

        logging.info(f"  → Resolving hierarchy: {' → '.join(path)}")

        parent_id = None
        path_slugs = []
        with self._lock:
            for depth, name in enumerate(path, start=1):
                try:
                    term_id = self.taxonomy.ensure_term(name)
                except RESOLVE_ERRORS as e:
                    logging.warning(f"    ⚠ Level {depth} '{name}': {e}; skipping this and deeper levels")
                    break
                result.term_ids.append(term_id)

                path_slugs.append(to_code(name))
                try:
                    collection_id = self._ensure_collection(name, term_id, parent_id, path_slugs)
                except RESOLVE_ERRORS as e:
                    logging.warning(
                        f"    ⚠ Collection for level {depth} '{name}' failed: {e}; "
                        f"skipping this and deeper levels"
                    )
                    break

                result.collection_ids.append(collection_id)
                parent_id = collection_id

        logging.info(f"    ✓ {len(result.collection_ids)} of {len(path)} level(s) resolved")
        return result
