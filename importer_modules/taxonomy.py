"""
Taxonomy resolution for Vendure Catalog Importer.

Maps a category display name to the id of a durable taxonomy term, creating
the term on first use and remembering the mapping for the rest of the run.
"""

import logging
import threading

import requests

from .utils import to_code
from .vendure_api import VendureAPIError


class TermCreationError(Exception):
    """A taxonomy term could neither be found nor created."""

    def __init__(self, name, code, cause=None):
        message = f"Could not create term '{name}' (code '{code}')"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.name = name
        self.code = code
        self.cause = cause


class TaxonomyResolver:
    """
    Get-or-create taxonomy terms by code.

    The cache is write-once per code and is never invalidated during a run.
    """

    def __init__(self, client):
        self.client = client
        self._cache = {}
        self._lock = threading.RLock()
        self.created_count = 0

    def cached_id(self, code):
        with self._lock:
            return self._cache.get(code)

    def _remember(self, term):
        # Cache every value the lookup returned, not only the requested one
        for sibling in term.get("siblings") or []:
            if sibling.get("code") and sibling.get("id"):
                self._cache.setdefault(sibling["code"], sibling["id"])
        self._cache[term["code"]] = term["id"]

    def ensure_term(self, name):
        """
        Return the id of the term for a category name.

        Args:
            name: Category display name

        Returns:
            Term id

        Raises:
            TermCreationError: name has no usable code, or the term could not
                be created and is still absent after one re-query
        """
        code = to_code(name)
        if not code:
            raise TermCreationError(name, code, "name yields an empty code")

        with self._lock:
            if code in self._cache:
                return self._cache[code]

            existing = self.client.find_term_by_code(code)
            if existing and existing.get("id"):
                self._remember(dict(existing, code=code))
                logging.debug(f"  Term found: {name} -> {existing['id']}")
                return existing["id"]

            try:
                created = self.client.create_term(code, name.strip())
            except (VendureAPIError, requests.exceptions.RequestException) as e:
                # Another worker may have created the same code in the meantime
                logging.warning(f"  ⚠ Creating term '{code}' failed ({e}); re-checking")
                try:
                    existing = self.client.find_term_by_code(code)
                except (VendureAPIError, requests.exceptions.RequestException) as lookup_error:
                    raise TermCreationError(name, code, lookup_error) from e
                if existing and existing.get("id"):
                    self._remember(dict(existing, code=code))
                    return existing["id"]
                raise TermCreationError(name, code, e) from e

            if not created or not created.get("id"):
                raise TermCreationError(name, code, "no id returned")

            self._cache[code] = created["id"]
            self.created_count += 1
            logging.info(f"  ✓ Term created: {name} (ID: {created['id']})")
            return created["id"]
