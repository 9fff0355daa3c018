"""
Vendure API operations for Vendure Catalog Importer.

This module contains all functions that interact with the Vendure GraphQL Admin API.
Taxonomy terms are values of a public facet with code 'category'; collections
filter on those values with the built-in 'facet-value-filter'.
"""

import json
import logging
import requests

CATEGORY_FACET_CODE = "category"
AUTH_TOKEN_HEADER = "vendure-auth-token"
CHANNEL_TOKEN_HEADER = "vendure-token"


class VendureAPIError(Exception):
    """The Admin API rejected a request (HTTP error status or GraphQL errors)."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors or []


class VendureAuthError(VendureAPIError):
    """Login failed or the API could not be reached at all."""


# ---------------------------------------------------------------- queries ----

LOGIN = """
mutation Login($username: String!, $password: String!) {
  login(username: $username, password: $password) {
    __typename
    ... on CurrentUser { id identifier }
    ... on ErrorResult { errorCode message }
  }
}
"""

ME = """
query Me {
  me {
    id
    identifier
    channels { id code token }
  }
}
"""

GET_FACET_BY_CODE = """
query GetFacetByCode($code: String!) {
  facets(options: { filter: { code: { eq: $code } } }) {
    items { id code name values { id code name } }
  }
}
"""

CREATE_FACET = """
mutation CreateFacet($input: CreateFacetInput!) {
  createFacet(input: $input) { id code name values { id code name } }
}
"""

CREATE_FACET_VALUE = """
mutation CreateFacetValue($input: CreateFacetValueInput!) {
  createFacetValue(input: $input) { id code name }
}
"""

GET_COLLECTION_BY_SLUG = """
query GetCollection($slug: String) {
  collection(slug: $slug) {
    id
    slug
    name
    parent { id isRoot }
  }
}
"""

CREATE_COLLECTION = """
mutation CreateCollection($input: CreateCollectionInput!) {
  createCollection(input: $input) {
    id
    slug
    name
    parent { id isRoot }
  }
}
"""

ADD_PRODUCTS_TO_COLLECTION = """
mutation AddProductsToCollection($collectionId: ID!, $productIds: [ID!]!) {
  addProductsToCollection(collectionId: $collectionId, productIds: $productIds) { id }
}
"""

CREATE_PRODUCT = """
mutation CreateProduct($input: CreateProductInput!) {
  createProduct(input: $input) { id name slug enabled }
}
"""

UPDATE_PRODUCT = """
mutation UpdateProduct($input: UpdateProductInput!) {
  updateProduct(input: $input) {
    id
    facetValues { id name }
  }
}
"""

DELETE_PRODUCT = """
mutation DeleteProduct($id: ID!) {
  deleteProduct(id: $id) { result message }
}
"""

GET_PRODUCT_OPTION_GROUPS = """
query ProductOptionGroups($id: ID!) {
  product(id: $id) {
    id
    optionGroups { id code options { id code } }
  }
}
"""

CREATE_OPTION_GROUP = """
mutation CreateGroup($input: CreateProductOptionGroupInput!) {
  createProductOptionGroup(input: $input) { id code }
}
"""

ADD_OPTION_GROUP_TO_PRODUCT = """
mutation AddGroup($productId: ID!, $optionGroupId: ID!) {
  addOptionGroupToProduct(productId: $productId, optionGroupId: $optionGroupId) { id }
}
"""

GET_OPTION_GROUP = """
query FindOption($groupId: ID!) {
  productOptionGroup(id: $groupId) {
    id
    options { id code }
  }
}
"""

CREATE_OPTION = """
mutation CreateOption($input: CreateProductOptionInput!) {
  createProductOption(input: $input) { id code }
}
"""

CREATE_PRODUCT_VARIANTS = """
mutation CreateProductVariants($input: [CreateProductVariantInput!]!) {
  createProductVariants(input: $input) {
    ... on ProductVariant { id sku name price }
    ... on ErrorResult { errorCode message }
  }
}
"""

CREATE_ASSETS = """
mutation CreateAssets($input: [CreateAssetInput!]!) {
  createAssets(input: $input) {
    ... on Asset { id source preview }
    ... on ErrorResult { errorCode message }
  }
}
"""

REINDEX = """
mutation Reindex {
  reindex { id state }
}
"""


def _parent_id(node):
    """Parent id of a collection node, None when its parent is the channel root."""
    parent = (node or {}).get("parent") or {}
    if not parent.get("id") or parent.get("isRoot"):
        return None
    return parent.get("id")


class VendureClient:
    """
    Thin client for the Vendure Admin API.

    One requests.Session carries the session cookie set by login (or the
    bearer token when the server runs in bearer mode) and the channel token.
    """

    def __init__(self, api_url, username, password, channel_token=None, language="en", timeout=30):
        self.api_url = api_url.strip()
        self.username = username
        self.password = password
        self.language = language or "en"
        self.timeout = timeout
        self.session = requests.Session()
        if channel_token:
            self.session.headers[CHANNEL_TOKEN_HEADER] = channel_token
        self._category_facet_id = None

    # ----------------------------------------------------------- transport ----

    def _post(self, **kwargs):
        response = self.session.post(self.api_url, timeout=self.timeout, **kwargs)
        token = response.headers.get(AUTH_TOKEN_HEADER)
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        return response

    def execute(self, query, variables=None):
        """
        Run a GraphQL operation.

        Args:
            query: GraphQL document
            variables: Optional variables dictionary

        Returns:
            The 'data' dictionary of the response

        Raises:
            VendureAPIError: HTTP error status or GraphQL errors
            requests.exceptions.RequestException: transport failure
        """
        response = self._post(json={"query": query, "variables": variables or {}})
        return self._handle_response(response)

    def _handle_response(self, response):
        try:
            result = response.json()
        except ValueError:
            raise VendureAPIError(
                f"Non-JSON response from Admin API (HTTP {response.status_code}): {response.text[:200]}"
            )

        errors = result.get("errors") if isinstance(result, dict) else None
        if errors:
            message = errors[0].get("message", "Unknown GraphQL error")
            raise VendureAPIError(message, errors)

        if response.status_code >= 400:
            raise VendureAPIError(f"HTTP {response.status_code} from Admin API")

        return result.get("data") or {}

    # ---------------------------------------------------------------- auth ----

    def login(self):
        """
        Log in with the configured credentials.

        Returns:
            Dictionary with 'id' and 'identifier' of the current user

        Raises:
            VendureAuthError: connection failure, non-JSON answer, GraphQL error or ErrorResult
        """
        try:
            response = self._post(json={
                "query": LOGIN,
                "variables": {"username": self.username, "password": self.password}
            })
        except requests.exceptions.RequestException as e:
            raise VendureAuthError(
                f"Could not connect to Admin API at {self.api_url}. Is the server running? ({e})"
            )

        try:
            data = self._handle_response(response)
        except VendureAPIError as e:
            raise VendureAuthError(f"Login failed: {e}", e.errors)

        login = data.get("login") or {}
        if login.get("__typename") != "CurrentUser":
            code = login.get("errorCode", "UNKNOWN")
            message = login.get("message", "Login failed")
            raise VendureAuthError(f"Login failed [{code}]: {message}")

        logging.info(f"Logged in to Admin API as {login.get('identifier')}")
        return login

    def whoami(self):
        """Return the authenticated user with its channels."""
        try:
            data = self.execute(ME)
        except requests.exceptions.RequestException as e:
            raise VendureAuthError(f"Could not reach Admin API: {e}")

        me = data.get("me")
        if not me:
            raise VendureAuthError("User is not authenticated after login")
        return me

    # --------------------------------------------------------------- terms ----

    def _get_category_facet(self):
        data = self.execute(GET_FACET_BY_CODE, {"code": CATEGORY_FACET_CODE})
        items = (data.get("facets") or {}).get("items") or []
        return items[0] if items else None

    def ensure_category_facet(self):
        """Get or create the public 'category' facet and return its id."""
        if self._category_facet_id:
            return self._category_facet_id

        facet = self._get_category_facet()
        if not facet:
            data = self.execute(CREATE_FACET, {
                "input": {
                    "code": CATEGORY_FACET_CODE,
                    "isPrivate": False,
                    "translations": [{"languageCode": self.language, "name": "Category"}]
                }
            })
            facet = data.get("createFacet") or {}
            logging.info(f"Created facet '{CATEGORY_FACET_CODE}' (ID: {facet.get('id')})")

        if not facet.get("id"):
            raise VendureAPIError("Category facet could not be created")

        self._category_facet_id = facet["id"]
        return self._category_facet_id

    def find_term_by_code(self, code):
        """
        Find a category term (facet value) by code.

        Returns:
            Dictionary with 'id', 'code', 'name' and 'siblings' (every value of
            the category facet as {'id', 'code'}), or None if not found
        """
        facet = self._get_category_facet()
        if not facet:
            return None

        self._category_facet_id = facet.get("id")
        values = facet.get("values") or []
        siblings = [{"id": v.get("id"), "code": v.get("code")} for v in values if v.get("id")]
        for value in values:
            if value.get("code") == code:
                return {
                    "id": value.get("id"),
                    "code": value.get("code"),
                    "name": value.get("name"),
                    "siblings": siblings
                }
        return None

    def create_term(self, code, name):
        """Create a category term and return it as {'id', 'code', 'name'}."""
        facet_id = self.ensure_category_facet()
        data = self.execute(CREATE_FACET_VALUE, {
            "input": {
                "facetId": facet_id,
                "code": code,
                "translations": [{"languageCode": self.language, "name": name}]
            }
        })
        term = data.get("createFacetValue") or {}
        if not term.get("id"):
            raise VendureAPIError(f"createFacetValue returned no id for '{code}'")
        return term

    # --------------------------------------------------------- collections ----

    def find_collection_by_slug(self, slug):
        """
        Find a collection by slug.

        Returns:
            Dictionary with 'id', 'slug', 'name' and 'parent_id' (None for a
            top-level collection), or None if not found
        """
        data = self.execute(GET_COLLECTION_BY_SLUG, {"slug": slug})
        node = data.get("collection")
        if not node or not node.get("id"):
            return None
        return {
            "id": node["id"],
            "slug": node.get("slug"),
            "name": node.get("name"),
            "parent_id": _parent_id(node)
        }

    def create_collection(self, name, slug, parent_id, filter_term_id):
        """
        Create a collection filtered on one category term.

        Child collections inherit their ancestors' filters.

        Returns:
            Dictionary with 'id', 'slug', 'name' and 'parent_id'
        """
        collection_input = {
            "isPrivate": False,
            "translations": [{
                "languageCode": self.language,
                "name": name,
                "slug": slug,
                "description": name
            }],
            "inheritFilters": parent_id is not None,
            "filters": [{
                "code": "facet-value-filter",
                "arguments": [
                    {"name": "facetValueIds", "value": json.dumps([filter_term_id])},
                    {"name": "containsAny", "value": "false"}
                ]
            }]
        }
        if parent_id is not None:
            collection_input["parentId"] = parent_id

        data = self.execute(CREATE_COLLECTION, {"input": collection_input})
        node = data.get("createCollection") or {}
        if not node.get("id"):
            raise VendureAPIError(f"createCollection returned no id for '{slug}'")
        return {
            "id": node["id"],
            "slug": node.get("slug", slug),
            "name": node.get("name", name),
            "parent_id": _parent_id(node) if node.get("parent") else parent_id
        }

    def link_product_to_collection(self, collection_id, product_id):
        """Add one product to a collection explicitly."""
        self.execute(ADD_PRODUCTS_TO_COLLECTION, {
            "collectionId": collection_id,
            "productIds": [product_id]
        })

    # ------------------------------------------------------------ products ----

    def create_product(self, name, slug, description, asset_ids=None, featured_asset_id=None):
        """
        Create an enabled product.

        Returns:
            Dictionary with 'id', 'name', 'slug'
        """
        product_input = {
            "enabled": True,
            "translations": [{
                "languageCode": self.language,
                "name": name,
                "slug": slug,
                "description": description or ""
            }]
        }
        if featured_asset_id:
            product_input["featuredAssetId"] = featured_asset_id
        if asset_ids:
            product_input["assetIds"] = list(asset_ids)

        data = self.execute(CREATE_PRODUCT, {"input": product_input})
        product = data.get("createProduct") or {}
        if not product.get("id"):
            raise VendureAPIError("createProduct returned no valid id")
        return product

    def update_product_terms(self, product_id, term_ids):
        """Replace the category terms (facet values) a product carries."""
        self.execute(UPDATE_PRODUCT, {
            "input": {"id": product_id, "facetValueIds": list(term_ids)}
        })

    def delete_product(self, product_id):
        """
        Delete a product.

        Returns:
            True if the server reports DELETED, False otherwise
        """
        data = self.execute(DELETE_PRODUCT, {"id": product_id})
        result = data.get("deleteProduct") or {}
        if result.get("result") != "DELETED":
            logging.warning(f"Product {product_id} not deleted: {result.get('message')}")
            return False
        return True

    # ------------------------------------------------------------- options ----

    def find_option_group(self, product_id, code):
        """
        Find an option group by code among the groups bound to a product.

        Returns:
            Dictionary with 'id', 'code' and 'options', or None
        """
        data = self.execute(GET_PRODUCT_OPTION_GROUPS, {"id": product_id})
        product = data.get("product") or {}
        for group in product.get("optionGroups") or []:
            if group.get("code") == code:
                return group
        return None

    def create_option_group(self, product_id, code, name):
        """Create an option group (without options) for a product."""
        data = self.execute(CREATE_OPTION_GROUP, {
            "input": {
                "code": code,
                "translations": [{"languageCode": self.language, "name": name}],
                "options": []
            }
        })
        group = data.get("createProductOptionGroup") or {}
        if not group.get("id"):
            raise VendureAPIError(f"createProductOptionGroup returned no id for '{code}' (product {product_id})")
        return group

    def bind_option_group_to_product(self, product_id, group_id):
        """Bind an option group to a product. Binding twice is not an error."""
        try:
            self.execute(ADD_OPTION_GROUP_TO_PRODUCT, {
                "productId": product_id,
                "optionGroupId": group_id
            })
        except VendureAPIError as e:
            if "already" in str(e).lower():
                logging.debug(f"Option group {group_id} already bound to product {product_id}")
                return
            raise

    def find_option_value(self, group_id, code):
        """Find an option value by code within a group; None if absent."""
        data = self.execute(GET_OPTION_GROUP, {"groupId": group_id})
        group = data.get("productOptionGroup") or {}
        for option in group.get("options") or []:
            if option.get("code") == code:
                return option
        return None

    def create_option_value(self, group_id, code, name):
        """Create an option value within a group."""
        data = self.execute(CREATE_OPTION, {
            "input": {
                "productOptionGroupId": group_id,
                "code": code,
                "translations": [{"languageCode": self.language, "name": name}]
            }
        })
        option = data.get("createProductOption") or {}
        if not option.get("id"):
            raise VendureAPIError(f"createProductOption returned no id for '{code}'")
        return option

    # ------------------------------------------------------------ variants ----

    def create_variants(self, product_id, records):
        """
        Create all variants of a product in one call.

        Args:
            product_id: Product id
            records: List of VariantRecord

        Returns:
            Raw result list; items carrying 'errorCode' are error descriptors
        """
        variant_inputs = [record.to_input(product_id, self.language) for record in records]
        data = self.execute(CREATE_PRODUCT_VARIANTS, {"input": variant_inputs})
        return data.get("createProductVariants") or []

    # -------------------------------------------------------------- assets ----

    def upload_asset(self, data, filename, content_type):
        """
        Upload one file as an asset (GraphQL multipart request).

        Returns:
            Asset id, or None on any failure
        """
        operations = json.dumps({
            "query": CREATE_ASSETS,
            "variables": {"input": [{"file": None, "tags": []}]}
        })
        file_map = json.dumps({"0": ["variables.input.0.file"]})

        try:
            response = self._post(
                data={"operations": operations, "map": file_map},
                files={"0": (filename, data, content_type or "application/octet-stream")}
            )
            result = self._handle_response(response)
        except (VendureAPIError, requests.exceptions.RequestException) as e:
            logging.warning(f"  ⚠ Error uploading asset {filename}: {e}")
            return None

        assets = result.get("createAssets") or []
        asset = assets[0] if assets else {}
        if asset.get("errorCode"):
            logging.warning(f"  ⚠ Asset rejected {filename}: {asset.get('message')}")
            return None
        if not asset.get("id"):
            logging.warning(f"  ⚠ No asset id returned for {filename}")
            return None

        logging.info(f"  ✓ Asset created: ID {asset['id']}")
        return asset["id"]

    # -------------------------------------------------------------- search ----

    def reindex_search(self):
        """Trigger a rebuild of the search index; returns the job dictionary."""
        data = self.execute(REINDEX)
        job = data.get("reindex") or {}
        logging.info(f"Search reindex job started: {job.get('id')} ({job.get('state')})")
        return job
