"""
Utility functions for Vendure Catalog Importer.
"""

import os
import re
import unicodedata
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from urllib.parse import urlparse

ATTRIBUTE_PREFIX_RE = re.compile(r'^attribute_(pa_)?', re.IGNORECASE)
CODE_INVALID_RE = re.compile(r'[^a-z0-9_-]+')
CATEGORY_TAG_RE = re.compile(r'^\s*category\s*:', re.IGNORECASE)


def ensure_ascii(text):
    """Return an ASCII-only version of text (accents folded, others dropped)."""
    normalised = unicodedata.normalize("NFKD", str(text or ""))
    return normalised.encode("ascii", "ignore").decode("ascii")


def to_code(name):
    """
    Derive a code/slug from a display name.

    The same rule produces term codes, collection slugs and generated
    product slugs, so equal names (ignoring case and accents) always map
    to the same remote entity.

    Examples:
        'Living Room' -> 'living-room'
        '  Sofás & Loveseats ' -> 'sofas-loveseats'
        'Sofas' and 'sofas' -> 'sofas'
    """
    code = ensure_ascii(name).strip().lower()
    code = CODE_INVALID_RE.sub('-', code)
    code = re.sub(r'-{2,}', '-', code)
    return code.strip('-')


def norm_attr_key(key):
    """
    Normalize a WooCommerce variation attribute key.

    Examples:
        'attribute_pa_color' -> 'color'
        'attribute_Size' -> 'size'
    """
    return ATTRIBUTE_PREFIX_RE.sub('', str(key or '').strip()).strip().lower()


def option_value_code(value):
    """Code for an option value: lowercased, whitespace runs become hyphens."""
    return re.sub(r'\s+', '-', str(value).strip().lower())


def option_group_name(code):
    """Human label for an option group code ('finish-type' -> 'Finish type')."""
    label = code.replace('_', ' ').replace('-', ' ').strip()
    return label[:1].upper() + label[1:] if label else code


def parse_price(raw):
    """
    Convert a scraped price string to integer minor units (cents).

    Handles both European ('1.234,56') and US ('1,234.56') separators.
    Empty, unparseable, non-finite and negative input all yield 0.

    Examples:
        '$1,299.00' -> 129900
        '1.234,56' -> 123456
        '42,50' -> 4250
    """
    if raw is None:
        return 0

    s = re.sub(r'[^0-9.,-]', '', str(raw))
    if not s:
        return 0

    if re.search(r'\.\d{3},\d{2}$', s):
        s = s.replace('.', '').replace(',', '.')
    elif re.search(r',\d{3}\.', s):
        s = s.replace(',', '')
    else:
        s = s.replace(',', '.', 1)

    try:
        value = Decimal(s)
    except InvalidOperation:
        return 0

    if not value.is_finite() or value < 0:
        return 0

    return int((value * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def parse_int(raw, default=None):
    """Parse a non-negative integer from loose input ('12', '12.0', 12)."""
    if raw is None or raw == '':
        return default
    try:
        value = int(Decimal(str(raw).strip()))
    except (InvalidOperation, ValueError, OverflowError):
        return default
    return value if value >= 0 else default


def split_list(raw, separators='|,'):
    """
    Split a delimited string (or pass through a list) into trimmed items.

    Image columns use '|' between URLs, older exports use ','.
    """
    if not raw:
        return []
    if isinstance(raw, (list, tuple)):
        items = raw
    else:
        pattern = '[' + re.escape(separators) + ']'
        items = re.split(pattern, str(raw))
    return [str(item).strip() for item in items if item and str(item).strip()]


def parse_category_path(raw):
    """
    Parse a category path into an ordered list of category names.

    Accepts both the plain form ('Living Room|Sectional|Stationary') and the
    tagged form written by the scrapers ('category:Living Room|category:Sofas').
    In the tagged form, segments without the 'category:' prefix ('brand:Acme')
    are not categories. In the plain form every segment is kept as written,
    colons included ('Sofas: Modern').

    Returns:
        List of names, root first; empty list when nothing usable remains
    """
    if not raw:
        return []
    if isinstance(raw, (list, tuple)):
        raw = '|'.join(str(item) for item in raw)

    segments = [segment.strip() for segment in str(raw).split('|')]
    segments = [segment for segment in segments if segment]
    tagged = any(CATEGORY_TAG_RE.match(segment) for segment in segments)

    path = []
    for segment in segments:
        if tagged:
            match = CATEGORY_TAG_RE.match(segment)
            if not match:
                continue
            segment = segment[match.end():].strip()
            if not segment:
                continue
        path.append(segment)
    return path


def guess_filename_from_url(url, content_type=None):
    """Derive an upload filename from an image URL."""
    try:
        name = os.path.basename(urlparse(url).path)
    except (TypeError, ValueError):
        name = ''

    if name and '.' in name:
        return name

    ext = 'jpg'
    if content_type and '/' in content_type:
        ext = content_type.split('/')[1].split(';')[0].strip() or 'jpg'
    return f"{name or 'image'}.{ext}"
