"""
Variant lookup and image selection.

Persisted line items always carry the canonical variant id (the variant's own
`_id`). `resolve_variant` still accepts the looser encodings older clients
send ("<id>.1" composite ids and positional indexes) so those requests keep
working; nothing else in the service depends on them.
"""
from typing import List, Optional

from schemas import Product, Variant


def resolve_variant(variants: Optional[List[Variant]], raw_id) -> Optional[Variant]:
    """Return the variant `raw_id` refers to, or None.

    Tried in order, first hit wins:
    exact id, id prefix before the first ".", str-coerced id, positional index.
    """
    if not variants or raw_id is None:
        return None
    wanted = str(raw_id).strip()
    if not wanted:
        return None

    for variant in variants:
        if variant.id and variant.id == wanted:
            return variant

    if "." in wanted:
        prefix = wanted.split(".", 1)[0]
        for variant in variants:
            if variant.id and variant.id == prefix:
                return variant

    for variant in variants:
        if variant.id is not None and str(variant.id).strip().lower() == wanted.lower():
            return variant

    if wanted.isdecimal():
        index = int(wanted)
        if 0 <= index < len(variants):
            return variants[index]

    return None


def canonical_variant_id(variant: Optional[Variant], raw_id=None) -> Optional[str]:
    """The id to persist for a resolved variant."""
    if variant is not None and variant.id:
        return variant.id
    if raw_id is None:
        return None
    # variant without an id of its own (legacy data): keep the client value minus any suffix
    return str(raw_id).strip().split(".", 1)[0] or None


def resolve_image(product: Product, variant: Optional[Variant] = None) -> Optional[str]:
    candidates = [
        variant.image if variant is not None else None,
        product.main_image,
        product.image.original if product.image else None,
        product.image.thumbnail if product.image else None,
    ]
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return None
