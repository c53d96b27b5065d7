"""Record-shape utilities shared by every adapter."""

from policymap.schema.proposal_fields import (
    composite_key,
    dump_record,
    dump_records,
    normalize_patch,
    normalize_proposal_id,
    normalize_record,
    sort_latest,
)
from policymap.schema.slugs import normalize_slug_lookup, slugify, unique_slug

__all__ = [
    "composite_key",
    "dump_record",
    "dump_records",
    "normalize_patch",
    "normalize_proposal_id",
    "normalize_record",
    "normalize_slug_lookup",
    "slugify",
    "sort_latest",
    "unique_slug",
]
