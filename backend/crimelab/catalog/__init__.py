"""
Case catalog: seed data, validation and loading.
"""
from .loader import (
    SEED_CATALOG_PATH,
    read_catalog,
    parse_catalog,
    check_integrity,
    apply_schema,
    load_catalog,
)

__all__ = [
    'SEED_CATALOG_PATH',
    'read_catalog',
    'parse_catalog',
    'check_integrity',
    'apply_schema',
    'load_catalog',
]
