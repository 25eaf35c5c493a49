"""
Catalog CLI

Usage:
    python -m crimelab.catalog check [catalog.json]
    python -m crimelab.catalog load [catalog.json] [--init-schema]
"""
import sys
import asyncio
import logging
import argparse

from crimelab.config import create_postgres_pool
from crimelab.services.errors import CatalogIntegrityError
from .loader import SEED_CATALOG_PATH, read_catalog, parse_catalog, apply_schema, load_catalog

logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
logger = logging.getLogger(__name__)


async def main(command: str, path: str, init_schema: bool = False) -> int:
    try:
        cases = parse_catalog(read_catalog(path))
    except CatalogIntegrityError as e:
        logger.error(f"❌ {e}")
        return 1

    if command == 'check':
        logger.info(f"✅ {len(cases)} cases OK")
        return 0

    db_pool = await create_postgres_pool(min_size=1, max_size=2)
    try:
        if init_schema:
            await apply_schema(db_pool)
        await load_catalog(db_pool, cases)
    except CatalogIntegrityError as e:
        logger.error(f"❌ {e}")
        return 1
    finally:
        await db_pool.close()

    logger.info(f"✅ Loaded {len(cases)} cases from {path}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Validate or load the case catalog")
    parser.add_argument('command', choices=['check', 'load'])
    parser.add_argument('path', nargs='?', default=str(SEED_CATALOG_PATH), help='Catalog JSON (default: bundled seed)')
    parser.add_argument('--init-schema', action='store_true', help='Create tables before loading')
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.command, args.path, init_schema=args.init_schema)))
