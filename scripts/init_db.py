#!/usr/bin/env python
"""
Initialize Database Script
Creates the sync schema.
"""

import argparse
import sys
from pathlib import Path

from sqlalchemy import inspect

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from issue_sync.database.connection import get_db
from issue_sync.exceptions import StoreError
from issue_sync.utils.logger import setup_logging, get_logger


def main():
    """Main entry point for database initialization."""
    parser = argparse.ArgumentParser(description='Initialize database schema')
    parser.add_argument(
        '--drop',
        action='store_true',
        help='Drop existing tables before creating (DANGEROUS)'
    )
    parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    setup_logging(verbose=args.verbose)
    logger = get_logger(__name__)

    try:
        logger.info("Initializing database")

        db = get_db()

        if not db.check_connection():
            print("Error: Cannot connect to database")
            sys.exit(1)

        print("Database connection successful")

        if args.drop:
            confirm = input("Are you sure you want to drop all tables? (yes/no): ")
            if confirm.lower() == 'yes':
                logger.warning("Dropping all tables")
                db.drop_schema()
                print("All tables dropped")
            else:
                print("Cancelled")
                sys.exit(0)

        logger.info("Creating tables")
        db.create_schema()

        print(f"\n{'='*50}")
        print("Database Initialized Successfully")
        print(f"{'='*50}")

        tables = inspect(db.engine).get_table_names()
        print(f"\nTables created: {len(tables)}")
        for table in sorted(tables):
            print(f"  - {table}")

    except StoreError as e:
        logger.error(f"Database initialization failed: {e}")
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
