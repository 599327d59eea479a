#!/usr/bin/env python3
"""
Create the BitDrop tables in Snowflake.

Creates `users` and `drops` if they don't exist yet. Safe to run
repeatedly.

Usage:
    python scripts/init_schema.py
    python scripts/init_schema.py --dry-run

Requires:
    - .env file (or environment) with Snowflake credentials
"""

import sys
from pathlib import Path

# Add the project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from bitdrop.config.settings import get_settings  # noqa: E402
from bitdrop.infrastructure.snowflake.client import (  # noqa: E402
    SnowflakeConnectionError,
    open_snowflake_connection,
)
from bitdrop.infrastructure.snowflake.repositories.drops import (  # noqa: E402
    SCHEMA_DDL,
    DropRepository,
    SnowflakeConfig,
)


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Create BitDrop tables in Snowflake')
    parser.add_argument('--dry-run', action='store_true', help='Print the DDL, don\'t execute it')
    args = parser.parse_args()

    if args.dry_run:
        print("\n=== DRY RUN - No statements will be executed ===\n")
        for statement in SCHEMA_DDL:
            print(statement.strip() + ";\n")
        sys.exit(0)

    settings = get_settings()
    if not settings.snowflake_account or not settings.snowflake_user:
        print("ERROR: Missing SNOWFLAKE_ACCOUNT or SNOWFLAKE_USER")
        sys.exit(1)

    config = SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )

    print(f"Connecting to Snowflake account: {config.account}")
    try:
        conn = open_snowflake_connection(config)
    except SnowflakeConnectionError as e:
        print(f"ERROR connecting to Snowflake: {e}")
        sys.exit(1)

    try:
        DropRepository(conn).create_schema()
    finally:
        conn.close()

    print(f"Schema ready in {config.database}.{config.schema}")
    sys.exit(0)


if __name__ == '__main__':
    main()
