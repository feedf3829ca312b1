"""Database initialization helper.

Creates the configured database (``DATABASE_URL``, or the SQLite file named by
``SQLITE_FILE``) and emits SQL DDL into ``database/schema.sql``.

Copyright (c) Bryn Gwalad 2025
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure project root is on sys.path so `from warehouse import ...` works when
# running this script directly (python database/init_db.py).
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv
from sqlalchemy.schema import CreateTable
from sqlmodel import SQLModel

# Load environment variables from .env (so this script honors .env settings)
load_dotenv()

from warehouse.database import database_url, make_engine


def main() -> None:
    """Create the database tables and write their DDL next to this script."""

    url = database_url()
    print(f"Using database URL: {url}")

    engine = make_engine(url, echo=True)

    print("Creating tables...")
    SQLModel.metadata.create_all(engine)
    print("Tables created.")

    schema_path = ROOT / "database" / "schema.sql"
    print(f"Writing SQL DDL to {schema_path}")
    with open(schema_path, "w", encoding="utf-8") as f:
        for table in SQLModel.metadata.sorted_tables:
            ddl = str(CreateTable(table).compile(engine))
            f.write(ddl)
            f.write(";\n\n")

    print("Done.\n")


if __name__ == "__main__":
    main()
