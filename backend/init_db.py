"""
Database initialization script.
Run this once after deployment to create the schema and, optionally, a demo wallet.
"""
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db import ensure_schema
from backend.app.bootstrap_seed import DEMO_ACCOUNT, seed_demo_wallet


def initialize_db():
    """Main initialization function"""
    print("Initializing database...")
    print("=" * 50)

    print("Creating database schema...")
    ensure_schema()
    print("✓ Database schema created")

    create_demo = input("\nCreate demo wallet data? (y/n): ").lower() == "y"

    if create_demo:
        count = seed_demo_wallet()
        print(f"\n✓ Created {count} weekly snapshots for {DEMO_ACCOUNT}")
    else:
        print("\n✓ Database initialized without demo data")

    print("=" * 50)
    print("Database initialization complete.")


if __name__ == "__main__":
    initialize_db()
