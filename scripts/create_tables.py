#!/usr/bin/env python3
"""
Create Tables

Creates the Emboditrust tables in the database named by DATABASE_URL.
Safe to re-run: existing tables are left alone.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from database.connection import engine, init_database


def main():
    """Main entry point."""
    print(f"Creating tables in {engine.url.render_as_string(hide_password=True)}")
    init_database()
    print("✅ Tables ready")


if __name__ == "__main__":
    main()
