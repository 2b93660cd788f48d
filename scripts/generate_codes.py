#!/usr/bin/env python3
"""
Generate Codes

Generates a batch of scratch codes, stores their hashes and writes the
print file (qr_code_id, scratch_code, verification_url) as CSV. The CSV is
the only copy of the raw scratch codes; keep it safe.

Usage:
    python scripts/generate_codes.py --prefix EMB --product "Amoxicillin 500mg" \
        --company "Emboditrust Pharma" --manufacturer MFR-001 --quantity 1000 \
        --output batch.csv
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from admin.generation import BatchRequest, codes_to_csv, generate_and_store_batch
from database.connection import get_db, init_database
from service.config import get_settings
from service.deps import register_configured_brands
from verification.errors import InvalidBrandPrefix


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Generate a batch of Emboditrust scratch codes")
    parser.add_argument("--prefix", default="EMB", help="Registered 3-symbol brand prefix")
    parser.add_argument("--product", required=True, help="Product name")
    parser.add_argument("--company", required=True, help="Company name")
    parser.add_argument("--manufacturer", required=True, help="Manufacturer id")
    parser.add_argument("--quantity", type=int, required=True, help="Number of codes (1-10000)")
    parser.add_argument("--batch-number", default=None, help="Batch number (default: generated)")
    parser.add_argument("--created-by", default="cli", help="Operator name")
    parser.add_argument("--output", type=Path, default=None, help="CSV file (default: stdout)")

    args = parser.parse_args()

    settings = get_settings()
    register_configured_brands(settings)
    init_database()

    request = BatchRequest(
        brand_prefix=args.prefix.upper(),
        product_name=args.product,
        company_name=args.company,
        manufacturer_id=args.manufacturer,
        quantity=args.quantity,
        batch_number=args.batch_number,
        created_by=args.created_by,
    )

    try:
        with get_db() as db:
            generated = generate_and_store_batch(
                db,
                request,
                base_url=settings.base_url,
                pepper=settings.code_hash_pepper,
            )
    except (InvalidBrandPrefix, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)

    csv_text = codes_to_csv(generated.codes)
    if args.output:
        args.output.write_text(csv_text)
        print(f"✅ Batch {generated.batch_id}: {len(generated.codes)} codes written to {args.output}", file=sys.stderr)
    else:
        sys.stdout.write(csv_text)
        print(f"✅ Batch {generated.batch_id}: {len(generated.codes)} codes", file=sys.stderr)


if __name__ == "__main__":
    main()
