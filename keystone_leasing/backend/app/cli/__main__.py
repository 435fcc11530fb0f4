# backend/app/cli/__main__.py
from __future__ import annotations

import argparse

from app.cli.seed_demo import seed_demo
from app.db import init_db


def main() -> None:
    p = argparse.ArgumentParser(prog="python -m app.cli")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create tables directly (dev only; use alembic in prod)")

    seed = sub.add_parser("seed-demo", help="landlord, unit, two tenants and a DRAFT lease")
    seed.add_argument("--landlord-email", default="landlord@demo.local")
    seed.add_argument("--tenant-email", action="append", dest="tenant_emails")
    seed.add_argument("--unit-number", default="2B")

    args = p.parse_args()

    if args.command == "init-db":
        init_db()
        print({"ok": True})
        return

    out = seed_demo(
        landlord_email=args.landlord_email,
        tenant_emails=args.tenant_emails,
        unit_number=args.unit_number,
    )
    print(
        {
            "ok": True,
            "landlord_user_id": out.landlord_user_id,
            "tenant_user_ids": out.tenant_user_ids,
            "property_id": out.property_id,
            "unit_id": out.unit_id,
            "lease_id": out.lease_id,
            "tokens": out.tokens,
        }
    )


if __name__ == "__main__":
    main()
