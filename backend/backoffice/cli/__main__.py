# backend/backoffice/cli/__main__.py
from __future__ import annotations

import argparse

from backoffice.cli.seed_demo import demo_tokens, seed_demo


def main() -> None:
    p = argparse.ArgumentParser(prog="python -m backoffice.cli", description="Seed demo branch, users and listings")
    p.add_argument("--branch-name", default="Main")
    p.add_argument("--create-schema", action="store_true", help="create tables without running migrations")
    p.add_argument("--no-sample-properties", action="store_true")
    p.add_argument("--tokens", action="store_true", help="also print a bearer token per demo role")
    args = p.parse_args()

    out = seed_demo(
        branch_name=args.branch_name,
        create_schema=args.create_schema,
        create_sample_properties=(not args.no_sample_properties),
    )
    print(
        {
            "ok": True,
            "branch_id": out.branch_id,
            "users": out.user_emails,
            "properties": out.property_ids,
            **({"tokens": demo_tokens(out)} if args.tokens else {}),
        }
    )


if __name__ == "__main__":
    main()
