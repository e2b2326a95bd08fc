# backend/backoffice/cli/__main__.py
from __future__ import annotations

import argparse
import json

from backoffice.cli.seed_demo import seed_demo


def main() -> None:
    p = argparse.ArgumentParser(prog="python -m backoffice.cli")
    p.add_argument("--no-create-schema", action="store_true", help="assume alembic already ran")
    p.add_argument("--no-sample-property", action="store_true")
    args = p.parse_args()

    out = seed_demo(
        create_schema=(not args.no_create_schema),
        create_sample_property=(not args.no_sample_property),
    )
    print(
        json.dumps(
            {
                "ok": True,
                "users": out.users,
                "sample_property_id": out.property_id,
                "tokens": out.tokens,
            },
            indent=2,
        )
    )


if __name__ == "__main__":
    main()
