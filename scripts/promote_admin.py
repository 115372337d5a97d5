"""Set a user's role.

Role changes are intentionally not exposed over HTTP.

Usage:
  python scripts/promote_admin.py --email alice@example.com
  python scripts/promote_admin.py --email alice@example.com --role user
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from carecamp.config import load_config
from carecamp.db import connect
from carecamp.auth.crud import create_user, get_user_by_email, set_role


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--email", required=True)
    ap.add_argument("--role", choices=["user", "admin"], default="admin")
    ap.add_argument("--create", action="store_true", help="create the user if missing")
    args = ap.parse_args()

    cfg = load_config()
    store = connect(cfg)

    if get_user_by_email(store, args.email) is None:
        if not args.create:
            print(f"No user with email {args.email!r}; pass --create to add one.")
            sys.exit(1)
        create_user(store, email=args.email, role=args.role)
    else:
        set_role(store, args.email, args.role)

    print("Updated user:")
    print(get_user_by_email(store, args.email))


if __name__ == "__main__":
    main()
