"""Create a customer or admin account and print its API token.

Usage:
    python scripts/create_user.py priya@example.com --name "Priya Sharma" --verified
    python scripts/create_user.py desk@rbpfinivis.com --role admin
"""

import argparse
import secrets
import sys

from finivis.core.config import get_settings
from finivis.db.dal import Database
from finivis.db.migrate import apply_migrations
from finivis.routers.deps import ADMIN_ROLES


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("email")
    parser.add_argument("--name", default=None)
    parser.add_argument("--phone", default=None)
    parser.add_argument("--role", choices=sorted(ADMIN_ROLES | {"user"}), default="user")
    parser.add_argument("--verified", action="store_true", help="mark KYC as verified")
    args = parser.parse_args(argv)

    settings = get_settings()
    apply_migrations(settings.db_path)
    db = Database(settings.db_path)

    if db.get_profile_by_email(args.email):
        print(f"❌ An account for {args.email} already exists.")
        sys.exit(1)

    token = secrets.token_urlsafe(32)
    user_id = db.create_profile(
        args.email,
        full_name=args.name,
        phone=args.phone,
        api_token=token,
        kyc_status="verified" if args.verified else "pending",
    )
    if args.role != "user":
        db.add_role(user_id, args.role)

    print(f"✓ Created user {user_id} ({args.email}) role={args.role}")
    print(f"  Authorization: Bearer {token}")


if __name__ == "__main__":
    main()
