from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import httpx
from alembic import command
from alembic.config import Config


def get_alembic_config() -> Config:
    here = Path(__file__).resolve().parent
    cfg = Config(str(here / "alembic.ini"))
    cfg.set_main_option("script_location", str(here / "alembic"))
    return cfg


def cmd_upgrade() -> None:
    cfg = get_alembic_config()
    command.upgrade(cfg, "head")


def cmd_downgrade(revision: str) -> None:
    cfg = get_alembic_config()
    command.downgrade(cfg, revision)


def cmd_payment_status(transaction_id: str, base_url: str | None) -> int:
    from app.core.config import settings
    from app.core.payments.poller import poll_transaction_status

    with httpx.Client(base_url=base_url or settings.api_public_url, timeout=10) as client:
        result = poll_transaction_status(client, transaction_id)

    print(
        json.dumps(
            {
                "transaction_id": transaction_id,
                "status": result.status,
                "resolved": result.resolved,
                "attempts": result.attempts,
            },
            indent=2,
        )
    )
    return 0 if result.resolved else 1


def cmd_create_admin(email: str, password: str) -> None:
    from app.core.auth.schemas import UserCreate
    from app.core.auth.services import create_user
    from app.database.session import SessionLocal

    db = SessionLocal()
    try:
        user = create_user(db, UserCreate(email=email, password=password))
        user.is_superuser = True
        db.commit()
        print(f"Admin created: {user.email}")
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="VistraTV payments management commands"
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("upgrade", help="Apply all migrations (upgrade head)")

    downgrade_parser = subparsers.add_parser(
        "downgrade", help="Downgrade to a specific revision"
    )
    downgrade_parser.add_argument("revision", help="Revision id or -1, -2, ...")

    revision_parser = subparsers.add_parser(
        "revision", help="Create new alembic revision"
    )
    revision_parser.add_argument(
        "-m",
        "--message",
        required=True,
        help="Revision message",
    )
    revision_parser.add_argument(
        "--autogenerate",
        action="store_true",
        help="Populate revision with schema diff from models",
    )

    status_parser = subparsers.add_parser(
        "payment-status",
        help="Poll a transaction until it leaves pending",
    )
    status_parser.add_argument("transaction_id")
    status_parser.add_argument("--base-url", default=None, help="API base URL")

    admin_parser = subparsers.add_parser("create-admin", help="Create a superuser")
    admin_parser.add_argument("email")
    admin_parser.add_argument("password")

    args = parser.parse_args()

    if args.command == "upgrade" or args.command is None:
        cmd_upgrade()
    elif args.command == "downgrade":
        cmd_downgrade(args.revision)
    elif args.command == "revision":
        cfg = get_alembic_config()
        command.revision(
            cfg,
            message=args.message,
            autogenerate=args.autogenerate,
        )
    elif args.command == "payment-status":
        sys.exit(cmd_payment_status(args.transaction_id, args.base_url))
    elif args.command == "create-admin":
        cmd_create_admin(args.email, args.password)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
