"""
Create a portal user, optionally granting capabilities.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from clubportal.auth import create_user
from clubportal.config import get_settings
from clubportal.db import SqlDbClient
from clubportal.errors import DuplicateEntryError, ValidationFailed
from clubportal.types import Capability

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a portal user")
    parser.add_argument("email", help="Email address (must use an allowed domain)")
    parser.add_argument("name", help="Display name")
    parser.add_argument("--student-id", default=None, help="Student identifier")
    parser.add_argument(
        "--grant",
        action="append",
        default=[],
        choices=[c.value for c in Capability],
        help="Capability to grant (repeatable)",
    )
    parser.add_argument(
        "--password",
        default=None,
        help="Password (prompted for when omitted)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")

    settings = get_settings()
    if not settings.database_url:
        logger.error("DATABASE_URL is not configured")
        return 1

    password = args.password or getpass.getpass("Password: ")
    db = SqlDbClient(settings.database_url)
    try:
        user = create_user(
            db,
            name=args.name,
            email=args.email,
            password=password,
            student_id=args.student_id,
            permissions=args.grant,
            settings=settings,
        )
    except ValidationFailed as exc:
        logger.error("%s", exc.message)
        return 1
    except DuplicateEntryError:
        logger.error("A user with this email already exists")
        return 1

    logger.info("Created user id=%s with capabilities=%s", user.id, user.permissions)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
