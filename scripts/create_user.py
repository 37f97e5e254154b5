import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from trackit.database import Database, SqliteUserDirectory, resolve_database_path
from trackit.errors import InvalidInputError, TrackitError
from trackit.users import UserRegistry, validate_password_strength


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a Trackit user")
    parser.add_argument("username", help="Login name (stored lowercase)")
    parser.add_argument("--email", default=None, help="Address that receives due-soon reminders")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to TRACKIT_DB_PATH or data/trackit.sqlite3)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        try:
            validate_password_strength(password)
        except InvalidInputError as exc:
            print(f"{exc}.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    db_env = args.db_path or os.getenv("TRACKIT_DB_PATH")
    db_path = resolve_database_path(db_env)

    database = Database(db_path)
    database.initialize()

    registry = UserRegistry(SqliteUserDirectory(database))
    try:
        user_id = registry.register(args.username, args.email, password)
    except TrackitError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    user = registry.lookup(args.username)
    email = f" <{user.email}>" if user is not None and user.email else ""
    print(f"Created user #{user_id}: {args.username.strip().lower()}{email}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
