import argparse
import asyncio
import getpass
import logging
import secrets
from typing import Optional

from prepdeck.auth.credentials.passwords import (
    PasswordHasher,
    password_policy_violations,
)

logger = logging.getLogger(__name__)


async def genSecret(length: int) -> None:
    print(secrets.token_urlsafe(length))


async def hashPassword(password: Optional[str], rounds: int, force: bool) -> None:
    if password is None:
        password = getpass.getpass("Password: ")

    violations = password_policy_violations(password)
    if violations and not force:
        for violation in violations:
            print(violation)
        return

    digest = await asyncio.to_thread(PasswordHasher(rounds=rounds).hash, password)
    print(digest)


async def realMain() -> None:
    parser = argparse.ArgumentParser(
        prog="prepdeck-auth-util", description="PrepDeck auth utilities"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    gen_secret = subparsers.add_parser(
        "gen-secret", help="Generate an access token signing secret"
    )
    gen_secret.add_argument(
        "--length", type=int, default=48, help="Number of random bytes."
    )

    hash_password = subparsers.add_parser(
        "hash-password", help="Print a bcrypt digest for seeding an identity"
    )
    hash_password.add_argument(
        "password", nargs="?", default=None, help="Prompted for when omitted."
    )
    hash_password.add_argument("--rounds", type=int, default=12, help="bcrypt cost.")
    hash_password.add_argument(
        "--force",
        action="store_true",
        help="Hash even when the password breaks the password policy.",
    )

    args = vars(parser.parse_args())
    command = args.get("command", None)

    if command == "gen-secret":
        await genSecret(args["length"])
    elif command == "hash-password":
        await hashPassword(args["password"], args["rounds"], args["force"])


def main() -> None:
    asyncio.run(realMain())


if __name__ == "__main__":
    main()
