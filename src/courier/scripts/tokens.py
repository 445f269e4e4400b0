"""
Issue development access tokens for the relay.

    python -m courier.scripts.tokens alice
    python -m courier.scripts.tokens alice --minutes 30

The printed token works as an ``Authorization: Bearer`` header, a ``token``
cookie or the ``token`` query parameter of the websocket.
"""

import argparse
from datetime import timedelta

from courier.core.security import create_access_token, is_valid_user_id


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Issue a Courier access token.")
    parser.add_argument("user_id", help="User identifier to put in the token subject")
    parser.add_argument(
        "--minutes",
        type=int,
        default=None,
        help="Lifetime in minutes (defaults to ACCESS_TOKEN_EXPIRE_MINUTES)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if not is_valid_user_id(args.user_id):
        print(f"Invalid user id: {args.user_id!r}")
        return 2
    lifetime = timedelta(minutes=args.minutes) if args.minutes is not None else None
    print(create_access_token(args.user_id, expires_delta=lifetime))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
