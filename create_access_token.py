#!/usr/bin/env python3
"""Mint a local development access token for the Briefly API."""

import sys
import argparse
from pathlib import Path

# Load .env
from dotenv import load_dotenv
load_dotenv()

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from execution.briefly.auth import create_access_token


def main():
    parser = argparse.ArgumentParser(description="Create a development access token")
    parser.add_argument("--user-id", required=True, help="User UUID (the token subject)")
    parser.add_argument("--email", default="", help="Email claim")
    parser.add_argument("--hours", type=int, default=None, help="Lifetime in hours")
    args = parser.parse_args()

    token = create_access_token(args.user_id, email=args.email, expires_in_hours=args.hours)

    print("\n" + "=" * 50)
    print("Access token created")
    print("=" * 50)
    print(f"\n  {token}\n")
    print("Send it as: Authorization: Bearer <token>")
    print("=" * 50)


if __name__ == "__main__":
    main()
