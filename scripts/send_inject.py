#!/usr/bin/env python3
"""
Dev helper: inject a test Telegram update into the local tginject backend.

Builds a minimal private-chat text update and POST-s it to
/telegram/inject, either as JSON or (with --media) as multipart/form-data
with the file attached.

Usage
-----
# Basic — JSON body, targeting localhost:8000
python scripts/send_inject.py

# Attach a file (switches to multipart/form-data)
python scripts/send_inject.py --media path/to/photo.png

# Target a specific account and chat
python scripts/send_inject.py --account-id work --chat-id 12345

# Print the payload without sending
python scripts/send_inject.py --dry-run

Environment / .env
------------------
TGINJECT_TOKEN   Inject bearer token (channels.telegram...inject.token).
"""

import argparse
import json
import mimetypes
import os
import sys
import textwrap
import time
from pathlib import Path

import httpx
from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# Payload builder
# ---------------------------------------------------------------------------

def _build_payload(update_id: int, chat_id: int, text: str) -> dict:
    """Build a minimal inject payload carrying one private-chat message."""
    now = int(time.time())
    return {
        "update": {
            "update_id": update_id,
            "message": {
                "message_id": update_id,
                "date": now,
                "chat": {"id": chat_id, "type": "private"},
                "from": {"id": chat_id, "is_bot": False, "first_name": "Inject"},
                "text": text,
            },
        }
    }


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 202 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    # Locate project root (scripts/ lives one level below the root)
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_inject.py",
        description=textwrap.dedent("""\
            Inject a test Telegram update into the tginject backend.

            Reads TGINJECT_TOKEN from the environment or a .env file in the
            project root.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend base URL (default: http://localhost:8000)",
    )
    parser.add_argument("--account-id", default=None, help="Telegram account id (optional)")
    parser.add_argument("--chat-id", type=int, default=1, help="Chat id (default: 1)")
    parser.add_argument("--update-id", type=int, default=None, help="Update id (default: now)")
    parser.add_argument("--text", default="hello from inject", help="Message text")
    parser.add_argument(
        "--media",
        default=None,
        metavar="PATH",
        help="File to attach. Sends multipart/form-data when set.",
    )
    parser.add_argument("--token", default=None, help="Override TGINJECT_TOKEN")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the payload JSON without sending it.",
    )

    args = parser.parse_args()

    token = args.token or os.getenv("TGINJECT_TOKEN", "")
    if not token and not args.dry_run:
        print(
            "ERROR: No inject token found.\n"
            "Set TGINJECT_TOKEN in your environment or .env file, or pass --token.",
            file=sys.stderr,
        )
        return 1

    update_id = args.update_id if args.update_id is not None else int(time.time())
    payload = _build_payload(update_id, args.chat_id, args.text)

    endpoint = f"{args.url.rstrip('/')}/telegram/inject"
    params = {"accountId": args.account_id} if args.account_id else None

    print(f"Endpoint : {endpoint}")
    print(f"Account  : {args.account_id or '(auto)'}")
    print(f"Update id: {update_id}")

    if args.dry_run:
        print("\n[DRY RUN] Payload:")
        print(json.dumps(payload, indent=2))
        return 0

    headers = {"Authorization": f"Bearer {token}"}
    try:
        if args.media:
            media_path = Path(args.media)
            if not media_path.exists():
                print(f"ERROR: File not found: {media_path}", file=sys.stderr)
                return 1
            content_type = mimetypes.guess_type(media_path.name)[0] or "application/octet-stream"
            print(f"Media    : {media_path} ({media_path.stat().st_size:,} bytes, {content_type})")
            response = httpx.post(
                endpoint,
                params=params,
                headers=headers,
                data={"payload": json.dumps(payload)},
                files={"media": (media_path.name, media_path.read_bytes(), content_type)},
                timeout=30,
            )
        else:
            response = httpx.post(
                endpoint,
                params=params,
                headers=headers,
                json=payload,
                timeout=30,
            )
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the backend running? Start it with:\n"
            "  cd backend && uvicorn tginject.main:app --reload",
            file=sys.stderr,
        )
        return 1

    _print_response(response)
    return 0 if response.status_code == 202 else 1


if __name__ == "__main__":
    sys.exit(main())
