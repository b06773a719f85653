"""
Quick mailbox check: connects to the configured IMAP server and lists the
unseen messages that carry resume attachments. Nothing is parsed or stored,
and messages are left unseen.

Usage:
    python scripts/check_email.py
    python scripts/check_email.py --max 5
"""
import sys
import os
import argparse

# Root project -> sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv
load_dotenv()

from app.core.config import get_settings
from app.core.email_inbox import EmailInboxError, ImapInbox, MailboxConnectionError
from app.core.storage import default_email_config


def main():
    parser = argparse.ArgumentParser(description="List unseen resume emails")
    parser.add_argument("--max", type=int, default=10, help="Max messages (default 10)")
    args = parser.parse_args()

    settings = get_settings()
    config = default_email_config()

    # -- 1. Show settings --------------------------------------------------
    print("=" * 60)
    print("  EMAIL INBOX CHECK")
    print("=" * 60)
    print(f"  IMAP_HOST:       {config.host or '[NOT SET]'}")
    print(f"  IMAP_PORT:       {config.port}")
    print(f"  IMAP_USER:       {config.user or '[NOT SET]'}")
    print(f"  IMAP_PASSWORD:   {'***' if config.password else '[NOT SET]'}")
    print(f"  IMAP_FOLDER:     {settings.IMAP_FOLDER}")
    print(f"  IMAP_USE_SSL:    {config.tls}")
    print(f"  ALLOWED_EXT:     {settings.IMAP_ALLOWED_EXTENSIONS}")
    print(f"  max_messages:    {args.max}")
    print("=" * 60)

    # -- 2. Connect and fetch -----------------------------------------------
    print("\n[...] Connecting to IMAP...")
    inbox = ImapInbox(config, max_messages=args.max, mark_seen=False)
    try:
        inbox.connect()
        messages = inbox.fetch_unseen()
    except MailboxConnectionError as e:
        print(f"\n[ERROR] Cannot connect: {e}")
        sys.exit(1)
    except EmailInboxError as e:
        print(f"\n[ERROR] {e}")
        sys.exit(1)
    finally:
        inbox.disconnect()

    # -- 3. Print results ----------------------------------------------------
    print(f"\n[OK] {len(messages)} unseen message(s) with resume attachments")

    for i, msg in enumerate(messages, 1):
        print(f"\n  [{i}]")
        print(f"      From:       {msg.sender or '-'}")
        print(f"      Subject:    {msg.subject or '-'}")
        print(f"      Date:       {msg.date or '-'}")
        print(f"      Message-ID: {msg.message_id}")
        for att in msg.attachments:
            print(f"      Attachment: {att.filename} ({att.content_type}, {att.size} bytes)")

    print("\nDone.")


if __name__ == "__main__":
    main()
