"""
polytext CLI — Translation table bootstrap and row administration.

Commands:
- polytext init     — Create the translatable table
- polytext list     — List translation rows of an owner
- polytext set      — Insert or update one translation row
- polytext delete   — Delete one translation row

Owners are addressed by their raw reference (owner type + owner id), so
the commands work without importing the host's models.
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Optional

logger = logging.getLogger("polytext.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="polytext",
        description="polytext — Per-field translations for SQLAlchemy models",
    )
    parser.add_argument(
        "--config", default=None, help="Path to translatable.yaml (default: auto-discover)"
    )
    parser.add_argument("--db-url", default=None, help="Database URL (default: from config)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # polytext init
    subparsers.add_parser("init", help="Create the translatable table")

    # polytext list
    list_parser = subparsers.add_parser("list", help="List translations of an owner")
    _add_owner_arguments(list_parser)
    list_parser.add_argument("--key", help="Only this field key")
    list_parser.add_argument("--locale", help="Only this locale")
    list_parser.add_argument("--json", action="store_true", help="Print rows as JSON")

    # polytext set
    set_parser = subparsers.add_parser("set", help="Insert or update a translation")
    _add_owner_arguments(set_parser)
    set_parser.add_argument("key", help="Field key (e.g., title)")
    set_parser.add_argument("locale", help="Locale (e.g., de)")
    set_parser.add_argument("text", help="Translated text (empty deletes under the delete policy)")

    # polytext delete
    delete_parser = subparsers.add_parser("delete", help="Delete a translation")
    _add_owner_arguments(delete_parser)
    delete_parser.add_argument("key", help="Field key (e.g., title)")
    delete_parser.add_argument("locale", help="Locale (e.g., de)")

    args = parser.parse_args(argv)

    if args.command == "init":
        return cmd_init(args)
    elif args.command == "list":
        return cmd_list(args)
    elif args.command == "set":
        return cmd_set(args)
    elif args.command == "delete":
        return cmd_delete(args)
    else:
        parser.print_help()
        return 0


def _add_owner_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("owner_type", help="Owner type (e.g., articles)")
    parser.add_argument("owner_id", type=int, help="Owner primary key")


def _bootstrap(args: argparse.Namespace, create_tables: bool = False) -> bool:
    """Load config, enable logging and open the translation database."""
    from polytext.db.session import init_translation_db
    from polytext.engine.config import load_config
    from polytext.engine.errors import TranslatableConfigError
    from polytext.engine.logging import configure_structured_logging

    try:
        config = load_config(args.config)
    except (TranslatableConfigError, ValueError) as e:
        print(f"[ERROR] Invalid configuration: {e}")
        return False

    configure_structured_logging(config.logging)
    try:
        init_translation_db(db_url=args.db_url, create_tables=create_tables)
    except Exception as e:
        print(f"[ERROR] Database initialization failed: {e}")
        return False
    return True


def cmd_init(args: argparse.Namespace) -> int:
    """Create the translatable table in the configured database."""
    if not _bootstrap(args, create_tables=True):
        return 1

    from polytext.db.session import close_all_sessions, get_engine

    print(f"[OK] Translation table ready on {get_engine().url.render_as_string(hide_password=True)}")
    close_all_sessions()
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """Print the translation rows of one owner."""
    if not _bootstrap(args):
        return 1

    from polytext.db.models import OwnerRef
    from polytext.db.session import close_all_sessions, session_scope
    from polytext.engine.store import TranslationStore

    owner = OwnerRef(args.owner_type, args.owner_id)
    try:
        with session_scope() as session:
            rows = TranslationStore(session).find_many(
                owner,
                keys=[args.key] if args.key else None,
                locales=[args.locale] if args.locale else None,
            )
            data = [row.to_dict() for row in rows]
    finally:
        close_all_sessions()

    if args.json:
        print(json.dumps(data, indent=2))
        return 0

    if not data:
        print(f"[INFO] No translations for {owner}")
        return 0
    for row in data:
        print(f"  {row['key']:<24} {row['locale']:<6} {row['text']}")
    print(f"[OK] {len(data)} translation(s) for {owner}")
    return 0


def cmd_set(args: argparse.Namespace) -> int:
    """Upsert one translation row."""
    if not _bootstrap(args):
        return 1

    from polytext.db.models import OwnerRef
    from polytext.db.session import close_all_sessions, session_scope
    from polytext.engine.errors import TranslationStoreError
    from polytext.engine.store import TranslationStore

    owner = OwnerRef(args.owner_type, args.owner_id)
    try:
        with session_scope() as session:
            record = TranslationStore(session).upsert(owner, args.key, args.locale, args.text)
            stored = record is not None
    except TranslationStoreError as e:
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        close_all_sessions()

    if stored:
        print(f"[OK] Stored {owner}.{args.key}[{args.locale}]")
    else:
        print(f"[OK] Empty value, removed {owner}.{args.key}[{args.locale}]")
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete one translation row."""
    if not _bootstrap(args):
        return 1

    from polytext.db.models import OwnerRef
    from polytext.db.session import close_all_sessions, session_scope
    from polytext.engine.store import TranslationStore

    owner = OwnerRef(args.owner_type, args.owner_id)
    try:
        with session_scope() as session:
            removed = TranslationStore(session).delete(owner, args.key, args.locale)
    finally:
        close_all_sessions()

    if not removed:
        print(f"[WARN] No translation {owner}.{args.key}[{args.locale}]")
        return 1
    print(f"[OK] Deleted {owner}.{args.key}[{args.locale}]")
    return 0
