#!/usr/bin/env python3
"""
AlwaysPickup Runner Script

Operator entry point for the calendar core.

Usage:
    python run.py --check-config             # Validate configuration
    python run.py --status                   # Is the calendar connected?
    python run.py --authorize                # Browser consent, then store the tokens
    python run.py --store-token tokens.json  # Encrypt and store an OAuth token set
    python run.py --disconnect               # Remove stored calendar credentials
    python run.py --list-tools               # Print tool declarations as JSON
    python run.py --call listCalendarEvents --params '{"timeMin": "2026-10-20"}'
"""

import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))


def load_settings(config_path=None):
    from alwayspickup.core.config import config, get_config

    return get_config(config_path) if config_path else config()


def check_config(config_path=None) -> int:
    """Load configuration and print status."""
    from pydantic import ValidationError

    from alwayspickup.core.config import env

    print("\n" + "=" * 60)
    print("AlwaysPickup Configuration Check")
    print("=" * 60 + "\n")

    try:
        cfg = load_settings(config_path)
    except ValidationError as e:
        print(f"❌ Invalid configuration:\n{e}")
        return 1

    settings = env()
    print(f"  Calendar:        {cfg.calendar.calendar_id}")
    print(f"  Timezone:        {cfg.calendar.timezone}")
    print(f"  Token file:      {cfg.calendar.token_file}")
    print(f"  Request timeout: {cfg.calendar.request_timeout}s")
    print(f"  History size:    {cfg.context.history_size}")

    problems = []
    if not settings.token_encryption_key:
        problems.append("TOKEN_ENCRYPTION_KEY is not set")
    if not settings.google_client_id or not settings.google_client_secret:
        problems.append("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET are not set (token refresh will fail)")

    for problem in problems:
        print(f"  ⚠️  {problem}")

    if problems:
        print("\n❌ Configuration is incomplete.")
        return 1

    print("\n✅ Configuration is valid.")
    return 0


async def show_status(gateway) -> int:
    connected = await gateway.initialize()
    if connected:
        print(f"✅ Google Calendar connected ({gateway.calendar_id})")
        return 0
    print("❌ Google Calendar is not connected")
    return 1


def store_token(gateway, token_file: str) -> int:
    from alwayspickup.core.errors import ConfigurationError

    path = Path(token_file)
    if not path.exists():
        print(f"❌ File not found: {path}")
        return 1

    try:
        tokens = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print(f"❌ Not a JSON token file: {e}")
        return 1

    try:
        gateway.store_credentials(tokens)
    except ConfigurationError as e:
        print(f"❌ {e}")
        return 1

    print(f"✅ Stored encrypted credentials in {gateway.token_store.path}")
    return 0


def authorize(gateway, env_settings, client_secrets=None) -> int:
    from alwayspickup.auth.oauth import authorize_interactive
    from alwayspickup.core.errors import ConfigurationError
    from alwayspickup.tools.calendar import SCOPES

    try:
        tokens = authorize_interactive(
            SCOPES,
            client_id=env_settings.google_client_id,
            client_secret=env_settings.google_client_secret,
            client_secrets_file=Path(client_secrets) if client_secrets else None,
        )
        gateway.store_credentials(tokens)
    except ConfigurationError as e:
        print(f"❌ {e}")
        return 1

    print(f"✅ Google Calendar connected, credentials stored in {gateway.token_store.path}")
    return 0


async def call_tool(registry, name: str, params_json: str, session_id: str) -> int:
    try:
        params = json.loads(params_json) if params_json else {}
    except json.JSONDecodeError as e:
        print(f"❌ --params is not valid JSON: {e}")
        return 1

    result = await registry.dispatch(name, session_id, params)
    print(json.dumps(result, indent=2, default=str))
    return 0 if "error" not in result else 1


def main():
    import argparse

    parser = argparse.ArgumentParser(description="AlwaysPickup - calendar core for the phone voice assistant")
    parser.add_argument("--config", type=str, help="Path to configuration file")
    parser.add_argument("--check-config", action="store_true", help="Validate configuration and exit")
    parser.add_argument("--status", action="store_true", help="Show calendar connection status")
    parser.add_argument("--authorize", action="store_true", help="Run the Google OAuth consent flow and store the tokens")
    parser.add_argument("--client-secrets", type=str, metavar="FILE", help="client_secret.json for --authorize")
    parser.add_argument("--store-token", type=str, metavar="FILE", help="Encrypt and store an OAuth token JSON file")
    parser.add_argument("--disconnect", action="store_true", help="Remove stored calendar credentials")
    parser.add_argument("--list-tools", action="store_true", help="Print tool declarations as JSON")
    parser.add_argument("--call", type=str, metavar="TOOL", help="Invoke a calendar tool")
    parser.add_argument("--params", type=str, default="{}", help="JSON arguments for --call")
    parser.add_argument("--session", type=str, default="cli", help="Session id for --call")

    args = parser.parse_args()

    if args.check_config:
        sys.exit(check_config(args.config))

    from alwayspickup.conversation import create_context_store
    from alwayspickup.core.config import ensure_directories
    from alwayspickup.core.logger import setup_logging
    from alwayspickup.tools import create_calendar_gateway, create_calendar_tools

    cfg = load_settings(args.config)
    ensure_directories(cfg)
    setup_logging(cfg)

    gateway = create_calendar_gateway(cfg)

    if args.status:
        sys.exit(asyncio.run(show_status(gateway)))

    if args.authorize:
        from alwayspickup.core.config import env

        sys.exit(authorize(gateway, env(), args.client_secrets))

    if args.store_token:
        sys.exit(store_token(gateway, args.store_token))

    if args.disconnect:
        removed = gateway.disconnect()
        print("✅ Calendar disconnected" if removed else "No stored credentials to remove")
        sys.exit(0)

    registry = create_calendar_tools(gateway, create_context_store(cfg), settings=cfg.calendar)

    if args.list_tools:
        print(json.dumps(registry.list_tools(), indent=2))
        sys.exit(0)

    if args.call:
        sys.exit(asyncio.run(call_tool(registry, args.call, args.params, args.session)))

    parser.print_help()


if __name__ == "__main__":
    main()
