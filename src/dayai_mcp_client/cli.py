#!/usr/bin/env python3
"""
Command-line tool for the Day AI MCP connection.

This tool makes it easy to:
- Authenticate with Day AI (browser OAuth flow)
- Show stored connections (tokens safely redacted)
- Test the stored credentials against the workspace API
- List the MCP tools Day AI offers
- Call a tool
- Logout and revoke tokens with the server

Usage:
    dayai-oauth auth
    dayai-oauth status
    dayai-oauth test
    dayai-oauth tools
    dayai-oauth call <tool_name> '<json arguments>'
    dayai-oauth logout
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from typing import Optional

from .config import ServerConfig
from .oauth_handler import OAuthHandler
from .token_manager import ConnectionStore


def safe_display_token(token: str, prefix_len: int = 20, suffix_len: int = 6) -> str:
    """Safely display a token with most characters redacted."""
    if len(token) <= prefix_len + suffix_len:
        return f"{token[:10]}..."

    prefix = token[:prefix_len]
    suffix = token[-suffix_len:]
    redacted_len = len(token) - prefix_len - suffix_len

    return f"{prefix}...{'*' * min(redacted_len, 20)}...{suffix}"


def print_header(text: str):
    """Print a formatted header."""
    print("\n" + "=" * 60)
    print(text)
    print("=" * 60)


def format_expiry(expires_at: Optional[float], now: Optional[float] = None) -> str:
    if expires_at is None:
        return "unknown"
    remaining = int(expires_at - (time.time() if now is None else now))
    if remaining <= 0:
        return "expired"
    return f"in {remaining} seconds"


async def cmd_auth(base_url: Optional[str] = None):
    """Authenticate with Day AI and open an MCP session."""
    server = ServerConfig.day_ai(base_url)
    print_header(f"Authenticating with {server.name}")
    print(f"Server URL: {server.base_url}")
    print(f"Scopes: {' '.join(server.scopes)}")

    handler = OAuthHandler()
    try:
        print("\n🔐 Starting OAuth flow...")
        print("This will open your browser for authorization.\n")

        tools = await handler.connect_server(server)

        print("\n✅ Authentication successful!")
        record = handler.store.load_record(server.id)
        if record and record.tokens:
            print(f"Access Token: {safe_display_token(record.tokens.access_token)}")
            print(f"Token Type: {record.tokens.token_type}")
            print(f"Expires: {format_expiry(record.tokens.expires_at)}")
            if record.tokens.refresh_token:
                print(f"Refresh Token: {safe_display_token(record.tokens.refresh_token)}")

        print(f"\n🔧 {len(tools)} tools available")
        print(f"💾 Connection saved to {handler.store.state_dir}")
        return 0

    except Exception as e:
        print(f"\n❌ Authentication failed: {e}")
        return 1
    finally:
        await handler.aclose()


def cmd_status():
    """Show stored connections."""
    print_header("Stored Connections")

    store = ConnectionStore()
    records = store.list_records()

    if not records:
        print("No stored connections found.")
        print("\nTip: Authenticate with:")
        print("  dayai-oauth auth")
        return 0

    print(f"Found {len(records)} server(s):\n")
    for record in records:
        print(f"  • {record.server_id}")
        print(f"    Endpoint: {record.endpoint_url}")
        print(f"    Connected: {'✅ yes' if record.connected else '❌ no'}")
        if record.registration:
            print(f"    Client ID: {record.registration.client_id}")
        if record.tokens:
            print(
                f"    Token: {safe_display_token(record.tokens.access_token, prefix_len=15, suffix_len=4)}"
            )
            print(f"    Expires: {format_expiry(record.tokens.expires_at)}")
            print(f"    Refreshable: {'yes' if record.tokens.can_refresh else 'no'}")
        print()

    print(f"💾 Storage: {store.state_dir}")
    return 0


async def cmd_test(base_url: Optional[str] = None):
    """Test the stored credentials and show the workspace they belong to."""
    server = ServerConfig.day_ai(base_url)
    print_header(f"Testing Connection to {server.name}")

    handler = OAuthHandler()
    try:
        record = handler.store.load_record(server.id)
        if record is None or record.tokens is None or record.registration is None:
            print(f"⚠️  No stored credentials for '{server.id}'")
            print("\nTip: Authenticate with:")
            print("  dayai-oauth auth")
            return 1

        client = handler.create_api_client(server)
        metadata = await client.test_connection()

        print("\n✅ Connection successful!")
        print(f"Workspace: {metadata.workspace_name}")
        print(f"Workspace ID: {metadata.workspace_id}")
        print(f"User ID: {metadata.user_id}")
        return 0

    except Exception as e:
        print(f"\n❌ Connection test failed: {e}")
        return 1
    finally:
        await handler.aclose()


async def cmd_tools(base_url: Optional[str] = None):
    """List available tools from the Day AI MCP server."""
    server = ServerConfig.day_ai(base_url)
    print_header(f"Listing Tools for {server.name}")

    handler = OAuthHandler()
    try:
        tools = await handler.ensure_connected(server)

        print(f"\n📦 Found {len(tools)} tools:\n")
        for tool in tools:
            print(f"   • {tool.qualified_name}")
            if tool.description:
                desc = tool.description
                print(f"     {desc[:80]}{'...' if len(desc) > 80 else ''}")
            print()
        return 0

    except Exception as e:
        print(f"\n❌ Error: {e}")
        return 1
    finally:
        await handler.aclose()


async def cmd_call(tool_name: str, arguments: str = "{}", base_url: Optional[str] = None):
    """Call a Day AI MCP tool and print its result."""
    server = ServerConfig.day_ai(base_url)
    print_header(f"Calling {tool_name}")

    try:
        args = json.loads(arguments)
    except ValueError as e:
        print(f"❌ Arguments must be a JSON object: {e}")
        return 1
    if not isinstance(args, dict):
        print("❌ Arguments must be a JSON object")
        return 1

    handler = OAuthHandler()
    try:
        await handler.ensure_connected(server)
        result = await handler.sessions.call_tool(server.id, tool_name, args)

        print("\n✅ Result:\n")
        if isinstance(result, str):
            print(result)
        else:
            print(json.dumps(result, indent=2, default=str))
        return 0

    except Exception as e:
        print(f"\n❌ Tool call failed: {e}")
        return 1
    finally:
        await handler.aclose()


async def cmd_logout(base_url: Optional[str] = None):
    """Logout from Day AI (revokes tokens with the server)."""
    server = ServerConfig.day_ai(base_url)
    print_header(f"Logging Out from {server.name}")

    handler = OAuthHandler()
    try:
        record = handler.store.load_record(server.id)
        if record is None or record.tokens is None:
            print(f"⚠️  No tokens found for '{server.id}'")
            print("Already logged out.")
            return 0

        print(f"\n🔄 Revoking tokens with server: {server.base_url}")
        await handler.disconnect_server(server)

        print(f"\n✅ Successfully logged out from '{server.id}'")
        print("   ✓ Tokens revoked with server (best effort)")
        print("   ✓ Tokens removed from storage")
        print("   ✓ Client registration kept for next login")
        return 0

    except Exception as e:
        print(f"\n❌ Logout failed: {e}")
        return 1
    finally:
        await handler.aclose()


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Day AI MCP connection CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dayai-oauth auth
  dayai-oauth status
  dayai-oauth test
  dayai-oauth tools
  dayai-oauth call search_objects '{"query": "Acme"}'
  dayai-oauth logout

  # Against another deployment
  dayai-oauth --base-url http://localhost:8910 auth
        """,
    )
    parser.add_argument(
        "--base-url", help="Day AI base URL (default: $DAY_AI_BASE_URL or https://day.ai)"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("auth", help="Authenticate with Day AI")
    subparsers.add_parser("status", help="Show stored connections")
    subparsers.add_parser("test", help="Test credentials and show workspace info")
    subparsers.add_parser("tools", help="List available MCP tools")

    call_parser = subparsers.add_parser("call", help="Call an MCP tool")
    call_parser.add_argument("tool_name", help="Tool name (without mcp__ prefix)")
    call_parser.add_argument(
        "arguments", nargs="?", default="{}", help="Tool arguments as a JSON object"
    )

    subparsers.add_parser("logout", help="Logout (revoke tokens with server)")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 1

    # Execute command
    try:
        if args.command == "auth":
            return asyncio.run(cmd_auth(args.base_url))
        elif args.command == "status":
            return cmd_status()
        elif args.command == "test":
            return asyncio.run(cmd_test(args.base_url))
        elif args.command == "tools":
            return asyncio.run(cmd_tools(args.base_url))
        elif args.command == "call":
            return asyncio.run(cmd_call(args.tool_name, args.arguments, args.base_url))
        elif args.command == "logout":
            return asyncio.run(cmd_logout(args.base_url))
        else:  # pragma: no cover
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\n\n❌ Interrupted by user")
        return 130
    except Exception as e:
        print(f"\n❌ Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
