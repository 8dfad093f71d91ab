#!/usr/bin/env python3
"""
Connect to Day AI and call a CRM tool.

This example demonstrates the complete connection lifecycle:
1. Reconnect from stored tokens (refreshing them if near expiry)
2. Browser OAuth flow with PKCE when no usable tokens exist
3. Listing the MCP tools Day AI offers
4. Calling a tool with automatic retry after token refresh

Usage:
    python examples/crm_tool_call.py [search query]
"""

import asyncio
import logging
import sys

from dayai_mcp_client import MCPToolError, OAuthHandler, ServerConfig


def print_section(title: str):
    """Print a formatted section header."""
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


async def main(query: str) -> int:
    server = ServerConfig.day_ai()

    async with OAuthHandler() as handler:
        print_section("Step 1: Connecting")
        results = await handler.reconnect_servers([server])
        if results.get(server.id):
            print("✅ Reconnected with stored tokens")
        else:
            print("🔐 No usable session, starting browser authorization...")
            await handler.connect_server(server)
            print("✅ Authorized")

        print_section("Step 2: Available tools")
        tools = handler.sessions.list_tools(server.id)
        for tool in tools:
            print(f"   • {tool.name}: {tool.description[:60]}")

        print_section(f"Step 3: Searching for {query!r}")
        try:
            result = await handler.sessions.call_tool(
                server.id, "search_objects", {"query": query}
            )
        except MCPToolError as e:
            print(f"❌ Tool reported an error: {e}")
            return 1
        print(result)

    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(asyncio.run(main(" ".join(sys.argv[1:]) or "Acme")))
