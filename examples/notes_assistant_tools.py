#!/usr/bin/env python3
"""
Tool dispatch for a notes assistant.

Shows how an application exposes local note tools together with the
namespaced Day AI MCP tools to a model, and executes the calls it makes.
The model itself is out of scope: the tool calls below are hard-coded.

Usage:
    python examples/notes_assistant_tools.py
"""

import asyncio
import json

from dayai_mcp_client import (
    NoteBook,
    OAuthHandler,
    ServerConfig,
    ToolCall,
    ToolDispatcher,
    register_note_tools,
)


async def main():
    server = ServerConfig.day_ai()
    notebook = NoteBook()
    current = notebook.create("Meeting prep", "Call with Acme on Thursday.")

    async with OAuthHandler() as handler:
        await handler.ensure_connected(server)

        dispatcher = ToolDispatcher(handler.sessions)
        register_note_tools(dispatcher, notebook)

        print("Tools offered to the model:")
        for definition in dispatcher.tool_definitions():
            print(f"  • {definition['name']}")

        calls = [
            ToolCall(id="1", name="search_notes", parameters={"query": "acme"}),
            ToolCall(
                id="2",
                name="mcp__day-ai__search_objects",
                parameters={"query": "Acme"},
            ),
            ToolCall(
                id="3",
                name="update_note",
                parameters={"content": "Call with Acme on Thursday. Renewal due."},
            ),
        ]
        for call in calls:
            result = await dispatcher.execute(call, note_id=current.id)
            status = "✅" if result.success else "❌"
            print(f"\n{status} {call.name}")
            print(json.dumps(result.result if result.success else result.error, indent=2, default=str))


if __name__ == "__main__":
    asyncio.run(main())
