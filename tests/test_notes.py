"""Tests for the local note tools."""

import pytest

from dayai_mcp_client.notes import Note, NoteBook, make_snippet, register_note_tools
from dayai_mcp_client.tool_dispatcher import ToolCall, ToolDispatcher


class TestMakeSnippet:
    """Test search snippets."""

    def test_context_around_match(self):
        content = "a" * 100 + "needle" + "b" * 100
        snippet = make_snippet(content, "NEEDLE")
        assert snippet == "..." + "a" * 50 + "needle" + "b" * 50 + "..."

    def test_match_near_start(self):
        assert make_snippet("needle in a haystack", "needle") == "needle in a haystack"

    def test_title_only_match_falls_back(self):
        assert make_snippet("x" * 150, "title") == "x" * 100 + "..."


class TestNoteTools:
    """Test note tools through the dispatcher."""

    @pytest.fixture
    def notebook(self):
        return NoteBook(
            [
                Note(id="n1", title="Acme call", content="Discussed renewal with Acme."),
                Note(id="n2", title="Groceries", content="Milk, eggs"),
            ]
        )

    @pytest.fixture
    def dispatcher(self, notebook):
        dispatcher = ToolDispatcher()
        register_note_tools(dispatcher, notebook)
        return dispatcher

    async def run(self, dispatcher, name, note_id=None, **parameters):
        return await dispatcher.execute(
            ToolCall(id="call", name=name, parameters=parameters), note_id=note_id
        )

    async def test_definitions_registered(self, dispatcher):
        names = [d["name"] for d in dispatcher.tool_definitions()]
        assert names == ["update_note", "search_notes", "create_note", "read_note"]

    async def test_update_note(self, dispatcher, notebook):
        before = notebook.get("n1").updated_at

        result = await self.run(dispatcher, "update_note", note_id="n1", content="New text")

        assert result.success is True
        assert result.result == {"message": "Note updated successfully"}
        assert notebook.get("n1").content == "New text"
        assert notebook.get("n1").updated_at >= before

    async def test_update_missing_note(self, dispatcher):
        result = await self.run(dispatcher, "update_note", note_id="zzz", content="x")
        assert result.success is False
        assert result.error == "Note not found"

    async def test_search_notes(self, dispatcher):
        """Test case-insensitive search over titles and content."""
        result = await self.run(dispatcher, "search_notes", query="acme")

        assert result.result["count"] == 1
        match = result.result["matches"][0]
        assert match["id"] == "n1"
        assert "Acme" in match["snippet"]

    async def test_create_note_prepends(self, dispatcher, notebook):
        result = await self.run(dispatcher, "create_note", title="Ideas")

        assert result.success is True
        assert result.result["title"] == "Ideas"
        assert notebook.notes[0].id == result.result["noteId"]
        assert notebook.notes[0].content == ""

    async def test_create_note_requires_title(self, dispatcher):
        result = await self.run(dispatcher, "create_note", content="no title")
        assert result.success is False

    async def test_read_note_by_id(self, dispatcher):
        result = await self.run(dispatcher, "read_note", noteId="n2")
        assert result.result["content"] == "Milk, eggs"

    async def test_read_note_by_title(self, dispatcher):
        result = await self.run(dispatcher, "read_note", title="ACME CALL")
        assert result.result["id"] == "n1"

    async def test_read_note_not_found(self, dispatcher):
        result = await self.run(dispatcher, "read_note", title="Missing")
        assert result.error == "Note not found"
