# dayai_mcp_client/notes.py
"""In-memory notes and the local note tools offered to the model."""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .tool_dispatcher import ToolDispatcher

SNIPPET_CONTEXT = 50
SNIPPET_FALLBACK_LENGTH = 100


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Note(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    content: str = ""
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)


class NoteNotFoundError(LookupError):
    def __init__(self) -> None:
        super().__init__("Note not found")


def make_snippet(content: str, query: str) -> str:
    """Text around the first case-insensitive match of ``query``."""
    index = content.lower().find(query.lower())
    snippet = ""
    if index != -1:
        start = max(0, index - SNIPPET_CONTEXT)
        end = min(len(content), index + len(query) + SNIPPET_CONTEXT)
        snippet = (
            ("..." if start > 0 else "")
            + content[start:end]
            + ("..." if end < len(content) else "")
        )
    return snippet or content[:SNIPPET_FALLBACK_LENGTH] + "..."


class NoteBook:
    """Ordered note collection, newest first."""

    def __init__(self, notes: Optional[List[Note]] = None):
        self.notes: List[Note] = list(notes or [])

    def get(self, note_id: str) -> Optional[Note]:
        return next((n for n in self.notes if n.id == note_id), None)

    def find_by_title(self, title: str) -> Optional[Note]:
        wanted = title.lower()
        return next((n for n in self.notes if n.title.lower() == wanted), None)

    def create(self, title: str, content: str = "") -> Note:
        note = Note(title=title, content=content)
        self.notes.insert(0, note)
        return note

    def update_content(self, note_id: str, content: str) -> Note:
        note = self.get(note_id)
        if note is None:
            raise NoteNotFoundError()
        note.content = content
        note.updated_at = _now_iso()
        return note

    def search(self, query: str) -> List[Dict[str, Any]]:
        """Notes whose title or content contains ``query`` (case-insensitive)."""
        query_lower = query.lower()
        return [
            {
                "id": note.id,
                "title": note.title,
                "snippet": make_snippet(note.content, query),
                "updatedAt": note.updated_at,
            }
            for note in self.notes
            if query_lower in note.title.lower() or query_lower in note.content.lower()
        ]


NOTE_TOOL_DEFINITIONS: Dict[str, Dict[str, Any]] = {
    "update_note": {
        "name": "update_note",
        "description": (
            "Replace the entire content of the current note with new content. "
            "Use this when the user asks to edit, rewrite, or modify the note."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "content": {
                    "type": "string",
                    "description": "The new content for the note (plain text or simple HTML)",
                },
            },
            "required": ["content"],
        },
    },
    "search_notes": {
        "name": "search_notes",
        "description": (
            "Search through all notes by title or content. "
            "Returns matching notes with snippets."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query to match against note titles and content",
                },
            },
            "required": ["query"],
        },
    },
    "create_note": {
        "name": "create_note",
        "description": "Create a new note with the given title and content.",
        "input_schema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "The title for the new note"},
                "content": {
                    "type": "string",
                    "description": "The content for the new note (optional)",
                },
            },
            "required": ["title"],
        },
    },
    "read_note": {
        "name": "read_note",
        "description": (
            "Read the full content of another note by its ID or title. "
            "Use this when the user references another note."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "noteId": {
                    "type": "string",
                    "description": "The ID of the note to read (optional if title provided)",
                },
                "title": {
                    "type": "string",
                    "description": "The title of the note to read (optional if noteId provided)",
                },
            },
        },
    },
}


def register_note_tools(dispatcher: ToolDispatcher, notebook: NoteBook) -> None:
    """Register ``update_note``, ``search_notes``, ``create_note`` and ``read_note``."""

    def update_note(params: Dict[str, Any], note_id: Optional[str]) -> Dict[str, Any]:
        if note_id is None:
            raise NoteNotFoundError()
        notebook.update_content(note_id, params.get("content", ""))
        return {"message": "Note updated successfully"}

    def search_notes(params: Dict[str, Any], note_id: Optional[str]) -> Dict[str, Any]:
        matches = notebook.search(params.get("query", ""))
        return {"matches": matches, "count": len(matches)}

    def create_note(params: Dict[str, Any], note_id: Optional[str]) -> Dict[str, Any]:
        title = params.get("title")
        if not title:
            raise ValueError("A title is required")
        note = notebook.create(title, params.get("content") or "")
        return {
            "message": "Note created successfully",
            "noteId": note.id,
            "title": note.title,
        }

    def read_note(params: Dict[str, Any], note_id: Optional[str]) -> Dict[str, Any]:
        note = None
        if params.get("noteId"):
            note = notebook.get(params["noteId"])
        elif params.get("title"):
            note = notebook.find_by_title(params["title"])
        if note is None:
            raise NoteNotFoundError()
        return {
            "id": note.id,
            "title": note.title,
            "content": note.content,
            "createdAt": note.created_at,
            "updatedAt": note.updated_at,
        }

    handlers = {
        "update_note": update_note,
        "search_notes": search_notes,
        "create_note": create_note,
        "read_note": read_note,
    }
    for name, handler in handlers.items():
        dispatcher.register(name, handler, NOTE_TOOL_DEFINITIONS[name])
