# dayai_mcp_client/token_manager.py
"""File-backed storage of server registrations, tokens and connection flags."""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .config import default_state_dir
from .oauth_config import ClientRegistration, ServerRecord, TokenSet

logger = logging.getLogger(__name__)


class ConnectionStore:
    """Persists one ``ServerRecord`` per server as a user-only JSON file."""

    def __init__(self, state_dir: Optional[Path] = None):
        """
        Initialize connection store.

        Args:
            state_dir: Directory for record files (default: $DAY_AI_STATE_DIR
                or ~/.dayai_mcp/servers)
        """
        self.state_dir = state_dir or default_state_dir()
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _sanitize_name(self, server_id: str) -> str:
        """Sanitize server id for filesystem."""
        return "".join(c if c.isalnum() or c in "-_" else "_" for c in server_id)

    def _get_record_path(self, server_id: str) -> Path:
        return self.state_dir / f"{self._sanitize_name(server_id)}.json"

    def save_record(self, record: ServerRecord) -> None:
        """
        Write a server record, replacing any previous one.

        Args:
            record: Record to persist
        """
        path = self._get_record_path(record.server_id)
        tmp_path = path.with_suffix(".json.tmp")

        with open(tmp_path, "w") as f:
            json.dump(record.model_dump(mode="json"), f, indent=2)

        # Set file permissions to user-only read/write
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, path)

    def load_record(self, server_id: str) -> Optional[ServerRecord]:
        """
        Load the record for a server.

        Returns:
            The record if found and readable, None otherwise
        """
        path = self._get_record_path(server_id)
        if not path.exists():
            return None

        try:
            with open(path, "r") as f:
                return ServerRecord.model_validate(json.load(f))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable record for {server_id}: {e}")
            return None

    def delete_record(self, server_id: str) -> bool:
        """
        Delete the record for a server.

        Returns:
            True if a record was deleted, False if it didn't exist
        """
        path = self._get_record_path(server_id)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_records(self) -> List[ServerRecord]:
        """All readable records, sorted by server id."""
        records = []
        for path in sorted(self.state_dir.glob("*.json")):
            record = self.load_record(path.stem)
            if record is not None:
                records.append(record)
        return records

    def save_tokens(self, server_id: str, tokens: TokenSet) -> None:
        """
        Update the tokens of an existing record.

        Used as the refresh callback so rotated tokens reach disk before the
        refresh returns.
        """
        record = self.load_record(server_id)
        if record is None:
            logger.warning(f"No record for {server_id}, refreshed tokens not persisted")
            return
        record.tokens = tokens.model_copy()
        self.save_record(record)
        logger.debug(f"Persisted refreshed tokens for {server_id}")

    def load_registration(self, server_id: str) -> Optional[ClientRegistration]:
        record = self.load_record(server_id)
        return record.registration if record else None

    def has_valid_tokens(self, server_id: str, now: Optional[float] = None) -> bool:
        """True if the server has tokens that are not expired."""
        record = self.load_record(server_id)
        if record is None or record.tokens is None:
            return False
        return not record.tokens.is_expired(now)
