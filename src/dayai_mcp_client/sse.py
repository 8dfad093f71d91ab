"""Server-Sent Events (SSE) decoding for MCP JSON-RPC responses."""

import json
from typing import Any, Dict, Iterable, List, Optional, Union


def iter_sse_data(lines: Iterable[str]) -> List[str]:
    """
    Collect the ``data`` payload of every event in an SSE stream.

    Events are separated by blank lines; several ``data`` lines within one
    event are joined with newlines.
    """
    events: List[str] = []
    current: List[str] = []

    for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if current:
                events.append("\n".join(current))
                current = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field == "data":
            current.append(value[1:] if value.startswith(" ") else value)

    if current:
        events.append("\n".join(current))
    return events


def parse_sse_json(
    lines: Iterable[str], request_id: Optional[Union[int, str]] = None
) -> Dict[str, Any]:
    """
    Parse the JSON-RPC message carried by an SSE response.

    Streamable HTTP servers answer a POST with one or more events:
        event: message
        data: {"jsonrpc":"2.0","id":1,"result":{...}}

    Args:
        lines: Lines of the response body
        request_id: JSON-RPC id to pick out; when None the last message wins

    Returns:
        The decoded JSON-RPC message

    Raises:
        ValueError: If the stream has no data, or no message with request_id
        json.JSONDecodeError: If a data payload is not valid JSON
    """
    payloads = iter_sse_data(lines)
    if not payloads:
        raise ValueError("No data lines in SSE response")

    messages = [json.loads(payload) for payload in payloads]
    if request_id is None:
        return messages[-1]

    for message in messages:
        if isinstance(message, dict) and message.get("id") == request_id:
            return message
    raise ValueError(f"No response with id {request_id!r} in SSE response")
