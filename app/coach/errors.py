"""Error types for the coach turn protocol.

Transport and protocol errors are raised inside a turn and converted into
timeline blocks at the session boundary; they never escape `send_prompt`.
"""

import httpx


class CoachApiError(Exception):
    """Raised when the coach server answers with a non-2xx status."""

    def __init__(self, status_code: int, detail: str | None = None):
        self.status_code = status_code
        self.detail = detail
        if detail:
            self.message = f"Coach API failed ({status_code}): {detail}"
        else:
            self.message = f"Coach API failed ({status_code})"
        super().__init__(self.message)


class StreamProtocolError(Exception):
    """Raised when a streaming response breaks the turn contract.

    Covers a missing body and a stream that closes before the `final` event.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class SealedEntryError(Exception):
    """Raised when a finished timeline entry is mutated.

    This is a developer error: entries become immutable once their turn
    reaches `final` or fails.
    """

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        self.message = f"Timeline entry {entry_id} is sealed and cannot be modified"
        super().__init__(self.message)


def error_detail(response: httpx.Response) -> str | None:
    """Extract the optional `{error}` message from an error response body."""
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and "error" in data:
        return str(data["error"])
    return None
