"""
Exception types shared across the assistant.

Expected failures of tools and the model are reported through the ``error``
fields of the wire messages; these exceptions are what the orchestrator and
the clients raise to their own callers.
"""


class AssistantError(Exception):
    """An application-level failure the caller should report to the user."""


class RPCError(AssistantError):
    """The RPC layer could not be reached, timed out or answered with a transport error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MessageStoreError(AssistantError):
    """The message store failed to read or write."""


class SessionNotFoundError(AssistantError):
    """No session exists for the given id."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id
