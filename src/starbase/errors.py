"""Error taxonomy for the agent engine.

Only errors that abort a turn before or during orchestration are raised to
callers. Tool failures travel back to the model as data and bound
exhaustion is reported as a degraded success, so neither appears here as a
turn-level failure.
"""

from __future__ import annotations


class StarbaseError(Exception):
    """Base class for all engine errors."""


class AuthError(StarbaseError):
    """The caller is not authenticated."""


class ConversationNotFound(AuthError):
    """The conversation does not exist or belongs to someone else."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ValidationError(StarbaseError):
    """The inbound request is malformed (e.g. empty message)."""


class ProviderError(StarbaseError):
    """The LLM provider call failed; the turn is aborted."""


class ToolError(StarbaseError):
    """Expected failure raised by a tool, e.g. invalid arguments."""


class IdentityResolutionError(StarbaseError):
    """An external platform identity is not linked to an internal user."""

    def __init__(self, platform: str, external_id: str):
        super().__init__(f"No linked account for {platform} user {external_id}")
        self.platform = platform
        self.external_id = external_id
