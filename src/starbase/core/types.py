"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class Channel(StrEnum):
    WEB = "web"
    DISCORD = "discord"
    CRON = "cron"


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class ModelTier(StrEnum):
    FAST = "fast"
    SMART = "smart"
