"""Dependency injection for API routes.

Long-lived service objects are created at startup and hung off
``app.state``; routes receive them through these helpers.
"""
from fastapi import Request

import genai_demo.core.config as config_module
from genai_demo.services.analytics import AnalyticsTracker
from genai_demo.services.conversation_store import ConversationStore
from genai_demo.services.file_search_session import FileSearchSession


def get_settings():
    """Get application settings."""
    return config_module.settings


def get_session(request: Request) -> FileSearchSession:
    return request.app.state.file_search


def get_analytics(request: Request) -> AnalyticsTracker:
    return request.app.state.analytics


def get_conversations(request: Request) -> ConversationStore:
    return request.app.state.conversations
