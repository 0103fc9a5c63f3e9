"""
In-process chat client controllers
"""

from carmarket.chat.entries import EntryStatus, LocalEntry, RenderedMessage
from carmarket.chat.inbox import InboxWatcher
from carmarket.chat.session import ChatSession, SessionState

__all__ = [
    "EntryStatus",
    "LocalEntry",
    "RenderedMessage",
    "InboxWatcher",
    "ChatSession",
    "SessionState",
]
