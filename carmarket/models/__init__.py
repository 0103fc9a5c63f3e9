"""
Carmarket Chat Models
"""

from carmarket.models.profiles import Profile
from carmarket.models.blocked_users import BlockedUser
from carmarket.models.chat_rooms import ChatRoom
from carmarket.models.chat_messages import ChatMessage
from carmarket.models.typing_indicators import TypingIndicator
