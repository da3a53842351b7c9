"""
Grid Chat – SQLAlchemy ORM models package.

Imports all model classes so the metadata sees every table
through a single ``import gridchat.models``.
"""

from gridchat.models.member import Member                  # noqa: F401
from gridchat.models.championship import Championship      # noqa: F401
from gridchat.models.chat_room import ChatRoom, RoomType   # noqa: F401
from gridchat.models.chat_message import ChatMessage       # noqa: F401
from gridchat.models.message_like import MessageLike       # noqa: F401
from gridchat.models.notification import Notification, NotificationType  # noqa: F401
