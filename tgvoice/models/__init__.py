from tgvoice.models.base import Base
from tgvoice.models.user import User
from tgvoice.models.server import Server, ServerMember
from tgvoice.models.channel import Channel, ChannelMember

__all__ = [
    "Base",
    "User",
    "Server",
    "ServerMember",
    "Channel",
    "ChannelMember",
]
