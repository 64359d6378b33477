"""Client for the voice chat backend."""

from .api import ChatClientError, VoiceChatClient
from .conversation import ConversationLog, ConversationMessage
from .poller import PendingReply, PollState, ResponsePoller

__all__ = [
    "ChatClientError",
    "ConversationLog",
    "ConversationMessage",
    "PendingReply",
    "PollState",
    "ResponsePoller",
    "VoiceChatClient",
]
