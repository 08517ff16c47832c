from chathome.models.conversation import ChatMessage, Conversation
from chathome.models.relay import RelayedMessage
from chathome.models.user import Role, User

__all__ = ["ChatMessage", "Conversation", "RelayedMessage", "Role", "User"]
