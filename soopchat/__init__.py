from soopchat.client import SoopChatClient
from soopchat.config import ClientSettings, load_settings
from soopchat.shared.events import EventKind
from soopchat.state import Identifier, Token

__all__ = ["SoopChatClient", "ClientSettings", "load_settings", "EventKind", "Identifier", "Token"]
