"""Model client, prompts, conversation history and response parsing."""

from .client import ClientSettings, ModelClient
from .conversation import ConversationStore, ConversationTurn, FocusTracker, ImageBlock, TextBlock
from .response_parser import ModelResponse, parse_model_response

__all__ = [
    "ClientSettings",
    "ModelClient",
    "ConversationStore",
    "ConversationTurn",
    "FocusTracker",
    "ImageBlock",
    "TextBlock",
    "ModelResponse",
    "parse_model_response",
]
