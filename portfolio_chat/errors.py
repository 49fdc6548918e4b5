class ChatError(Exception):
    """Base class for conversational-core errors."""


class ValidationError(ChatError, ValueError):
    """
    Turn request is missing a field its declared mode requires.
    Surfaced to the client as a 400; nothing is persisted.
    """


class ConversationNotFound(ChatError, LookupError):
    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ProviderUnavailable(ChatError):
    """
    No generative/embedding provider is configured, or the provider call failed.
    Always recovered inside the RAG pipeline / knowledge base.
    """


class TurnFailed(ChatError):
    """Unexpected failure during a turn; the turn's writes were rolled back."""


class KnowledgeBaseError(ChatError):
    pass
