class ChatbotError(Exception):
    """Base class for errors raised inside the chatbot package."""


class ProviderError(ChatbotError):
    """The model provider refused or broke off a generation request."""


class StoreError(ChatbotError):
    """The conversation store rejected an insert, update or query."""


class IdentityError(ChatbotError):
    """Sign-in, sign-up or identity resolution failed."""
