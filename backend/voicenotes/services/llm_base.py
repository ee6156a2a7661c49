"""
VoiceNotes Backend — Abstract LLM Service Interface
=====================================================

What:  Contract for AI text services used by the note editor's "sparkles"
       button.
How:   Concrete providers (GeminiService) implement rephrase() and
       health_check(); callers depend only on this interface.
"""

from abc import ABC, abstractmethod


class LLMService(ABC):
    """
    Abstract interface for AI-powered note rewriting.

    Contract:
        - rephrase() takes editor HTML and returns rewritten HTML
        - Implementations own their retry logic and error translation
        - Provider errors surface as LLMServiceError / CircuitBreakerOpenError
    """

    @abstractmethod
    async def rephrase(self, content: str) -> str:
        """
        Rewrite note content for clarity while keeping its meaning.

        Args:
            content: Note body as HTML produced by the rich-text editor.

        Returns:
            Rewritten HTML. Never empty.

        Raises:
            LLMServiceError: The provider failed after all retries or
                returned nothing.
            CircuitBreakerOpenError: Too many consecutive failures.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability probe; must not consume generation quota."""
        ...
