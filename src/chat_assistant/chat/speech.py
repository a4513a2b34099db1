"""Speech output collaborator."""

from abc import ABC, abstractmethod


class SpeechInterrupted(Exception):
    """Raised when speech is cut off by cancel(). Expected, not an error."""


class CapabilityUnavailableError(Exception):
    """A voice capability was requested but none is configured."""


class SpeechOutput(ABC):
    """Text-to-speech sink."""

    @abstractmethod
    async def speak(self, text: str) -> None:
        pass

    @abstractmethod
    async def cancel(self) -> None:
        """Stop any utterance in progress. May raise SpeechInterrupted."""
        pass
