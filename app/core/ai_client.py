"""Contract for the text-generation service used by the pipeline."""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class DocumentPart:
    """Binary document sent alongside a prompt."""
    mime_type: str
    data: bytes


@dataclass(frozen=True)
class UsageMetadata:
    """Token accounting reported by the model for one call."""
    prompt_units: Optional[int] = None
    output_units: Optional[int] = None
    total_units: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "prompt_units": self.prompt_units,
            "output_units": self.output_units,
            "total_units": self.total_units,
        }


@dataclass(frozen=True)
class GenerationResult:
    """Text returned by the model plus optional usage metadata."""
    text: str
    usage: Optional[UsageMetadata] = None


class AIClient(Protocol):
    """Anything that turns a prompt (and optionally a document) into text.

    Implementations raise ``APIClientError`` (or ``APITimeoutError``) on
    transport or quota failures. Callers treat one ``generate`` call as one
    logical step and never retry it themselves.
    """

    async def generate(
        self,
        prompt: str,
        document: Optional[DocumentPart] = None,
    ) -> GenerationResult:
        ...
