import asyncio
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from app.core.ai_client import DocumentPart, GenerationResult, UsageMetadata
from app.core.exceptions import APIClientError, APITimeoutError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class GeminiClient:
    """Wrapper for Google Gemini API client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        timeout: int = 120,
        max_retries: int = 1,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name to use
            timeout: Per-call timeout in seconds
            max_retries: Maximum attempts per call (1 disables retrying)
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max(1, max_retries)

        try:
            self.client = genai.Client(api_key=self.api_key)
            LOGGER.info(f"Initialized Gemini client with model {self.model}")
        except Exception as e:
            LOGGER.error(f"Failed to initialize Gemini client: {e}")
            raise APIClientError(f"Failed to initialize Gemini client: {e}", original_error=e)

    async def generate(
        self,
        prompt: str,
        document: Optional[DocumentPart] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> GenerationResult:
        """Generate text for a prompt, optionally grounded on an inline document.

        Args:
            prompt: Instruction text
            document: Optional document bytes sent as an inline part
            generation_config: Optional overrides (temperature, max_output_tokens)

        Returns:
            GenerationResult with the response text and token usage

        Raises:
            APITimeoutError: If the call exceeds the configured timeout
            APIClientError: If generation fails
        """
        config = types.GenerateContentConfig(temperature=0.0)
        if generation_config:
            if "temperature" in generation_config:
                config.temperature = generation_config["temperature"]
            if "max_output_tokens" in generation_config:
                config.max_output_tokens = generation_config["max_output_tokens"]

        parts = [types.Part.from_text(text=prompt)]
        if document is not None:
            parts.append(
                types.Part.from_bytes(data=document.data, mime_type=document.mime_type)
            )
        contents = [types.Content(role="user", parts=parts)]

        for attempt in range(self.max_retries):
            try:
                response = await asyncio.wait_for(
                    self.client.aio.models.generate_content(
                        model=self.model,
                        contents=contents,
                        config=config,
                    ),
                    timeout=self.timeout,
                )

                text = response.text or ""
                if not text:
                    LOGGER.warning("Empty response from Gemini")

                return GenerationResult(text=text, usage=self._extract_usage(response))

            except asyncio.TimeoutError as e:
                LOGGER.warning(
                    f"Gemini API timeout (Attempt {attempt + 1}/{self.max_retries})"
                )
                if attempt >= self.max_retries - 1:
                    raise APITimeoutError(
                        f"Gemini generation timed out after {self.timeout}s", original_error=e
                    )
            except Exception as e:
                LOGGER.warning(
                    f"Gemini API error (Attempt {attempt + 1}/{self.max_retries}): {e}"
                )
                if attempt >= self.max_retries - 1:
                    LOGGER.error(f"Gemini generation failed: {e}", exc_info=True)
                    raise APIClientError(f"Gemini generation failed: {e}", original_error=e)

            await asyncio.sleep(2 ** attempt)

        raise APIClientError("Gemini generation failed")

    @staticmethod
    def _extract_usage(response: Any) -> Optional[UsageMetadata]:
        usage = getattr(response, "usage_metadata", None)
        if usage is None:
            return None
        return UsageMetadata(
            prompt_units=getattr(usage, "prompt_token_count", None),
            output_units=getattr(usage, "candidates_token_count", None),
            total_units=getattr(usage, "total_token_count", None),
        )
