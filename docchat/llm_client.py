"""OpenAI-compatible LLM client wrapper with error handling."""
from typing import Dict, List, Optional

import httpx
import structlog

from docchat import config
from docchat.errors import GenerationError

logger = structlog.get_logger()

HOSTED_OPENAI_URL = "https://api.openai.com/v1"


class LLMClient:
    """Async client for an OpenAI-compatible chat/embeddings API."""

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL (defaults to config.LLM_BASE_URL)
            api_key: Bearer token (defaults to config.OPENAI_API_KEY)
            timeout: Request timeout in seconds (defaults to config.LLM_TIMEOUT)
            transport: Optional httpx transport, used to stub the API in tests
        """
        self.base_url = (base_url or config.LLM_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.timeout = timeout or config.LLM_TIMEOUT
        self._transport = transport

    def validate(self) -> None:
        """Check that an API key is configured when talking to the hosted API.

        Raises:
            EnvironmentError: If the key is missing
        """
        if self.base_url == HOSTED_OPENAI_URL and not self.api_key:
            raise EnvironmentError(
                "Missing required environment variable: OPENAI_API_KEY. "
                "Set it in your .env file or environment."
            )

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            timeout=timeout or self.timeout,
            headers=headers,
            transport=self._transport,
        )

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Dict:
        """Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to config.CHAT_MODEL)
            temperature: Sampling temperature
            max_tokens: Upper bound on generated tokens

        Returns:
            Response dict with 'choices'

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or config.CHAT_MODEL

        payload = {
            "model": model,
            "messages": messages,
        }

        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        try:
            async with self._client() as client:
                logger.info(
                    "llm_chat_request",
                    model=model,
                    message_count=len(messages),
                )

                response = await client.post(f"{self.base_url}/chat/completions", json=payload)
                response.raise_for_status()

                data = response.json()

                logger.info("llm_chat_response", model=model)

                return data

        except httpx.ConnectError as e:
            logger.error("llm_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "llm_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

    async def embeddings(self, text: str, model: str = None) -> Dict:
        """Generate an embedding for a text.

        Args:
            text: Text to embed
            model: Model to use (defaults to config.EMBEDDING_MODEL)

        Returns:
            Response dict with 'data'[0]['embedding']

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or config.EMBEDDING_MODEL

        payload = {
            "model": model,
            "input": text,
        }

        try:
            async with self._client() as client:
                logger.debug("llm_embedding_request", model=model, text_length=len(text))

                response = await client.post(f"{self.base_url}/embeddings", json=payload)
                response.raise_for_status()

                return response.json()

        except httpx.HTTPError as e:
            logger.error("llm_embedding_error", error=str(e))
            raise

    async def list_models(self) -> List[str]:
        """List model ids available to the configured key.

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/models")
                response.raise_for_status()
                data = response.json()
                return [m["id"] for m in data.get("data", [])]
        except httpx.HTTPError as e:
            logger.error("llm_list_models_error", error=str(e))
            raise


class TextGenerator:
    """Produces an assistant reply from a system prompt and a conversation."""

    def __init__(
        self,
        client: LLMClient = None,
        model: str = None,
        temperature: float = None,
        max_tokens: int = None,
    ):
        self.client = client or LLMClient()
        self.model = model or config.CHAT_MODEL
        self.temperature = (
            config.GENERATION_TEMPERATURE if temperature is None else temperature
        )
        self.max_tokens = max_tokens or config.GENERATION_MAX_TOKENS

    async def generate(self, system_prompt: str, history: List[Dict[str, str]]) -> str:
        """Generate a reply.

        Args:
            system_prompt: Instruction placed before the conversation
            history: Conversation in chronological order, role/content dicts

        Returns:
            The reply text

        Raises:
            GenerationError: If the provider fails or returns no text
        """
        messages = [{"role": "system", "content": system_prompt}] + list(history)

        try:
            data = await self.client.chat(
                messages,
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            content = data["choices"][0]["message"]["content"]
        except httpx.HTTPError as e:
            raise GenerationError(f"Failed to generate response: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("llm_malformed_chat_response", error=str(e))
            raise GenerationError("Malformed response from text generator") from e

        if not content or not content.strip():
            raise GenerationError("Empty response from text generator")

        return content
