import time
from typing import Dict, List, Optional

import httpx
from openai import APIError, AsyncOpenAI

from opsmate.config import Config
from opsmate.models.tool import Translation
from opsmate.services.response_parser import ParseError, ResponseParser
from opsmate.utils.errors import InferenceFailure
from opsmate.utils.logger import setup_logger

logger = setup_logger(__name__)

SYSTEM_PROMPT = (
    "You are an operations assistant for kubectl, docker, SQL, drush, nginx, "
    "apache2 and network diagnostics. "
    "Reply with a single JSON object and nothing else."
)


class OpenAIService:
    """Inference oracle backed by any OpenAI-compatible endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
        parser: Optional[ResponseParser] = None,
    ):
        self.base_url = base_url or Config.OPSMATE_BASE_URL
        self.model = model or Config.OPSMATE_MODEL
        self.parser = parser or ResponseParser()
        read_timeout = timeout or Config.OPSMATE_TIMEOUT
        logger.info(f"Connecting to {self.base_url} with model {self.model}")
        logger.info(f"Request timeout: {read_timeout}s")

        if client is not None:
            self.client = client
        else:
            # Slow local models need a generous read timeout
            http_timeout = httpx.Timeout(
                connect=30.0,
                read=read_timeout,
                write=30.0,
                pool=30.0,
            )
            self.client = AsyncOpenAI(
                base_url=self.base_url,
                api_key=api_key or Config.OPSMATE_API_KEY,
                timeout=http_timeout,
            )
        self.last_telemetry: Dict[str, object] = {}

    async def complete(self, prompt: str, system: str = SYSTEM_PROMPT) -> str:
        """
        Send one prompt and return the raw reply text.

        Raises:
            InferenceFailure: If the endpoint is unreachable or errors.
        """
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ]
        start_time = time.time()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                stream=False,
            )
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"Inference request failed: {e}")
            raise InferenceFailure(f"Inference backend error: {e}") from e

        if not response.choices:
            raise InferenceFailure("Inference backend returned no choices")

        self.last_telemetry = {
            "model": self.model,
            "total_time": time.time() - start_time,
        }
        if response.usage:
            self.last_telemetry["usage"] = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        logger.info(f"Completion finished. Stats: {self.last_telemetry}")
        return response.choices[0].message.content or ""

    async def infer(self, prompt: str) -> Translation:
        """
        Translate a prompt into a candidate command.

        Raises:
            InferenceFailure: On transport errors or an unparseable reply.
        """
        text = await self.complete(prompt)
        try:
            return self.parser.parse_translation(text)
        except ParseError as e:
            raise InferenceFailure(str(e)) from e
