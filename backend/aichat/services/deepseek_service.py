"""
DeepSeek service for chat completions via the OpenAI-compatible API.
"""

from openai import AsyncOpenAI, APIError, APIStatusError
from dataclasses import dataclass
from typing import AsyncGenerator, Any, Dict, List, Optional
import asyncio
import json
import logging

import aiohttp

from ..config import Settings
from ..exceptions import ConfigurationError, UpstreamError


logger = logging.getLogger(__name__)

NO_API_KEY_REPLY = "API key is not configured, unable to connect to the DeepSeek service"

SSE_DATA_PREFIX = "data: "
SSE_DONE = "[DONE]"


@dataclass(frozen=True)
class StreamDelta:
    """Incremental answer text plus optional reasoning text."""
    content: str = ""
    thinking: str = ""


@dataclass(frozen=True)
class StreamEvent:
    """One parsed event-stream line."""
    delta: Optional[StreamDelta] = None
    done: bool = False


def parse_stream_line(line: str) -> Optional[StreamEvent]:
    """
    Parse one line of a chat-completion event stream.

    Returns None for lines that carry nothing usable (blank lines,
    comments, malformed JSON, chunks without choices).
    """
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None

    data = line[len(SSE_DATA_PREFIX):].strip()
    if data == SSE_DONE:
        return StreamEvent(done=True)

    try:
        chunk = json.loads(data)
    except json.JSONDecodeError:
        return None

    choices = chunk.get("choices") if isinstance(chunk, dict) else None
    if not choices or not isinstance(choices[0], dict):
        return None

    choice = choices[0]
    delta = choice.get("delta") or {}
    return StreamEvent(
        delta=StreamDelta(
            content=delta.get("content") or "",
            thinking=delta.get("reasoning_content") or ""
        ),
        done=choice.get("finish_reason") is not None
    )


class DeepSeekService:
    """Client for a DeepSeek-compatible chat-completion API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.deepseek.com/v1",
        model: str = "deepseek-chat",
        reasoner_model: str = "deepseek-reasoner",
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout: Optional[float] = None
    ):
        self.api_key = api_key or ""
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.reasoner_model = reasoner_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout or None

        # The SDK refuses to build without a key; degraded mode never calls it
        self.client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=self.api_key,
            timeout=self.timeout
        ) if self.api_key else None

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeepSeekService":
        return cls(
            api_key=settings.DEEPSEEK_API_KEY,
            base_url=settings.DEEPSEEK_BASE_URL,
            model=settings.DEEPSEEK_MODEL,
            reasoner_model=settings.DEEPSEEK_REASONER_MODEL,
            temperature=settings.DEEPSEEK_TEMPERATURE,
            max_tokens=settings.DEEPSEEK_MAX_TOKENS,
            timeout=settings.DEEPSEEK_TIMEOUT
        )

    def _select_model(self, deep_thinking: bool) -> str:
        return self.reasoner_model if deep_thinking else self.model

    def _require_api_key(self) -> None:
        if not self.api_key:
            raise ConfigurationError("DEEPSEEK_API_KEY is not configured")

    def _build_payload(self, prompt: str, deep_thinking: bool, stream: bool) -> Dict[str, Any]:
        return {
            "model": self._select_model(deep_thinking),
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": stream
        }

    async def _iter_lines(self, payload: Dict[str, Any]) -> AsyncGenerator[str, None]:
        """
        POST the request and yield the response body line by line.

        A plain JSON body (provider without streaming support) is turned
        into a single synthetic event line followed by the terminator.
        """
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "text/event-stream"
        }
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=headers
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise UpstreamError(
                        f"API request failed with status {response.status}: {body}",
                        status_code=response.status,
                        body=body
                    )

                if "text/event-stream" not in response.headers.get("Content-Type", ""):
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        data = None
                    if not isinstance(data, dict):
                        body = await response.text()
                        raise UpstreamError(
                            "Unreadable API response",
                            status_code=response.status,
                            body=body
                        )
                    choices = data.get("choices") or []
                    if not choices or not isinstance(choices[0], dict):
                        raise UpstreamError("No answer in API response", status_code=response.status, body=json.dumps(data))
                    message = choices[0].get("message") or {}
                    chunk = {
                        "choices": [{
                            "delta": {
                                "content": message.get("content") or "",
                                "reasoning_content": message.get("reasoning_content") or ""
                            },
                            "finish_reason": choices[0].get("finish_reason") or "stop"
                        }]
                    }
                    yield SSE_DATA_PREFIX + json.dumps(chunk)
                    yield SSE_DATA_PREFIX + SSE_DONE
                    return

                async for raw_line in response.content:
                    yield raw_line.decode("utf-8", errors="replace")

    async def stream_completion(
        self,
        prompt: str,
        deep_thinking: bool = False
    ) -> AsyncGenerator[StreamDelta, None]:
        """
        Stream the answer to a single prompt.

        Yields StreamDelta items until the terminator, a finish marker or the
        end of the body. Without an API key a single diagnostic delta is
        yielded and no request is made.

        Raises:
            UpstreamError: on a non-2xx status, transport failure or timeout
        """
        try:
            self._require_api_key()
        except ConfigurationError as e:
            logger.warning("%s, answering with diagnostic text", e.message)
            yield StreamDelta(content=NO_API_KEY_REPLY)
            return

        payload = self._build_payload(prompt, deep_thinking, stream=True)
        lines = self._iter_lines(payload)
        try:
            async for line in lines:
                event = parse_stream_line(line)
                if event is None:
                    continue
                if event.delta and (event.delta.content or event.delta.thinking):
                    yield event.delta
                if event.done:
                    break
        except aiohttp.ClientError as e:
            raise UpstreamError(f"Failed to read from DeepSeek API: {e}") from e
        except asyncio.TimeoutError as e:
            raise UpstreamError("DeepSeek API request timed out") from e
        finally:
            await lines.aclose()

    async def completion(self, prompt: str, deep_thinking: bool = False) -> str:
        """Non-streaming answer to a single prompt."""
        try:
            self._require_api_key()
        except ConfigurationError as e:
            logger.warning("%s, answering with diagnostic text", e.message)
            return NO_API_KEY_REPLY

        payload = self._build_payload(prompt, deep_thinking, stream=False)
        try:
            response = await self.client.chat.completions.create(
                model=payload["model"],
                messages=payload["messages"],
                temperature=payload["temperature"],
                max_tokens=payload["max_tokens"],
                stream=False
            )
        except APIStatusError as e:
            raise UpstreamError(
                f"API request failed with status {e.status_code}: {e.response.text}",
                status_code=e.status_code,
                body=e.response.text
            ) from e
        except APIError as e:
            raise UpstreamError(f"Failed to call DeepSeek API: {e}") from e

        if not response.choices:
            raise UpstreamError("No answer in API response")
        return response.choices[0].message.content or ""

    async def list_models(self) -> List[Dict[str, Any]]:
        """List available models from the API."""
        if self.client is None:
            return []
        try:
            response = await self.client.models.list()
        except APIError as e:
            logger.error("Error listing models: %s", e)
            return []
        return [
            {
                "id": model.id,
                "owned_by": getattr(model, "owned_by", "unknown"),
                "created": getattr(model, "created", None)
            }
            for model in response.data
        ]
