"""Completion gateway for streaming Groq chat completions."""
import asyncio
import logging
import time
from typing import Any, AsyncIterator, Optional, Sequence

import httpx
from groq import AsyncGroq
from groq import (
    RateLimitError,
    AuthenticationError,
    APIError,
    APITimeoutError,
    APIConnectionError,
)

from config import Settings
from models.chat import ContentDelta, PromptMessage
from services.errors import GatewayUnavailableError, StreamInterruptedError

logger = logging.getLogger(__name__)


class DeltaStream:
    """
    Single-pass async iterator over the deltas of one completion.

    Deltas are yielded as they arrive from upstream, empty ones included.
    A transport failure or an undecodable chunk after the handshake ends
    iteration with StreamInterruptedError; deltas already yielded stay valid.
    """

    def __init__(self, stream: Any, model: str, started_at: float):
        self._stream = stream
        self.model = model
        self._started_at = started_at
        self._consumed = False
        self._closed = False
        self.deltas_received = 0
        self.finish_reason: Optional[str] = None

    def __aiter__(self) -> AsyncIterator[ContentDelta]:
        if self._consumed:
            raise RuntimeError("DeltaStream can only be iterated once")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ContentDelta]:
        try:
            async for chunk in self._stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.finish_reason:
                    self.finish_reason = choice.finish_reason
                self.deltas_received += 1
                yield ContentDelta(text=choice.delta.content or "")

            latency_ms = int((time.time() - self._started_at) * 1000)
            logger.info(
                f"Completion stream finished: model={self.model}, "
                f"deltas={self.deltas_received}, finish_reason={self.finish_reason}, "
                f"latency={latency_ms}ms",
                extra={"model": self.model, "latency_ms": latency_ms},
            )
        except (APIError, httpx.HTTPError, httpx.StreamError, ValueError) as e:
            raise StreamInterruptedError(
                f"Completion stream interrupted: {str(e)}",
                details={
                    "model": self.model,
                    "deltas_received": self.deltas_received,
                    "original_error": str(e),
                    "error_type": type(e).__name__,
                },
            ) from e
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Tear down the upstream response. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._stream.close()
        logger.debug(f"Closed upstream completion stream for model={self.model}")


class CompletionGateway:
    """Client for opening streaming chat completions against the Groq API."""

    def __init__(self, settings: Settings):
        """
        Initialize the gateway from settings.

        Args:
            settings: Process settings; supplies the API key, timeout and sampling options
        """
        if not settings.groq_api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.connect_timeout = settings.gateway_connect_timeout
        self.max_tokens = settings.max_tokens
        self.temperature = settings.temperature
        # Reads are unbounded once streaming; only connection setup is timed
        self.client = AsyncGroq(
            api_key=settings.groq_api_key,
            timeout=httpx.Timeout(None, connect=self.connect_timeout),
            max_retries=0,
        )
        logger.info("CompletionGateway initialized successfully")

    async def stream_completion(
        self,
        messages: Sequence[PromptMessage],
        model_id: str,
    ) -> DeltaStream:
        """
        Open a streaming completion and return its delta stream.

        Args:
            messages: Ordered prompt messages
            model_id: Groq model identifier

        Returns:
            DeltaStream positioned before the first delta

        Raises:
            GatewayUnavailableError: The endpoint could not be reached or refused the request
        """
        start_time = time.time()
        logger.debug(f"Opening completion stream with model: {model_id}")

        try:
            stream = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=model_id,
                    messages=[message.to_dict() for message in messages],
                    stream=True,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
                timeout=self.connect_timeout,
            )
        except (asyncio.TimeoutError, APITimeoutError) as e:
            raise self._unavailable(
                "TIMEOUT_ERROR", "Request timed out. Please try again.", model_id, start_time, e
            ) from e
        except RateLimitError as e:
            raise self._unavailable(
                "RATE_LIMIT_ERROR",
                "Rate limit exceeded. Please try again in a few moments.",
                model_id,
                start_time,
                e,
                retry_after=60,
            ) from e
        except AuthenticationError as e:
            raise self._unavailable(
                "AUTHENTICATION_ERROR",
                "Authentication failed. Please check your API key.",
                model_id,
                start_time,
                e,
            ) from e
        except APIConnectionError as e:
            raise self._unavailable(
                "CONNECTION_ERROR", "Failed to connect to AI service", model_id, start_time, e
            ) from e
        except APIError as e:
            raise self._unavailable(
                "API_ERROR", f"Groq API error: {str(e)}", model_id, start_time, e
            ) from e

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Completion stream opened: model={model_id}, messages={len(messages)}, "
            f"latency={latency_ms}ms",
            extra={"model": model_id, "latency_ms": latency_ms},
        )
        return DeltaStream(stream, model_id, start_time)

    @staticmethod
    def _unavailable(
        code: str,
        message: str,
        model: str,
        start_time: float,
        original: BaseException,
        **extra_details: Any,
    ) -> GatewayUnavailableError:
        latency_ms = int((time.time() - start_time) * 1000)
        details = {
            "model": model,
            "latency_ms": latency_ms,
            "original_error": str(original),
            **extra_details,
        }
        logger.error(
            f"Completion gateway unavailable ({code}): model={model}, "
            f"latency={latency_ms}ms, error={original}",
            extra={"error_code": code, "error_details": details},
        )
        return GatewayUnavailableError(message, code=code, details=details)
