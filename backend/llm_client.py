"""Anthropic LLM client used for drill generation.

Calls are synchronous and throttled by a sliding one-minute window. Transient
API failures are retried with exponential backoff; anything else propagates
to the caller, which decides whether a missing drill matters.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass

import anthropic
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.config import settings

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


class RequestThrottle:
    """Allow at most ``per_minute`` requests in any 60 second window."""

    window = 60.0

    def __init__(self, per_minute: int) -> None:
        self.per_minute = per_minute
        self._sent: deque[float] = deque()
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            now = time.monotonic()
            while self._sent and now - self._sent[0] > self.window:
                self._sent.popleft()
            if len(self._sent) >= self.per_minute:
                delay = self.window - (now - self._sent[0])
                if delay > 0:
                    logger.info("LLM request limit reached, waiting %.1fs", delay)
                    time.sleep(delay)
            self._sent.append(time.monotonic())


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, usage) -> None:
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens

    @property
    def cost_usd(self) -> float:
        per_token_in = settings.llm_input_price_per_million / 1_000_000
        per_token_out = settings.llm_output_price_per_million / 1_000_000
        return round(self.input_tokens * per_token_in + self.output_tokens * per_token_out, 4)


class LLMClient:
    def __init__(self, timeout: float | None = None) -> None:
        # tenacity owns retries, so the SDK's own are disabled
        self.client = anthropic.Anthropic(
            api_key=settings.anthropic_api_key,
            timeout=timeout or settings.anthropic_timeout_seconds,
            max_retries=0,
        )
        self.model = settings.anthropic_model
        self.throttle = RequestThrottle(settings.anthropic_rate_limit_rpm)
        self.usage = TokenUsage()

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.anthropic_max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    def create_message(
        self,
        prompt: str,
        system: str = "",
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> str:
        """Send a single user turn and return the text of the first content block."""
        self.throttle.wait()
        request: dict = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system
        message = self.client.messages.create(**request)
        self.usage.add(message.usage)
        logger.debug(
            "LLM call used %d input / %d output tokens (running cost $%.4f)",
            message.usage.input_tokens,
            message.usage.output_tokens,
            self.usage.cost_usd,
        )
        return message.content[0].text

    def get_cost_estimate(self) -> dict[str, float]:
        return {
            "input_tokens": self.usage.input_tokens,
            "output_tokens": self.usage.output_tokens,
            "estimated_cost_usd": self.usage.cost_usd,
        }


_llm_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    """Return the process-wide client, building it on first use."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
