import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol

import openai
from openai import AsyncOpenAI

from brutal_coach.errors import CompletionFailed
from brutal_coach.prompts import PromptTemplate

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RATE_LIMIT_WAIT_MS = 5000
# Discord interaction tokens expire after 15 minutes; a deferred reply must land before that.
DEFAULT_MAX_RATE_LIMIT_WAIT_MS = 60000


# ═══════════════════════════════════════════════════
#  FAILURE CLASSIFICATION
# ═══════════════════════════════════════════════════

class RateLimitPolicy(Protocol):
    def is_rate_limited(self, error: BaseException) -> bool: ...

    def retry_hint_millis(self, error: BaseException) -> Optional[int]: ...


class OpenAIRateLimitPolicy:
    """Classifies errors raised by the openai SDK (and OpenAI-compatible providers like Groq)."""

    def is_rate_limited(self, error: BaseException) -> bool:
        if isinstance(error, openai.RateLimitError):
            return True
        return getattr(error, "status_code", None) == 429

    def retry_hint_millis(self, error: BaseException) -> Optional[int]:
        response = getattr(error, "response", None)
        headers = getattr(response, "headers", None)
        if not headers:
            return None

        if (value := headers.get("retry-after-ms")) is not None:
            try:
                return max(int(float(value)), 0)
            except ValueError:
                pass
        # retry-after may also be an HTTP date; only the seconds form is honored
        if (value := headers.get("retry-after")) is not None:
            try:
                return max(int(float(value) * 1000), 0)
            except ValueError:
                pass
        return None


# ═══════════════════════════════════════════════════
#  ATTEMPT OUTCOMES
# ═══════════════════════════════════════════════════

class Outcome(enum.Enum):
    SUCCESS = "success"
    RETRY = "retry"
    FAILED = "failed"


@dataclass(frozen=True)
class AttemptOutcome:
    kind: Outcome
    text: str = ""
    wait_ms: int = 0
    error: str = ""

    @classmethod
    def success(cls, text: str) -> "AttemptOutcome":
        return cls(Outcome.SUCCESS, text=text)

    @classmethod
    def retry(cls, error: str, wait_ms: int = 0) -> "AttemptOutcome":
        return cls(Outcome.RETRY, wait_ms=wait_ms, error=error)

    @classmethod
    def failed(cls, error: str) -> "AttemptOutcome":
        return cls(Outcome.FAILED, error=error)


@dataclass(frozen=True)
class CompletionRequest:
    prompt_text: str
    temperature: float
    max_tokens: int
    extra: dict[str, Any] = field(default_factory=dict)

    def payload(self, model: str) -> dict[str, Any]:
        return {
            **self.extra,
            "model": model,
            "messages": [{"role": "user", "content": self.prompt_text}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }


class EmptyCompletion(Exception):
    pass


# ═══════════════════════════════════════════════════
#  COMPLETION CLIENT
# ═══════════════════════════════════════════════════

class CompletionClient:
    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        *,
        model_params: Optional[dict[str, Any]] = None,
        policy: Optional[RateLimitPolicy] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        rate_limit_wait_ms: int = DEFAULT_RATE_LIMIT_WAIT_MS,
        max_rate_limit_wait_ms: int = DEFAULT_MAX_RATE_LIMIT_WAIT_MS,
        failure_backoff_ms: int = 0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.model = model
        self.model_params = dict(model_params or {})
        self.policy = policy or OpenAIRateLimitPolicy()
        self.max_attempts = max_attempts
        self.rate_limit_wait_ms = rate_limit_wait_ms
        self.max_rate_limit_wait_ms = max_rate_limit_wait_ms
        self.failure_backoff_ms = failure_backoff_ms
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> "CompletionClient":
        # The SDK's own retries are disabled so the attempt budget lives here.
        client = AsyncOpenAI(
            base_url=settings.base_url,
            api_key=settings.api_key,
            max_retries=0,
            timeout=settings.request_timeout,
        )
        return cls(
            client,
            settings.model,
            model_params=settings.model_params,
            max_attempts=settings.max_attempts,
            rate_limit_wait_ms=settings.rate_limit_wait_ms,
            max_rate_limit_wait_ms=settings.max_rate_limit_wait_ms,
            failure_backoff_ms=settings.failure_backoff_ms,
        )

    async def complete(
        self,
        prompt_text: str,
        temperature: float,
        max_tokens: int,
        max_attempts: Optional[int] = None,
    ) -> str:
        """Return generated text, retrying transient failures.

        Raises CompletionFailed with the last error message once every attempt is spent.
        """
        attempts = self.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {attempts}")

        request = CompletionRequest(prompt_text, temperature, max_tokens, self.model_params)
        for attempt in range(1, attempts + 1):
            outcome = await self._attempt(request, attempt, attempts)
            if outcome.kind is Outcome.SUCCESS:
                return outcome.text
            if outcome.kind is Outcome.FAILED:
                logging.error(f"Completion failed after {attempt} attempt(s): {outcome.error}")
                raise CompletionFailed(outcome.error)
            if outcome.wait_ms:
                await self._sleep(outcome.wait_ms / 1000)

        # The last attempt never yields RETRY, so the loop always returns or raises.
        raise AssertionError("unreachable")

    async def complete_template(self, template: PromptTemplate, goal: str = "") -> str:
        return await self.complete(template.render(goal), template.temperature, template.max_tokens)

    async def _attempt(self, request: CompletionRequest, attempt: int, attempts: int) -> AttemptOutcome:
        try:
            response = await self.client.chat.completions.create(**request.payload(self.model))
            text = (response.choices[0].message.content or "").strip() if response.choices else ""
            if not text:
                raise EmptyCompletion("provider returned an empty completion")
            return AttemptOutcome.success(text)
        except Exception as e:
            error = str(e) or type(e).__name__
            last_attempt = attempt >= attempts
            if last_attempt:
                return AttemptOutcome.failed(error)

            if self.policy.is_rate_limited(e):
                hint = self.policy.retry_hint_millis(e)
                wait_ms = self.rate_limit_wait_ms if hint is None else hint
                if wait_ms > self.max_rate_limit_wait_ms:
                    logging.warning(
                        f"Rate limited (attempt {attempt}/{attempts}), provider asks for {wait_ms}ms, giving up"
                    )
                    return AttemptOutcome.failed(f"rate limited for {wait_ms}ms: {error}")
                logging.warning(f"Rate limited (attempt {attempt}/{attempts}), waiting {wait_ms}ms")
                return AttemptOutcome.retry(error, wait_ms)

            logging.warning(f"Completion error (attempt {attempt}/{attempts}): {error}")
            return AttemptOutcome.retry(error, self.failure_backoff_ms)
