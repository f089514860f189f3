"""Invokes the remote model with status-driven retry and backoff."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from .exceptions import (
    ConfigurationError,
    ExhaustedRetries,
    InvalidResponse,
    InvocationError,
    RateLimitExhausted,
    RemoteError,
)
from .transport import Transport, TransportResponse

logger = logging.getLogger(__name__)

STATUS_RATE_LIMITED = 429
STATUS_OVERLOADED = 503


class AttemptOutcome(Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    OVERLOADED = "overloaded"
    REMOTE_ERROR = "remote_error"
    INVALID_RESPONSE = "invalid_response"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class AttemptResult:
    """Classification of a single attempt."""
    outcome: AttemptOutcome
    text: Optional[str] = None
    reason: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt bound and wait durations (seconds) for each failure branch."""
    max_attempts: int = 5
    rate_limit_base_delay: float = 20.0
    rate_limit_step_delay: float = 10.0
    overload_delay: float = 10.0
    error_delay: float = 5.0

    def __post_init__(self):
        if not isinstance(self.max_attempts, int) or isinstance(self.max_attempts, bool):
            raise ConfigurationError(f"max_attempts must be an integer, got {self.max_attempts!r}")
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1, got {self.max_attempts}")
        for name in ("rate_limit_base_delay", "rate_limit_step_delay", "overload_delay", "error_delay"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ConfigurationError(f"{name} must be a number, got {value!r}")
            if value < 0:
                raise ConfigurationError(f"{name} cannot be negative")
        # Rate-limit waits must grow with every attempt
        if self.rate_limit_step_delay <= 0:
            raise ConfigurationError(f"rate_limit_step_delay must be positive, got {self.rate_limit_step_delay}")

    def rate_limit_delay(self, attempt_index: int) -> float:
        """Backoff after a rate-limit signal on the 0-based `attempt_index`."""
        return self.rate_limit_base_delay + attempt_index * self.rate_limit_step_delay

    def delay_for(self, result: AttemptResult, attempt_index: int) -> float:
        if result.outcome is AttemptOutcome.RATE_LIMITED:
            return self.rate_limit_delay(attempt_index)
        if result.outcome is AttemptOutcome.OVERLOADED:
            return self.overload_delay
        return self.error_delay


def extract_generated_text(payload: Optional[Dict[str, Any]]) -> Tuple[Optional[str], str]:
    """
    Pulls `candidates[0].content.parts[0].text` out of a generateContent payload.

    Any level of the payload may be missing or have an unexpected type; such a
    payload counts as having no generated text.

    Returns:
        (text, "") on success, otherwise (None, reason) where reason is the
        candidate's finishReason or the prompt's blockReason when available.
    """
    if not isinstance(payload, dict):
        return None, "unknown"
    candidates = payload.get("candidates")
    if isinstance(candidates, list) and candidates:
        candidate = candidates[0] if isinstance(candidates[0], dict) else {}
        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if isinstance(parts, list) and parts and isinstance(parts[0], dict) and isinstance(parts[0].get("text"), str):
            return parts[0]["text"], ""
        return None, str(candidate.get("finishReason") or "unknown")
    feedback = payload.get("promptFeedback")
    if feedback:
        block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        return None, f"prompt blocked ({block_reason or 'unknown'})"
    return None, "unknown"


def extract_error_message(response: TransportResponse) -> str:
    message = None
    if isinstance(response.payload, dict):
        error = response.payload.get("error")
        if isinstance(error, dict):
            message = error.get("message")
    return f"API error: {response.status_code} - {message or 'unknown error'}"


def classify_response(response: TransportResponse) -> AttemptResult:
    """Maps a transport response onto an attempt outcome."""
    status = response.status_code
    if status == STATUS_RATE_LIMITED:
        return AttemptResult(AttemptOutcome.RATE_LIMITED, reason="rate limited (429)", status_code=status)
    if status == STATUS_OVERLOADED:
        return AttemptResult(AttemptOutcome.OVERLOADED, reason="server busy (503)", status_code=status)
    if not response.ok:
        return AttemptResult(AttemptOutcome.REMOTE_ERROR, reason=extract_error_message(response), status_code=status)
    text, reason = extract_generated_text(response.payload)
    if text is None:
        return AttemptResult(AttemptOutcome.INVALID_RESPONSE, reason=reason, status_code=status)
    return AttemptResult(AttemptOutcome.SUCCESS, text=text, status_code=status)


# (attempt number, failed attempt, seconds about to be slept)
RetryListener = Callable[[int, AttemptResult, float], None]


class ResilientInvoker:
    """
    Wraps one model call in a bounded retry loop.

    Each attempt is classified (rate limited, overloaded, remote error,
    invalid response, transport error) and the policy decides the wait.
    The listener is told about every retry before the wait starts.
    """

    def __init__(
        self,
        transport: Transport,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Optional[RetryListener] = None,
    ):
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.on_retry = on_retry

    def _attempt(self, prompt: str) -> AttemptResult:
        try:
            response = self.transport.send(prompt)
        except Exception as e:
            logger.debug(f"Transport raised {type(e).__name__}: {e}", exc_info=True)
            return AttemptResult(AttemptOutcome.TRANSPORT_ERROR, reason=str(e) or type(e).__name__, error=e)
        return classify_response(response)

    def _terminal_error(self, result: AttemptResult, attempts: int) -> InvocationError:
        if result.outcome is AttemptOutcome.RATE_LIMITED:
            return RateLimitExhausted(attempts)
        if result.outcome is AttemptOutcome.INVALID_RESPONSE:
            return InvalidResponse(result.reason or "unknown")
        if result.outcome in (AttemptOutcome.REMOTE_ERROR, AttemptOutcome.TRANSPORT_ERROR):
            return RemoteError(result.reason or "unknown error", status_code=result.status_code)
        return ExhaustedRetries(attempts, result.reason)

    @staticmethod
    def describe_retry(result: AttemptResult, delay: float) -> str:
        if result.outcome is AttemptOutcome.RATE_LIMITED:
            return f"Rate limit hit (429), resting {delay:g}s..."
        if result.outcome is AttemptOutcome.OVERLOADED:
            return f"Server busy (503), waiting {delay:g}s..."
        return f"Request failed ({result.reason}), retrying in {delay:g}s..."

    def invoke(self, prompt: str) -> str:
        """
        Sends `prompt` and returns the generated text.

        Raises:
            RateLimitExhausted: The final attempt was still rate-limited.
            RemoteError: The final attempt failed with an error status or a transport exception.
            InvalidResponse: The final attempt succeeded without usable generated text.
            ExhaustedRetries: The final attempt failed for another reason (e.g. overload).
        """
        max_attempts = self.policy.max_attempts
        for attempt_index in range(max_attempts):
            result = self._attempt(prompt)
            if result.outcome is AttemptOutcome.SUCCESS:
                if attempt_index:
                    logger.info(f"Request succeeded on attempt {attempt_index + 1}/{max_attempts}")
                return result.text

            attempt_number = attempt_index + 1
            if attempt_number == max_attempts:
                error = self._terminal_error(result, attempt_number)
                logger.error(f"Attempt {attempt_number}/{max_attempts} failed, giving up: {error}")
                if result.error is not None:
                    raise error from result.error
                raise error

            delay = self.policy.delay_for(result, attempt_index)
            logger.warning(f"Attempt {attempt_number}/{max_attempts}: {self.describe_retry(result, delay)}")
            if self.on_retry:
                self.on_retry(attempt_number, result, delay)
            self.sleep(delay)

        raise ExhaustedRetries(max_attempts)
