"""
VoiceNotes Backend — Google Gemini Service Implementation
===========================================================

What:  LLMService backed by Google Gemini, used to rephrase note content.
How:   Sends a fixed instruction prompt plus the note HTML through
       `generate_content_async`, wrapped in tenacity retries and a circuit
       breaker.

Resilience:
    1. Tenacity retry with exponential backoff + jitter, only for transient
       Google API errors (unavailable, quota, deadline, internal)
    2. Circuit breaker fails fast after repeated failures
    3. Per-call timeout passed through request_options
"""

import asyncio
import logging
import time
import uuid
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from voicenotes.config import settings
from voicenotes.exceptions import CircuitBreakerOpenError, LLMServiceError
from voicenotes.services.llm_base import LLMService

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.ResourceExhausted,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    ConnectionError,
    TimeoutError,
)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding calls to the Gemini API.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; uvicorn runs all requests of a worker on one event loop.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Return True when a call may proceed.

        Raises:
            CircuitBreakerOpenError while OPEN and the recovery timeout has
            not yet elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = max(1, int(self.recovery_timeout - elapsed))
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Gemini Service
# ══════════════════════════════════════════════════════════════════════════

class GeminiService(LLMService):
    """
    Gemini-backed rephrasing.

    Error handling chain:
        API call fails → tenacity retries transient errors
        → retries exhausted / non-transient error → record breaker failure
        → LLMServiceError (503) to the client
    """

    REPHRASE_PROMPT = """You are an editor helping someone tidy up their personal notes.
Rewrite the note below so it reads clearly and concisely.

Rules:
1. Keep the meaning, facts, names, numbers and the author's voice
2. The note is HTML from a rich-text editor. Keep the same HTML structure:
   paragraphs stay <p>, lists stay <ul>/<ol> with <li>, bold and italic stay
3. Fix spelling, grammar and run-on sentences left by speech-to-text dictation
4. Return ONLY the rewritten HTML. No commentary, no markdown code fences

Note:
"""

    def __init__(self):
        if settings.gemini_api_key:
            genai.configure(api_key=settings.gemini_api_key)

        self.model = genai.GenerativeModel(settings.gemini_model)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "GeminiService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            settings.gemini_model,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    async def rephrase(self, content: str) -> str:
        """
        Rephrase note HTML with Gemini.

        Flow:
            1. Check circuit breaker → may raise CircuitBreakerOpenError
            2. Call Gemini with retry logic
            3. Record success/failure in the circuit breaker
            4. Return the rewritten HTML
        """
        call_id = str(uuid.uuid4())[:8]

        self.circuit_breaker.can_execute()

        logger.info("[%s] Starting Gemini rephrase (%d chars)", call_id, len(content))

        try:
            result = await self._call_gemini_with_retry(content, call_id)
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Gemini rephrase failed: %s",
                call_id,
                str(e),
                exc_info=not isinstance(e, TRANSIENT_ERRORS),
            )
            raise LLMServiceError(
                message="AI rephrasing failed. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"call_id": call_id, "error_type": type(e).__name__},
            ) from e

        if not result:
            # Empty replies count as failures, including a HALF_OPEN trial call
            self.circuit_breaker.record_failure()
            raise LLMServiceError(
                message="The AI service returned an empty response. Please try again.",
                context={"call_id": call_id},
            )

        self.circuit_breaker.record_success()
        return result

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_min_wait,
            max=settings.retry_max_wait,
        )
        + wait_random(0, 1),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call_gemini_with_retry(self, content: str, call_id: str) -> str:
        """The actual API call; the only part tenacity retries."""
        start_time = time.time()

        try:
            response = await self.model.generate_content_async(
                [self.REPHRASE_PROMPT, content],
                request_options={"timeout": settings.gemini_timeout},
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "[%s] Gemini API call failed after %.0fms: %s",
                call_id,
                duration_ms,
                str(e),
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        text = _strip_code_fence(response.text or "")

        logger.info(
            "[%s] Gemini rephrase completed in %.0fms, %d chars",
            call_id,
            duration_ms,
            len(text),
        )
        return text

    async def health_check(self) -> bool:
        """List models (no token cost) to verify key and connectivity."""
        try:
            models = await asyncio.to_thread(lambda: list(genai.list_models()))
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False

        target = f"models/{settings.gemini_model}"
        if target not in [m.name for m in models]:
            logger.warning("Configured model %s not found in available models", target)
        return True


def _strip_code_fence(text: str) -> str:
    """Models sometimes wrap HTML in ```html fences despite the prompt."""
    stripped = text.strip()
    if stripped.startswith("```") and stripped.endswith("```"):
        stripped = stripped[3:-3]
        first_newline = stripped.find("\n")
        if first_newline != -1 and stripped[:first_newline].strip().isalpha():
            stripped = stripped[first_newline + 1:]
    return stripped.strip()


# Singleton: the circuit breaker state must be shared across requests
gemini_service = GeminiService()
