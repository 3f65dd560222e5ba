"""Retrying delivery of messages to the Telegram Bot API."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from tele_reminder.metrics import DeliveryMetrics

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"

# Request timeout, too early, rate limited. Every 5xx is retryable as well.
RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})

# Response bodies are cut to this length in failure details
MAX_DETAIL_BODY = 500


class ParseMode(str, Enum):
    """Telegram markup dialect for a message body."""
    HTML = "HTML"
    MARKDOWN_V2 = "MarkdownV2"


def is_retryable_status(status_code: int) -> bool:
    """Whether an HTTP status may succeed on a later attempt."""
    return status_code in RETRYABLE_STATUS_CODES or 500 <= status_code <= 599


class AttemptKind(str, Enum):
    """Classification of a single delivery attempt."""
    SUCCESS = "success"
    TRANSIENT = "transient"
    FATAL = "fatal"


@dataclass
class AttemptResult:
    """Result of one HTTP call to the endpoint."""
    kind: AttemptKind
    detail: str
    status_code: Optional[int] = None


@dataclass
class DispatchOutcome:
    """Final result of a send, however many attempts it took."""
    sent: bool
    detail: str
    attempts: int = 0


class TelegramDispatcher:
    """Send one message to a fixed chat with bounded retries."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        request_timeout_ms: int = 5000,
        max_retries: int = 3,
        retry_base_delay_ms: int = 500,
        metrics: Optional[DeliveryMetrics] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        api_base: str = TELEGRAM_API_BASE,
    ):
        """Initialize dispatcher.

        Args:
            bot_token: Telegram bot token.
            chat_id: Destination chat (numeric id or @channel name).
            request_timeout_ms: Hard deadline for each attempt.
            max_retries: Total attempts per send, at least 1.
            retry_base_delay_ms: Backoff base; attempt n waits base * 2**(n-1) after failing.
            metrics: Counter sink for outcomes and retries.
            client: Preconfigured HTTP client (tests pass a mock transport).
            sleep: Awaitable used for backoff waits.
            api_base: Bot API root URL.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.request_timeout = request_timeout_ms / 1000
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay_ms / 1000
        self.metrics = metrics or DeliveryMetrics()
        self._client = client
        self._sleep = sleep
        self._api_base = api_base.rstrip("/")

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.request_timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after a failed attempt before the next one."""
        return self.retry_base_delay * 2 ** (attempt - 1)

    def _retrying(self) -> AsyncRetrying:
        """Retry transient attempt results with exponential backoff.

        Waits follow backoff_delay: base after the first attempt, then 2x, 4x...
        Exhaustion hands back the last attempt result instead of raising.
        """
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_base_delay),
            retry=retry_if_result(lambda result: result.kind is AttemptKind.TRANSIENT),
            sleep=self._sleep,
            before_sleep=self._before_retry,
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )

    def _before_retry(self, retry_state: RetryCallState) -> None:
        last: AttemptResult = retry_state.outcome.result()
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Telegram attempt {retry_state.attempt_number}/{self.max_retries} failed, "
            f"retrying in {delay:.2f}s: {last.detail}"
        )
        self.metrics.increment_retry()

    async def send(self, message: str, parse_mode: ParseMode = ParseMode.HTML) -> DispatchOutcome:
        """Deliver a message, retrying transient failures.

        Never raises for delivery failures; the outcome says what happened.
        """
        if not self.bot_token or not self.chat_id:
            detail = "Skipping Telegram alert. Set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID."
            logger.warning(detail)
            self.metrics.increment_failure()
            return DispatchOutcome(sent=False, detail=detail, attempts=0)

        retrying = self._retrying()
        last: AttemptResult = await retrying(self._attempt, message, parse_mode)
        attempts = retrying.statistics.get("attempt_number", 1)

        if last.kind is AttemptKind.SUCCESS:
            self.metrics.increment_success()
            logger.info(f"Telegram alert sent (attempt {attempts}/{self.max_retries})")
            return DispatchOutcome(sent=True, detail=last.detail, attempts=attempts)

        self.metrics.increment_failure()
        if last.kind is AttemptKind.FATAL:
            logger.error(f"Telegram send failed permanently: {last.detail}")
            return DispatchOutcome(sent=False, detail=last.detail, attempts=attempts)

        detail = f"Telegram send failed after {attempts} attempts: {last.detail}"
        logger.error(detail)
        return DispatchOutcome(sent=False, detail=detail, attempts=attempts)

    async def _attempt(self, message: str, parse_mode: ParseMode) -> AttemptResult:
        """Make one request and classify the result."""
        url = f"{self._api_base}/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": message,
            "parse_mode": ParseMode(parse_mode).value,
        }
        timeout_ms = int(self.request_timeout * 1000)

        try:
            response = await asyncio.wait_for(
                self._get_client().post(url, json=payload, timeout=self.request_timeout),
                timeout=self.request_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return AttemptResult(AttemptKind.TRANSIENT, f"Telegram request timed out after {timeout_ms}ms")
        except httpx.TransportError as e:
            return AttemptResult(AttemptKind.TRANSIENT, f"Telegram transport error: {type(e).__name__}: {e}")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # Not retried: the message may already have been delivered
            return AttemptResult(AttemptKind.FATAL, f"Telegram request error: {type(e).__name__}: {e}")

        if response.is_success:
            return AttemptResult(AttemptKind.SUCCESS, "Telegram alert sent.", response.status_code)

        body = response.text[:MAX_DETAIL_BODY]
        detail = f"Telegram send failed: {response.status_code} {body}".rstrip()
        kind = AttemptKind.TRANSIENT if is_retryable_status(response.status_code) else AttemptKind.FATAL
        return AttemptResult(kind, detail, response.status_code)
