"""Email transport implementations for alert delivery.

Provides an ABC for email senders plus a development sender that only
logs and an HTTP sender that posts to a mail relay. A CircuitBreaker
decorator wraps any sender so a dead transport fails fast.

Pattern: Decorator (CircuitBreaker wraps any EmailSender).
"""

import enum
import logging
import time
from abc import ABC, abstractmethod

import httpx

from src.alerts.formatters import EmailMessage

logger = logging.getLogger(__name__)


class EmailSender(ABC):
    """Abstract base for email delivery transports."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this sender (e.g. 'log', 'http')."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> bool:
        """Deliver an email.

        Args:
            message: Rendered email.

        Returns:
            True if delivery succeeded, False otherwise.
        """


class LoggingEmailSender(EmailSender):
    """Development sender: writes the email to the log instead of sending it."""

    def __init__(self, from_address: str) -> None:
        self._from = from_address
        self.sent: list[EmailMessage] = []

    @property
    def name(self) -> str:
        return "log"

    async def send(self, message: EmailMessage) -> bool:
        logger.info("EMAIL NOTIFICATION (DEV MODE):")
        logger.info("From: %s", self._from)
        logger.info("To: %s", message.to)
        logger.info("Subject: %s", message.subject)
        logger.info("Body: %s", message.body)
        logger.info("--- END EMAIL ---")
        self.sent.append(message)
        return True


class HttpEmailSender(EmailSender):
    """Posts emails as JSON to a mail-relay endpoint.

    Payload: ``{"from", "to", "subject", "body"}``. Creates a new
    ``httpx.AsyncClient`` per call (short-lived, no pooling).
    """

    def __init__(
        self,
        url: str,
        from_address: str,
        token: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._from = from_address
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "http"

    def _build_payload(self, message: EmailMessage) -> dict:
        return {
            "from": self._from,
            "to": message.to,
            "subject": message.subject,
            "body": message.body,
        }

    async def send(self, message: EmailMessage) -> bool:
        payload = self._build_payload(message)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=payload, headers=self._headers)
                if resp.is_success:
                    return True
                logger.warning(
                    "Mail relay %s returned %d for %s",
                    self._url, resp.status_code, message.to,
                )
                return False
        except httpx.TimeoutException:
            logger.warning("Mail relay %s timed out for %s", self._url, message.to)
            return False
        except Exception as e:
            logger.warning("Mail relay %s failed for %s: %s", self._url, message.to, e)
            return False


class CircuitState(enum.Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker(EmailSender):
    """Wraps an EmailSender with circuit breaker protection.

    State machine: CLOSED → OPEN → HALF_OPEN → CLOSED.

    - CLOSED: All sends pass through. Consecutive failures tracked.
    - OPEN: Sends rejected immediately. After recovery_timeout, moves
      to HALF_OPEN.
    - HALF_OPEN: Single probe send allowed. Success → CLOSED, failure → OPEN.
    """

    def __init__(
        self,
        sender: EmailSender,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
    ) -> None:
        self._sender = sender
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: float = 0.0

    @property
    def name(self) -> str:
        return self._sender.name

    @property
    def state(self) -> CircuitState:
        return self._state

    async def send(self, message: EmailMessage) -> bool:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time >= self._recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info(
                    "Circuit breaker %s: OPEN → HALF_OPEN (recovery probe)", self.name,
                )
            else:
                logger.debug(
                    "Circuit breaker %s: OPEN, rejecting email to %s",
                    self.name, message.to,
                )
                return False

        try:
            success = await self._sender.send(message)
        except Exception as e:
            logger.warning("Sender %s raised: %s", self.name, e)
            success = False

        if success:
            if self._state == CircuitState.HALF_OPEN:
                logger.info(
                    "Circuit breaker %s: HALF_OPEN → CLOSED (probe succeeded)", self.name,
                )
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker %s: HALF_OPEN → OPEN (probe failed)", self.name,
                )
            elif self._consecutive_failures >= self._failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker %s: CLOSED → OPEN after %d failures",
                    self.name, self._consecutive_failures,
                )

        return success
