"""
Push delivery over Firebase Cloud Messaging
Bulk sends return one DeliveryResult per message, in order
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from ..config import FCM_SEND_EACH_LIMIT
from ..exceptions import TransportUnavailableError

logger = logging.getLogger(__name__)

# Error codes after which the token will never work again
INVALID_TOKEN_CODES = frozenset({"unregistered", "sender-id-mismatch", "invalid-registration-token"})


@dataclass(frozen=True)
class PushMessage:
    token: str
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def invalid_token(self) -> bool:
        return not self.success and self.error_code in INVALID_TOKEN_CODES


class PushTransport(ABC):
    @abstractmethod
    async def send_bulk(self, messages: Sequence[PushMessage]) -> list[DeliveryResult]:
        """Send messages, returning a result for each one in the same order"""

    async def send(self, message: PushMessage) -> DeliveryResult:
        results = await self.send_bulk([message])
        return results[0]


def classify_error(exc: Optional[Exception]) -> str:
    """Map an FCM exception to a short error code"""
    if isinstance(exc, messaging.UnregisteredError):
        return "unregistered"
    if isinstance(exc, messaging.SenderIdMismatchError):
        return "sender-id-mismatch"
    if isinstance(exc, firebase_exceptions.InvalidArgumentError):
        # Also raised for bad payloads, only a rejected token means the token is dead
        if "registration token" in str(exc).lower():
            return "invalid-registration-token"
        return "invalid-argument"
    if isinstance(exc, firebase_exceptions.FirebaseError) and exc.code:
        return str(exc.code).lower().replace("_", "-")
    return "unknown"


class FcmPushTransport(PushTransport):
    def __init__(self, app=None, chunk_size: int = FCM_SEND_EACH_LIMIT):
        self._app = app
        self._chunk_size = chunk_size

    @staticmethod
    def _to_fcm(message: PushMessage) -> messaging.Message:
        return messaging.Message(
            token=message.token,
            notification=messaging.Notification(title=message.title, body=message.body),
            # FCM data payloads only accept string values
            data={key: str(value) for key, value in message.data.items()},
        )

    async def send_bulk(self, messages: Sequence[PushMessage]) -> list[DeliveryResult]:
        results: list[DeliveryResult] = []

        for start in range(0, len(messages), self._chunk_size):
            chunk = messages[start : start + self._chunk_size]
            try:
                batch = await messaging.send_each_async(
                    [self._to_fcm(m) for m in chunk], app=self._app
                )
            except firebase_exceptions.FirebaseError as e:
                logger.error(f"❌ FCM send_each failed for {len(chunk)} messages: {e}")
                raise TransportUnavailableError(f"FCM send failed: {e}") from e

            for response in batch.responses:
                if response.success:
                    results.append(DeliveryResult(success=True, message_id=response.message_id))
                else:
                    results.append(
                        DeliveryResult(
                            success=False,
                            error_code=classify_error(response.exception),
                            error_message=str(response.exception),
                        )
                    )

            logger.info(
                f"📨 FCM chunk sent: {batch.success_count} ok, {batch.failure_count} failed"
            )

        return results
