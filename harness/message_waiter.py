"""Wait-with-timeout primitive for asynchronously delivered topic messages."""
import threading
import time
from typing import List, Optional, Union

from ledger.models import TopicMessage
from utils.custom_exceptions import DataValidationError, TimeoutError
from utils.logger import harness_logger


class MessageWaiter:
    """
    Subscription callback that records every delivered message.

    ``wait_for`` returns as soon as a matching payload has arrived. If the
    deadline passes it raises TimeoutError when nothing arrived at all, and
    DataValidationError when only other payloads arrived.
    """

    def __init__(self):
        self._condition = threading.Condition()
        self._received: List[TopicMessage] = []

    def __call__(self, message: TopicMessage) -> None:
        with self._condition:
            self._received.append(message)
            self._condition.notify_all()
        harness_logger.info(f"Received message #{message.sequence_number} on topic "
                            f"{message.topic_id}: {message.text}")

    @property
    def messages(self) -> List[TopicMessage]:
        with self._condition:
            return list(self._received)

    def _find(self, expected: bytes) -> Optional[TopicMessage]:
        for message in self._received:
            if message.contents == expected:
                return message
        return None

    def wait_for_any(self, timeout: float) -> TopicMessage:
        """First delivered message, or TimeoutError."""
        with self._condition:
            if not self._condition.wait_for(lambda: self._received, timeout):
                raise TimeoutError(f"No message received within {timeout}s",
                                   timeout_seconds=timeout, operation="topic_subscribe")
            return self._received[0]

    def wait_for(self, expected: Union[str, bytes], timeout: float) -> TopicMessage:
        payload = expected.encode("utf-8") if isinstance(expected, str) else bytes(expected)
        deadline = time.monotonic() + timeout
        with self._condition:
            while True:
                match = self._find(payload)
                if match is not None:
                    return match
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._condition.wait(remaining)
            seen = [message.text for message in self._received]

        expected_text = payload.decode("utf-8", errors="replace")
        if not seen:
            raise TimeoutError(
                f"No message received within {timeout}s, expected '{expected_text}'",
                timeout_seconds=timeout, operation="topic_subscribe",
            )
        raise DataValidationError(
            f"Message '{expected_text}' not received within {timeout}s",
            expected=expected_text, actual=seen,
        )
