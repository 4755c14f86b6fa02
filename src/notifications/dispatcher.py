import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Optional

from src.config import settings
from src.exceptions import DispatchFailure
from src.notifications.providers import EmailProvider, build_provider

logger = logging.getLogger(__name__)

class NotificationDispatcher:
    """Runs the email provider off the caller's thread with a hard time bound.

    ``send`` never raises: a provider error or a send that outlives
    ``timeout`` seconds is logged as a ``DispatchFailure`` and reported as
    ``False``. A timed-out send keeps running in its worker until the provider
    gives up on its own.
    """

    def __init__(self, provider: Optional[EmailProvider] = None, timeout: Optional[float] = None, max_workers: int = 4):
        self.provider = provider or build_provider()
        self.timeout = timeout if timeout is not None else settings.EMAIL_TIMEOUT_SECONDS
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="email")

    def send(self, to: Optional[str], subject: str, html_body: str, reference: str = "-") -> bool:
        if not to:
            logger.warning("No recipient for %r (booking %s); skipped", subject, reference)
            return False

        try:
            future = self._executor.submit(self.provider.send, to, subject, html_body)
            future.result(timeout=self.timeout)
        except FutureTimeout:
            self._log_failure(DispatchFailure(f"{self.provider.name} send timed out after {self.timeout}s"), to, subject, reference)
            return False
        except Exception as exc:
            self._log_failure(DispatchFailure(f"{self.provider.name} send failed: {exc}"), to, subject, reference)
            return False

        logger.info("Sent %r to %s (booking %s)", subject, to, reference)
        return True

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _log_failure(failure: DispatchFailure, to: str, subject: str, reference: str) -> None:
        logger.warning("Notification %r to %s for booking %s not delivered: %s", subject, to, reference, failure)
