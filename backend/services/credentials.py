# backend/services/credentials.py
"""
Camera credential lookup with retry.

The secret store may not be ready when the driver starts, so lookups are
retried until the configured time runs out.
"""

import logging
from typing import Optional, Tuple

from config import Settings, get_settings
from errors import CredentialsError
from utils import RetryTimer

from .host_service import HostService

logger = logging.getLogger(__name__)

USERNAME_KEY = "username"
PASSWORD_KEY = "password"


class CredentialProvider:
    """Resolves (username, password) pairs from the host secret store"""

    def __init__(self, host: HostService, settings: Optional[Settings] = None):
        self.host = host
        self.settings = settings or get_settings()

    def _timer(self) -> RetryTimer:
        return RetryTimer(
            self.settings.credentials_retry_time,
            self.settings.credentials_retry_wait,
        )

    def get_credentials(self, path: str) -> Tuple[str, str]:
        """
        Fetch username and password stored at ``path``.

        Raises:
            CredentialsError: nothing usable was returned before the retry
                time elapsed
        """
        timer = self._timer()
        last_error = ""

        while True:
            try:
                secrets = self.host.get_secret(path, USERNAME_KEY, PASSWORD_KEY)
                username = secrets.get(USERNAME_KEY)
                password = secrets.get(PASSWORD_KEY)
                if username is not None and password is not None:
                    return username, password
                last_error = "secret is missing username or password"
            except Exception as e:
                last_error = str(e)

            logger.warning(f"Unable to retrieve camera credentials from '{path}': {last_error}")

            if not timer.has_not_elapsed():
                break
            timer.sleep_for_interval()

        raise CredentialsError(path, last_error)
