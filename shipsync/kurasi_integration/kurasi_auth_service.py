# shipsync/kurasi_integration/kurasi_auth_service.py
# Obtains and caches the X-Ship-Auth-Token used by the Kurasi API.

import requests
from typing import Optional
from threading import Lock

from shipsync.config import config
from shipsync.utils.logger import logger
from shipsync.api.errors import KurasiIntegrationError, ConfigurationError


class KurasiAuthService:
    """
    Supplies the bearer credential for Kurasi requests.

    A static KURASI_TOKEN is used as-is. Otherwise the service logs in with
    username/password and caches the token until invalidate_token() is called
    (Kurasi does not announce an expiry; a 401 is the signal to log in again).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        static_token: Optional[str] = None,
        client_code: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[int] = None,
    ):
        self.base_url = (base_url or config.KURASI_BASE_URL).rstrip('/')
        self.login_url = f"{self.base_url}{config.LOGIN_ENDPOINT}"
        self.me_url = f"{self.base_url}{config.ME_ENDPOINT}"
        self.username = username if username is not None else config.KURASI_USERNAME
        self.password = password if password is not None else config.KURASI_PASSWORD
        self._static_token = static_token if static_token is not None else config.KURASI_TOKEN
        self._client_code = client_code if client_code is not None else (config.KURASI_CLIENT_CODE or None)
        self.session = session or requests.Session()
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self._token: Optional[str] = None
        self._token_lock = Lock()

        if not self._static_token and not (self.username and self.password):
            logger.warning("Kurasi credentials not configured (KURASI_TOKEN or KURASI_USERNAME/KURASI_PASSWORD).")
        logger.info(f"KurasiAuthService initialized for {self.base_url} (static token: {bool(self._static_token)}).")

    def get_token(self) -> str:
        """
        Returns the token to send as X-Ship-Auth-Token. Thread-safe.

        Raises:
            ConfigurationError: no static token and no credentials.
            KurasiIntegrationError: login failed.
        """
        if self._static_token:
            return self._static_token
        with self._token_lock:
            if not self._token:
                self._token = self._login()
            return self._token

    def invalidate_token(self) -> bool:
        """
        Drops the cached token so the next call logs in again.

        Returns:
            False when a static token is configured (nothing to refresh).
        """
        if self._static_token:
            return False
        with self._token_lock:
            logger.info("Invalidating stored Kurasi token.")
            self._token = None
        return True

    def _login(self) -> str:
        if not (self.username and self.password):
            raise ConfigurationError("Kurasi username/password are not configured.")

        logger.debug(f"Requesting new Kurasi token from {self.login_url}")
        try:
            response = self.session.post(
                self.login_url,
                json={"username": self.username, "password": self.password},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error during Kurasi login: {e}", exc_info=True)
            raise KurasiIntegrationError(f"Network error contacting Kurasi login: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise KurasiIntegrationError(
                f"Kurasi login returned non-JSON response (status {response.status_code})."
            ) from e

        token = (body.get("data") or {}).get("token") if isinstance(body, dict) else None
        if response.status_code != 200 or body.get("status") != "SUCCESS" or not token:
            message = body.get("message") if isinstance(body, dict) else None
            logger.error(f"Kurasi login failed. Status: {response.status_code}, message: {message}")
            raise KurasiIntegrationError(f"Kurasi login failed: {message or response.status_code}")

        logger.info("Successfully obtained Kurasi token.")
        return token

    def get_client_code(self) -> str:
        """Client code from configuration, else from /api/v1/me (cached)."""
        if self._client_code:
            return self._client_code

        token = self.get_token()
        try:
            response = self.session.get(self.me_url, headers={"X-Ship-Auth-Token": token}, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Failed to read Kurasi client code from {self.me_url}: {e}")
            raise KurasiIntegrationError(f"Could not resolve Kurasi client code: {e}") from e

        client_code = (body.get("data") or {}).get("clientCode") if isinstance(body, dict) else None
        if not client_code:
            raise KurasiIntegrationError("Kurasi /me response has no clientCode.")
        self._client_code = str(client_code)
        logger.info(f"Kurasi client code resolved: {self._client_code}")
        return self._client_code
