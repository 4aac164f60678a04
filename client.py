"""
SailPoint IdentityNow API client with OAuth token caching and retry logic.
"""
import os
import time
import asyncio
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional
from pathlib import Path

import httpx
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from errors import ApiError, AuthenticationError, ConfigurationError, SailPointError

# Load .env from project root (same directory as this file)
PROJECT_ROOT = Path(__file__).resolve().parent
load_dotenv(PROJECT_ROOT / ".env")

# Logger setup
logger = logging.getLogger("sailpoint_mcp")
logger.setLevel(logging.INFO)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    logger.addHandler(handler)

# -- CONFIGURATION --
TOKEN_SAFETY_MARGIN_SECONDS = 60

RETRY_CONFIG = {
    "baseDelayMs": 1000,
    "maxDelayMs": 60000,
    "backoffMultiplier": 2,
}

RETRY_STATUS_CODES = {429, 502, 503, 504}


class SailPointConfig(BaseModel):
    base_url: str
    client_id: str
    client_secret: str = Field(repr=False)
    timeout: float = 30.0
    max_retries: int = 3

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def token_url(self) -> str:
        return f"{self.base_url}/oauth/token"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SailPointConfig":
        """
        Build the configuration from environment variables.

        SAILPOINT_BASE_URL wins over SAILPOINT_TENANT; the tenant form expands to
        https://{tenant}.api.identitynow.com.

        Raises:
            ConfigurationError: if the base URL, client id or client secret is missing
        """
        env = os.environ if environ is None else environ

        base_url = env.get("SAILPOINT_BASE_URL")
        tenant = env.get("SAILPOINT_TENANT")
        if not base_url and tenant:
            base_url = f"https://{tenant}.api.identitynow.com"

        settings = {
            "SAILPOINT_BASE_URL": base_url,
            "SAILPOINT_CLIENT_ID": env.get("SAILPOINT_CLIENT_ID"),
            "SAILPOINT_CLIENT_SECRET": env.get("SAILPOINT_CLIENT_SECRET"),
        }
        missing = [name for name, value in settings.items() if not value]
        if missing:
            raise ConfigurationError(
                f"SailPoint configuration incomplete. Set {', '.join(missing)} "
                "(in the environment or a .env file)."
            )

        return cls(
            base_url=base_url,
            client_id=settings["SAILPOINT_CLIENT_ID"],
            client_secret=settings["SAILPOINT_CLIENT_SECRET"],
            timeout=_number_setting(env, "SAILPOINT_TIMEOUT", float, 30.0),
            max_retries=_number_setting(env, "SAILPOINT_MAX_RETRIES", int, 3),
        )


def _number_setting(env: Mapping[str, str], name: str, kind: Callable[[str], Any], default: Any) -> Any:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    try:
        return kind(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")


def mask_secret(value: Optional[str]) -> str:
    if not value:
        return "MISSING"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}"


@dataclass(frozen=True)
class Token:
    value: str
    expires_at: float


class TokenProvider:
    """
    Holds one bearer token and refreshes it through the client-credentials grant.

    The refresh path is single-flight: callers racing past an expired token wait
    on one exchange instead of each performing their own.
    """

    def __init__(
        self,
        config: SailPointConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.transport = transport
        self.clock = clock
        self.exchange_count = 0
        self._token: Optional[Token] = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> Optional[Token]:
        return self._token

    def _is_current(self, token: Optional[Token]) -> bool:
        return token is not None and self.clock() < token.expires_at

    async def get_token(self) -> Token:
        token = self._token
        if self._is_current(token):
            return token

        async with self._lock:
            # Another caller may have refreshed while we waited
            token = self._token
            if self._is_current(token):
                return token
            self._token = await self._exchange()
            return self._token

    def invalidate(self, token: Optional[Token] = None):
        """Drop the cached token. With a token given, only drop it if still current."""
        if token is None or self._token is token:
            self._token = None

    async def _exchange(self) -> Token:
        data = {
            "grant_type": "client_credentials",
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        logger.info(f"[AUTH] Requesting token from {self.config.token_url} (client {mask_secret(self.config.client_id)})")

        async with httpx.AsyncClient(transport=self.transport, timeout=self.config.timeout) as client:
            try:
                response = await client.post(
                    self.config.token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
            except httpx.HTTPError as e:
                logger.error(f"[AUTH] Token request failed: {e}")
                raise AuthenticationError(f"Failed to authenticate: {e}") from e

        if not response.is_success:
            logger.error(f"[AUTH] HTTP {response.status_code}: {response.reason_phrase}")
            raise AuthenticationError(
                f"Failed to authenticate: {response.reason_phrase}",
                status=response.status_code,
                status_text=response.reason_phrase,
            )

        try:
            payload = response.json()
            value = payload["access_token"]
            expires_in = float(payload.get("expires_in", 0))
        except (ValueError, KeyError, TypeError) as e:
            raise AuthenticationError("Failed to authenticate: malformed token response") from e

        self.exchange_count += 1
        expires_at = self.clock() + expires_in - TOKEN_SAFETY_MARGIN_SECONDS
        logger.info(f"[AUTH] Token acquired, valid for {max(0, expires_in - TOKEN_SAFETY_MARGIN_SECONDS):.0f}s")
        return Token(value=value, expires_at=expires_at)


class SailPointClient:
    def __init__(
        self,
        config: SailPointConfig,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.transport = transport
        self.token_provider = token_provider or TokenProvider(config, transport=transport)
        self.sleep = sleep

    def build_url(self, path: str) -> str:
        if path.startswith("https://") or path.startswith("http://"):
            return path
        return f"{self.config.base_url}{path}" if path.startswith("/") else f"{self.config.base_url}/{path}"

    def retry_delay_ms(self, attempt: int, headers: httpx.Headers) -> float:
        retry_after = headers.get("retry-after")
        if retry_after:
            try:
                return min(float(retry_after) * 1000, RETRY_CONFIG["maxDelayMs"])
            except ValueError:
                pass
        wait_ms = RETRY_CONFIG["baseDelayMs"] * (RETRY_CONFIG["backoffMultiplier"] ** attempt)
        wait_ms += random.random() * 0.3 * wait_ms
        return min(wait_ms, RETRY_CONFIG["maxDelayMs"])

    async def execute_request(self, method: str, url: str, token: Token, body: Any = None, params: dict = None) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {token.value}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(transport=self.transport, timeout=self.config.timeout) as client:
            logger.debug(f"[HTTP] {method} {url}")
            return await client.request(
                method=method,
                url=url,
                headers=headers,
                content=json.dumps(body) if body is not None else None,
                params=params,
            )

    async def send(self, path: str, method: str = "GET", body: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Perform one authenticated request and return the parsed JSON body.

        Transport errors and 429/502/503/504 are retried with backoff up to
        config.max_retries times. A 401 drops the cached token and retries once.

        Raises:
            AuthenticationError: if no token could be obtained
            ApiError: on a non-success status
        """
        url = self.build_url(path)
        attempt = 0
        reauthenticated = False

        while True:
            token = await self.token_provider.get_token()
            try:
                response = await self.execute_request(method, url, token, body, params)
            except httpx.TransportError as e:
                if attempt >= self.config.max_retries:
                    logger.error(f"[HTTP] {method} {url} failed after {attempt + 1} attempts: {e}")
                    raise SailPointError(f"Request to {url} failed: {e}") from e
                wait_ms = self.retry_delay_ms(attempt, httpx.Headers())
                logger.info(f"[RETRY] {type(e).__name__}, waiting {wait_ms/1000:.2f}s before retry {attempt+1}")
                attempt += 1
                await self.sleep(wait_ms / 1000.0)
                continue

            status = response.status_code

            if status == 401 and not reauthenticated:
                logger.warning(f"[AUTH] 401 from {url}, refreshing token")
                self.token_provider.invalidate(token)
                reauthenticated = True
                continue

            if status in RETRY_STATUS_CODES and attempt < self.config.max_retries:
                wait_ms = self.retry_delay_ms(attempt, response.headers)
                logger.info(f"[RETRY] HTTP {status}, waiting {wait_ms/1000:.2f}s before retry {attempt+1}")
                attempt += 1
                await self.sleep(wait_ms / 1000.0)
                continue

            if not response.is_success:
                logger.error(f"[HTTP] {method} {url} -> {status}: {response.text[:500]}")
                raise ApiError(status, response.reason_phrase, _parse_json_safe(response))

            return _parse_json_safe(response)


def _parse_json_safe(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text}


_client: Optional[SailPointClient] = None


def get_client() -> SailPointClient:
    """Return the process-wide client, building it from the environment on first use."""
    global _client
    if _client is None:
        _client = SailPointClient(SailPointConfig.from_env())
    return _client


def set_client(client: Optional[SailPointClient]):
    global _client
    _client = client
