import logging
from pathlib import Path
from types import TracebackType
from typing import Any, Self

import aiohttp

from goofys_injector.config import VaultConfig
from goofys_injector.credentials import SecretStore
from goofys_injector.errors import VaultError


logger = logging.getLogger(__name__)


class VaultClient(SecretStore):
    """
    Reads secrets over the Vault HTTP API.
    A single session is shared by all the in-flight admission requests.
    """

    def __init__(self, config: VaultConfig) -> None:
        self._config = config
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> Self:
        logger.info("initializing vault client for %s", self._config.url)
        self._session = aiohttp.ClientSession(
            headers={"X-Vault-Token": self._load_token()},
            timeout=aiohttp.ClientTimeout(total=self._config.client_timeout_s),
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _load_token(self) -> str:
        if self._config.token:
            return self._config.token
        if self._config.token_path:
            return Path(self._config.token_path).read_text().strip()
        raise VaultError("vault token is not configured")

    def _secret_url(self, path: str) -> str:
        return f"{str(self._config.url).rstrip('/')}/v1/{path.lstrip('/')}"

    async def read(self, path: str) -> dict[str, Any] | None:
        assert self._session is not None, "vault client is not initialized"
        url = self._secret_url(path)
        try:
            async with self._session.get(url) as response:
                if response.status == 404:
                    return None
                response.raise_for_status()
                payload = await response.json()
        except (aiohttp.ClientError, ValueError) as e:
            raise VaultError(f"unable to read {path}") from e
        if not isinstance(payload, dict):
            raise VaultError(f"unexpected response reading {path}")
        return payload.get("data")
