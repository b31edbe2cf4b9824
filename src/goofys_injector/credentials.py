import abc
import asyncio
import dataclasses
import logging
from typing import Any

from goofys_injector.errors import CredentialLookupError, VaultError


logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Credential:
    access_key: str = dataclasses.field(repr=False)
    secret_key: str = dataclasses.field(repr=False)


class SecretStore(abc.ABC):
    @abc.abstractmethod
    async def read(self, path: str) -> dict[str, Any] | None:
        """
        Reads a secret at `path`.
        Returns None if nothing is stored there,
        raises VaultError if the store can't be reached.
        """


def profile_secret_path(mount: str, profile: str) -> str:
    return f"{mount}/keys/profile-{profile}"


class CredentialProvider:
    """
    Looks up the MinIO keys of a storage profile.
    Every call goes to the secret store, nothing is cached or retried.
    """

    def __init__(
        self,
        secret_store: SecretStore,
        timeout_s: float | None = None,
    ) -> None:
        self._secret_store = secret_store
        self._timeout_s = timeout_s

    async def resolve(self, mount: str, profile: str) -> Credential:
        path = profile_secret_path(mount, profile)
        try:
            async with asyncio.timeout(self._timeout_s):
                data = await self._secret_store.read(path)
        except (VaultError, TimeoutError) as e:
            raise CredentialLookupError(mount, profile) from e

        if not isinstance(data, dict):
            logger.info("no secret stored at %s", path)
            raise CredentialLookupError(mount, profile)

        access_key = data.get("accessKeyId")
        secret_key = data.get("secretAccessKey")
        if not isinstance(access_key, str) or not isinstance(secret_key, str):
            logger.info("secret at %s doesn't hold a MinIO key pair", path)
            raise CredentialLookupError(mount, profile)

        return Credential(access_key=access_key, secret_key=secret_key)
