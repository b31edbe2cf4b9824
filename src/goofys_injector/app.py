import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack

from aiohttp import web

from goofys_injector.api import AdmissionControllerApi
from goofys_injector.app_keys import MUTATOR_KEY
from goofys_injector.config import Config
from goofys_injector.credentials import CredentialProvider
from goofys_injector.mutator import Mutator
from goofys_injector.patch_builder import VolumeDriver
from goofys_injector.vault import VaultClient

logger = logging.getLogger(__name__)


async def create_app(config: Config) -> web.Application:
    app = web.Application(
        handler_args={"keepalive_timeout": config.server.keep_alive_timeout_s},
    )

    async def _init_app(app: web.Application) -> AsyncIterator[None]:
        async with AsyncExitStack() as exit_stack:
            credential_provider = None
            if config.injector.driver is VolumeDriver.GOOFYS:
                assert config.vault is not None
                vault = await exit_stack.enter_async_context(
                    VaultClient(config.vault)
                )
                credential_provider = CredentialProvider(
                    vault, timeout_s=config.vault.client_timeout_s
                )

            app[MUTATOR_KEY] = Mutator(
                instances=config.instances,
                config=config.injector,
                credential_provider=credential_provider,
            )
            logger.info(
                "injecting %d instances with the %s driver",
                len(config.instances),
                config.injector.driver.value,
            )

            yield

    app.cleanup_ctx.append(_init_app)

    admission_controller_api = AdmissionControllerApi(app)
    admission_controller_api.register(app)

    return app
