import logging

from aiohttp import web
from pydantic import ValidationError

from goofys_injector.app_keys import MUTATOR_KEY
from goofys_injector.errors import AdmissionControllerError, DecodeError
from goofys_injector.mutator import Mutator
from goofys_injector.schema import (
    AdmissionReview,
    admission_review,
    failure_response,
)


logger = logging.getLogger(__name__)


class AdmissionControllerApi:
    def __init__(
        self,
        app: web.Application,
    ) -> None:
        self._app = app

    @property
    def _mutator(self) -> Mutator:
        return self._app[MUTATOR_KEY]

    def register(self, app: web.Application) -> None:
        app.add_routes(
            [
                web.get("/ping", self.handle_ping),
                web.post("/mutate", self.handle_post_mutate),
            ]
        )

    async def handle_ping(self, request: web.Request) -> web.Response:
        return web.Response(text="Pong")

    async def handle_post_mutate(self, request: web.Request) -> web.Response:
        logger.info("mutate call")
        uid = ""
        try:
            review = self._decode_review(await request.read())
            uid = review.request.uid
            result = await self._mutator.mutate(review.request)
        except AdmissionControllerError as e:
            logger.error("unable to mutate: %s", e.message)
            return web.json_response(
                admission_review(failure_response(uid, e.status_code, e.message)),
                status=e.status_code,
            )
        except Exception:
            error_message = "goofys injector unhandled error"
            logger.exception(error_message)
            return web.json_response(
                admission_review(failure_response(uid, 500, error_message)),
                status=500,
            )

        return web.json_response(
            admission_review(result.to_review(), api_version=review.api_version)
        )

    @staticmethod
    def _decode_review(body: bytes) -> AdmissionReview:
        try:
            return AdmissionReview.model_validate_json(body)
        except ValidationError as e:
            raise DecodeError(f"unable to decode AdmissionReview: {e}") from e
