import base64
import json
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import Mock, patch
from uuid import uuid4

import aiohttp
import pytest
from aiohttp import ClientResponse, web
from yarl import URL

from goofys_injector.app import create_app
from goofys_injector.config import (
    AdmissionControllerConfig,
    Config,
    InjectorConfig,
    ServerConfig,
    VaultConfig,
)
from goofys_injector.instances import Instance
from goofys_injector.patch_builder import VolumeDriver
from goofys_injector.policy import (
    CLASSIFICATION_PROTECTED_B,
    LABEL_ARGO_WORKFLOW,
    LABEL_CLASSIFICATION,
)
from tests.integration.conftest import ApiConfig

PodFactory = Callable[..., dict[str, Any]]


@asynccontextmanager
async def _api(config: Config) -> AsyncIterator[ApiConfig]:
    """
    Runs the goofys injector webhook API
    """
    app = await create_app(config)
    runner = web.AppRunner(app)
    await runner.setup()
    api_config = ApiConfig(host="127.0.0.1", port=8080)
    site = web.TCPSite(runner, api_config.host, api_config.port)
    await site.start()
    yield api_config
    await runner.cleanup()


def _config(
    instances: tuple[Instance, ...],
    injector: InjectorConfig,
    vault: VaultConfig | None = None,
) -> Config:
    return Config(
        server=ServerConfig(),
        injector=injector,
        admission_controller_config=AdmissionControllerConfig(
            cert_secret_name="goofys-injector-tls"
        ),
        instances=instances,
        vault=vault,
    )


@pytest.fixture
async def api(
    instances: tuple[Instance, ...],
    injector_config: InjectorConfig,
) -> AsyncIterator[ApiConfig]:
    async with _api(_config(instances, injector_config)) as api:
        yield api


@pytest.fixture
async def goofys_api(instances: tuple[Instance, ...]) -> AsyncIterator[ApiConfig]:
    """
    The legacy driver, talking to a vault which doesn't accept connections.
    """
    vault = VaultConfig(
        url=URL("http://127.0.0.1:1"),
        token="vault-token",
        client_timeout_s=1,
    )
    config = _config(
        instances, InjectorConfig(driver=VolumeDriver.GOOFYS), vault=vault
    )
    async with _api(config) as api:
        yield api


@pytest.fixture
async def boathouse_api_with_vault(
    instances: tuple[Instance, ...],
    injector_config: InjectorConfig,
) -> AsyncIterator[ApiConfig]:
    """
    The default driver in a cluster where vault is configured,
    but the injector holds no token for it.
    """
    vault = VaultConfig(
        url=URL("http://vault.example.ca:8200"),
        token_path="/nonexistent/token",
    )
    async with _api(_config(instances, injector_config, vault=vault)) as api:
        yield api


def _review(pod: Any, uid: str | None = None) -> dict[str, Any]:
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "request": {
            "uid": uid or str(uuid4()),
            "namespace": "team_a",
            "object": pod,
        },
    }


def _decode_patch(response: dict[str, Any]) -> list[dict[str, Any]]:
    return json.loads(base64.b64decode(response["patch"]))


class TestMutateApi:
    http: aiohttp.ClientSession

    @pytest.fixture(autouse=True)
    def setup(
        self,
        client: aiohttp.ClientSession,
    ) -> None:
        self.http = client

    @pytest.fixture
    def logger_mock(self) -> Iterator[Mock]:
        with patch("goofys_injector.api.logger") as mock:
            yield mock

    async def test__ping(self, api: ApiConfig) -> None:
        async with self.http.get(api.ping_url) as response:
            assert response.status == 200

    async def test__pod_without_annotation(
        self,
        api: ApiConfig,
        pod_factory: PodFactory,
    ) -> None:
        """
        No injection requested - the pod is allowed untouched
        """
        uid = str(uuid4())
        response = await self.http.post(
            api.mutate_url, json=_review(pod_factory(inject=None), uid=uid)
        )
        payload = await self._ensure_allowed(response, uid)

        assert "patch" not in payload["response"]
        assert "auditAnnotations" not in payload["response"]

    async def test__pod_is_mutated(
        self,
        api: ApiConfig,
        pod_factory: PodFactory,
    ) -> None:
        uid = str(uuid4())
        response = await self.http.post(
            api.mutate_url, json=_review(pod_factory(), uid=uid)
        )
        payload = await self._ensure_allowed(response, uid)

        review = payload["response"]
        assert review["patchType"] == "JSONPatch"
        assert review["auditAnnotations"] == {
            "goofys-injector": "Added MinIO volume mounts"
        }
        assert review["status"] == {"status": "Success"}

        patch_document = _decode_patch(review)
        assert [op["path"] for op in patch_document] == [
            "/spec/volumes/-",
            "/spec/containers/0/volumeMounts/-",
        ] * 4
        assert [op["value"]["name"] for op in patch_document] == [
            "minio-standard-private",
            "minio-standard-private",
            "minio-standard-shared",
            "minio-standard-shared",
            "minio-premium-private",
            "minio-premium-private",
            "minio-premium-shared",
            "minio-premium-shared",
        ]
        options = patch_document[0]["value"]["flexVolume"]["options"]
        assert options["vault-path"] == "minio_standard/keys/profile-team-a"
        assert options["bucket"] == "team-a"

    async def test__argo_wait_container(
        self,
        api: ApiConfig,
        pod_factory: PodFactory,
    ) -> None:
        pod = pod_factory(
            labels={LABEL_ARGO_WORKFLOW: "my-workflow"},
            containers=["wait", "main"],
        )
        response = await self.http.post(api.mutate_url, json=_review(pod))
        payload = await self._ensure_allowed(response)

        mount_paths = {
            op["path"]
            for op in _decode_patch(payload["response"])
            if "volumeMounts" in op["path"]
        }
        assert mount_paths == {"/spec/containers/1/volumeMounts/-"}

    async def test__protected_b_pod(
        self,
        api: ApiConfig,
        pod_factory: PodFactory,
        logger_mock: Mock,
    ) -> None:
        pod = pod_factory(labels={LABEL_CLASSIFICATION: CLASSIFICATION_PROTECTED_B})
        response = await self.http.post(api.mutate_url, json=_review(pod))
        payload = await self._ensure_allowed(response)

        assert "patch" not in payload["response"]
        logger_mock.error.assert_not_called()

    async def test__malformed_annotation(
        self,
        api: ApiConfig,
        pod_factory: PodFactory,
        logger_mock: Mock,
    ) -> None:
        uid = str(uuid4())
        response = await self.http.post(
            api.mutate_url, json=_review(pod_factory(inject="yes"), uid=uid)
        )
        await self._ensure_failed(response, uid=uid, code=422)
        assert logger_mock.error.call_args[0][0] == "unable to mutate: %s"

    async def test__undecodable_pod(self, api: ApiConfig) -> None:
        uid = str(uuid4())
        response = await self.http.post(
            api.mutate_url, json=_review("not-a-pod", uid=uid)
        )
        await self._ensure_failed(response, uid=uid, code=400)

    async def test__undecodable_review(self, api: ApiConfig) -> None:
        response = await self.http.post(api.mutate_url, data=b"{not json")
        await self._ensure_failed(response, uid="", code=400)

    async def test__legacy_driver_skips_unreachable_vault(
        self,
        goofys_api: ApiConfig,
        pod_factory: PodFactory,
    ) -> None:
        """
        Credential lookup failures never fail the admission
        """
        response = await self.http.post(
            goofys_api.mutate_url, json=_review(pod_factory())
        )
        payload = await self._ensure_allowed(response)

        assert _decode_patch(payload["response"]) == []

    async def test__boathouse_driver_does_not_use_vault(
        self,
        boathouse_api_with_vault: ApiConfig,
        pod_factory: PodFactory,
    ) -> None:
        """
        Vault credentials are only needed by the legacy driver
        """
        response = await self.http.post(
            boathouse_api_with_vault.mutate_url, json=_review(pod_factory())
        )
        payload = await self._ensure_allowed(response)

        patch_document = _decode_patch(payload["response"])
        assert len(patch_document) == 8
        driver = patch_document[0]["value"]["flexVolume"]["driver"]
        assert driver == "statcan.gc.ca/boathouse"

    async def _ensure_allowed(
        self,
        response: ClientResponse,
        uid: str | None = None,
    ) -> dict[str, Any]:
        assert response.status == 200
        payload = await response.json()
        assert payload["apiVersion"] == "admission.k8s.io/v1"
        assert payload["kind"] == "AdmissionReview"
        assert payload["response"]["allowed"] is True
        if uid is not None:
            assert payload["response"]["uid"] == uid
        return payload

    async def _ensure_failed(
        self,
        response: ClientResponse,
        uid: str,
        code: int,
    ) -> None:
        assert response.status == code
        payload = await response.json()
        assert payload["response"]["uid"] == uid
        assert payload["response"]["allowed"] is False
        assert payload["response"]["status"]["code"] == code
        assert payload["response"]["status"]["status"] == "Failure"
