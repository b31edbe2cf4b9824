import logging
from collections.abc import Sequence

from pydantic import ValidationError

from goofys_injector import policy
from goofys_injector.config import InjectorConfig
from goofys_injector.credentials import CredentialProvider, profile_secret_path
from goofys_injector.errors import CredentialLookupError, DecodeError
from goofys_injector.instances import Instance
from goofys_injector.patch_builder import (
    PatchOp,
    VolumeDriver,
    build_embedded_instance,
    build_reference_instance,
)
from goofys_injector.schema import (
    AdmissionRequest,
    AdmissionResult,
    AdmissionStatus,
    Pod,
)


logger = logging.getLogger(__name__)

AUDIT_ANNOTATION_KEY = "goofys-injector"
AUDIT_ANNOTATION_VALUE = "Added MinIO volume mounts"


class Mutator:
    """
    Turns an admission request for a pod into the patch
    mounting every configured MinIO instance into it.
    """

    def __init__(
        self,
        instances: Sequence[Instance],
        config: InjectorConfig,
        credential_provider: CredentialProvider | None = None,
    ) -> None:
        if config.driver is VolumeDriver.GOOFYS and credential_provider is None:
            raise ValueError(
                f"{VolumeDriver.GOOFYS.value} driver requires a credential provider"
            )
        self._instances = tuple(instances)
        self._config = config
        self._credential_provider = credential_provider

    @staticmethod
    def decode_pod(request: AdmissionRequest) -> Pod:
        try:
            pod = Pod.model_validate(request.object)
        except ValidationError as e:
            raise DecodeError(f"unable to decode Pod: {e}") from e
        if not pod.metadata.namespace and request.namespace:
            pod.metadata.namespace = request.namespace
        return pod

    async def mutate(self, request: AdmissionRequest) -> AdmissionResult:
        result = AdmissionResult(uid=request.uid)

        pod = self.decode_pod(request)
        logger.info(
            "Check pod for notebook %s/%s", pod.metadata.namespace, pod.metadata.name
        )

        decision = policy.evaluate(pod)
        if not decision.inject:
            return result

        logger.info(
            "Injecting %d instances into %s/%s",
            len(self._instances),
            pod.metadata.namespace,
            pod.metadata.name,
        )
        for instance in self._instances:
            result.add_patches(await self._instance_patches(instance, decision))

        result.audit_annotations[AUDIT_ANNOTATION_KEY] = AUDIT_ANNOTATION_VALUE
        result.status = AdmissionStatus.SUCCESS
        return result

    async def _instance_patches(
        self,
        instance: Instance,
        decision: policy.InjectionDecision,
    ) -> list[PatchOp]:
        base = self._config.mount_base(instance)

        if self._config.driver is VolumeDriver.BOATHOUSE:
            return build_reference_instance(
                instance.volume_name,
                profile_secret_path(instance.name, decision.profile),
                instance.external_url,
                self._config.region,
                decision.profile,
                base,
                decision.container_index,
            )

        assert self._credential_provider is not None
        try:
            credential = await self._credential_provider.resolve(
                instance.name, decision.profile
            )
        except CredentialLookupError as e:
            # other instances can still be mounted
            logger.warning(
                "unable to obtain MinIO token at %s/%s: %r",
                e.mount,
                e.profile,
                e.__cause__,
            )
            return []

        return build_embedded_instance(
            instance.volume_name,
            credential.access_key,
            credential.secret_key,
            instance.external_url,
            self._config.region,
            decision.profile,
            base,
            decision.container_index,
        )
