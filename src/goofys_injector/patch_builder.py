import dataclasses
import posixpath
from enum import Enum
from typing import Any, ClassVar


OWNER_UID = "1000"
OWNER_GID = "100"
CREDENTIAL_TTL = "24h"

SHARED_BUCKET = "shared"


class VolumeDriver(str, Enum):
    """FlexVolume drivers able to mount a bucket"""

    # legacy driver, credentials travel inside the volume options
    GOOFYS = "informaticslab/goofys-flex-volume"
    # credentials are fetched from vault by the driver when the pod starts
    BOATHOUSE = "statcan.gc.ca/boathouse"


@dataclasses.dataclass(frozen=True)
class FlexVolume:
    name: str
    driver: VolumeDriver
    options: dict[str, str]

    def to_kube(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "flexVolume": {
                "driver": self.driver.value,
                "options": dict(self.options),
            },
        }


@dataclasses.dataclass(frozen=True)
class VolumeMount:
    name: str
    mount_path: str

    def to_kube(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "mountPath": self.mount_path,
        }


@dataclasses.dataclass(frozen=True)
class PatchOp:
    op: ClassVar[str] = "add"

    @property
    def path(self) -> str:
        raise NotImplementedError

    @property
    def value(self) -> FlexVolume | VolumeMount:
        raise NotImplementedError

    def to_kube(self) -> dict[str, Any]:
        return {
            "op": self.op,
            "path": self.path,
            "value": self.value.to_kube(),
        }


@dataclasses.dataclass(frozen=True)
class VolumeAddition(PatchOp):
    volume: FlexVolume

    @property
    def path(self) -> str:
        return "/spec/volumes/-"

    @property
    def value(self) -> FlexVolume:
        return self.volume


@dataclasses.dataclass(frozen=True)
class VolumeMountAddition(PatchOp):
    container_index: int
    volume_mount: VolumeMount

    @property
    def path(self) -> str:
        return f"/spec/containers/{self.container_index}/volumeMounts/-"

    @property
    def value(self) -> VolumeMount:
        return self.volume_mount


def _attach(
    volume: FlexVolume, mount_path: str, container_index: int
) -> list[PatchOp]:
    # the volume has to be added before anything mounts it
    return [
        VolumeAddition(volume=volume),
        VolumeMountAddition(
            container_index=container_index,
            volume_mount=VolumeMount(name=volume.name, mount_path=mount_path),
        ),
    ]


def build_embedded_mount(
    name: str,
    access_key: str,
    secret_key: str,
    endpoint: str,
    region: str,
    bucket: str,
    mount_path: str,
    container_index: int = 0,
) -> list[PatchOp]:
    volume = FlexVolume(
        name=name,
        driver=VolumeDriver.GOOFYS,
        options={
            "bucket": bucket,
            "endpoint": endpoint,
            "region": region,
            "access-key": access_key,
            "secret-key": secret_key,
            "uid": OWNER_UID,
            "gid": OWNER_GID,
        },
    )
    return _attach(volume, mount_path, container_index)


def build_reference_mount(
    name: str,
    vault_path: str,
    endpoint: str,
    region: str,
    bucket: str,
    mount_path: str,
    container_index: int,
) -> list[PatchOp]:
    volume = FlexVolume(
        name=name,
        driver=VolumeDriver.BOATHOUSE,
        options={
            "bucket": bucket,
            "endpoint": endpoint,
            "region": region,
            "vault-path": vault_path,
            "vault-ttl": CREDENTIAL_TTL,
            "uid": OWNER_UID,
            "gid": OWNER_GID,
        },
    )
    return _attach(volume, mount_path, container_index)


def build_embedded_instance(
    name: str,
    access_key: str,
    secret_key: str,
    endpoint: str,
    region: str,
    profile: str,
    base: str,
    container_index: int = 0,
) -> list[PatchOp]:
    """
    Patches mounting the private bucket of a profile and the shared bucket
    of one instance, with the credentials embedded into the volumes.
    """
    return [
        *build_embedded_mount(
            f"{name}-private",
            access_key,
            secret_key,
            endpoint,
            region,
            profile,
            posixpath.join(base, "private"),
            container_index,
        ),
        *build_embedded_mount(
            f"{name}-shared",
            access_key,
            secret_key,
            endpoint,
            region,
            SHARED_BUCKET,
            posixpath.join(base, "shared"),
            container_index,
        ),
    ]


def build_reference_instance(
    name: str,
    vault_path: str,
    endpoint: str,
    region: str,
    profile: str,
    base: str,
    container_index: int,
) -> list[PatchOp]:
    """
    Same pair of mounts as `build_embedded_instance`,
    but the driver resolves the credentials from `vault_path` itself.
    """
    return [
        *build_reference_mount(
            f"{name}-private",
            vault_path,
            endpoint,
            region,
            profile,
            posixpath.join(base, "private"),
            container_index,
        ),
        *build_reference_mount(
            f"{name}-shared",
            vault_path,
            endpoint,
            region,
            SHARED_BUCKET,
            posixpath.join(base, "shared"),
            container_index,
        ),
    ]
