import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from apolo_kube_client.config import KubeClientAuthType, KubeConfig
from yarl import URL

from goofys_injector.instances import Instance, load_instances
from goofys_injector.patch_builder import VolumeDriver

logger = logging.getLogger(__name__)


DEFAULT_REGION = "us-east-1"


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8443
    keep_alive_timeout_s: float = 75

    @classmethod
    def from_environ(cls, environ: dict[str, str] | None = None) -> "ServerConfig":
        return EnvironConfigFactory(environ).create_server()


@dataclass(frozen=True)
class InjectorConfig:
    driver: VolumeDriver = VolumeDriver.BOATHOUSE
    home_user: str = "jovyan"
    region: str = DEFAULT_REGION
    instances_path: Path = Path("/instances.json")

    def mount_base(self, instance: Instance) -> str:
        return f"/home/{self.home_user}/minio/{instance.short}"

    @classmethod
    def from_environ(
        cls, environ: dict[str, str] | None = None
    ) -> "InjectorConfig":
        return EnvironConfigFactory(environ).create_injector()


@dataclass(frozen=True)
class VaultConfig:
    url: URL
    token: str | None = field(repr=False, default=None)
    token_path: str | None = None
    client_timeout_s: float = 5

    @classmethod
    def from_environ(
        cls, environ: dict[str, str] | None = None
    ) -> "VaultConfig | None":
        return EnvironConfigFactory(environ).create_vault()


@dataclass(frozen=True)
class AdmissionControllerConfig:
    cert_secret_name: str

    @classmethod
    def from_environ(
        cls,
        environ: dict[str, str] | None = None,
    ) -> "AdmissionControllerConfig":
        return EnvironConfigFactory(environ).create_admission_controller()


@dataclass(frozen=True)
class Config:
    server: ServerConfig
    injector: InjectorConfig
    admission_controller_config: AdmissionControllerConfig
    instances: tuple[Instance, ...] = ()
    vault: VaultConfig | None = None
    kube: KubeConfig | None = None

    @classmethod
    def from_environ(cls, environ: dict[str, str] | None = None) -> "Config":
        return EnvironConfigFactory(environ).create()


class EnvironConfigFactory:
    def __init__(self, environ: dict[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def create(self) -> Config:
        injector = self.create_injector()
        vault = self.create_vault()
        if injector.driver is VolumeDriver.GOOFYS and vault is None:
            raise ValueError(
                f"{VolumeDriver.GOOFYS.value} driver requires VAULT_ADDR to be set"
            )
        return Config(
            server=self.create_server(),
            injector=injector,
            admission_controller_config=self.create_admission_controller(),
            instances=self.create_instances(injector),
            vault=vault,
            kube=self.create_kube(),
        )

    def create_server(self) -> ServerConfig:
        return ServerConfig(
            host=self._environ.get("GOOFYS_INJECTOR_HOST", ServerConfig.host),
            port=int(self._environ.get("GOOFYS_INJECTOR_PORT", ServerConfig.port)),
            keep_alive_timeout_s=float(
                self._environ.get(
                    "GOOFYS_INJECTOR_KEEP_ALIVE_TIMEOUT",
                    ServerConfig.keep_alive_timeout_s,
                )
            ),
        )

    def create_injector(self) -> InjectorConfig:
        driver_name = self._environ.get("GOOFYS_INJECTOR_DRIVER", "boathouse")
        try:
            driver = VolumeDriver[driver_name.upper()]
        except KeyError:
            accepted = ", ".join(d.name.lower() for d in VolumeDriver)
            raise ValueError(
                f"GOOFYS_INJECTOR_DRIVER `{driver_name}` is not supported, "
                f"expected one of: {accepted}"
            ) from None
        return InjectorConfig(
            driver=driver,
            home_user=self._environ.get(
                "GOOFYS_INJECTOR_HOME_USER", InjectorConfig.home_user
            ),
            region=self._environ.get("GOOFYS_INJECTOR_REGION", InjectorConfig.region),
            instances_path=Path(
                self._environ.get(
                    "GOOFYS_INJECTOR_INSTANCES_PATH", InjectorConfig.instances_path
                )
            ),
        )

    def create_instances(self, injector: InjectorConfig) -> tuple[Instance, ...]:
        instances = load_instances(injector.instances_path)
        logger.info(
            "loaded %d instances from %s", len(instances), injector.instances_path
        )
        return instances

    def create_vault(self) -> VaultConfig | None:
        url = self._environ.get("VAULT_ADDR")
        if not url:
            logger.info("vault client won't be initialized due to a missing url")
            return None
        return VaultConfig(
            url=URL(url),
            token=self._environ.get("VAULT_TOKEN") or None,
            token_path=self._environ.get("VAULT_TOKEN_PATH"),
            client_timeout_s=float(
                self._environ.get(
                    "GOOFYS_INJECTOR_VAULT_TIMEOUT", VaultConfig.client_timeout_s
                )
            ),
        )

    def create_kube(self) -> KubeConfig | None:
        endpoint_url = self._environ.get("GOOFYS_INJECTOR_K8S_API_URL")
        if not endpoint_url:
            logger.info("kube client won't be initialized due to a missing url")
            return None
        auth_type = KubeClientAuthType(
            self._environ.get(
                "GOOFYS_INJECTOR_K8S_AUTH_TYPE", KubeConfig.auth_type.value
            )
        )
        ca_path = self._environ.get("GOOFYS_INJECTOR_K8S_CA_PATH")
        ca_data = Path(ca_path).read_text() if ca_path else None

        return KubeConfig(
            endpoint_url=endpoint_url,
            cert_authority_data_pem=ca_data,
            auth_type=auth_type,
            token=None,
            token_path=self._environ.get("GOOFYS_INJECTOR_K8S_TOKEN_PATH"),
            namespace=self._environ.get(
                "GOOFYS_INJECTOR_K8S_NS", KubeConfig.namespace
            ),
            client_conn_timeout_s=int(
                self._environ.get("GOOFYS_INJECTOR_K8S_CLIENT_CONN_TIMEOUT")
                or KubeConfig.client_conn_timeout_s
            ),
            client_read_timeout_s=int(
                self._environ.get("GOOFYS_INJECTOR_K8S_CLIENT_READ_TIMEOUT")
                or KubeConfig.client_read_timeout_s
            ),
        )

    def create_admission_controller(self) -> AdmissionControllerConfig:
        return AdmissionControllerConfig(
            cert_secret_name=self._environ["GOOFYS_INJECTOR_CERT_SECRET_NAME"],
        )
