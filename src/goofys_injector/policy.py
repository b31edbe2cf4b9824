import dataclasses
import logging

from goofys_injector.errors import AnnotationParseError
from goofys_injector.schema import Pod


logger = logging.getLogger(__name__)

ANNOTATION_INJECT_BOATHOUSE = "data.statcan.gc.ca/inject-boathouse"

LABEL_ARGO_WORKFLOW = "workflows.argoproj.io/workflow"
LABEL_CLASSIFICATION = "data.statcan.gc.ca/classification"

CLASSIFICATION_PROTECTED_B = "protected-b"

# argo runs its sidecar first, the user container comes second
ARGO_WAIT_CONTAINER_NAME = "wait"

_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})


@dataclasses.dataclass(frozen=True)
class InjectionDecision:
    inject: bool
    container_index: int
    profile: str


def profile_name(namespace: str) -> str:
    """Storage profiles cannot contain underscores"""
    return namespace.replace("_", "-")


def parse_bool(value: str) -> bool:
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean value: `{value}`")


def evaluate(pod: Pod) -> InjectionDecision:
    metadata = pod.metadata
    profile = profile_name(metadata.namespace)

    inject = False
    container_index = 0

    raw_inject = metadata.annotations.get(ANNOTATION_INJECT_BOATHOUSE)
    if raw_inject is not None:
        try:
            inject = parse_bool(raw_inject)
        except ValueError as e:
            error_message = (
                f"unable to decode {ANNOTATION_INJECT_BOATHOUSE} annotation: {e}"
            )
            raise AnnotationParseError(error_message) from e

    if LABEL_ARGO_WORKFLOW in metadata.labels:
        containers = pod.spec.containers
        if containers and containers[0].name == ARGO_WAIT_CONTAINER_NAME:
            container_index = 1

    # must stay the last rule: nothing may turn injection back on
    if metadata.labels.get(LABEL_CLASSIFICATION) == CLASSIFICATION_PROTECTED_B:
        if inject:
            logger.info(
                "Pod %s/%s is classified %s, volumes won't be injected",
                metadata.namespace,
                metadata.name,
                CLASSIFICATION_PROTECTED_B,
            )
        inject = False

    return InjectionDecision(
        inject=inject,
        container_index=container_index,
        profile=profile,
    )
