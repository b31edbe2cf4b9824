import base64
import dataclasses
import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from goofys_injector.patch_builder import PatchOp


ADMISSION_REVIEW_API_VERSION = "admission.k8s.io/v1"
ADMISSION_REVIEW_KIND = "AdmissionReview"


class Container(BaseModel):
    name: str = ""


class PodSpec(BaseModel):
    containers: list[Container] = Field(default_factory=list)

    @field_validator("containers", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        return value or []


class ObjectMeta(BaseModel):
    name: str = ""
    namespace: str = ""
    annotations: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)

    @field_validator("name", "namespace", mode="before")
    @classmethod
    def null_as_blank(cls, value: Any) -> Any:
        return value or ""

    @field_validator("annotations", "labels", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        return value or {}


class Pod(BaseModel):
    """
    The part of a Pod object the injector reads.
    Everything else in the submitted object is ignored.
    """

    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: PodSpec = Field(default_factory=PodSpec)


class AdmissionRequest(BaseModel):
    uid: str
    namespace: str = ""
    # decoded lazily by the mutator, so a broken pod can be reported
    # together with the request uid
    object: Any = None


class AdmissionReview(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(
        default=ADMISSION_REVIEW_API_VERSION, alias="apiVersion"
    )
    request: AdmissionRequest


class AdmissionReviewPatchType(str, Enum):
    JSON = "JSONPatch"


class AdmissionStatus(str, Enum):
    SUCCESS = "Success"
    FAILURE = "Failure"


@dataclasses.dataclass
class AdmissionResult:
    uid: str
    patch: list[PatchOp] = dataclasses.field(default_factory=list)
    audit_annotations: dict[str, str] = dataclasses.field(default_factory=dict)
    status: AdmissionStatus | None = None

    @property
    def allowed(self) -> bool:
        # this webhook never rejects pods
        return True

    def add_patches(self, patches: list[PatchOp]) -> None:
        self.patch.extend(patches)

    def dump_patch(self) -> str:
        """JSON patch document, base64-encoded as the API server expects it"""
        dumped = json.dumps([op.to_kube() for op in self.patch]).encode()
        return base64.b64encode(dumped).decode()

    def to_review(self) -> dict[str, Any]:
        response: dict[str, Any] = {
            "uid": self.uid,
            "allowed": self.allowed,
        }
        if self.status is not None:
            response.update(
                {
                    "patch": self.dump_patch(),
                    "patchType": AdmissionReviewPatchType.JSON.value,
                    "status": {"status": self.status.value},
                }
            )
        if self.audit_annotations:
            response["auditAnnotations"] = dict(self.audit_annotations)
        return response


def admission_review(
    response: dict[str, Any],
    api_version: str = ADMISSION_REVIEW_API_VERSION,
) -> dict[str, Any]:
    return {
        "apiVersion": api_version,
        "kind": ADMISSION_REVIEW_KIND,
        "response": response,
    }


def failure_response(uid: str, status_code: int, message: str) -> dict[str, Any]:
    return {
        "uid": uid,
        "allowed": False,
        "status": {
            "status": AdmissionStatus.FAILURE.value,
            "code": status_code,
            "message": message,
        },
    }
