import base64
from decimal import Decimal, DecimalException
from typing import Annotated, Any
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    RootModel,
    model_validator,
    field_validator,
)
from enum import StrEnum

from kubernetes.utils import parse_quantity


class ApiVersion(StrEnum):
    V1 = "admission.k8s.io/v1"
    V1BETA1 = "admission.k8s.io/v1beta1"


class Operation(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CONNECT = "CONNECT"


class PatchType(StrEnum):
    JSONPatch = "JSONPatch"


class PatchOp(StrEnum):
    ADD = "add"
    REMOVE = "remove"
    REPLACE = "replace"
    MOVE = "move"
    COPY = "copy"
    TEST = "test"


# https://jsonpatch.com/
class PatchOperation(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    op: PatchOp
    path: str
    value: Any = None
    from_: str | None = Field(default=None, alias="from")

    @model_validator(mode="after")
    def validate_model(self):
        has_value = "value" in self.model_fields_set
        if self.op in (PatchOp.ADD, PatchOp.REPLACE, PatchOp.TEST) and not has_value:
            raise ValueError(f"{self.op} operation requires a value")
        if self.op == PatchOp.REMOVE and has_value:
            raise ValueError("remove operation does not take a value")
        if self.op in (PatchOp.MOVE, PatchOp.COPY) and self.from_ is None:
            raise ValueError(f"{self.op} operation requires a from path")

        return self


Patch = RootModel[list[PatchOperation]]


class GroupVersionKind(BaseModel):
    group: str = ""
    version: str
    kind: str


class GroupVersionResource(BaseModel):
    model_config = ConfigDict(frozen=True)

    group: str = ""
    version: str
    resource: str


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#status-v1-meta
class AdmissionReviewStatus(BaseModel):
    message: str


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionResponse
class AdmissionResponse(BaseModel):
    uid: str
    allowed: bool
    status: AdmissionReviewStatus | None = None
    patchType: PatchType | None = None
    patch: str | None = None

    @field_validator("patch", mode="before")
    @classmethod
    def validate_patch(cls, val):
        if isinstance(val, Patch):
            val = base64.b64encode(
                val.model_dump_json(by_alias=True, exclude_unset=True).encode()
            ).decode()
        elif isinstance(val, (str, bytes)):
            # Make sure the base64 string contains valid data.
            Patch.model_validate_json(base64.b64decode(val))
            if isinstance(val, bytes):
                val = val.decode()
        return val

    @model_validator(mode="after")
    def validate_model(self):
        if self.patch and not self.patchType:
            raise ValueError("missing patchType field")
        if self.patchType and not self.patch:
            raise ValueError(f"patchType is {self.patchType} but there is no patch")
        if self.allowed and self.status and self.status.message:
            raise ValueError("an allowed response cannot carry a rejection message")
        if not self.allowed and self.patch:
            raise ValueError("a rejected response cannot carry a patch")

        return self

    def patch_operations(self) -> list[PatchOperation]:
        if not self.patch:
            return []
        return Patch.model_validate_json(base64.b64decode(self.patch)).root


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionRequest
class AdmissionRequest(BaseModel):
    uid: str = Field(min_length=1)
    kind: GroupVersionKind | None = None
    resource: GroupVersionResource | None = None
    subResource: str | None = None
    name: str | None = None
    namespace: str = ""
    operation: Operation = Operation.CREATE
    object: Any = None
    oldObject: Any = None
    dryRun: bool | None = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionReview
class AdmissionReview(BaseModel):
    apiVersion: ApiVersion = ApiVersion.V1
    kind: str = "AdmissionReview"
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, val):
        if val != "AdmissionReview":
            raise ValueError(f"unexpected kind {val}")
        return val

    @model_validator(mode="after")
    def validate_model(self):
        if not (self.request or self.response):
            raise ValueError("must contain a request or a response")

        return self


def quantity(val):
    """Parse a Kubernetes resource quantity such as "100m" or "128Mi"."""
    try:
        return parse_quantity(val)
    except DecimalException as err:
        raise ValueError(f"invalid quantity {val!r}: {err!r}")


# A missing quantity is zero.
Quantity = Annotated[Decimal, BeforeValidator(quantity)]


class ResourceRequirements(BaseModel):
    limits: dict[str, Quantity] = {}
    requests: dict[str, Quantity] = {}

    def limit(self, name: str) -> Decimal:
        return self.limits.get(name, Decimal(0))


class Container(BaseModel):
    name: str
    image: str | None = None
    resources: ResourceRequirements = ResourceRequirements()


class PodSpec(BaseModel):
    containers: list[Container] = []


class Metadata(BaseModel):
    name: str | None = None
    namespace: str | None = None
    labels: dict[str, str] = {}


class Pod(BaseModel):
    metadata: Metadata = Metadata()
    spec: PodSpec = PodSpec()


PodGVR = GroupVersionResource(version="v1", resource="pods")
