import logging

from typing import Callable, NamedTuple
from typing_extensions import Protocol

from .codec import ReviewCodec
from .exc import (
    AdmissionDenied,
    AdmissionFault,
    EncodingFault,
    MethodNotAllowed,
    UnreadableBody,
    UnsupportedMediaType,
)
from .gate import NamespaceAllowedFunc, NamespaceGate
from .logs import ContextLogger
from .models import (
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    AdmissionReviewStatus,
    Patch,
    PatchOperation,
    PatchType,
)

LOG = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class AdmissionFunc(Protocol):
    """Decision logic plugged into the engine.

    Given a request, return the patch operations to apply before the object
    is admitted (``None`` or an empty list for none), or raise
    ``AdmissionDenied`` with the reason the operation is rejected.
    """

    def __call__(
        self, logger: ContextLogger, request: AdmissionRequest
    ) -> list[PatchOperation] | None: ...


class AdmissionResult(NamedTuple):
    uid: str
    allowed: bool
    body: bytes


class AdmissionEngine:
    def __init__(
        self,
        codec: ReviewCodec,
        admit: AdmissionFunc,
        namespace_allowed: NamespaceAllowedFunc | None = None,
    ):
        self.codec = codec
        self.admit = admit
        self.gate = NamespaceGate(namespace_allowed)

    def handle(
        self,
        method: str,
        content_type: str | None,
        read_body: Callable[[], bytes],
        logger: ContextLogger | None = None,
    ) -> AdmissionResult:
        """Process one admission review and return the encoded response.

        Client errors raise a ``BadRequest`` or ``MethodNotAllowed``; faults
        that leave no meaningful response raise an ``ApplicationError`` with
        status 500. A rejection by the decision function is not an error.
        """
        if logger is None:
            logger = ContextLogger(LOG)

        # Valid requests are POST with Content-Type: application/json
        if method != "POST":
            raise MethodNotAllowed(f"invalid method {method}")

        if content_type != JSON_CONTENT_TYPE:
            raise UnsupportedMediaType(f"invalid content type {content_type}")

        try:
            body = read_body()
        except OSError as err:
            raise UnreadableBody(f"could not read request body: {err}")

        review = self.codec.decode_review(body)
        request = review.request
        logger = logger.bind(admission_id=request.uid)

        try:
            in_scope = self.gate.is_in_scope(request.namespace)
        except Exception as err:
            logger.exception("namespace check failed")
            raise AdmissionFault(
                f"namespace check failed: {err}", admission_id=request.uid
            )

        patch_ops = []
        denied = None
        if in_scope:
            try:
                patch_ops = self.admit(logger, request) or []
            except AdmissionDenied as err:
                denied = str(err) or "admission denied"
            except Exception as err:
                logger.exception("admission function failed")
                raise AdmissionFault(
                    f"admission function failed: {err}", admission_id=request.uid
                )
        else:
            logger.debug(
                "Ignoring request due to disallowed namespace",
                extra={"namespace": request.namespace},
            )

        if denied is not None:
            logger.info("denied request", extra={"allowed": False, "reason": denied})

        try:
            patch_ops = list(patch_ops)
            if denied is not None:
                response = AdmissionResponse(
                    uid=request.uid,
                    allowed=False,
                    status=AdmissionReviewStatus(message=denied),
                )
            elif patch_ops:
                response = AdmissionResponse(
                    uid=request.uid,
                    allowed=True,
                    patchType=PatchType.JSONPatch,
                    patch=Patch(patch_ops),
                )
            else:
                response = AdmissionResponse(uid=request.uid, allowed=True)

            body = self.codec.encode_response(
                AdmissionReview(apiVersion=review.apiVersion, response=response)
            )
        except (ValueError, TypeError) as err:
            raise EncodingFault(
                f"could not marshal response: {err}", admission_id=request.uid
            )

        if response.allowed:
            logger.debug(
                "admitted request",
                extra={"allowed": True, "patch_ops": len(patch_ops)},
            )

        return AdmissionResult(uid=request.uid, allowed=response.allowed, body=body)
