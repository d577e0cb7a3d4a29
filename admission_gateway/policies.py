from typing_extensions import override

from .codec import ReviewCodec
from .engine import AdmissionFunc
from .exc import AdmissionDenied, DecodeError
from .models import Pod, PodGVR


class ResourceLimitsPolicy(AdmissionFunc):
    """Reject pods whose containers do not declare CPU and memory limits."""

    def __init__(self, codec: ReviewCodec):
        self.codec = codec

    @override
    def __call__(self, logger, request):
        # This policy should only see Pod objects. Anything else is admitted
        # so that a broken webhook configuration cannot block unrelated
        # resources.
        if request.resource != PodGVR:
            logger.warning(
                "Received an unexpected resource in handler",
                extra={"resource_type": request.resource},
            )
            return []

        try:
            pod = self.codec.decode_target(request.object, Pod)
        except DecodeError as err:
            raise AdmissionDenied(f"could not deserialize pod: {err}")

        validate_pod_resource_limits(pod)
        return []


def validate_pod_resource_limits(pod: Pod):
    for container in pod.spec.containers:
        if container.resources.limit("cpu").is_zero():
            raise AdmissionDenied(
                f"container ({container.name}) is missing required CPU Limits"
            )
        if container.resources.limit("memory").is_zero():
            raise AdmissionDenied(
                f"container ({container.name}) is missing required Memory Limits"
            )
