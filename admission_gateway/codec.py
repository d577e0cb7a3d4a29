from dataclasses import dataclass
from typing import TypeVar

import pydantic

from .exc import DecodeError, EncodeError, MalformedEnvelope
from .models import AdmissionResponse, AdmissionReview, ApiVersion

T = TypeVar("T", bound=pydantic.BaseModel)


@dataclass(frozen=True)
class ReviewCodec:
    """Translates admission review envelopes to and from their JSON wire form.

    A single codec is built when the application is created and handed to
    every component that decodes or encodes objects. It holds no mutable
    state, so one instance can serve concurrent requests.
    """

    api_versions: frozenset[ApiVersion] = frozenset(ApiVersion)

    def decode_review(self, body: bytes | str) -> AdmissionReview:
        try:
            review = AdmissionReview.model_validate_json(body)
        except pydantic.ValidationError as err:
            raise MalformedEnvelope(f"could not deserialize request: {err}")

        if review.apiVersion not in self.api_versions:
            raise MalformedEnvelope(f"unsupported api version {review.apiVersion}")
        if review.request is None:
            raise MalformedEnvelope("malformed admission review: request is missing")

        return review

    def decode_target(self, raw, model: type[T]) -> T:
        """Decode the raw object carried by a request into ``model``.

        ``raw`` may be the serialized object or the JSON value already parsed
        out of the envelope.
        """
        try:
            if isinstance(raw, (bytes, str)):
                return model.model_validate_json(raw)
            return model.model_validate(raw)
        except pydantic.ValidationError as err:
            raise DecodeError(str(err))

    def encode_response(self, review: AdmissionReview) -> bytes:
        try:
            return review.model_dump_json(by_alias=True, exclude_none=True).encode()
        except ValueError as err:
            raise EncodeError(f"could not marshal response: {err}")

    def decode_response(self, body: bytes | str) -> AdmissionResponse:
        try:
            review = AdmissionReview.model_validate_json(body)
        except pydantic.ValidationError as err:
            raise DecodeError(str(err))

        if review.response is None:
            raise DecodeError("admission review has no response")

        return review.response
