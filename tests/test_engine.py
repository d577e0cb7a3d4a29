import json
import logging
from unittest.mock import Mock

import pytest

from admission_gateway.engine import AdmissionEngine
from admission_gateway.exc import (
    AdmissionDenied,
    AdmissionFault,
    EncodingFault,
    MalformedEnvelope,
    MethodNotAllowed,
    UnreadableBody,
    UnsupportedMediaType,
)
from admission_gateway.logs import ContextLogger
from admission_gateway.models import PatchOperation

from conftest import RecordingPolicy, review


def body_of(obj):
    return lambda: json.dumps(obj).encode()


@pytest.fixture()
def engine(codec, policy):
    return AdmissionEngine(codec, policy)


def test_method_checked_before_body_is_read(engine, policy):
    read_body = Mock()
    with pytest.raises(MethodNotAllowed) as err:
        engine.handle("GET", "application/json", read_body)

    assert err.value.status_code == 405
    read_body.assert_not_called()
    assert policy.calls == []


def test_content_type_checked_before_body_is_read(engine):
    read_body = Mock()
    with pytest.raises(UnsupportedMediaType) as err:
        engine.handle("POST", "text/plain", read_body)

    assert err.value.status_code == 400
    read_body.assert_not_called()


def test_unreadable_body(engine):
    read_body = Mock(side_effect=OSError("connection reset"))
    with pytest.raises(UnreadableBody) as err:
        engine.handle("POST", "application/json", read_body)

    assert err.value.status_code == 400
    assert "connection reset" in str(err.value)


def test_malformed_envelope(engine, policy):
    with pytest.raises(MalformedEnvelope) as err:
        engine.handle("POST", "application/json", lambda: b"[1, 2, 3]")

    assert err.value.status_code == 400
    assert err.value.admission_id is None
    assert policy.calls == []


def test_default_gate_skips_kube_namespaces(codec, policy):
    engine = AdmissionEngine(codec, policy)
    body = body_of(review(namespace="kube-system"))
    res = engine.handle("POST", "application/json", body)

    assert res.allowed
    assert policy.calls == []
    assert engine.gate.allowed("kube-public") is False


def test_out_of_scope_logged_at_debug(engine, caplog):
    with caplog.at_level(logging.DEBUG, logger="admission_gateway"):
        body = body_of(review(uid="u1", namespace="kube-system"))
        engine.handle("POST", "application/json", body)

    [record] = [r for r in caplog.records if r.msg.startswith("Ignoring request")]
    assert record.levelno == logging.DEBUG
    assert record.namespace == "kube-system"
    assert record.admission_id == "u1"


def test_decision_function_receives_request_and_bound_logger(codec):
    seen = {}

    def admit(logger, request):
        seen["logger"] = logger
        seen["request"] = request
        return None

    engine = AdmissionEngine(codec, admit)
    parent = ContextLogger(logging.getLogger("test"), {"request_id": "trace-1"})
    res = engine.handle("POST", "application/json", body_of(review(uid="u2")), parent)

    assert res.uid == "u2"
    assert res.allowed
    assert seen["request"].uid == "u2"
    assert seen["logger"].extra == {"request_id": "trace-1", "admission_id": "u2"}


def test_rejection(codec):
    engine = AdmissionEngine(codec, RecordingPolicy(error=AdmissionDenied("no")))
    res = engine.handle("POST", "application/json", body_of(review(uid="u3")))

    assert res.allowed is False
    response = codec.decode_response(res.body)
    assert response.uid == "u3"
    assert response.allowed is False
    assert response.status.message == "no"
    assert response.patch is None


def test_rejection_without_message(codec):
    engine = AdmissionEngine(codec, RecordingPolicy(error=AdmissionDenied()))
    res = engine.handle("POST", "application/json", body_of(review()))

    assert codec.decode_response(res.body).status.message == "admission denied"


def test_patches_are_returned_in_order(codec):
    ops = [
        PatchOperation(op="test", path="/metadata/name", value="test-pod"),
        PatchOperation(
            op="copy", path="/metadata/labels/b", from_="/metadata/labels/a"
        ),
        PatchOperation(op="add", path="/metadata/labels/c", value="c"),
    ]
    engine = AdmissionEngine(codec, RecordingPolicy(result=ops))
    res = engine.handle("POST", "application/json", body_of(review()))

    response = codec.decode_response(res.body)
    assert response.allowed
    assert response.patch_operations() == ops


def test_unexpected_error_is_a_fault(codec):
    engine = AdmissionEngine(codec, RecordingPolicy(error=KeyError("spec")))
    with pytest.raises(AdmissionFault) as err:
        engine.handle("POST", "application/json", body_of(review(uid="u4")))

    assert err.value.status_code == 500
    assert err.value.admission_id == "u4"


def test_invalid_patch_is_a_fault(codec):
    policy = RecordingPolicy(result=[{"op": "explode", "path": "/"}])
    engine = AdmissionEngine(codec, policy)
    with pytest.raises(EncodingFault) as err:
        engine.handle("POST", "application/json", body_of(review(uid="u5")))

    assert err.value.status_code == 500
    assert err.value.admission_id == "u5"


def test_namespace_check_failure_is_a_fault(codec, policy):
    def namespace_allowed(namespace):
        raise RuntimeError("lookup failed")

    engine = AdmissionEngine(codec, policy, namespace_allowed=namespace_allowed)
    with pytest.raises(AdmissionFault, match="lookup failed") as err:
        engine.handle("POST", "application/json", body_of(review(uid="u6")))

    assert err.value.admission_id == "u6"
    assert policy.calls == []


@pytest.mark.parametrize("result", [5, object()])
def test_non_list_result_is_a_fault(codec, result):
    engine = AdmissionEngine(codec, RecordingPolicy(result=result))
    with pytest.raises(EncodingFault) as err:
        engine.handle("POST", "application/json", body_of(review(uid="u7")))

    assert err.value.status_code == 500
    assert err.value.admission_id == "u7"


def test_generator_result(codec):
    def admit(logger, request):
        yield PatchOperation(op="add", path="/metadata/labels/a", value="b")

    engine = AdmissionEngine(codec, admit)
    res = engine.handle("POST", "application/json", body_of(review()))

    assert codec.decode_response(res.body).patch_operations() == [
        PatchOperation(op="add", path="/metadata/labels/a", value="b")
    ]
