import pytest

from admission_gateway import webhook
from admission_gateway.codec import ReviewCodec


WEBHOOK_PATH = "/validate"


class RecordingPolicy:
    """A decision function that records its calls and returns a canned result."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def __call__(self, logger, request):
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        return self.result


def container(name, cpu=None, memory=None):
    limits = {}
    if cpu is not None:
        limits["cpu"] = cpu
    if memory is not None:
        limits["memory"] = memory
    return {
        "name": name,
        "image": "registry.local/app:latest",
        "resources": {"limits": limits},
    }


def pod(*containers):
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": "test-pod"},
        "spec": {"containers": list(containers)},
    }


def review(
    obj=None, uid="1234", namespace="default", api_version="admission.k8s.io/v1"
):
    return {
        "apiVersion": api_version,
        "kind": "AdmissionReview",
        "request": {
            "uid": uid,
            "kind": {"group": "", "version": "v1", "kind": "Pod"},
            "resource": {"group": "", "version": "v1", "resource": "pods"},
            "namespace": namespace,
            "operation": "CREATE",
            "object": obj if obj is not None else pod(),
        },
    }


@pytest.fixture()
def codec():
    return ReviewCodec()


@pytest.fixture()
def policy():
    return RecordingPolicy()


@pytest.fixture()
def app(policy):
    app = webhook.create_app(
        POLICY=lambda codec: policy,
        WEBHOOK_PATH=WEBHOOK_PATH,
        TESTING=True,
    )
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def limits_client():
    """A client for an app running the default resource limits policy."""
    app = webhook.create_app(WEBHOOK_PATH=WEBHOOK_PATH, TESTING=True)
    return app.test_client()


