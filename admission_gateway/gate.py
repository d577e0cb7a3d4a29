from typing import Callable, Iterable

NamespaceAllowedFunc = Callable[[str], bool]

SYSTEM_NAMESPACES = frozenset({"kube-system", "kube-public"})


def is_not_kube_namespace(namespace: str) -> bool:
    """Check that the namespace is not one Kubernetes uses to manage itself."""
    return namespace not in SYSTEM_NAMESPACES


def exclude_namespaces(names: Iterable[str]) -> NamespaceAllowedFunc:
    excluded = frozenset(names)

    def _allowed(namespace: str) -> bool:
        return namespace not in excluded

    return _allowed


class NamespaceGate:
    """Decides whether requests for a namespace are evaluated at all.

    Requests for namespaces outside the gate are admitted without consulting
    the decision function. If no predicate is given, Kubernetes system
    namespaces are excluded.
    """

    def __init__(self, allowed: NamespaceAllowedFunc | None = None):
        self.allowed = allowed if allowed is not None else is_not_kube_namespace

    def is_in_scope(self, namespace: str) -> bool:
        return bool(self.allowed(namespace))
