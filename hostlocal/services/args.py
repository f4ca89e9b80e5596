from typing import List, Tuple

from ..errors import ArgsError


POD_NAMESPACE_KEY = "K8S_POD_NAMESPACE"
POD_NAME_KEY = "K8S_POD_NAME"

# byte budget of namespace and name together, the pod lookup key in the lease store
MAX_POD_IDENTITY_LENGTH = 230


def parse_args(env_args: str) -> List[Tuple[str, str]]:
    """Split a CNI_ARGS string ("K1=V1;K2=V2") into (key, value) pairs."""
    if not env_args:
        return []

    pairs = []
    for pair in env_args.split(";"):
        key, sep, value = pair.partition("=")
        if not sep:
            raise ArgsError(f'ARGS: invalid pair "{pair}"')
        pairs.append((key, value))
    return pairs


def resolve_pod_ns_and_name(env_args: str) -> Tuple[str, str]:
    """
    Extract the pod namespace and name passed by the kubelet.

    Unknown keys are ignored. Missing keys yield empty strings.
    """
    namespace, name = "", ""
    for key, value in parse_args(env_args):
        if key == POD_NAMESPACE_KEY:
            namespace = value
        elif key == POD_NAME_KEY:
            name = value

    if len(namespace.encode()) + len(name.encode()) > MAX_POD_IDENTITY_LENGTH:
        raise ArgsError("ARGS: length of pod ns and name exceed the length limit")
    return namespace, name
