"""Discovery of the Kubernetes node and namespace this process runs in."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"


def node_name(environ: Mapping[str, str] | None = None) -> str:
    """Return the name of the node, taken from NODE_NAME."""
    env = os.environ if environ is None else environ
    return env.get("NODE_NAME", "")


def get_kubernetes_namespace(
    namespace_file: str | os.PathLike[str] = NAMESPACE_FILE,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Return the namespace from the service account file or KUBERNETES_NAMESPACE.

    An empty string is returned if neither source provides it.
    """
    try:
        return Path(namespace_file).read_text().strip()
    except OSError:
        pass
    env = os.environ if environ is None else environ
    namespace = env.get("KUBERNETES_NAMESPACE", "")
    if not namespace:
        logger.warning("KUBERNETES_NAMESPACE environment variable not set")
    return namespace