"""Selection of the plugin manager mode and the manager for unsupported nodes."""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

MODE_NVML = "nvml"
MODE_TEGRA = "tegra"
MODE_NULL = "null"


class PlatformError(Exception):
    """Raised when no supported GPU platform is detected."""


class NullManager:
    """A manager that provides no plugins."""

    def get_plugins(self) -> list[Any]:
        """Return an empty list of plugins."""
        return []

    def create_cdi_spec_file(self) -> None:
        """Do nothing; there is nothing to describe."""
        return None


def _detect(check: Callable[[], tuple[bool, str]], tag: str) -> bool:
    present, reason = check()
    if not present:
        tag = "non-" + tag
    logger.info("Detected %s platform: %s", tag, reason)
    return present


def resolve_mode(info: Any, fail_on_init_error: bool = False) -> str:
    """Return the mode ('nvml', 'tegra' or 'null') for the detected platform.

    info provides has_nvml() and is_tegra_system(), each returning a flag and
    a reason. Raises PlatformError if no platform is found and
    fail_on_init_error is set.
    """
    has_nvml = _detect(info.has_nvml, "NVML")
    is_tegra = _detect(info.is_tegra_system, "Tegra")

    if not has_nvml and not is_tegra:
        logger.error("Incompatible platform detected")
        logger.error("If this is a GPU node, did you configure the NVIDIA Container Toolkit?")
        logger.error(
            "If this is not a GPU node, you should set up a toleration or nodeSelector "
            "to only deploy this plugin on GPU nodes"
        )
        if fail_on_init_error:
            raise PlatformError("platform detection failed")
        return MODE_NULL

    # Integrated and discrete GPUs on the same node are not supported together.
    if is_tegra and has_nvml:
        logger.warning("Disabling Tegra-based resources on NVML system")
        return MODE_NVML
    if is_tegra:
        return MODE_TEGRA
    return MODE_NVML