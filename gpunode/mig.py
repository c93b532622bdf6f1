"""MIG device bookkeeping and MIG capability device discovery."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

NVIDIA_PROC_DRIVER_PATH = "/proc/driver/nvidia"
NVIDIA_CAPABILITIES_PATH = NVIDIA_PROC_DRIVER_PATH + "/capabilities"

NVCAPS_PROC_DRIVER_PATH = "/proc/driver/nvidia-caps"
NVCAPS_MIG_MINORS_PATH = NVCAPS_PROC_DRIVER_PATH + "/mig-minors"
NVCAPS_DEVICE_PATH = "/dev/nvidia-caps"

_INT = r"\s*([+-]?\d+)"
_CI_ACCESS = re.compile(rf"gpu{_INT}/gi{_INT}/ci{_INT}/access\s+([+-]?\d+)")
_GI_ACCESS = re.compile(rf"gpu{_INT}/gi{_INT}/access\s+([+-]?\d+)")
_CONFIG = re.compile(r"config\s+([+-]?\d+)")
_MONITOR = re.compile(r"monitor\s+([+-]?\d+)")


class DeviceInfo:
    """Information about the devices of a node, grouped by MIG mode.

    The grouping is computed on first use and cached afterwards.
    """

    def __init__(self, manager: Any) -> None:
        self.manager = manager
        self._devices_map: dict[bool, list[Any]] | None = None

    def get_devices_map(self) -> dict[bool, list[Any]]:
        """Return the devices keyed by whether MIG is enabled on them.

        Only keys for which at least one device exists are present.
        """
        if self._devices_map is not None:
            return self._devices_map
        grouped: dict[bool, list[Any]] = {}
        for device in self.manager.get_devices():
            grouped.setdefault(bool(device.is_mig_enabled()), []).append(device)
        self._devices_map = grouped
        return grouped

    def get_devices_with_mig_enabled(self) -> list[Any]:
        """Return the devices with MIG enabled."""
        return list(self.get_devices_map().get(True, []))

    def get_devices_with_mig_disabled(self) -> list[Any]:
        """Return the devices with MIG disabled."""
        return list(self.get_devices_map().get(False, []))

    def any_mig_enabled_device_is_empty(self) -> bool:
        """Return whether some MIG-enabled device exposes no MIG devices.

        This holds trivially when no device has MIG enabled.
        """
        enabled = self.get_devices_map().get(True, [])
        if not enabled:
            return True
        return any(not device.get_mig_devices() for device in enabled)

    def get_all_mig_devices(self) -> list[Any]:
        """Return the MIG devices of every MIG-enabled device."""
        return [
            mig
            for device in self.get_devices_map().get(True, [])
            for mig in device.get_mig_devices()
        ]


def parse_mig_minors_line(line: str) -> tuple[str, int]:
    """Parse one line of the MIG minors file into (capability path, minor).

    Raises ValueError for a line in none of the known forms.
    """
    if match := _CI_ACCESS.match(line):
        gpu, gi, ci, minor = (int(g) for g in match.groups())
        return f"{NVIDIA_CAPABILITIES_PATH}/gpu{gpu}/mig/gi{gi}/ci{ci}/access", minor
    if match := _GI_ACCESS.match(line):
        gpu, gi, minor = (int(g) for g in match.groups())
        return f"{NVIDIA_CAPABILITIES_PATH}/gpu{gpu}/mig/gi{gi}/access", minor
    if match := _CONFIG.match(line):
        return f"{NVIDIA_CAPABILITIES_PATH}/mig/config", int(match.group(1))
    if match := _MONITOR.match(line):
        return f"{NVIDIA_CAPABILITIES_PATH}/mig/monitor", int(match.group(1))
    raise ValueError(f"unparsable line: {line}")


def get_mig_capability_device_paths(
    minors_path: str | os.PathLike[str] = NVCAPS_MIG_MINORS_PATH,
) -> dict[str, str] | None:
    """Map each MIG capability path to its device node path.

    Returns None when the minors file does not exist, meaning the machine is
    not MIG capable. Unparsable lines are logged and skipped.
    """
    try:
        text = Path(minors_path).read_text()
    except FileNotFoundError:
        return None
    paths: dict[str, str] = {}
    for line in text.splitlines():
        try:
            cap_path, minor = parse_mig_minors_line(line)
        except ValueError as err:
            logger.error("Skipping line in MIG minors file: %s", err)
            continue
        paths[cap_path] = f"{NVCAPS_DEVICE_PATH}/nvidia-cap{minor}"
    return paths