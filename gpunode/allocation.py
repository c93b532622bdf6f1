"""Container allocation responses: environment, mounts, device nodes and CDI annotations."""

from __future__ import annotations

import os
import posixpath
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from gpunode.config import (
    DEFAULT_CDI_ANNOTATION_PREFIX,
    DEVICE_LIST_STRATEGY_CDI_ANNOTATIONS,
    DEVICE_LIST_STRATEGY_ENVVAR,
    DEVICE_LIST_STRATEGY_VOLUME_MOUNTS,
    Config,
    DeviceListStrategies,
    SharingStrategy,
    new_device_list_strategies,
)

DEVICE_LIST_ENVVAR = "NVIDIA_VISIBLE_DEVICES"
VOLUME_MOUNTS_HOST_PATH = "/dev/null"
VOLUME_MOUNTS_CONTAINER_PATH_ROOT = "/var/run/nvidia-container-devices"
CDI_PLUGIN_NAME = "nvidia-device-plugin"
DEVICE_PLUGIN_PATH = "/var/lib/kubelet/device-plugins"

OPTIONAL_DEVICE_PATHS = frozenset(
    {
        "/dev/nvidiactl",
        "/dev/nvidia-uvm",
        "/dev/nvidia-uvm-tools",
        "/dev/nvidia-modeset",
    }
)


def _join(*parts: str) -> str:
    """Join path elements and clean the result, keeping absolute elements in place."""
    joined = "/".join(p for p in parts if p)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


@dataclass
class Mount:
    """A host path mounted into a container."""

    container_path: str
    host_path: str
    read_only: bool = False


@dataclass
class DeviceSpec:
    """A device node made available in a container."""

    container_path: str
    host_path: str
    permissions: str = "rw"


@dataclass
class ContainerAllocateResponse:
    """What a container receives for an allocation request."""

    envs: dict[str, str] = field(default_factory=dict)
    mounts: list[Mount] = field(default_factory=list)
    devices: list[DeviceSpec] = field(default_factory=list)
    annotations: dict[str, str] = field(default_factory=dict)


def update_cdi_annotations(
    annotations: Mapping[str, str],
    plugin_name: str,
    device_id: str,
    devices: Iterable[str],
) -> dict[str, str]:
    """Return a copy of annotations with the CDI device request for the given id.

    An empty device list removes the annotation. Raises ValueError if the
    plugin name or the device id is empty.
    """
    if not plugin_name:
        raise ValueError("invalid plugin name, empty")
    if not device_id:
        raise ValueError("invalid device ID, empty")
    key = f"{DEFAULT_CDI_ANNOTATION_PREFIX}{plugin_name}_{device_id}"
    updated = dict(annotations)
    selected = list(devices)
    if not selected:
        updated.pop(key, None)
        return updated
    updated[key] = ",".join(selected)
    return updated


@dataclass
class AllocationPlanner:
    """Builds container allocation responses from the plugin configuration.

    cdi_handler provides qualified_name(device_class, name). When the device
    list strategies or the annotation prefix are not given they are taken
    from the config.
    """

    config: Config
    cdi_handler: Any = None
    cdi_enabled: bool = False
    device_list_strategies: DeviceListStrategies | None = None
    cdi_annotation_prefix: str | None = None
    device_list_envvar: str = DEVICE_LIST_ENVVAR
    path_exists: Callable[[str], bool] = os.path.exists

    def __post_init__(self) -> None:
        if self.device_list_strategies is None:
            self.device_list_strategies = new_device_list_strategies(
                self.config.flags.plugin.device_list_strategy
            )
        if self.cdi_annotation_prefix is None:
            self.cdi_annotation_prefix = self.config.flags.plugin.cdi_annotation_prefix

    def allocate_response(
        self,
        device_ids: list[str],
        device_paths: Iterable[str] = (),
        resource_name: str = "",
    ) -> ContainerAllocateResponse:
        """Return the full response for a container receiving device_ids."""
        response = self.allocate_response_for_cdi(str(uuid.uuid4()), device_ids)
        strategies = self.device_list_strategies
        if strategies.includes(DEVICE_LIST_STRATEGY_ENVVAR):
            response.envs = self.api_envs(self.device_list_envvar, device_ids)
        if strategies.includes(DEVICE_LIST_STRATEGY_VOLUME_MOUNTS):
            response.envs = self.api_envs(
                self.device_list_envvar, [VOLUME_MOUNTS_CONTAINER_PATH_ROOT]
            )
            response.mounts = self.api_mounts(device_ids)
        flags = self.config.flags
        if flags.plugin.pass_device_specs:
            response.devices = self.api_device_specs(flags.nvidia_driver_root, device_paths)
        if flags.gds_enabled:
            response.envs["NVIDIA_GDS"] = "enabled"
        if flags.mofed_enabled:
            response.envs["NVIDIA_MOFED"] = "enabled"
        return self.mps_settings(response, resource_name)

    def allocate_response_for_cdi(
        self, response_id: str, device_ids: list[str] | None
    ) -> ContainerAllocateResponse:
        """Return the response holding the annotations that trigger CDI injection."""
        response = ContainerAllocateResponse()
        if not self.cdi_enabled:
            return response

        devices = [self.cdi_handler.qualified_name("gpu", i) for i in device_ids or []]
        if self.config.flags.gds_enabled:
            devices.append(self.cdi_handler.qualified_name("gds", "all"))
        if self.config.flags.mofed_enabled:
            devices.append(self.cdi_handler.qualified_name("mofed", "all"))
        if not devices:
            return response

        if self.device_list_strategies.includes(DEVICE_LIST_STRATEGY_CDI_ANNOTATIONS):
            response.annotations = self.cdi_device_annotations(response_id, devices)
        return response

    def cdi_device_annotations(self, response_id: str, devices: list[str]) -> dict[str, str]:
        """Return the CDI annotations, using the configured key prefix."""
        annotations = update_cdi_annotations({}, CDI_PLUGIN_NAME, response_id, devices)
        prefix = self.cdi_annotation_prefix
        if prefix == DEFAULT_CDI_ANNOTATION_PREFIX:
            return annotations
        return {
            prefix + key.removeprefix(DEFAULT_CDI_ANNOTATION_PREFIX): value
            for key, value in annotations.items()
        }

    def api_envs(self, envvar: str, device_ids: Iterable[str]) -> dict[str, str]:
        """Return the environment naming the devices in a comma-separated list."""
        return {envvar: ",".join(device_ids)}

    def api_mounts(self, device_ids: Iterable[str]) -> list[Mount]:
        """Return one marker mount per device for the volume-mounts strategy."""
        return [
            Mount(
                container_path=_join(VOLUME_MOUNTS_CONTAINER_PATH_ROOT, device_id),
                host_path=VOLUME_MOUNTS_HOST_PATH,
            )
            for device_id in device_ids
        ]

    def api_device_specs(self, driver_root: str, paths: Iterable[str]) -> list[DeviceSpec]:
        """Return device specs for the paths; missing optional nodes are skipped."""
        return [
            DeviceSpec(container_path=path, host_path=_join(driver_root, path))
            for path in paths
            if path not in OPTIONAL_DEVICE_PATHS or self.path_exists(path)
        ]

    def mps_settings(
        self, response: ContainerAllocateResponse, resource_name: str
    ) -> ContainerAllocateResponse:
        """Add the MPS pipe, log and shared-memory settings when MPS sharing is active."""
        if self.config.sharing.sharing_strategy() is not SharingStrategy.MPS:
            return response
        pipe_dir = _join("/mps", resource_name, "pipe")
        log_dir = _join("/mps", resource_name, "log")
        response.envs["CUDA_MPS_PIPE_DIRECTORY"] = pipe_dir
        response.mounts.append(
            Mount(container_path=pipe_dir, host_path=_join(DEVICE_PLUGIN_PATH, pipe_dir))
        )
        response.envs["CUDA_MPS_LOG_DIRECTORY"] = log_dir
        response.mounts.append(
            Mount(container_path=log_dir, host_path=_join(DEVICE_PLUGIN_PATH, log_dir))
        )
        response.mounts.append(
            Mount(container_path="/dev/shm", host_path=f"{DEVICE_PLUGIN_PATH}/mps/shm")
        )
        return response