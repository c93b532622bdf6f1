"""Labels derived from the NVML device manager and from vGPU information."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from gpunode.config import Config, SharingStrategy
from gpunode.labels import EmptyLabeler, Labeler, Labels, merge, new_machine_type_labeler
from gpunode.strategy_labeler import new_resource_labeler

MIG_CAPABLE_LABEL = "nvidia.com/mig.capable"
MPS_ENABLED_LABEL = "nvidia.com/sharing.mps.enabled"
VGPU_PRESENT_LABEL = "nvidia.com/vgpu.present"
VGPU_HOST_DRIVER_VERSION_LABEL = "nvidia.com/vgpu.host-driver-version"
VGPU_HOST_DRIVER_BRANCH_LABEL = "nvidia.com/vgpu.host-driver-branch"


def _bool_string(value: bool) -> str:
    return "true" if value else "false"


def new_nvml_labeler(manager: Any, config: Config) -> Labeler:
    """Return the labeller for every NVML-derived label of the node.

    The manager is initialised for the duration of the call and shut down
    afterwards. A node without devices gets no labels.
    """
    manager.init()
    try:
        if not manager.get_devices():
            return EmptyLabeler()

        return merge(
            new_machine_type_labeler(config.flags.gfd.machine_type_file),
            new_version_labeler(manager),
            new_mig_capability_labeler(manager),
            new_resource_labeler(manager, config),
            new_sharing_labeler(config),
        )
    finally:
        manager.shutdown()


def new_version_labeler(manager: Any) -> Labels:
    """Return the driver and CUDA runtime version labels.

    Raises ValueError if the driver version is not of the form X.Y[.Z].
    """
    driver_version = manager.get_driver_version()
    parts = driver_version.split(".")
    if not 2 <= len(parts) <= 3:
        raise ValueError(
            f'error getting driver version: Version "{driver_version}" '
            f'does not match format "X.Y[.Z]"'
        )
    driver_major, driver_minor = parts[0], parts[1]
    driver_rev = parts[2] if len(parts) > 2 else ""

    cuda_major, cuda_minor = manager.get_cuda_driver_version()

    return Labels(
        {
            "nvidia.com/cuda.driver.major": driver_major,
            "nvidia.com/cuda.driver.minor": driver_minor,
            "nvidia.com/cuda.driver.rev": driver_rev,
            "nvidia.com/cuda.runtime.major": str(int(cuda_major)),
            "nvidia.com/cuda.runtime.minor": str(int(cuda_minor)),
        }
    )


def new_mig_capability_labeler(manager: Any) -> Labeler:
    """Return a labeller that reports whether any GPU of the node is MIG capable."""
    devices = manager.get_devices()
    if not devices:
        return EmptyLabeler()
    capable = any(device.is_mig_capable() for device in devices)
    return Labels({MIG_CAPABLE_LABEL: _bool_string(capable)})


def new_sharing_labeler(config: Config | None) -> Labels:
    """Return the label that reports whether MPS sharing is enabled."""
    mps_enabled = (
        config is not None
        and config.sharing.sharing_strategy() is SharingStrategy.MPS
    )
    return Labels({MPS_ENABLED_LABEL: _bool_string(mps_enabled)})


@dataclass
class VGPULabeler(Labeler):
    """Labels describing the vGPU devices of the node.

    lib provides devices(); each device provides get_info(), whose result has
    host_driver_version and host_driver_branch.
    """

    lib: Any

    def labels(self) -> Labels:
        devices = self.lib.devices()
        result = Labels()
        if devices:
            result[VGPU_PRESENT_LABEL] = "true"
        for device in devices:
            info = device.get_info()
            result[VGPU_HOST_DRIVER_VERSION_LABEL] = info.host_driver_version
            result[VGPU_HOST_DRIVER_BRANCH_LABEL] = info.host_driver_branch
        return result


def new_labelers(manager: Any, vgpu: Any, config: Config) -> Labeler:
    """Return the labeller combining the NVML and vGPU labels."""
    return merge(new_nvml_labeler(manager, config), VGPULabeler(vgpu))