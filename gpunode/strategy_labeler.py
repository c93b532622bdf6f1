"""Resource labels for full GPUs and for MIG devices under each MIG strategy."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any

from gpunode.config import (
    MIG_STRATEGY_MIXED,
    MIG_STRATEGY_NONE,
    MIG_STRATEGY_SINGLE,
    Config,
)
from gpunode.labels import EmptyLabeler, Labeler, LabelerList, Labels, merge, mig_strategy_labeler
from gpunode.mig import DeviceInfo
from gpunode.resource_labeler import (
    FULL_GPU_RESOURCE_NAME,
    ResourceLabeler,
    new_gpu_resource_labeler,
    new_gpu_resource_labeler_without_sharing,
    new_mig_resource_labeler,
)

logger = logging.getLogger(__name__)


@dataclass
class _MigResource:
    """A MIG profile with a representative device and how often it occurs."""

    name: str
    device: Any
    count: int = 0


def new_resource_labeler(manager: Any, config: Config) -> Labeler:
    """Return a labeller for the GPU resources of the node.

    This covers full GPUs and, unless the MIG strategy is 'none', the labels
    of the configured MIG strategy.
    """
    if not manager.get_devices():
        return EmptyLabeler()

    full_gpu_labeler = new_gpu_labelers(manager, config)
    if config.flags.mig_strategy == MIG_STRATEGY_NONE:
        return full_gpu_labeler

    return merge(full_gpu_labeler, new_mig_labeler(manager, config))


def new_mig_labeler(manager: Any, config: Config) -> Labeler:
    """Return the labeller for MIG devices under the configured strategy.

    Raises ValueError for an unknown strategy.
    """
    strategy = config.flags.mig_strategy
    if strategy == MIG_STRATEGY_NONE:
        labeler: Labeler = EmptyLabeler()
    elif strategy == MIG_STRATEGY_SINGLE:
        labeler = _new_mig_strategy_single_labeler(manager, config)
    elif strategy == MIG_STRATEGY_MIXED:
        labeler = _new_mig_strategy_mixed_labeler(manager, config)
    else:
        raise ValueError(f"unknown strategy: {strategy}")

    return merge(mig_strategy_labeler(strategy), labeler)


def new_gpu_labelers(manager: Any, config: Config) -> Labels:
    """Return the labels for full GPUs.

    MIG-enabled GPUs are labelled without sharing information; full GPUs of
    the same model override those labels.
    """
    device_info = DeviceInfo(manager)
    devices_by_mig_enabled = device_info.get_devices_map()
    if not devices_by_mig_enabled:
        raise RuntimeError("no GPU devices detected")

    counts: Counter[str] = Counter()
    mig_enabled_devices: dict[str, Any] = {}
    for device in devices_by_mig_enabled.get(True, []):
        name = device.get_name()
        mig_enabled_devices[name] = device
        counts[name] += 1

    full_gpus: dict[str, Any] = {}
    for device in devices_by_mig_enabled.get(False, []):
        name = device.get_name()
        full_gpus[name] = device
        counts[name] += 1

    if len(counts) > 1:
        logger.warning("Multiple device types detected: %s", list(counts))

    labelers = LabelerList()
    for name, device in mig_enabled_devices.items():
        labelers.append(new_gpu_resource_labeler_without_sharing(device, counts[name]))
    for name, device in full_gpus.items():
        labelers.append(new_gpu_resource_labeler(config, device, counts[name]))

    return labelers.labels()


def new_invalid_mig_strategy_labeler(device: Any, reason: str) -> Labels:
    """Return the labels that mark an invalid mig-strategy=single setup."""
    logger.warning("Invalid configuration detected for mig-strategy=single: %s", reason)

    model = device.get_name()
    labeler = ResourceLabeler(FULL_GPU_RESOURCE_NAME)
    labels = labeler.product_label(model, "MIG", "INVALID")
    for suffix in ("count", "replicas", "memory"):
        labeler.update_label(labels, suffix, 0)
    return labels


def _new_mig_strategy_single_labeler(manager: Any, config: Config) -> Labeler:
    device_info = DeviceInfo(manager)
    mig_enabled = device_info.get_devices_with_mig_enabled()
    if not mig_enabled:
        return EmptyLabeler()

    if device_info.any_mig_enabled_device_is_empty():
        return new_invalid_mig_strategy_labeler(
            mig_enabled[0], "at least one MIG device is enabled but empty"
        )

    if device_info.get_devices_with_mig_disabled():
        return new_invalid_mig_strategy_labeler(
            mig_enabled[0], "devices with MIG enabled and disable detected"
        )

    resources = _collect_mig_resources(
        device_info.get_all_mig_devices(), lambda _name: FULL_GPU_RESOURCE_NAME
    )
    if len(resources) != 1:
        return new_invalid_mig_strategy_labeler(
            mig_enabled[0], "more than one MIG device type present on node"
        )

    return _new_mig_device_labelers(resources, config)


def _new_mig_strategy_mixed_labeler(manager: Any, config: Config) -> Labeler:
    # MIG-enabled devices that expose no MIG devices are ignored here.
    device_info = DeviceInfo(manager)
    resources = _collect_mig_resources(
        device_info.get_all_mig_devices(), lambda name: f"nvidia.com/mig-{name}"
    )
    return _new_mig_device_labelers(resources, config)


def _collect_mig_resources(migs: list[Any], resource_name: Any) -> dict[str, _MigResource]:
    resources: dict[str, _MigResource] = {}
    for mig in migs:
        name = mig.get_name()
        resource = resources.get(name)
        if resource is None:
            resource = resources[name] = _MigResource(resource_name(name), mig)
        resource.count += 1
    return resources


def _new_mig_device_labelers(resources: dict[str, _MigResource], config: Config) -> Labeler:
    return LabelerList(
        new_mig_resource_labeler(r.name, config, r.device, r.count)
        for r in resources.values()
    )