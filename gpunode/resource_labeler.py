"""Labels describing full GPU and MIG device resources."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from gpunode.config import Config, ReplicatedResource, ReplicatedResources
from gpunode.labels import EmptyLabeler, Labeler, Labels, merge

FULL_GPU_RESOURCE_NAME = "nvidia.com/gpu"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class ResourceLabeler:
    """Builds labels of the form <resource-name>.<suffix> for one resource.

    A replicated_resources of None means sharing is disabled.
    """

    resource_name: str
    replicated_resources: ReplicatedResources | None = None

    def single(self, suffix: str, value: Any) -> Labels:
        """Return a single label <resource-name>.suffix."""
        return self.labels({suffix: value})

    def labels(self, suffix_values: dict[str, Any]) -> Labels:
        """Return one label per suffix in the mapping."""
        result = Labels()
        for suffix, value in suffix_values.items():
            self.update_label(result, suffix, value)
        return result

    def update_label(self, labels: Labels, suffix: str, value: Any) -> None:
        """Set <resource-name>.suffix in labels to value."""
        labels[self.key(suffix)] = _format_value(value)

    def key(self, suffix: str) -> str:
        """Return the label key for the suffix."""
        return f"{self.resource_name}.{suffix}"

    def base_labeler(self, count: int, *args: str) -> Labeler:
        """Return the product, count and replicas labels."""
        return merge(
            self.product_label(*args),
            self.count_label(count),
            self.replicas_label(),
        )

    def product_label(self, *args: str) -> Labels:
        """Return the product label built from the non-empty parts."""
        parts = [part.replace(" ", "-") for part in args if part]
        if not parts:
            return Labels()
        if self.is_shared() and not self.is_renamed():
            parts.append("SHARED")
        return self.single("product", "-".join(parts))

    def count_label(self, count: int) -> Labels:
        """Return the count label."""
        return self.single("count", count)

    def replicas_label(self) -> Labels:
        """Return the replicas label: 0 without sharing, else at least 1."""
        replicas = 1
        if self.sharing_disabled():
            replicas = 0
        else:
            info = self.replication_info()
            if info is not None and info.replicas > 1:
                replicas = info.replicas
        return self.single("replicas", replicas)

    def sharing_disabled(self) -> bool:
        """Return whether sharing is disabled for this resource."""
        return self.replicated_resources is None

    def is_shared(self) -> bool:
        """Return whether the resource is replicated more than once."""
        info = self.replication_info()
        return info is not None and info.replicas > 1

    def is_renamed(self) -> bool:
        """Return whether the replicated resource is renamed."""
        info = self.replication_info()
        return info is not None and bool(info.rename)

    def replication_info(self) -> ReplicatedResource | None:
        """Return the replication settings for this resource, if any."""
        if self.replicated_resources is None:
            return None
        return next(
            (r for r in self.replicated_resources.resources if r.name == self.resource_name),
            None,
        )


def new_resource_labeler_for(resource_name: str, config: Config | None) -> ResourceLabeler:
    """Return a ResourceLabeler; a None config disables sharing."""
    replicated = config.sharing.replicated_resources() if config is not None else None
    return ResourceLabeler(resource_name, replicated)


def new_gpu_resource_labeler(config: Config | None, device: Any, count: int) -> Labeler:
    """Return the labeller for a full GPU model present count times."""
    if count == 0:
        return EmptyLabeler()
    model = device.get_name()
    total_memory_mb = device.get_total_memory_mb()
    labeler = new_resource_labeler_for(FULL_GPU_RESOURCE_NAME, config)
    architecture = _architecture_labels(labeler, device)
    memory: Labeler = EmptyLabeler()
    if total_memory_mb != 0:
        memory = labeler.single("memory", total_memory_mb)
    return merge(labeler.base_labeler(count, model), memory, architecture)


def new_gpu_resource_labeler_without_sharing(device: Any, count: int) -> Labeler:
    """Return the full GPU labeller with sharing disabled."""
    return new_gpu_resource_labeler(None, device, count)


def new_mig_resource_labeler(
    resource_name: str, config: Config | None, device: Any, count: int
) -> Labeler:
    """Return the labeller for a MIG device profile present count times."""
    if count == 0:
        return EmptyLabeler()
    parent = device.get_device_handle_from_mig_device_handle()
    model = parent.get_name()
    profile = device.get_name()
    labeler = new_resource_labeler_for(resource_name, config)
    attributes = labeler.labels(device.get_attributes())
    return merge(labeler.base_labeler(count, model, "MIG", profile), attributes)


def _architecture_labels(labeler: ResourceLabeler, device: Any) -> Labels:
    major, minor = device.get_cuda_compute_capability()
    if major == 0:
        return Labels()
    return labeler.labels(
        {
            "family": get_arch_family(major, minor),
            "compute.major": major,
            "compute.minor": minor,
        }
    )


def get_arch_family(compute_major: int, compute_minor: int) -> str:
    """Return the architecture family for a CUDA compute capability."""
    if compute_major == 7:
        return "volta" if compute_minor < 5 else "turing"
    return {
        1: "tesla",
        2: "fermi",
        3: "kepler",
        5: "maxwell",
        6: "pascal",
        8: "ampere",
        9: "hopper",
    }.get(compute_major, "undefined")