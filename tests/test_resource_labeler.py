import pytest

from gpunode.config import Config, ReplicatedResource, ReplicatedResources, Sharing
from gpunode.resource_labeler import (
    ResourceLabeler,
    get_arch_family,
    new_gpu_resource_labeler,
    new_gpu_resource_labeler_without_sharing,
    new_mig_resource_labeler,
    new_resource_labeler_for,
)


class FakeGPU:
    def __init__(self, migs=(), compute=(8, 0), memory=300, name="MOCKMODEL"):
        self.name = name
        self.memory = memory
        self.compute = compute
        self.migs = list(migs)
        for mig in self.migs:
            mig.parent = self

    def get_name(self):
        return self.name

    def get_total_memory_mb(self):
        return self.memory

    def get_cuda_compute_capability(self):
        return self.compute


class FakeMig:
    def __init__(self, gi, ci, memory):
        self.gi = gi
        self.ci = ci
        self.memory = memory
        self.parent = None

    def get_name(self):
        return f"{self.gi}g.{self.memory}gb"

    def get_device_handle_from_mig_device_handle(self):
        return self.parent

    def get_attributes(self):
        return {
            "memory": self.memory,
            "multiprocessors": 0,
            "slices.gi": self.gi,
            "slices.ci": self.ci,
            "engines.copy": 0,
            "engines.decoder": 0,
            "engines.encoder": 0,
            "engines.jpeg": 0,
            "engines.ofa": 0,
        }


class BrokenGPU(FakeGPU):
    def get_name(self):
        raise RuntimeError("no name")


def config_with(*resources):
    return Config(sharing=Sharing(time_slicing=ReplicatedResources(resources=list(resources))))


GPU_BASE = {
    "nvidia.com/gpu.count": "1",
    "nvidia.com/gpu.memory": "300",
    "nvidia.com/gpu.family": "ampere",
    "nvidia.com/gpu.compute.major": "8",
    "nvidia.com/gpu.compute.minor": "0",
}


@pytest.mark.parametrize(
    "count, resources, expected",
    [
        (0, [], {}),
        (1, [], {**GPU_BASE, "nvidia.com/gpu.replicas": "1", "nvidia.com/gpu.product": "MOCKMODEL"}),
        (
            1,
            [ReplicatedResource(name="nvidia.com/not-gpu", replicas=2)],
            {**GPU_BASE, "nvidia.com/gpu.replicas": "1", "nvidia.com/gpu.product": "MOCKMODEL"},
        ),
        (
            1,
            [ReplicatedResource(name="nvidia.com/gpu", replicas=2)],
            {**GPU_BASE, "nvidia.com/gpu.replicas": "2", "nvidia.com/gpu.product": "MOCKMODEL-SHARED"},
        ),
        (
            1,
            [ReplicatedResource(name="nvidia.com/gpu", rename="nvidia.com/gpu.shared", replicas=2)],
            {**GPU_BASE, "nvidia.com/gpu.replicas": "2", "nvidia.com/gpu.product": "MOCKMODEL"},
        ),
    ],
)
def test_gpu_resource_labeler(count, resources, expected):
    labeler = new_gpu_resource_labeler(config_with(*resources), FakeGPU(), count)
    assert labeler.labels() == expected


def mig_labels(prefix, product, replicas):
    return {
        f"{prefix}.count": "1",
        f"{prefix}.replicas": replicas,
        f"{prefix}.memory": "300",
        f"{prefix}.product": product,
        f"{prefix}.multiprocessors": "0",
        f"{prefix}.slices.gi": "1",
        f"{prefix}.slices.ci": "2",
        f"{prefix}.engines.copy": "0",
        f"{prefix}.engines.decoder": "0",
        f"{prefix}.engines.encoder": "0",
        f"{prefix}.engines.jpeg": "0",
        f"{prefix}.engines.ofa": "0",
    }


@pytest.mark.parametrize(
    "resource_name, count, resources, expected",
    [
        ("", 0, [], {}),
        ("nvidia.com/gpu", 1, [], mig_labels("nvidia.com/gpu", "MOCKMODEL-MIG-1g.300gb", "1")),
        (
            "nvidia.com/gpu",
            1,
            [ReplicatedResource(name="nvidia.com/gpu", replicas=2)],
            mig_labels("nvidia.com/gpu", "MOCKMODEL-MIG-1g.300gb-SHARED", "2"),
        ),
        (
            "nvidia.com/gpu",
            1,
            [ReplicatedResource(name="nvidia.com/gpu", rename="nvidia.com/gpu.shared", replicas=2)],
            mig_labels("nvidia.com/gpu", "MOCKMODEL-MIG-1g.300gb", "2"),
        ),
        (
            "nvidia.com/mig-1g.1gb",
            1,
            [
                ReplicatedResource(name="nvidia.com/gpu", rename="nvidia.com/gpu.shared", replicas=2),
                ReplicatedResource(name="nvidia.com/mig-1g.1gb", replicas=2),
            ],
            mig_labels("nvidia.com/mig-1g.1gb", "MOCKMODEL-MIG-1g.300gb-SHARED", "2"),
        ),
        (
            "nvidia.com/mig-1g.1gb",
            1,
            [
                ReplicatedResource(
                    name="nvidia.com/mig-1g.1gb", rename="nvidia.com/mig-1g.1gb.shared", replicas=2
                )
            ],
            mig_labels("nvidia.com/mig-1g.1gb", "MOCKMODEL-MIG-1g.300gb", "2"),
        ),
    ],
)
def test_mig_resource_labeler(resource_name, count, resources, expected):
    device = FakeMig(1, 2, 300)
    FakeGPU(migs=[device])
    labeler = new_mig_resource_labeler(resource_name, config_with(*resources), device, count)
    assert labeler.labels() == expected


def test_without_sharing_reports_zero_replicas():
    labels = new_gpu_resource_labeler_without_sharing(FakeGPU(), 2).labels()
    assert labels["nvidia.com/gpu.replicas"] == "0"
    assert labels["nvidia.com/gpu.count"] == "2"
    assert labels["nvidia.com/gpu.product"] == "MOCKMODEL"


def test_zero_compute_major_and_memory_omit_labels():
    labels = new_gpu_resource_labeler(Config(), FakeGPU(compute=(0, 0), memory=0), 1).labels()
    assert set(labels) == {
        "nvidia.com/gpu.count",
        "nvidia.com/gpu.replicas",
        "nvidia.com/gpu.product",
    }


def test_device_errors_propagate():
    with pytest.raises(RuntimeError):
        new_gpu_resource_labeler(Config(), BrokenGPU(), 1)


def test_product_label_strips_empty_and_spaces():
    labeler = ResourceLabeler("nvidia.com/gpu", ReplicatedResources())
    assert labeler.product_label("A B", "", "C") == {"nvidia.com/gpu.product": "A-B-C"}
    assert labeler.product_label("", "") == {}


def test_update_label_formats_booleans():
    labeler = ResourceLabeler("r")
    labels = labeler.single("flag", True)
    assert labels == {"r.flag": "true"}


def test_sharing_disabled_without_config():
    labeler = new_resource_labeler_for("nvidia.com/gpu", None)
    assert labeler.sharing_disabled() is True
    assert labeler.replication_info() is None
    assert labeler.is_shared() is False


def test_replication_info_found():
    entry = ReplicatedResource(name="nvidia.com/gpu", rename="x", replicas=4)
    labeler = new_resource_labeler_for("nvidia.com/gpu", config_with(entry))
    assert labeler.replication_info() == entry
    assert labeler.is_shared() and labeler.is_renamed()
    assert labeler.replicas_label() == {"nvidia.com/gpu.replicas": "4"}


@pytest.mark.parametrize(
    "major, minor, family",
    [
        (1, 0, "tesla"),
        (2, 0, "fermi"),
        (3, 5, "kepler"),
        (5, 2, "maxwell"),
        (6, 1, "pascal"),
        (7, 0, "volta"),
        (7, 5, "turing"),
        (8, 6, "ampere"),
        (9, 0, "hopper"),
        (4, 0, "undefined"),
    ],
)
def test_get_arch_family(major, minor, family):
    assert get_arch_family(major, minor) == family