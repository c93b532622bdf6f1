from dataclasses import dataclass, field

import pytest

from gpunode.config import Config, ReplicatedResource, ReplicatedResources, Sharing
from gpunode.nvml_labeler import (
    VGPULabeler,
    new_labelers,
    new_mig_capability_labeler,
    new_nvml_labeler,
    new_sharing_labeler,
    new_version_labeler,
)


class FakeDevice:
    def __init__(self, mig_enabled=False, mig_devices=()):
        self.mig_enabled = mig_enabled
        self.mig_devices = list(mig_devices)

    def get_name(self):
        return "MOCKMODEL"

    def get_total_memory_mb(self):
        return 300

    def get_cuda_compute_capability(self):
        return (8, 0)

    def is_mig_enabled(self):
        return self.mig_enabled

    def is_mig_capable(self):
        return self.mig_enabled

    def get_mig_devices(self):
        return list(self.mig_devices)


def full_gpu():
    return FakeDevice()


def mig_enabled_device():
    return FakeDevice(mig_enabled=True)


@dataclass
class FakeManager:
    devices: list = field(default_factory=list)
    driver_version: str = "535.104.05"
    cuda_version: tuple = (12, 2)
    calls: list = field(default_factory=list)

    def init(self):
        self.calls.append("init")

    def shutdown(self):
        self.calls.append("shutdown")

    def get_devices(self):
        return list(self.devices)

    def get_driver_version(self):
        return self.driver_version

    def get_cuda_driver_version(self):
        return self.cuda_version


@dataclass
class FakeVGPUInfo:
    host_driver_version: str
    host_driver_branch: str


@dataclass
class FakeVGPUDevice:
    info: FakeVGPUInfo

    def get_info(self):
        return self.info


@dataclass
class FakeVGPULib:
    items: list = field(default_factory=list)

    def devices(self):
        return list(self.items)


@pytest.mark.parametrize(
    "devices, expected",
    [
        ([], {}),
        ([full_gpu()], {"nvidia.com/mig.capable": "false"}),
        ([full_gpu(), full_gpu()], {"nvidia.com/mig.capable": "false"}),
        ([mig_enabled_device()], {"nvidia.com/mig.capable": "true"}),
        ([full_gpu(), mig_enabled_device()], {"nvidia.com/mig.capable": "true"}),
    ],
    ids=[
        "no devices returns empty labels",
        "single non-mig capable device",
        "multiple non-mig capable devices",
        "single mig capable device",
        "one mig capable device among multiple",
    ],
)
def test_mig_capability_labeler(devices, expected):
    labeler = new_mig_capability_labeler(FakeManager(devices=devices))
    assert dict(labeler.labels()) == expected


@pytest.mark.parametrize(
    "config, expected",
    [
        (None, "false"),
        (Config(), "false"),
        (
            Config(
                sharing=Sharing(
                    time_slicing=ReplicatedResources(
                        resources=[ReplicatedResource(replicas=2)]
                    )
                )
            ),
            "false",
        ),
        (
            Config(
                sharing=Sharing(
                    mps=ReplicatedResources(resources=[ReplicatedResource(replicas=1)])
                )
            ),
            "false",
        ),
        (
            Config(
                sharing=Sharing(
                    mps=ReplicatedResources(resources=[ReplicatedResource(replicas=2)])
                )
            ),
            "true",
        ),
    ],
    ids=[
        "nil config",
        "empty config",
        "config with timeslicing replicas",
        "config with no mps replicas",
        "config with mps replicas",
    ],
)
def test_sharing_labeler(config, expected):
    assert dict(new_sharing_labeler(config)) == {
        "nvidia.com/sharing.mps.enabled": expected
    }


def test_version_labeler_with_revision():
    labels = new_version_labeler(FakeManager(driver_version="535.104.05"))
    assert dict(labels) == {
        "nvidia.com/cuda.driver.major": "535",
        "nvidia.com/cuda.driver.minor": "104",
        "nvidia.com/cuda.driver.rev": "05",
        "nvidia.com/cuda.runtime.major": "12",
        "nvidia.com/cuda.runtime.minor": "2",
    }


def test_version_labeler_without_revision():
    labels = new_version_labeler(FakeManager(driver_version="470.82"))
    assert labels["nvidia.com/cuda.driver.major"] == "470"
    assert labels["nvidia.com/cuda.driver.minor"] == "82"
    assert labels["nvidia.com/cuda.driver.rev"] == ""


@pytest.mark.parametrize("version", ["535", "1.2.3.4"])
def test_version_labeler_rejects_bad_format(version):
    with pytest.raises(ValueError, match="X.Y"):
        new_version_labeler(FakeManager(driver_version=version))


def test_vgpu_labeler_without_devices():
    assert dict(VGPULabeler(FakeVGPULib()).labels()) == {}


def test_vgpu_labeler_with_devices_uses_last_info():
    lib = FakeVGPULib(
        [
            FakeVGPUDevice(FakeVGPUInfo("470.1", "r470_00")),
            FakeVGPUDevice(FakeVGPUInfo("535.2", "r535_00")),
        ]
    )
    assert dict(VGPULabeler(lib).labels()) == {
        "nvidia.com/vgpu.present": "true",
        "nvidia.com/vgpu.host-driver-version": "535.2",
        "nvidia.com/vgpu.host-driver-branch": "r535_00",
    }


def test_nvml_labeler_without_devices_is_empty():
    manager = FakeManager()
    labeler = new_nvml_labeler(manager, Config())
    assert dict(labeler.labels()) == {}
    assert manager.calls == ["init", "shutdown"]


def test_nvml_labeler_full_gpu(tmp_path):
    machine_file = tmp_path / "product_name"
    machine_file.write_text("DGX A100\n")
    config = Config()
    config.flags.gfd.machine_type_file = str(machine_file)
    manager = FakeManager(devices=[full_gpu()])

    labels = new_nvml_labeler(manager, config).labels()

    assert dict(labels) == {
        "nvidia.com/gpu.machine": "DGX-A100",
        "nvidia.com/cuda.driver.major": "535",
        "nvidia.com/cuda.driver.minor": "104",
        "nvidia.com/cuda.driver.rev": "05",
        "nvidia.com/cuda.runtime.major": "12",
        "nvidia.com/cuda.runtime.minor": "2",
        "nvidia.com/mig.capable": "false",
        "nvidia.com/gpu.compute.major": "8",
        "nvidia.com/gpu.compute.minor": "0",
        "nvidia.com/gpu.family": "ampere",
        "nvidia.com/gpu.count": "1",
        "nvidia.com/gpu.replicas": "1",
        "nvidia.com/gpu.memory": "300",
        "nvidia.com/gpu.product": "MOCKMODEL",
        "nvidia.com/sharing.mps.enabled": "false",
    }
    assert manager.calls == ["init", "shutdown"]


def test_nvml_labeler_shuts_down_on_error():
    manager = FakeManager(devices=[full_gpu()], driver_version="bad")
    config = Config()
    config.flags.gfd.machine_type_file = ""
    with pytest.raises(ValueError):
        new_nvml_labeler(manager, config)
    assert manager.calls == ["init", "shutdown"]


def test_new_labelers_merges_nvml_and_vgpu():
    config = Config()
    config.flags.gfd.machine_type_file = ""
    manager = FakeManager(devices=[full_gpu()])
    vgpu = FakeVGPULib([FakeVGPUDevice(FakeVGPUInfo("535.2", "r535_00"))])

    labels = new_labelers(manager, vgpu, config).labels()

    assert labels["nvidia.com/gpu.machine"] == "unknown"
    assert labels["nvidia.com/gpu.product"] == "MOCKMODEL"
    assert labels["nvidia.com/vgpu.present"] == "true"
    assert labels["nvidia.com/vgpu.host-driver-version"] == "535.2"
    assert labels["nvidia.com/vgpu.host-driver-branch"] == "r535_00"