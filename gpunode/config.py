"""Configuration for device discovery, labelling and device sharing."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

MIG_STRATEGY_NONE = "none"
MIG_STRATEGY_SINGLE = "single"
MIG_STRATEGY_MIXED = "mixed"

DEVICE_LIST_STRATEGY_ENVVAR = "envvar"
DEVICE_LIST_STRATEGY_VOLUME_MOUNTS = "volume-mounts"
DEVICE_LIST_STRATEGY_CDI_ANNOTATIONS = "cdi-annotations"
DEVICE_LIST_STRATEGY_CDI_CRI = "cdi-cri"

VALID_DEVICE_LIST_STRATEGIES = frozenset(
    {
        DEVICE_LIST_STRATEGY_ENVVAR,
        DEVICE_LIST_STRATEGY_VOLUME_MOUNTS,
        DEVICE_LIST_STRATEGY_CDI_ANNOTATIONS,
        DEVICE_LIST_STRATEGY_CDI_CRI,
    }
)

DEVICE_ID_STRATEGY_UUID = "uuid"
DEVICE_ID_STRATEGY_INDEX = "index"

DEFAULT_CDI_ANNOTATION_PREFIX = "cdi.k8s.io/"
DEFAULT_MACHINE_TYPE_FILE = "/sys/class/dmi/id/product_name"


class SharingStrategy(str, enum.Enum):
    """How devices are shared between containers."""

    NONE = "none"
    MPS = "mps"
    TIME_SLICING = "time-slicing"


@dataclass
class ReplicatedResource:
    """A resource that is advertised as several replicas."""

    name: str = ""
    rename: str = ""
    replicas: int = 0


@dataclass
class ReplicatedResources:
    """The set of replicated resources for one sharing mechanism."""

    resources: list[ReplicatedResource] = field(default_factory=list)
    rename_by_default: bool = False
    fail_requests_greater_than_one: bool = False

    def _is_replicated(self) -> bool:
        return any(r.replicas > 1 for r in self.resources)


@dataclass
class Sharing:
    """Device sharing settings: time slicing and MPS."""

    time_slicing: ReplicatedResources = field(default_factory=ReplicatedResources)
    mps: ReplicatedResources | None = None

    def sharing_strategy(self) -> SharingStrategy:
        """Return the sharing strategy that the settings select."""
        if self.mps is not None and self.mps._is_replicated():
            return SharingStrategy.MPS
        if self.time_slicing._is_replicated():
            return SharingStrategy.TIME_SLICING
        return SharingStrategy.NONE

    def replicated_resources(self) -> ReplicatedResources:
        """Return the replicated resources of the active sharing strategy."""
        if self.sharing_strategy() is SharingStrategy.MPS and self.mps is not None:
            return self.mps
        return self.time_slicing


@dataclass
class GFDFlags:
    """Settings of the feature discovery labeller."""

    machine_type_file: str = DEFAULT_MACHINE_TYPE_FILE
    no_timestamp: bool = False
    output_file: str = ""
    oneshot: bool = False
    sleep_interval: float = 60.0
    use_node_feature_api: bool = False


@dataclass
class PluginFlags:
    """Settings of the device plugin."""

    device_list_strategy: list[str] = field(
        default_factory=lambda: [DEVICE_LIST_STRATEGY_ENVVAR]
    )
    device_id_strategy: str = DEVICE_ID_STRATEGY_UUID
    pass_device_specs: bool = False
    cdi_annotation_prefix: str = DEFAULT_CDI_ANNOTATION_PREFIX


@dataclass
class Flags:
    """Command-line settings."""

    mig_strategy: str = MIG_STRATEGY_NONE
    fail_on_init_error: bool = True
    nvidia_driver_root: str = "/"
    gds_enabled: bool = False
    mofed_enabled: bool = False
    gfd: GFDFlags = field(default_factory=GFDFlags)
    plugin: PluginFlags = field(default_factory=PluginFlags)


@dataclass
class Config:
    """Complete configuration."""

    flags: Flags = field(default_factory=Flags)
    sharing: Sharing = field(default_factory=Sharing)


@dataclass(frozen=True)
class DeviceListStrategies:
    """A validated set of device list strategies."""

    strategies: frozenset[str] = frozenset()

    def includes(self, strategy: str) -> bool:
        """Return whether the strategy is selected."""
        return strategy in self.strategies

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.strategies))

    def __len__(self) -> int:
        return len(self.strategies)


def new_device_list_strategies(strategies: str | Iterable[str]) -> DeviceListStrategies:
    """Validate the strategies and return them as a DeviceListStrategies.

    Raises ValueError if none is given or one is unknown.
    """
    if isinstance(strategies, str):
        strategies = [strategies]
    selected = list(strategies)
    if not selected:
        raise ValueError("no strategy selected")
    for strategy in selected:
        if strategy not in VALID_DEVICE_LIST_STRATEGIES:
            raise ValueError(f"invalid strategy: {strategy}")
    return DeviceListStrategies(frozenset(selected))


@dataclass
class ManagerOptions:
    """Options from which a plugin manager is built."""

    mig_strategy: str = ""
    fail_on_init_error: bool = False
    nvml: Any = None
    cdi_handler: Any = None
    cdi_enabled: bool = False
    config: Config | None = None