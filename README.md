# gpunode

`gpunode` works out what a GPU node in a Kubernetes cluster has to offer and
describes it in a form the cluster can use:

- **Node labels.** It builds labels such as `nvidia.com/gpu.product`,
  `nvidia.com/gpu.count`, `nvidia.com/gpu.memory` and `nvidia.com/mig.strategy`
  from the devices that a resource manager reports. It handles the `none`,
  `single` and `mixed` MIG strategies, and time-slicing or MPS sharing.
- **MIG discovery.** It groups devices by whether MIG is enabled on them, and
  reads the MIG minors file into a map from capability path to device node.
- **Allocation planning.** It builds the container allocate response that a
  device plugin returns: environment variables, mounts, device specs and CDI
  annotations.
- **Platform detection.** It picks the `nvml`, `tegra` or `null` mode for the
  node.

The package has no runtime dependencies.

## Configuration

`gpunode.config` holds dataclasses for the settings: `Config`, which contains
`Flags` (with `GFDFlags` and `PluginFlags`) and `Sharing` (with
`ReplicatedResources` for time slicing and, optionally, for MPS).
`Sharing.sharing_strategy()` returns a `SharingStrategy`: MPS when any MPS
resource has more than one replica, otherwise time slicing when any
time-slicing resource has more than one replica, otherwise none.
`new_device_list_strategies()` checks a list of device list strategies and
raises `ValueError` if the list is empty or holds an unknown name.

## Labels and labelers

A labeler is any object with a `labels()` method that returns a `Labels`
mapping. Use `merge` to combine labelers. When two labelers set the same key,
the later one wins:

```python
from gpunode.labels import Labels, merge, mig_strategy_labeler

combined = merge(
    mig_strategy_labeler("single"),
    Labels({"nvidia.com/gpu.machine": "DGX-A100"}),
)
print(combined.labels())
# {'nvidia.com/mig.strategy': 'single', 'nvidia.com/gpu.machine': 'DGX-A100'}
```

`Labels.write_to(stream)` writes the labels as `key=value` lines to a text
stream. `Labels.update_file(path)` writes the same lines to a file through a
temporary file in a `gfd-tmp` directory next to it, then moves it into place.
An empty path writes to standard output.

`gpunode.labels` also provides `new_timestamp_labeler` and
`new_machine_type_labeler`. The machine type labeler reads the machine type
from a file and falls back to `unknown` if the file cannot be read.

## Resource labels

`gpunode.resource_labeler` produces the per-resource labels for full GPUs
(`new_gpu_resource_labeler`) and for MIG devices (`new_mig_resource_labeler`).
The full-GPU labels include the compute capability and its architecture family:

```python
from gpunode.resource_labeler import get_arch_family

get_arch_family(8, 0)   # 'ampere'
get_arch_family(7, 5)   # 'turing'
```

`gpunode.strategy_labeler.new_resource_labeler(manager, config)` chooses the
set of labelers that fits the MIG strategy in the configuration. Under the
`single` strategy, a configuration it cannot support is labelled with a
`...-MIG-INVALID` product and zero counts.

`gpunode.nvml_labeler.new_labelers(manager, vgpu, config)` adds labels for the
machine type, driver version, CUDA version, MIG capability, MPS sharing and
vGPU on top. It raises `ValueError` for a driver version that is not of the
form `X.Y[.Z]`.

The manager and devices are duck-typed. A manager provides `get_devices()`,
`init()`, `shutdown()`, `get_driver_version()` and
`get_cuda_driver_version()`. A device provides `get_name()`,
`get_total_memory_mb()`, `get_cuda_compute_capability()`, `is_mig_enabled()`,
`is_mig_capable()` and `get_mig_devices()`. A MIG device also provides
`get_device_handle_from_mig_device_handle()` and `get_attributes()`.

## MIG devices

`gpunode.mig.DeviceInfo(manager)` groups the manager's devices by MIG mode and
keeps the grouping after the first call. `get_mig_capability_device_paths()`
reads the MIG minors file. It returns `None` when the file does not exist,
and it logs and skips any line it cannot parse.

## Allocation responses

`gpunode.allocation.AllocationPlanner` turns a `Config` and a list of device
IDs into a `ContainerAllocateResponse`. Depending on the configuration, the
response holds `NVIDIA_VISIBLE_DEVICES`, volume-mount markers, `DeviceSpec`
entries, GDS and MOFED settings, MPS pipe and log directories, and CDI
annotations. The CDI annotations use a custom key prefix when one is
configured.

## Platform detection

`gpunode.manager.resolve_mode(info, fail_on_init_error)` returns `nvml`,
`tegra` or `null`. If no platform is found and `fail_on_init_error` is set, it
raises `PlatformError`. `NullManager` provides no plugins.

## Kubernetes and version helpers

`gpunode.kubernetes` reads the node name from `NODE_NAME`. It reads the
namespace from the service-account file, or from `KUBERNETES_NAMESPACE` if
that file cannot be read. `gpunode.version.get_version_string()` joins the
version, an optional commit line and any extra lines:

```python
from gpunode.version import get_version_string

get_version_string(version="v0.14.4", git_commit="")   # 'v0.14.4'
```

## What the package does not do

`gpunode` does not talk to GPUs itself. It has no NVML or CUDA bindings, so
device information must come from a manager object that you supply. It does
not run a device plugin server, does not register with the kubelet and does
not write NodeFeature objects to the cluster. It has no command-line program.

## Running the tests

Install the `test` extra, then run `pytest` from the project root.