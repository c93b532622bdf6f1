"""GPU node labelling, MIG discovery, platform detection and allocation planning for Kubernetes."""

__version__ = "0.14.4"