"""Node labels and the labellers that produce them."""

from __future__ import annotations

import abc
import logging
import os
import shutil
import sys
import tempfile
import time
from pathlib import Path
from typing import IO

from gpunode.config import MIG_STRATEGY_NONE, Config

logger = logging.getLogger(__name__)

MACHINE_TYPE_UNKNOWN = "unknown"
MACHINE_TYPE_LABEL = "nvidia.com/gpu.machine"
MIG_STRATEGY_LABEL = "nvidia.com/mig.strategy"
TIMESTAMP_LABEL = "nvidia.com/gfd.timestamp"


class Labeler(abc.ABC):
    """Something that produces a set of labels."""

    @abc.abstractmethod
    def labels(self) -> Labels:
        """Return the generated labels."""


class Labels(dict, Labeler):
    """A mapping of label keys to values; it is its own labeller."""

    def labels(self) -> Labels:
        return self

    def write_to(self, output: IO[str]) -> int:
        """Write each label as a key=value line; return the characters written."""
        total = 0
        for key, value in self.items():
            total += output.write(f"{key}={value}\n")
        return total

    def update_file(self, path: str | os.PathLike[str]) -> None:
        """Write the labels to path atomically, or to stdout if path is empty."""
        logger.info("Writing labels to output file %s", path)
        if not path:
            self.write_to(sys.stdout)
            return
        contents = "".join(f"{key}={value}\n" for key, value in self.items())
        write_file_atomically(path, contents.encode(), 0o644)


class EmptyLabeler(Labeler):
    """A labeller that produces no labels."""

    def labels(self) -> Labels:
        return Labels()


class LabelerList(list, Labeler):
    """A composite labeller; later labellers override earlier ones."""

    def labels(self) -> Labels:
        merged = Labels()
        for labeler in self:
            merged.update(labeler.labels())
        return merged


def merge(*args: Labeler) -> LabelerList:
    """Combine several labellers into one."""
    return LabelerList(args)


def write_file_atomically(
    path: str | os.PathLike[str], contents: bytes, perm: int = 0o644
) -> None:
    """Write contents to path through a temporary file and rename it into place."""
    abs_path = Path(path).absolute()
    tmp_dir = abs_path.parent / "gfd-tmp"
    tmp_dir.mkdir(parents=True, exist_ok=True)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix="gfd-", dir=tmp_dir)
        with os.fdopen(fd, "wb") as handle:
            handle.write(contents)
        os.chmod(tmp_name, perm)
        os.replace(tmp_name, abs_path)
        tmp_name = None
        os.chmod(abs_path, perm)
    except OSError:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)
        shutil.rmtree(tmp_dir, ignore_errors=True)
        raise


def mig_strategy_labeler(strategy: str) -> Labeler:
    """Return a labeller for the MIG strategy, or none for the 'none' strategy."""
    if strategy == MIG_STRATEGY_NONE:
        return EmptyLabeler()
    return Labels({MIG_STRATEGY_LABEL: strategy})


def new_timestamp_labeler(config: Config, now: float | None = None) -> Labeler:
    """Return a labeller for the current Unix time unless timestamps are disabled."""
    if config.flags.gfd.no_timestamp:
        return EmptyLabeler()
    seconds = int(time.time() if now is None else now)
    return Labels({TIMESTAMP_LABEL: str(seconds)})


def get_machine_type(path: str | os.PathLike[str]) -> str:
    """Read the machine type from path; an empty path gives 'unknown'.

    Raises OSError if the file cannot be read.
    """
    if not path:
        return MACHINE_TYPE_UNKNOWN
    return Path(path).read_text().strip()


def new_machine_type_labeler(machine_type_path: str | os.PathLike[str]) -> Labels:
    """Return the machine type label, falling back to 'unknown' on read errors."""
    try:
        machine_type = get_machine_type(machine_type_path)
    except OSError as err:
        logger.warning("Error getting machine type from %s: %s", machine_type_path, err)
        machine_type = MACHINE_TYPE_UNKNOWN
    return Labels({MACHINE_TYPE_LABEL: machine_type.replace(" ", "-")})