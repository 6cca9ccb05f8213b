"""Tests for host capacity and worker pool sizing."""

from types import SimpleNamespace

import pytest

from cladeflow.errors import ConfigurationError
from cladeflow.execution import capacity as capacity_module
from cladeflow.execution.capacity import HostCapacity, detect_host_capacity, effective_parallelism
from cladeflow.execution.runner import ResourceCeiling

pytestmark = [pytest.mark.unit]


def _ceiling(memory_gb, cpus):
    return ResourceCeiling(memory_gb=memory_gb, cpus=cpus, timeout_minutes=60)


def test_bounded_by_memory():
    capacity = HostCapacity(memory_gb=64, cpus=64)
    assert effective_parallelism(8, [_ceiling(32, 8)], capacity) == 2


def test_bounded_by_cpus():
    capacity = HostCapacity(memory_gb=512, cpus=16)
    assert effective_parallelism(8, [_ceiling(8, 16), _ceiling(4, 4)], capacity) == 1


def test_bounded_by_max_workers():
    capacity = HostCapacity(memory_gb=512, cpus=128)
    assert effective_parallelism(3, [_ceiling(8, 4)], capacity) == 3


def test_no_ceilings_means_max_workers():
    assert effective_parallelism(5, [], HostCapacity(memory_gb=1, cpus=1)) == 5


def test_single_job_larger_than_host_rejected():
    with pytest.raises(ConfigurationError, match="exceeds total capacity"):
        effective_parallelism(2, [_ceiling(48, 4)], HostCapacity(memory_gb=32, cpus=16))
    with pytest.raises(ConfigurationError, match="CPU ceiling"):
        effective_parallelism(2, [_ceiling(4, 32)], HostCapacity(memory_gb=32, cpus=16))


def test_max_workers_must_be_positive():
    with pytest.raises(ConfigurationError):
        effective_parallelism(0, [], HostCapacity(memory_gb=8, cpus=2))


def test_explicit_capacity_used_as_given():
    capacity = detect_host_capacity(memory_gb=24, cpus=6)
    assert capacity == HostCapacity(memory_gb=24.0, cpus=6)


def test_detected_capacity_is_positive():
    capacity = detect_host_capacity()
    assert capacity.memory_gb > 0
    assert capacity.cpus >= 1


def test_detection_reads_psutil(monkeypatch):
    monkeypatch.setattr(capacity_module.psutil, "virtual_memory",
                        lambda: SimpleNamespace(total=48 * 1024 ** 3))
    monkeypatch.setattr(capacity_module.psutil, "cpu_count", lambda: 12)

    assert detect_host_capacity() == HostCapacity(memory_gb=48.0, cpus=12)


def test_unknown_cpu_count_falls_back_to_one(monkeypatch):
    monkeypatch.setattr(capacity_module.psutil, "cpu_count", lambda: None)

    assert detect_host_capacity(memory_gb=8).cpus == 1


def test_undetectable_memory_needs_explicit_setting(monkeypatch):
    monkeypatch.setattr(capacity_module.psutil, "virtual_memory",
                        lambda: SimpleNamespace(total=0))

    with pytest.raises(ConfigurationError, match="TOTAL_MEMORY_GB"):
        detect_host_capacity()
