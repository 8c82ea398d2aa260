from __future__ import annotations

import threading

import pytest

from sagrun.core.types import ResourceLimits
from sagrun.governance.resource_manager import GlobalResourceLimits, ResourceManager
from sagrun.settings import RuntimeSettings


@pytest.fixture
def manager() -> ResourceManager:
    return ResourceManager(
        GlobalResourceLimits(
            max_concurrent_scopes=3, max_total_memory_mb=250, max_total_cpu_time_ms=1_000
        )
    )


def _limits(memory: float = 100, cpu: float = 300) -> ResourceLimits:
    return ResourceLimits(max_memory_mb=memory, max_cpu_time_ms=cpu)


def test_allocate_and_release(manager: ResourceManager) -> None:
    result = manager.allocate_resources("scope-a", _limits())

    assert result.success
    assert result.error is None
    assert result.remaining_capacity == {"scopes": 2.0, "memory_mb": 150.0, "cpu_time_ms": 700.0}
    assert manager.is_allocated("scope-a")

    assert manager.release_resources("scope-a") is True
    assert not manager.is_allocated("scope-a")


def test_release_is_idempotent(manager: ResourceManager) -> None:
    manager.allocate_resources("scope-a", _limits())

    assert manager.release_resources("scope-a") is True
    assert manager.release_resources("scope-a") is False
    assert manager.release_resources("never-allocated") is False
    assert manager.get_global_stats()["total_released"] == 1


def test_rejects_when_memory_budget_exceeded(manager: ResourceManager) -> None:
    assert manager.allocate_resources("scope-a", _limits(memory=200, cpu=10)).success

    result = manager.allocate_resources("scope-b", _limits(memory=100, cpu=10))
    assert not result.success
    assert "Total memory limit would be exceeded" in (result.error or "")
    assert not manager.is_allocated("scope-b")


def test_rejects_when_cpu_budget_exceeded(manager: ResourceManager) -> None:
    assert manager.allocate_resources("scope-a", _limits(memory=1, cpu=800)).success

    result = manager.allocate_resources("scope-b", _limits(memory=1, cpu=300))
    assert not result.success
    assert "Total CPU time limit would be exceeded" in (result.error or "")


def test_rejects_when_concurrency_limit_reached(manager: ResourceManager) -> None:
    for index in range(3):
        assert manager.allocate_resources(f"scope-{index}", _limits(memory=1, cpu=1)).success

    result = manager.allocate_resources("scope-overflow", _limits(memory=1, cpu=1))
    assert not result.success
    assert "Maximum concurrent scopes limit reached: 3" in (result.error or "")


def test_rejects_duplicate_scope_id(manager: ResourceManager) -> None:
    assert manager.allocate_resources("scope-a", _limits(memory=1, cpu=1)).success

    result = manager.allocate_resources("scope-a", _limits(memory=1, cpu=1))
    assert not result.success
    assert "already holds an allocation" in (result.error or "")


def test_release_frees_capacity(manager: ResourceManager) -> None:
    assert manager.allocate_resources("scope-a", _limits(memory=200, cpu=10)).success
    assert not manager.allocate_resources("scope-b", _limits(memory=100, cpu=10)).success

    manager.release_resources("scope-a")
    assert manager.allocate_resources("scope-b", _limits(memory=100, cpu=10)).success


def test_global_stats_track_running_totals(manager: ResourceManager) -> None:
    manager.allocate_resources("scope-a", _limits(memory=50, cpu=100))
    manager.allocate_resources("scope-b", _limits(memory=50, cpu=200))
    manager.allocate_resources("scope-c", _limits(memory=500, cpu=1))
    manager.release_resources("scope-a")

    stats = manager.get_global_stats()
    assert stats["active_scopes"] == 1
    assert stats["peak_concurrent_scopes"] == 2
    assert stats["total_allocations"] == 2
    assert stats["rejected_allocations"] == 1
    assert stats["cumulative_cpu_time_reserved_ms"] == 300
    assert stats["reserved"] == {"memory_mb": 50, "cpu_time_ms": 200}
    assert stats["global_limits"]["max_concurrent_scopes"] == 3


def test_usage_violations_are_observational(manager: ResourceManager) -> None:
    manager.allocate_resources("scope-a", _limits(memory=10, cpu=100))

    manager.update_usage("scope-a", memory_mb=5, cpu_time_ms=50)
    assert manager.check_limits("scope-a").valid

    manager.update_usage("scope-a", cpu_time_ms=250)
    check = manager.check_limits("scope-a")
    assert not check.valid
    assert check.violations[0]["type"] == "CPU_TIME"
    assert manager.is_allocated("scope-a")

    stats = manager.get_resource_stats("scope-a")
    assert stats is not None
    assert stats["usage"] == {"memory_mb": 5.0, "cpu_time_ms": 250.0}
    assert stats["utilization_percent"]["cpu"] == pytest.approx(250.0)
    assert stats["violations"][0]["limit"] == 100


def test_unknown_scope_queries() -> None:
    manager = ResourceManager()

    assert manager.get_resource_stats("missing") is None
    assert not manager.check_limits("missing").valid
    manager.update_usage("missing", memory_mb=1)


def test_from_settings_uses_global_budget() -> None:
    settings = RuntimeSettings(
        MAX_CONCURRENT_SCOPES=2, MAX_TOTAL_MEMORY_MB=64, MAX_TOTAL_CPU_TIME_MS=1000
    )
    manager = ResourceManager.from_settings(settings)

    assert manager.limits == GlobalResourceLimits(
        max_concurrent_scopes=2, max_total_memory_mb=64.0, max_total_cpu_time_ms=1000.0
    )


def test_default_budget_admits_five_default_runs() -> None:
    manager = ResourceManager.from_settings(RuntimeSettings())

    results = [manager.allocate_resources(f"scope-{i}", ResourceLimits()) for i in range(6)]
    assert [result.success for result in results] == [True] * 5 + [False]


def test_concurrent_allocation_never_overcommits() -> None:
    manager = ResourceManager(
        GlobalResourceLimits(
            max_concurrent_scopes=50, max_total_memory_mb=100, max_total_cpu_time_ms=10_000
        )
    )
    outcomes: list[bool] = []
    lock = threading.Lock()

    def _allocate(index: int) -> None:
        result = manager.allocate_resources(f"scope-{index}", _limits(memory=10, cpu=1))
        with lock:
            outcomes.append(result.success)

    threads = [threading.Thread(target=_allocate, args=(i,)) for i in range(30)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count(True) == 10
    assert manager.get_global_stats()["reserved"]["memory_mb"] == 100
