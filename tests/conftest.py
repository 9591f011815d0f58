"""Shared test fixtures."""

import pytest


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def services():
    """Fresh in-memory service container installed as the global one."""
    from liberator.core.config import LiberatorConfig
    from liberator.core.service_container import (
        ServiceContainer,
        reset_service_container,
        set_service_container,
    )

    container = ServiceContainer(config=LiberatorConfig(rate_limit_calls=3, enable_job_listing=False))
    set_service_container(container)
    yield container
    reset_service_container()


# Checkpoints the job controller assigns on the successful path
_CHECKPOINTS = (("scanning", 10), ("auditing", 30), ("cleaning", 50), ("rebuilding", 70), ("rebuilding", 90))


@pytest.fixture
def advance_to():
    """Walk a job through every checkpoint up to the given one."""
    from liberator.pipeline.models import JobStatus

    def walk(job, status, progress=None):
        target = JobStatus(status)
        for name, checkpoint in _CHECKPOINTS:
            if job.progress >= checkpoint:
                continue
            job.advance(JobStatus(name), checkpoint)
            if JobStatus(name) == target and (progress is None or checkpoint >= progress):
                break
        return job

    return walk
