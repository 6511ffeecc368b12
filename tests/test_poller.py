"""Tests for bounded status polling."""
from __future__ import annotations

import time

import pytest

from fakes import FakeKubectl
from rancher_k3k.applier import ResourceRef
from rancher_k3k.errors import StageError, StageTimeoutError
from rancher_k3k.poller import (
    Failure,
    Success,
    TimedOut,
    await_condition,
    condition_failure,
    condition_ready,
    deployment_available,
    nested_cluster_failure,
    nested_cluster_ready,
    raise_for_outcome,
    wait_for_resource,
)


def _ready(status: str, message: str | None = None) -> dict:
    condition = {"type": "Ready", "status": status}
    if message:
        condition["message"] = message
    return {"status": {"conditions": [condition]}}


def _reader(states: list):
    reads = iter(states)
    return lambda: next(reads)


def test_success_after_pending_reads(no_sleep: list[float]) -> None:
    """Unknown, Unknown, True succeeds on the third read after two sleeps."""
    outcome = await_condition(
        _reader([_ready("Unknown"), _ready("Unknown"), _ready("True")]),
        condition_ready, condition_failure, timeout=10, interval=1,
    )

    assert isinstance(outcome, Success)
    assert condition_ready(outcome.status)
    assert no_sleep == [1, 1]


def test_explicit_failure_stops_polling(no_sleep: list[float]) -> None:
    """A Ready=False condition with a message is terminal."""
    outcome = await_condition(
        _reader([_ready("Unknown"), _ready("False", "bucket not found")]),
        condition_ready, condition_failure, timeout=10, interval=1,
    )

    assert outcome == Failure("bucket not found")
    assert no_sleep == [1]


def test_false_without_message_keeps_waiting() -> None:
    """Ready=False with no message is still in progress."""
    outcome = await_condition(
        _reader([_ready("False"), _ready("True")]),
        condition_ready, condition_failure, timeout=10, interval=1,
    )

    assert isinstance(outcome, Success)


def test_deadline_bounds_the_number_of_reads(no_sleep: list[float]) -> None:
    """A window of three intervals allows four reads."""
    reads: list[int] = []

    def read() -> None:
        reads.append(1)
        return None

    outcome = await_condition(read, condition_ready, None, timeout=3, interval=1)

    assert outcome == TimedOut(3)
    assert len(reads) == 4
    assert len(no_sleep) == 3


def test_slow_reads_count_against_the_deadline() -> None:
    """Reads that take most of the window stop polling near the timeout."""
    reads: list[int] = []

    def read() -> None:
        reads.append(1)
        time.sleep(0.2)
        return None

    started = time.monotonic()
    outcome = await_condition(read, condition_ready, None, timeout=0.3, interval=0.1, sleep=lambda seconds: None)
    elapsed = time.monotonic() - started

    assert outcome == TimedOut(0.3)
    assert elapsed < 0.6
    assert len(reads) < 4


def test_raise_for_outcome() -> None:
    assert raise_for_outcome(Success({"a": 1}), "Backup") == {"a": 1}
    with pytest.raises(StageError, match="Backup failed: denied"):
        raise_for_outcome(Failure("denied"), "Backup")
    with pytest.raises(StageTimeoutError, match="Timed out waiting for Backup after 600s"):
        raise_for_outcome(TimedOut(600), "Backup")


def test_wait_for_resource_reads_the_object() -> None:
    """An absent object is pending until it appears Ready."""
    kubectl = FakeKubectl()
    kubectl.add("deployment", "rancher", "cattle-system", status={"availableReplicas": 1})

    outcome = wait_for_resource(
        kubectl, ResourceRef("deployment", "rancher", "cattle-system"),
        deployment_available, None, timeout=10, interval=5,
    )

    assert isinstance(outcome, Success)
    assert kubectl.commands[0] == ["get", "deployment", "rancher", "-n", "cattle-system", "-o", "json"]


@pytest.mark.parametrize(
    ("phase", "ready", "failure"),
    [
        ("Ready", True, None),
        ("Provisioning", False, None),
        ("Failed", False, "cluster phase is Failed"),
    ],
)
def test_nested_cluster_predicates(phase: str, ready: bool, failure: str | None) -> None:
    obj = {"status": {"phase": phase}}

    assert nested_cluster_ready(obj) is ready
    assert nested_cluster_failure(obj) == failure
