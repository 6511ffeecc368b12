# /*
# Copyright 2026 The rancher-k3k Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Bounded polling of resource status with a three-way outcome."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Union

from tenacity import Retrying, retry_if_result, stop_after_attempt, stop_before_delay, wait_fixed

from rancher_k3k import logger
from rancher_k3k.applier import ResourceRef
from rancher_k3k.constants import K3K_FAILED_PHASES, K3K_READY_PHASE, READY_CONDITION
from rancher_k3k.errors import StageError, StageTimeoutError
from rancher_k3k.kube import Kubectl


@dataclass(frozen=True)
class Success:
    status: Any = None


@dataclass(frozen=True)
class Failure:
    message: str


@dataclass(frozen=True)
class TimedOut:
    timeout: float


PollOutcome = Union[Success, Failure, TimedOut]

_PENDING = object()


def await_condition(
    read: Callable[[], Any],
    ready: Callable[[Any], bool],
    failure: Callable[[Any], str | None] | None,
    timeout: float,
    interval: float,
    sleep: Callable[[float], None] | None = None,
) -> PollOutcome:
    """Poll until *ready* holds, *failure* fires, or the deadline passes.

    The read happens immediately and then every *interval* seconds, so a
    window of ``timeout`` allows at most ``timeout // interval + 1`` reads.
    Time spent inside *read* counts against the deadline: no read starts
    once the next one would begin past *timeout*. A read returning None
    (absent or unreadable) counts as still pending.

    Args:
        read: Returns the current status object, or None.
        ready: Success predicate, evaluated first.
        failure: Returns a failure message when the status is terminal-bad,
            or None. Pass None when no failure signal exists.
        timeout: Deadline in seconds.
        interval: Seconds between reads.
        sleep: Sleep function; defaults to :func:`time.sleep`.

    Returns:
        ``Success``, ``Failure(message)``, or ``TimedOut``.
    """
    def attempt() -> Any:
        status = read()
        if status is None:
            return _PENDING
        if ready(status):
            return Success(status)
        if failure is not None:
            message = failure(status)
            if message is not None:
                return Failure(message)
        return _PENDING

    retrying = Retrying(
        stop=stop_after_attempt(max(1, int(timeout // interval) + 1)) | stop_before_delay(timeout),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda result: result is _PENDING),
        sleep=sleep or time.sleep,
        retry_error_callback=lambda state: TimedOut(timeout),
    )
    return retrying(attempt)


def wait_for_resource(
    kubectl: Kubectl,
    ref: ResourceRef,
    ready: Callable[[Any], bool],
    failure: Callable[[Any], str | None] | None,
    timeout: float,
    interval: float,
    sleep: Callable[[float], None] | None = None,
) -> PollOutcome:
    """:func:`await_condition` over one API object."""
    logger.debug("Polling %s (timeout %ss, interval %ss)", ref, timeout, interval)
    return await_condition(lambda: kubectl.get_json(ref.get_args()), ready, failure, timeout, interval, sleep)


def raise_for_outcome(outcome: PollOutcome, stage: str) -> Any:
    """Turn a non-success outcome into the matching exception.

    Returns:
        The status object that satisfied the ready predicate.

    Raises:
        StageError: On ``Failure``.
        StageTimeoutError: On ``TimedOut``.
    """
    if isinstance(outcome, Failure):
        raise StageError(stage, outcome.message)
    if isinstance(outcome, TimedOut):
        raise StageTimeoutError(stage, outcome.timeout)
    return outcome.status


# ============================================================================
# Status predicates
# ============================================================================

def find_condition(obj: dict, condition_type: str) -> dict | None:
    for condition in (obj.get("status") or {}).get("conditions") or []:
        if condition.get("type") == condition_type:
            return condition
    return None


def condition_ready(obj: dict) -> bool:
    condition = find_condition(obj, READY_CONDITION)
    return condition is not None and condition.get("status") == "True"


def condition_failure(obj: dict) -> str | None:
    """Message of a ``Ready=False`` condition that carries one."""
    condition = find_condition(obj, READY_CONDITION)
    if condition is not None and condition.get("status") == "False" and condition.get("message"):
        return condition["message"]
    return None


def ready_replicas(obj: dict) -> int:
    return int((obj.get("status") or {}).get("readyReplicas") or 0)


def deployment_available(obj: dict) -> bool:
    return int((obj.get("status") or {}).get("availableReplicas") or 0) >= 1


def deployment_ready(obj: dict) -> bool:
    return ready_replicas(obj) >= 1


def exists(obj: dict) -> bool:
    return True


def nested_cluster_ready(obj: dict) -> bool:
    return (obj.get("status") or {}).get("phase") == K3K_READY_PHASE


def nested_cluster_failure(obj: dict) -> str | None:
    phase = (obj.get("status") or {}).get("phase")
    if phase in K3K_FAILED_PHASES:
        return f"cluster phase is {phase}"
    return None
