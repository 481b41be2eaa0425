# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Block and release state machines.

Every status change goes through transition_block / transition_release so
that illegal moves are caught where they happen.
"""

from typing import Dict, FrozenSet

from release_wizard.core.errors import InvalidStateError
from release_wizard.models.common import utc_now
from release_wizard.models.release import (
    BlockExecution, BlockExecutionStatus as B, Release, ReleaseStatus as R
)


BLOCK_TRANSITIONS: Dict[B, FrozenSet[B]] = {
    B.WAITING: frozenset({B.READY, B.FAILED, B.CANCELLED}),
    B.READY: frozenset({B.RUNNING, B.WAITING, B.FAILED, B.CANCELLED}),
    B.RUNNING: frozenset({B.SUCCEEDED, B.FAILED, B.WAITING_FOR_INPUT, B.RETRYING, B.CANCELLED}),
    B.RETRYING: frozenset({B.RUNNING, B.FAILED, B.CANCELLED}),
    B.WAITING_FOR_INPUT: frozenset({B.RUNNING, B.CANCELLED}),
    B.SUCCEEDED: frozenset(),
    B.FAILED: frozenset(),
    B.CANCELLED: frozenset({B.WAITING}),  # restart_block re-arms a cancelled block
}

RELEASE_TRANSITIONS: Dict[R, FrozenSet[R]] = {
    R.PENDING: frozenset({R.RUNNING, R.CANCELLED}),
    R.RUNNING: frozenset({R.PAUSED, R.SUCCEEDED, R.FAILED, R.CANCELLED}),
    R.PAUSED: frozenset({R.RUNNING, R.SUCCEEDED, R.FAILED, R.CANCELLED}),
    R.SUCCEEDED: frozenset(),
    R.FAILED: frozenset(),
    R.CANCELLED: frozenset(),
}


def can_transition_block(current: B, new: B) -> bool:
    return new in BLOCK_TRANSITIONS[current]


def transition_block(execution: BlockExecution, new_status: B) -> B:
    """Move a block execution to new_status; returns the old status"""
    old_status = execution.status
    if not can_transition_block(old_status, new_status):
        raise InvalidStateError("BlockExecution", execution.id, old_status.value, f"move to {new_status.value}")

    now = utc_now()
    execution.status = new_status
    execution.updated_at = now
    if new_status == B.RUNNING and execution.started_at is None:
        execution.started_at = now
    if new_status.is_terminal:
        execution.completed_at = now
        execution.next_retry_at = None
    elif new_status == B.WAITING:
        execution.completed_at = None
    return old_status


def transition_release(release: Release, new_status: R) -> R:
    """Move a release to new_status; returns the old status"""
    old_status = release.status
    if new_status not in RELEASE_TRANSITIONS[old_status]:
        raise InvalidStateError("Release", release.id, old_status.value, f"move to {new_status.value}")

    now = utc_now()
    release.status = new_status
    release.updated_at = now
    if new_status == R.RUNNING and release.started_at is None:
        release.started_at = now
    if new_status.is_terminal:
        release.completed_at = now
    return old_status
