"""Render service results as JSON-compatible dictionaries."""

from __future__ import annotations

import typing as typ

import msgspec

if typ.TYPE_CHECKING:
    from drover.batches import (
        DestinationUpdateResult,
        MembershipResult,
        RetryResult,
        StartBatchResult,
    )
    from drover.discovery import ForceResetResult
    from drover.lifecycle import BulkStatusResult, MigrationQueueResult


def to_media(value: object) -> typ.Any:  # noqa: ANN401 - JSON-compatible builtins
    """Convert records and structs to builtins; datetimes become ISO strings."""
    return msgspec.to_builtins(value)


def serialize_queue_result(result: MigrationQueueResult) -> dict[str, typ.Any]:
    """Serialize a migration queueing result."""
    return {
        "message": result.message,
        "dry_run": result.dry_run,
        "count": result.count,
        "queued_ids": result.queued_ids,
        "queued": result.queued_names,
        "skipped": result.skipped,
    }


def serialize_bulk_result(result: BulkStatusResult) -> dict[str, typ.Any]:
    """Serialize a bulk status update, including its overall outcome."""
    return {
        "action": result.action,
        "message": result.message,
        "outcome": result.outcome,
        "requested": result.requested,
        "updated_count": result.updated_count,
        "failed_count": result.failed_count,
        "updated_ids": result.updated_ids,
        "updated": result.updated_names,
        "failed_ids": result.failed_ids,
        "errors": result.errors,
    }


def serialize_membership(result: MembershipResult) -> dict[str, typ.Any]:
    """Serialize a batch membership change."""
    return {
        "batch_id": result.batch_id,
        "outcome": result.outcome,
        "requested": result.requested,
        "applied_ids": result.applied_ids,
        "applied": result.applied_names,
        "rejected": {str(key): reason for key, reason in result.rejected.items()},
        "defaults_applied": result.defaults_applied,
        "repository_count": result.repository_count,
    }


def serialize_start_batch(result: StartBatchResult) -> dict[str, typ.Any]:
    """Serialize a started batch with its queueing outcome."""
    return {
        "batch": to_media(result.batch),
        **serialize_queue_result(result.queued),
    }


def serialize_retry(result: RetryResult) -> dict[str, typ.Any]:
    """Serialize a batch retry."""
    return {
        "batch_id": result.batch_id,
        "message": f"Retry queued for {result.retried_count} repositories",
        "retried_count": result.retried_count,
        "retried_ids": result.retried_ids,
        "retried": result.retried_names,
        "skipped": {str(key): reason for key, reason in result.skipped.items()},
    }


def serialize_destination(result: DestinationUpdateResult) -> dict[str, typ.Any]:
    """Serialize a destination organization change."""
    return {
        "batch_id": result.batch_id,
        "previous_org": result.previous_org,
        "destination_org": result.destination_org,
        "updated_ids": result.updated_ids,
        "unchanged_ids": result.unchanged_ids,
    }


def serialize_force_reset(result: ForceResetResult) -> dict[str, typ.Any]:
    """Serialize a force reset, keeping the discovery that was read."""
    discovery = result.discovery
    return {
        "message": result.message,
        "action_taken": result.action_taken,
        "records_reset": result.records_reset,
        "progress_id": discovery.id if discovery else None,
        "target": discovery.target if discovery else None,
        "discovery": to_media(discovery) if discovery else None,
    }
