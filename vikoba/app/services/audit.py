"""
Activity logging service.

Append-only trail of every mutating action in the group: who did it, to
which entity, what changed, and whether it succeeded.
"""

import logging
from typing import Any, Dict, List, Optional

from vikoba.app.core.config import settings
from vikoba.app.core.exceptions import StoreError
from vikoba.app.core.observability import get_correlation_id
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.models.enums import ActivityStatus, EntityType
from vikoba.app.schemas.activity import ActivityFilter, ActivityLogEntry, ActivityStats
from vikoba.app.schemas.member import Actor

logger = logging.getLogger("vikoba.audit")

ACTIVITY_COLLECTION = "activity_logs"


class ActivityAction:
    """Standardized activity action constants."""
    TRANSACTION_CREATED = "transaction_created"

    # Loan requests
    LOAN_REQUESTED = "loan_requested"
    LOAN_VOTE_CAST = "loan_vote_cast"
    LOAN_APPROVED = "loan_approved"
    LOAN_REJECTED = "loan_rejected"
    LOAN_TRANSACTION_RECONCILED = "loan_transaction_reconciled"

    # Penalties
    LOAN_PENALTY_APPLIED = "loan_penalty_applied"

    # Bulk reconciliation
    BULK_ROW_COMMITTED = "bulk_row_committed"

    # Directory
    MEMBER_ADDED = "member_added"
    MEMBER_CODE_ASSIGNED = "member_code_assigned"


async def record_activity(store: DocumentStore, entry: ActivityLogEntry) -> str:
    """
    Append one entry to the activity log.

    The correlation id of the request in flight, if any, is added to the
    entry metadata.

    Returns:
        Id of the stored entry
    """
    correlation_id = get_correlation_id()
    if correlation_id and "correlation_id" not in entry.metadata:
        entry = entry.model_copy(update={"metadata": {**entry.metadata, "correlation_id": correlation_id}})

    return await store.put(ACTIVITY_COLLECTION, entry.model_dump(mode="json", exclude={"id"}))


async def log_event(
    store: DocumentStore,
    actor: Actor,
    action: str,
    entity_type: EntityType,
    entity_id: str,
    description: str,
    affected_member_id: Optional[str] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Log a successful action.

    Args:
        store: Document store holding the activity log
        actor: Who performed the action
        action: Action performed (use ActivityAction constants)
        entity_type: Kind of entity acted upon
        entity_id: Id of the entity acted upon
        description: Human-readable summary for audit screens
        affected_member_id: Member whose position changed, if any
        before: Snapshot before the change
        after: Snapshot after the change
        reason: Reason given by the actor (loan rejections)
        metadata: Additional context such as amounts and categories

    Returns:
        Id of the stored entry
    """
    entry = ActivityLogEntry(
        actor_id=actor.actor_id,
        actor_name=actor.actor_name,
        actor_role=actor.role,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        affected_member_id=affected_member_id,
        description=description,
        before=before,
        after=after,
        reason=reason,
        metadata=metadata or {},
        group_code=actor.group_code,
    )
    return await record_activity(store, entry)


async def log_failure(
    store: DocumentStore,
    actor: Actor,
    action: str,
    entity_type: EntityType,
    entity_id: str,
    description: str,
    failure_reason: str,
    affected_member_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Log a failed action.

    Called while another store failure is being handled, so a failure to
    write this entry is logged and does not replace the original error.
    """
    entry = ActivityLogEntry(
        actor_id=actor.actor_id,
        actor_name=actor.actor_name,
        actor_role=actor.role,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        affected_member_id=affected_member_id,
        description=description,
        metadata=metadata or {},
        status=ActivityStatus.FAILED,
        failure_reason=failure_reason,
        group_code=actor.group_code,
    )
    try:
        return await record_activity(store, entry)
    except StoreError:
        logger.exception("Could not record failed %s on %s %s", action, entity_type.value, entity_id)
        return None


async def list_activity(store: DocumentStore, activity_filter: ActivityFilter) -> List[ActivityLogEntry]:
    """Entries matching the filter, most recent first."""
    equality = activity_filter.model_dump(
        mode="json",
        exclude_none=True,
        include={"group_code", "actor_id", "action", "entity_type", "affected_member_id", "status"},
    )
    documents = await store.query(ACTIVITY_COLLECTION, equality)
    entries = [ActivityLogEntry.model_validate(document) for document in documents]

    if activity_filter.start:
        entries = [entry for entry in entries if entry.created_at >= activity_filter.start]
    if activity_filter.end:
        entries = [entry for entry in entries if entry.created_at <= activity_filter.end]

    entries.sort(key=lambda entry: entry.created_at, reverse=True)
    return entries[: activity_filter.limit or settings.activity_default_limit]


async def activity_stats(store: DocumentStore, group_code: str) -> ActivityStats:
    documents = await store.query(ACTIVITY_COLLECTION, {"group_code": group_code})
    stats = ActivityStats(group_code=group_code, total=len(documents))

    for document in documents:
        stats.by_action[document["action"]] = stats.by_action.get(document["action"], 0) + 1
        stats.by_actor[document["actor_id"]] = stats.by_actor.get(document["actor_id"], 0) + 1
        if document["status"] == ActivityStatus.FAILED.value:
            stats.failed_count += 1

    if stats.total:
        stats.success_rate = round((stats.total - stats.failed_count) / stats.total * 100, 2)
    return stats
