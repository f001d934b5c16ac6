"""Set and content differences between two message sequences."""

from typing import Iterable

from .core import ContentDivergence, DiffResult, Message


def diff_messages(local: Iterable[Message], cloud: Iterable[Message]) -> DiffResult:
    """Partition messages by id membership and flag text divergence.

    Only ``content`` is compared for messages present on both sides; role and
    creation time are ignored. Output lists keep input order.
    """
    local = list(local)
    cloud = list(cloud)
    if not local and not cloud:
        return DiffResult()

    cloud_by_id = {m.id: m for m in cloud}
    local_ids = {m.id for m in local}

    only_local = [m for m in local if m.id not in cloud_by_id]
    only_cloud = [m for m in cloud if m.id not in local_ids]

    modified = []
    for msg in local:
        other = cloud_by_id.get(msg.id)
        if other is not None and other.content != msg.content:
            modified.append(ContentDivergence(
                id=msg.id,
                local_content=msg.content,
                cloud_content=other.content,
            ))

    return DiffResult(
        only_local=tuple(only_local),
        only_cloud=tuple(only_cloud),
        modified_overlap=tuple(modified),
    )
