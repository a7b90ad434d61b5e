"""Concurrent fan-out of dataset detail lookups for one pipeline stage."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Sequence

import anyio

from tiangong_lca_snapshot.core.logging import get_logger
from tiangong_lca_snapshot.core.models import DatasetRecord, DatasetRef, FetchResult

LOGGER = get_logger(__name__)

DetailFetcher = Callable[[str, str], Awaitable[FetchResult]]


def as_record(result: FetchResult | None, ref: DatasetRef) -> DatasetRecord | None:
    """Return the fetched record, or ``None`` when the lookup reported failure."""
    if result is None or not result.success:
        return None
    data = result.data
    if isinstance(data, DatasetRecord):
        return data
    if isinstance(data, Mapping):
        document = data.get("json")
        if not isinstance(document, Mapping):
            return None
        version = data.get("version")
        return DatasetRecord(
            id=str(data.get("id") or ref.id),
            json=document,
            version=str(version) if version else ref.version,
        )
    return None


async def fetch_batch(
    stage: str,
    refs: Sequence[DatasetRef],
    fetch: DetailFetcher,
    *,
    limiter: anyio.CapacityLimiter,
) -> dict[str, DatasetRecord]:
    """Fetch every reference concurrently and keep the successful records keyed by id.

    Failed or raising lookups are counted and skipped; they never cancel their siblings.
    """
    records: dict[str, DatasetRecord] = {}
    failed: list[str] = []

    async def _fetch_one(ref: DatasetRef) -> None:
        async with limiter:
            try:
                result = await fetch(ref.id, ref.version or "")
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.error("snapshot.fetch_raised", stage=stage, id=ref.id, error=str(exc))
                result = None
        record = as_record(result, ref)
        if record is None:
            failed.append(ref.id)
            return
        records[record.id] = record

    async with anyio.create_task_group() as task_group:
        for ref in refs:
            task_group.start_soon(_fetch_one, ref)

    LOGGER.info(
        "snapshot.stage_fetched",
        stage=stage,
        requested=len(refs),
        fetched=len(records),
        failed=len(failed),
    )
    if failed:
        LOGGER.warning("snapshot.stage_partial", stage=stage, missing=sorted(failed))
    return records


async def fetch_optional(call: Callable[[], Awaitable[FetchResult]] | None) -> Any:
    """Run an optional batched lookup and return its data, or ``None`` when unavailable."""
    if call is None:
        return None
    try:
        result = await call()
    except Exception as exc:  # pylint: disable=broad-except
        LOGGER.warning("snapshot.optional_lookup_failed", error=str(exc))
        return None
    if result is None or not result.success:
        return None
    return result.data


__all__ = ["DetailFetcher", "as_record", "fetch_batch", "fetch_optional"]
