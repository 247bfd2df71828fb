from collections.abc import Iterable

from costlens.models.cost import CostRecord, CostSeries, DimensionKey


def group_cost_records(records: Iterable[CostRecord]) -> dict[DimensionKey, CostSeries]:
    """
    Partition a flat stream of cost records into per-dimension series.

    Records without a project fall into the "default" project bucket. Each
    series is sorted ascending by timestamp; ties keep their input order.
    """
    buckets: dict[DimensionKey, list[CostRecord]] = {}
    for record in records:
        buckets.setdefault(record.dimension_key, []).append(record)

    return {
        key: CostSeries(key=key, records=tuple(sorted(items, key=lambda r: r.timestamp)))
        for key, items in buckets.items()
    }
