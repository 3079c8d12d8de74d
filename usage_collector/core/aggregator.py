"""
Aggregation of usage events into daily counters.
"""

from typing import Dict, Iterable

from usage_collector.storage.models import AggregateKey, AggregateRow, IDE_NAME, UsageEvent


def aggregate(events: Iterable[UsageEvent]) -> Dict[AggregateKey, AggregateRow]:
    """Group usage events by date, source, served_by and action.

    ``num_requests`` counts the events in each group. The descriptive
    fields take the values of the last event seen for the group, so the
    result depends on input order for those fields only.

    Args:
        events: Usage events in file-read order

    Returns:
        Mapping of aggregate key to row, in order of first appearance
    """
    totals: Dict[AggregateKey, AggregateRow] = {}

    for event in events:
        key = AggregateKey(
            date=event.date,
            source=event.source.value,
            served_by=event.served_by,
            action=event.action,
        )
        row = totals.get(key)
        if row is None:
            row = AggregateRow(
                date=key.date,
                source=key.source,
                served_by=key.served_by,
                action=key.action,
                ide=IDE_NAME,
            )
            totals[key] = row

        row.num_requests += 1
        row.name = event.name
        row.company = event.company
        row.team = event.team

    return totals
