"""Aggregate counters over the operatives a user can see."""
from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable

from models import Operative


def _sorted_counts(counter: Counter) -> Dict[str, int]:
    return dict(sorted(counter.items(), key=lambda item: (-item[1], item[0])))


def compute_statistics(operatives: Iterable[Operative]) -> dict:
    by_status: Counter = Counter()
    by_type: Counter = Counter()
    by_region: Counter = Counter()
    by_shift: Counter = Counter()
    by_result: Counter = Counter()
    totals = {
        "public_transport_checked": 0,
        "private_vehicles_checked": 0,
        "motorcycles_checked": 0,
        "people_checked": 0,
        "detainees": 0,
        "meeting_participants": 0,
        "units_deployed": 0,
        "personnel_deployed": 0,
    }
    count = 0

    for operative in operatives:
        count += 1
        by_status[operative.status] += 1
        by_type[operative.operative_type] += 1
        by_region[operative.region] += 1
        by_shift[operative.shift] += 1
        totals["units_deployed"] += len(operative.units) + sum(corp.unit_count for corp in operative.corporations)
        totals["personnel_deployed"] += sum(unit.personnel_count for unit in operative.units)
        totals["personnel_deployed"] += sum(corp.personnel_count for corp in operative.corporations)

        conclusion = operative.conclusion
        if conclusion is None:
            continue
        by_result[conclusion.result] += 1
        totals["public_transport_checked"] += conclusion.public_transport_checked
        totals["private_vehicles_checked"] += conclusion.private_vehicles_checked
        totals["motorcycles_checked"] += conclusion.motorcycles_checked
        totals["people_checked"] += conclusion.people_checked
        totals["detainees"] += conclusion.detainees_count or 0
        totals["meeting_participants"] += conclusion.participant_count or 0

    return {
        "total": count,
        "by_status": _sorted_counts(by_status),
        "by_type": _sorted_counts(by_type),
        "by_region": _sorted_counts(by_region),
        "by_shift": _sorted_counts(by_shift),
        "by_result": _sorted_counts(by_result),
        "totals": totals,
    }
