"""Correlate expected dose instants with the two event sources.

History events are matched exactly on their intended (scheduled) date and time
and always take precedence. Legacy log events are matched approximately, within
LOG_MATCH_TOLERANCE of the instant, and only decide the status when no history
event matches. A dose with neither stays pending; nothing here decides that a
dose was missed because its time has passed.
"""

import bisect
import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import (
    DoseInstant,
    DoseStatus,
    HistorySource,
    LogSource,
    MedicationHistory,
    MedicationLog,
    ReconciledDose,
    ReconciliationWarning,
)

logger = logging.getLogger(__name__)

LOG_MATCH_TOLERANCE = timedelta(seconds=60)


def _history_matches(instant: DoseInstant, entry: MedicationHistory) -> bool:
    return (
        entry.prescription_id == instant.prescription_id
        and entry.scheduled_date == instant.scheduled_date
        and entry.scheduled_time == instant.scheduled_time
    )


def _log_distance(instant: DoseInstant, log: MedicationLog) -> timedelta:
    return abs(log.scheduled_time - instant.scheduled_at)


def match_history(
    instant: DoseInstant, history: Iterable[MedicationHistory]
) -> List[MedicationHistory]:
    return [h for h in history if _history_matches(instant, h)]


def match_log(
    instant: DoseInstant, logs: Iterable[MedicationLog]
) -> Optional[MedicationLog]:
    best = None
    best_distance = None
    for log in logs:
        if log.prescription_id != instant.prescription_id:
            continue
        distance = _log_distance(instant, log)
        if distance >= LOG_MATCH_TOLERANCE:
            continue
        # strict < keeps the earliest of equally close logs
        if best_distance is None or distance < best_distance:
            best, best_distance = log, distance
    return best


def _resolve(
    instant: DoseInstant,
    history_hits: Sequence[MedicationHistory],
    log: Optional[MedicationLog],
) -> ReconciledDose:
    if history_hits:
        if len(history_hits) > 1:
            logger.warning(
                "ambiguous history match prescription=%s at=%s ids=%s",
                instant.prescription_id,
                instant.scheduled_at.isoformat(),
                [h.id for h in history_hits],
            )
            source = None
        else:
            source = HistorySource(history_hits[0])
        return ReconciledDose(
            instant=instant,
            status=DoseStatus.TAKEN,
            source=source,
            log=log,
            history_matches=tuple(history_hits),
        )
    if log is not None:
        return ReconciledDose(
            instant=instant, status=log.status, source=LogSource(log), log=log
        )
    return ReconciledDose(instant=instant, status=DoseStatus.PENDING)


def reconcile(
    instant: DoseInstant,
    logs: Iterable[MedicationLog],
    history: Iterable[MedicationHistory],
) -> ReconciledDose:
    return _resolve(instant, match_history(instant, history), match_log(instant, logs))


class CorrelationIndex:
    """Lookup structure for reconciling many instants against one snapshot."""

    def __init__(
        self, logs: Iterable[MedicationLog], history: Iterable[MedicationHistory]
    ):
        self._history: Dict[Tuple, List[MedicationHistory]] = defaultdict(list)
        for entry in history:
            key = (entry.prescription_id, entry.scheduled_date, entry.scheduled_time)
            self._history[key].append(entry)

        # (position, log) so candidates can be put back in input order
        by_rx: Dict[str, List[Tuple[int, MedicationLog]]] = defaultdict(list)
        for pos, log in enumerate(logs):
            by_rx[log.prescription_id].append((pos, log))
        self._logs: Dict[str, List[Tuple[int, MedicationLog]]] = {}
        self._log_times: Dict[str, list] = {}
        for rx, items in by_rx.items():
            ordered = sorted(items, key=lambda item: item[1].scheduled_time)
            self._logs[rx] = ordered
            self._log_times[rx] = [log.scheduled_time for _, log in ordered]

    def history_for(self, instant: DoseInstant) -> List[MedicationHistory]:
        key = (instant.prescription_id, instant.scheduled_date, instant.scheduled_time)
        return list(self._history.get(key, ()))

    def log_for(self, instant: DoseInstant) -> Optional[MedicationLog]:
        times = self._log_times.get(instant.prescription_id)
        if not times:
            return None
        lo = bisect.bisect_right(times, instant.scheduled_at - LOG_MATCH_TOLERANCE)
        hi = bisect.bisect_left(times, instant.scheduled_at + LOG_MATCH_TOLERANCE)
        window = sorted(self._logs[instant.prescription_id][lo:hi], key=lambda item: item[0])
        return match_log(instant, [log for _, log in window])

    def reconcile(self, instant: DoseInstant) -> ReconciledDose:
        return _resolve(instant, self.history_for(instant), self.log_for(instant))


def reconcile_all(
    instants: Iterable[DoseInstant],
    logs: Iterable[MedicationLog],
    history: Iterable[MedicationHistory],
) -> List[ReconciledDose]:
    index = CorrelationIndex(logs, history)
    return [index.reconcile(instant) for instant in instants]


def find_ambiguities(doses: Iterable[ReconciledDose]) -> List[ReconciliationWarning]:
    warnings = []
    for dose in doses:
        if not dose.is_ambiguous:
            continue
        ids = tuple(h.id for h in dose.history_matches)
        warnings.append(
            ReconciliationWarning(
                prescription_id=dose.instant.prescription_id,
                scheduled_at=dose.instant.scheduled_at,
                history_ids=ids,
                message=f"{len(ids)} history entries recorded for the same scheduled dose",
            )
        )
    return warnings
