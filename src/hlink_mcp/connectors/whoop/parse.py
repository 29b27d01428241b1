from __future__ import annotations

from typing import Any, Dict, Iterable, List

from hlink_mcp.connectors.units import duration_minutes, kilojoules_to_calories, round_half_up
from hlink_mcp.domain.models import (
    DailyStats,
    Recovery,
    WhoopCycle,
    WhoopRecovery,
    WhoopWorkout,
    WorkoutSummary,
)

SCORED = "SCORED"


def _scored(records: Iterable[Dict[str, Any]] | None) -> List[Dict[str, Any]]:
    # gate on the raw record: anything not SCORED (partial score, unknown state) is
    # dropped before validation and never reaches the output
    return [r for r in records or [] if r.get("score_state") == SCORED and r.get("score")]


def parse_daily_stats(cycles: Iterable[Dict[str, Any]], recoveries: Iterable[Dict[str, Any]]) -> List[DailyStats]:
    """Merge scored cycles with the scored recovery sharing their cycle id."""
    recovery_by_cycle: Dict[int, WhoopRecovery] = {}
    for raw in _scored(recoveries):
        rec = WhoopRecovery.model_validate(raw)
        recovery_by_cycle[rec.cycle_id] = rec

    out: List[DailyStats] = []
    for raw in _scored(cycles):
        cycle = WhoopCycle.model_validate(raw)
        score = cycle.score
        stats = DailyStats(
            date=cycle.start,
            strain=round_half_up(score.strain, 1),
            calories_burned=kilojoules_to_calories(score.kilojoule),
            average_heart_rate=score.average_heart_rate,
            max_heart_rate=score.max_heart_rate,
        )

        rec = recovery_by_cycle.get(cycle.id)
        if rec is not None and rec.score is not None:
            stats.recovery = Recovery(
                score=rec.score.recovery_score,
                resting_heart_rate=rec.score.resting_heart_rate,
                hrv=round_half_up(rec.score.hrv_rmssd_milli, 1),
            )

        out.append(stats)
    return out


def parse_workouts(workouts: Iterable[Dict[str, Any]]) -> List[WorkoutSummary]:
    out: List[WorkoutSummary] = []
    for raw in _scored(workouts):
        w = WhoopWorkout.model_validate(raw)
        score = w.score
        summary = WorkoutSummary(
            id=w.id,
            date=w.start,
            sport=w.sport_name,
            duration=duration_minutes(w.start, w.end),
            strain=round_half_up(score.strain, 1),
            calories_burned=kilojoules_to_calories(score.kilojoule),
            average_heart_rate=score.average_heart_rate,
            max_heart_rate=score.max_heart_rate,
        )
        if score.distance_meter:
            summary.distance = int(round_half_up(score.distance_meter))
        out.append(summary)
    return out
