from hlink_mcp.connectors.whoop.parse import parse_daily_stats, parse_workouts


def _cycle(cid=1, state="SCORED", **score):
    base = {"strain": 10.04, "kilojoule": 500, "average_heart_rate": 70, "max_heart_rate": 150}
    base.update(score)
    return {
        "id": cid,
        "user_id": 7,
        "start": "2024-01-14T06:00:00.000Z",
        "end": "2024-01-15T06:00:00.000Z",
        "score_state": state,
        "score": base,
    }


def _recovery(cycle_id=1, state="SCORED"):
    return {
        "cycle_id": cycle_id,
        "sleep_id": "abc",
        "score_state": state,
        "score": {"recovery_score": 80, "resting_heart_rate": 55, "hrv_rmssd_milli": 42.3},
    }


def test_daily_stats_merges_recovery():
    out = parse_daily_stats([_cycle()], [_recovery()])
    assert [s.to_dict() for s in out] == [
        {
            "date": "2024-01-14T06:00:00.000Z",
            "strain": 10.0,
            "caloriesBurned": 120,
            "averageHeartRate": 70,
            "maxHeartRate": 150,
            "recovery": {"score": 80, "restingHeartRate": 55, "hrv": 42.3},
        }
    ]


def test_pending_cycle_never_appears_even_with_score():
    out = parse_daily_stats([_cycle(1, state="PENDING_SCORE"), _cycle(2)], [])
    assert len(out) == 1
    assert out[0].date == "2024-01-14T06:00:00.000Z"
    assert out[0].recovery is None


def test_recovery_omitted_when_missing_or_unscored():
    out = parse_daily_stats([_cycle(1), _cycle(2)], [_recovery(1, state="PENDING_SCORE"), _recovery(99)])
    assert len(out) == 2
    assert all("recovery" not in s.to_dict() for s in out)


def test_cycle_without_score_is_skipped():
    raw = _cycle()
    raw["score"] = None
    assert parse_daily_stats([raw], []) == []


def _workout(wid="w1", state="SCORED", **score):
    base = {"strain": 8.26, "average_heart_rate": 130, "max_heart_rate": 170, "kilojoule": 1000}
    base.update(score)
    return {
        "id": wid,
        "start": "2024-01-14T10:00:00.000Z",
        "end": "2024-01-14T11:30:00.000Z",
        "sport_name": "running",
        "score_state": state,
        "score": base,
    }


def test_workouts_normalized():
    out = parse_workouts([_workout(distance_meter=5000.4)])
    assert [w.to_dict() for w in out] == [
        {
            "id": "w1",
            "date": "2024-01-14T10:00:00.000Z",
            "sport": "running",
            "duration": 90,
            "strain": 8.3,
            "caloriesBurned": 239,
            "averageHeartRate": 130,
            "maxHeartRate": 170,
            "distance": 5000,
        }
    ]


def test_workout_distance_omitted_when_zero_or_absent():
    out = parse_workouts([_workout("a", distance_meter=0), _workout("b")])
    assert [w.to_dict().get("distance") for w in out] == [None, None]


def test_unscorable_workout_dropped():
    assert parse_workouts([_workout(state="UNSCORABLE")]) == []


def test_pending_cycle_with_partial_score_is_skipped():
    raw = _cycle(1, state="PENDING_SCORE")
    raw["score"] = {"strain": 3.1}
    assert parse_daily_stats([raw], []) == []


def test_unknown_score_state_is_skipped():
    assert parse_daily_stats([_cycle(1, state="SCORING_IN_PROGRESS")], []) == []


def test_pending_recovery_with_partial_score_leaves_cycle_intact():
    pending = {"cycle_id": 1, "score_state": "PENDING_SCORE", "score": {"recovery_score": 80}}
    out = parse_daily_stats([_cycle(1)], [pending])
    assert len(out) == 1
    assert out[0].recovery is None


def test_pending_workout_with_partial_score_is_skipped():
    raw = _workout(state="PENDING_SCORE")
    raw["score"] = {"strain": 1.0}
    assert parse_workouts([raw, _workout("w2")])[0].id == "w2"
