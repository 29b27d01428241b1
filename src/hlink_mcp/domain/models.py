from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


ScoreState = Literal["SCORED", "PENDING_SCORE", "UNSCORABLE"]
Number = Union[int, float]


# --- WHOOP records (as returned by /developer/v2) ---------------------------

class CycleScore(BaseModel):
    strain: float
    kilojoule: float
    average_heart_rate: int
    max_heart_rate: int


class WhoopCycle(BaseModel):
    id: int
    user_id: Optional[int] = None
    start: str
    end: Optional[str] = None
    timezone_offset: Optional[str] = None
    score_state: ScoreState
    score: Optional[CycleScore] = None


class RecoveryScore(BaseModel):
    user_calibrating: Optional[bool] = None
    recovery_score: Number
    resting_heart_rate: Number
    hrv_rmssd_milli: float
    spo2_percentage: Optional[float] = None
    skin_temp_celsius: Optional[float] = None


class WhoopRecovery(BaseModel):
    cycle_id: int
    sleep_id: Optional[Any] = None
    user_id: Optional[int] = None
    score_state: ScoreState
    score: Optional[RecoveryScore] = None


class WorkoutScore(BaseModel):
    strain: float
    average_heart_rate: int
    max_heart_rate: int
    kilojoule: float
    percent_recorded: Optional[float] = None
    distance_meter: Optional[float] = None
    altitude_gain_meter: Optional[float] = None
    altitude_change_meter: Optional[float] = None
    zone_duration: Optional[Dict[str, int]] = None


class WhoopWorkout(BaseModel):
    id: Any
    user_id: Optional[int] = None
    start: str
    end: str
    sport_id: Optional[int] = None
    sport_name: Optional[str] = None
    timezone_offset: Optional[str] = None
    score_state: ScoreState
    score: Optional[WorkoutScore] = None


# --- Withings records (/measure?action=getmeas) -----------------------------

class Measure(BaseModel):
    value: int
    type: int
    unit: int


class MeasureGroup(BaseModel):
    grpid: Optional[int] = None
    date: int  # epoch seconds
    category: Optional[int] = None
    measures: List[Measure] = Field(default_factory=list)


# --- Normalized results -----------------------------------------------------

class _Result(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Recovery(_Result):
    score: Number
    resting_heart_rate: Number = Field(alias="restingHeartRate")
    hrv: float


class DailyStats(_Result):
    date: str
    strain: float
    calories_burned: int = Field(alias="caloriesBurned")
    average_heart_rate: int = Field(alias="averageHeartRate")
    max_heart_rate: int = Field(alias="maxHeartRate")
    recovery: Optional[Recovery] = None


class WorkoutSummary(_Result):
    id: Any
    date: str
    sport: Optional[str] = None
    duration: int  # minutes
    strain: float
    calories_burned: int = Field(alias="caloriesBurned")
    average_heart_rate: int = Field(alias="averageHeartRate")
    max_heart_rate: int = Field(alias="maxHeartRate")
    distance: Optional[int] = None  # meters


class WeightPoint(_Result):
    weight: float
    date: str
    fat_ratio: Optional[float] = Field(default=None, alias="fatRatio")
    fat_mass: Optional[float] = Field(default=None, alias="fatMass")
    muscle_mass: Optional[float] = Field(default=None, alias="muscleMass")
    bone_mass: Optional[float] = Field(default=None, alias="boneMass")
    hydration: Optional[float] = None
