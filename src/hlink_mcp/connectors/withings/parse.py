from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from hlink_mcp.connectors.units import decode_measure, from_epoch_seconds, parse_iso
from hlink_mcp.connectors.withings.fetch import (
    MEAS_BONE_MASS,
    MEAS_FAT_MASS,
    MEAS_FAT_RATIO,
    MEAS_HYDRATION,
    MEAS_MUSCLE_MASS,
    MEAS_WEIGHT,
)
from hlink_mcp.domain.models import MeasureGroup, WeightPoint

_FIELD_BY_TYPE = {
    MEAS_WEIGHT: "weight",
    MEAS_FAT_RATIO: "fat_ratio",
    MEAS_FAT_MASS: "fat_mass",
    MEAS_MUSCLE_MASS: "muscle_mass",
    MEAS_HYDRATION: "hydration",
    MEAS_BONE_MASS: "bone_mass",
}


def parse_weight_groups(groups: Iterable[Dict[str, Any]]) -> List[WeightPoint]:
    """
    Decode Withings measure groups into weight points.

    Groups without a decoded weight (or with weight 0) are not real weigh-ins
    and are left out.
    """
    out: List[WeightPoint] = []
    for raw in groups or []:
        group = MeasureGroup.model_validate(raw)
        fields: Dict[str, float] = {"weight": 0.0}
        for m in group.measures:
            name = _FIELD_BY_TYPE.get(m.type)
            if name:
                fields[name] = decode_measure(m.value, m.unit)

        if fields["weight"] <= 0:
            continue
        out.append(WeightPoint(date=from_epoch_seconds(group.date), **fields))
    return out


def latest_weight(points: Iterable[WeightPoint]) -> Optional[WeightPoint]:
    return max(points, key=lambda p: parse_iso(p.date), default=None)
