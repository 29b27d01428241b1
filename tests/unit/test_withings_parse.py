from hlink_mcp.connectors.withings.parse import latest_weight, parse_weight_groups


def _group(date, *measures):
    return {
        "grpid": date,
        "date": date,
        "category": 1,
        "measures": [{"value": v, "type": t, "unit": u} for v, t, u in measures],
    }


def test_weight_group_decoded():
    groups = [_group(1705320000, (700, 1, -2), (2150, 6, -2), (1500, 8, -2), (5000, 76, -2), (350, 88, -2), (3800, 77, -2))]
    out = parse_weight_groups(groups)
    assert [p.to_dict() for p in out] == [
        {
            "weight": 7.0,
            "date": "2024-01-15T12:00:00.000Z",
            "fatRatio": 21.5,
            "fatMass": 15.0,
            "muscleMass": 50.0,
            "boneMass": 3.5,
            "hydration": 38.0,
        }
    ]


def test_zero_weight_filtered():
    groups = [_group(1705320000, (0, 1, -2)), _group(1705320001, (2150, 6, -2))]
    assert parse_weight_groups(groups) == []


def test_optional_fields_omitted():
    out = parse_weight_groups([_group(1705320000, (72000, 1, -3))])
    assert out[0].to_dict() == {"weight": 72.0, "date": "2024-01-15T12:00:00.000Z"}


def test_latest_weight_picks_newest():
    points = parse_weight_groups([
        _group(1705000000, (80000, 1, -3)),
        _group(1705320000, (79000, 1, -3)),
        _group(1705100000, (81000, 1, -3)),
    ])
    assert latest_weight(points).weight == 79.0
    assert latest_weight([]) is None
