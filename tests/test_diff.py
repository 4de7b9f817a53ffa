from __future__ import annotations

from twinsync.ingestion.diff import diff_populations, diff_states
from twinsync.models.asset import Asset, AssetKind, AssetPopulation
from twinsync.models.change import ChangeKind


def _light(asset_id: str, **state: object) -> Asset:
    return Asset(id=asset_id, name=f"Light {asset_id}", type="Extended color light", state=state)


def _sensor(asset_id: str, **state: object) -> Asset:
    return Asset(id=asset_id, name=f"Sensor {asset_id}", type="ZLLLightLevel", state=state)


def test_identical_populations_yield_nothing() -> None:
    population = AssetPopulation(lights=[_light("1", on=True, bri=200)], sensors=[_sensor("26", lightlevel=9344)])
    assert diff_populations(population, population) == []


def test_lastupdated_alone_is_not_a_change() -> None:
    before = AssetPopulation(sensors=[_sensor("26", lightlevel=9344, lastupdated="2024-01-01T10:00:00")])
    after = AssetPopulation(sensors=[_sensor("26", lightlevel=9344, lastupdated="2024-01-01T10:00:10")])
    assert diff_populations(before, after) == []


def test_removed_asset_yields_exactly_one_record() -> None:
    before = AssetPopulation(lights=[_light("1", on=True), _light("2", on=False)])
    after = AssetPopulation(lights=[_light("1", on=True)])

    changes = diff_populations(before, after)

    assert len(changes) == 1
    assert changes[0].change == ChangeKind.REMOVED
    assert changes[0].id == "2"
    assert changes[0].type == AssetKind.LIGHT


def test_updated_asset_carries_changed_properties_only() -> None:
    before = AssetPopulation(sensors=[_sensor("26", lightlevel=9344, dark=False)])
    after = AssetPopulation(sensors=[_sensor("26", lightlevel=8485, dark=False)])

    [change] = diff_populations(before, after)

    assert change.change == ChangeKind.UPDATED
    assert [(p.property, p.old_value, p.new_value) for p in change.properties] == [("lightlevel", 9344, 8485)]
    assert change.asset_type == "ZLLLightLevel"


def test_record_order_is_lights_then_sensors_added_updated_removed() -> None:
    before = AssetPopulation(
        lights=[_light("1", on=True), _light("2", on=True)],
        sensors=[_sensor("10", lightlevel=1)],
    )
    after = AssetPopulation(
        lights=[_light("3", on=True), _light("1", on=False)],
        sensors=[_sensor("11", lightlevel=2)],
    )

    changes = diff_populations(before, after)

    assert [(c.type.value, c.id, c.change.value) for c in changes] == [
        ("light", "3", "added"),
        ("light", "1", "updated"),
        ("light", "2", "removed"),
        ("sensor", "11", "added"),
        ("sensor", "10", "removed"),
    ]
    assert changes[0].state == {"on": True}


def test_absent_and_null_are_distinguished() -> None:
    changes = diff_states({"ct": None, "bri": 10}, {"bri": 10, "hue": 5})

    by_name = {change.property: change for change in changes}
    assert set(by_name) == {"ct", "hue"}
    assert by_name["ct"].existed_before and not by_name["ct"].exists_now
    assert not by_name["hue"].existed_before and by_name["hue"].exists_now

    payload = by_name["ct"].to_payload()
    assert payload == {"property": "ct", "oldValue": None}


def test_nested_values_compare_ignoring_key_order() -> None:
    assert diff_states({"xy": {"a": 1, "b": 2}}, {"xy": {"b": 2, "a": 1}}) == []
    assert len(diff_states({"xy": [0.1, 0.2]}, {"xy": [0.2, 0.1]})) == 1


def test_missing_state_is_treated_as_empty() -> None:
    before = AssetPopulation(lights=[Asset(id="1", name="L", type="t", state=None)])
    after = AssetPopulation(lights=[_light("1", on=True)])

    [change] = diff_populations(before, after)

    assert change.change == ChangeKind.UPDATED
    assert change.properties[0].property == "on"
    assert not change.properties[0].existed_before
