from __future__ import annotations

import json
from typing import Any

import pytest

from twinsync.connectors.hue import ModelIds
from twinsync.exceptions import GraphStoreError, MappingError
from twinsync.graph.executor import OperationExecutor, RetryPolicy
from twinsync.graph.memory import InMemoryGraphStore
from twinsync.ingestion.diff import diff_populations
from twinsync.models.asset import AssetPopulation, AssetSnapshot
from twinsync.models.change import AssetChangeEvent
from twinsync.processor import DELTA, SNAPSHOT, EventProcessor, classify


def _snapshot_body() -> dict[str, Any]:
    return {
        "snapshot": True,
        "timestamp": "2024-05-01T12:00:00Z",
        "lights": [{"id": "1", "name": "Hall", "type": "Extended color light", "state": {"on": True, "bri": 254}}],
        "sensors": [
            {
                "id": "5",
                "name": "Hall sensor",
                "type": "ZLLPresence",
                "uniqueid": "aa:bb-02-0406",
                "state": {"presence": False},
            },
            {
                "id": "26",
                "name": "Hall light level",
                "type": "ZLLLightLevel",
                "uniqueid": "aa:bb-02-0400",
                "state": {"lightlevel": 9344, "dark": False},
            },
        ],
    }


def _processor(store: InMemoryGraphStore, **kwargs: Any) -> EventProcessor:
    return EventProcessor(OperationExecutor(store, RetryPolicy(max_retries=0)), **kwargs)


def test_classify() -> None:
    assert classify({"snapshot": True, "changes": []}) == SNAPSHOT
    assert classify({"type": "snapshot"}) == SNAPSHOT
    assert classify({"lights": []}) == SNAPSHOT
    assert classify({"changes": []}) == DELTA


@pytest.mark.asyncio
async def test_snapshot_then_delta_end_to_end() -> None:
    store = InMemoryGraphStore()
    processor = _processor(store)

    await processor.process(json.dumps(_snapshot_body()))

    assert set(store.models) == {
        ModelIds.room,
        ModelIds.light,
        ModelIds.motion_sensor_device,
        ModelIds.logical_sensor,
        ModelIds.presence_sensor,
        ModelIds.light_level_sensor,
        ModelIds.temperature_sensor,
    }
    assert store.node_ids() == ["hue-light-1", "hue-motion-device-aa-bb", "hue-sensor-5", "hue-sensor-26"]
    assert sorted(store.edges) == [
        "hue-motion-device-aa-bb-hasSensor-hue-sensor-26",
        "hue-motion-device-aa-bb-hasSensor-hue-sensor-5",
    ]

    delta = {
        "timestamp": "2024-05-01T12:00:10Z",
        "changes": [
            {
                "type": "sensor",
                "id": "26",
                "change": "updated",
                "properties": [{"property": "lightlevel", "oldValue": 9344, "newValue": 8485}],
            },
            {"type": "light", "id": "1", "change": "removed"},
        ],
    }
    ops = await processor.process(json.dumps(delta).encode())

    assert ops is not None and len(ops) == 2
    assert store.nodes["hue-sensor-26"].properties["lightlevel"] == 8485
    assert store.nodes["hue-light-1"].properties["status"] == "removed"


@pytest.mark.asyncio
async def test_resync_with_existing_ids_removes_stale_nodes() -> None:
    store = InMemoryGraphStore()
    processor = _processor(store)
    await processor.process(_snapshot_body())

    body = _snapshot_body()
    body["sensors"] = body["sensors"][:1]
    await processor.process(body, existing_node_ids=store.node_ids(), existing_model_ids=list(store.models))

    assert store.node_ids() == ["hue-light-1", "hue-motion-device-aa-bb", "hue-sensor-5"]
    assert list(store.edges) == ["hue-motion-device-aa-bb-hasSensor-hue-sensor-5"]


@pytest.mark.asyncio
async def test_message_for_disabled_source_is_ignored() -> None:
    store = InMemoryGraphStore()

    assert await _processor(store, sources_enabled=()).process(_snapshot_body()) is None
    assert await _processor(store).process({"devices": []}) is None
    assert store.models == {}


@pytest.mark.asyncio
async def test_invalid_json_raises_mapping_error() -> None:
    with pytest.raises(MappingError):
        await _processor(InMemoryGraphStore()).process("{broken")
    with pytest.raises(MappingError):
        await _processor(InMemoryGraphStore()).process("[1, 2]")


@pytest.mark.asyncio
async def test_patch_of_unknown_node_propagates() -> None:
    delta = {"changes": [{"type": "light", "id": "77", "properties": [{"property": "on", "newValue": True}]}]}

    with pytest.raises(GraphStoreError) as excinfo:
        await _processor(InMemoryGraphStore()).process(delta)

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_daylight_change_does_not_block_presence_update() -> None:
    before = AssetPopulation.model_validate(
        {
            "lights": [],
            "sensors": [
                {"id": "1", "name": "Daylight", "type": "Daylight", "state": {"daylight": False}},
                {
                    "id": "5",
                    "name": "Hall sensor",
                    "type": "ZLLPresence",
                    "uniqueid": "aa:bb-02-0406",
                    "state": {"presence": False},
                },
            ],
        }
    )
    after = AssetPopulation(
        sensors=[
            before.sensors[0].model_copy(update={"state": {"daylight": True}}),
            before.sensors[1].model_copy(update={"state": {"presence": True}}),
        ]
    )
    store = InMemoryGraphStore()
    processor = _processor(store)
    await processor.process(AssetSnapshot.from_population(before).to_payload())

    event = AssetChangeEvent(changes=diff_populations(before, after))
    await processor.process(event.to_payload())

    assert store.node_ids() == ["hue-motion-device-aa-bb", "hue-sensor-5"]
    assert store.nodes["hue-sensor-5"].properties["presence"] is True
