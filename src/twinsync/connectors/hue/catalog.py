"""Model catalog for Hue lights and motion sensors.

The catalog is fixed and versioned.  Bumping a model means adding a new
``;N`` id here; reconciliation then retires the old version because it is
in the connector's namespace but no longer in the catalog.
"""

from __future__ import annotations

from twinsync.models.graph import GraphModel, interface, prop, relationship

MODEL_NAMESPACE = "dtmi:com:yzzx:"


class ModelIds:
    room = f"{MODEL_NAMESPACE}HueRoom;1"
    light = f"{MODEL_NAMESPACE}HueLight;1"
    motion_sensor_device = f"{MODEL_NAMESPACE}HueMotionSensorDevice;1"
    logical_sensor = f"{MODEL_NAMESPACE}HueLogicalSensor;1"
    presence_sensor = f"{MODEL_NAMESPACE}HuePresenceSensor;1"
    light_level_sensor = f"{MODEL_NAMESPACE}HueLightLevelSensor;1"
    temperature_sensor = f"{MODEL_NAMESPACE}HueTemperatureSensor;1"


HAS_SENSOR = "hasSensor"
LOCATED_IN = "locatedIn"

#: Descriptive fields collected into the light's ``metadata`` map.
LIGHT_METADATA_KEYS: tuple[str, ...] = (
    "name",
    "type",
    "modelid",
    "manufacturername",
    "productname",
    "uniqueid",
    "swversion",
    "swconfigid",
    "productid",
    "status",
)

HueRoomModel = interface(
    ModelIds.room,
    "HueRoom",
    [
        prop("id", "string"),
        prop("name", "string"),
    ],
)

HueLightModel = interface(
    ModelIds.light,
    "HueLight",
    [
        prop("name", "string"),
        prop("on", "boolean"),
        prop("bri", "integer"),
        prop("hue", "integer"),
        prop("sat", "integer"),
        prop("ct", "integer"),
        prop("colormode", "string"),
        prop("alert", "string"),
        prop("effect", "string"),
        prop("reachable", "boolean"),
        prop("status", "string"),
        prop(
            "metadata",
            {
                "@type": "Map",
                "mapKey": {"name": "key", "schema": "string"},
                "mapValue": {"name": "value", "schema": "string"},
            },
        ),
        relationship(LOCATED_IN, ModelIds.room),
    ],
)

HueLogicalSensorModel = interface(
    ModelIds.logical_sensor,
    "HueLogicalSensor",
    [
        prop("name", "string"),
        prop("type", "string"),
        prop("uniqueid", "string"),
        prop("status", "string"),
        prop("lastupdated", "string"),
    ],
)

HueMotionSensorDeviceModel = interface(
    ModelIds.motion_sensor_device,
    "HueMotionSensorDevice",
    [
        prop("name", "string"),
        prop("uniqueid", "string"),
        prop("modelid", "string"),
        prop("manufacturername", "string"),
        prop("productname", "string"),
        prop("swversion", "string"),
        prop("battery", "integer"),
        prop("status", "string"),
        relationship(HAS_SENSOR, ModelIds.logical_sensor),
        relationship(LOCATED_IN, ModelIds.room),
    ],
)

HuePresenceSensorModel = interface(
    ModelIds.presence_sensor,
    "HuePresenceSensor",
    [prop("presence", "boolean")],
    extends=[ModelIds.logical_sensor],
)

HueLightLevelSensorModel = interface(
    ModelIds.light_level_sensor,
    "HueLightLevelSensor",
    [
        prop("lightlevel", "integer"),
        prop("dark", "boolean"),
        prop("daylight", "boolean"),
    ],
    extends=[ModelIds.logical_sensor],
)

HueTemperatureSensorModel = interface(
    ModelIds.temperature_sensor,
    "HueTemperatureSensor",
    [prop("temperature", "integer")],
    extends=[ModelIds.logical_sensor],
)

#: Base models precede the models extending or targeting them.
HUE_MODELS: tuple[GraphModel, ...] = (
    HueRoomModel,
    HueLogicalSensorModel,
    HueLightModel,
    HueMotionSensorDeviceModel,
    HuePresenceSensorModel,
    HueLightLevelSensorModel,
    HueTemperatureSensorModel,
)

_MODELS_BY_ID: dict[str, GraphModel] = {model.id: model for model in HUE_MODELS}


def get_model(model_id: str) -> GraphModel:
    return _MODELS_BY_ID[model_id]


def declared_properties(model: GraphModel) -> list[str]:
    """Property names of ``model`` including those it inherits."""
    names: list[str] = []
    for parent_id in model.extends:
        parent = _MODELS_BY_ID.get(parent_id)
        if parent is not None:
            names.extend(declared_properties(parent))
    names.extend(model.property_names())
    return list(dict.fromkeys(names))


def owns_model_id(model_id: str) -> bool:
    """Whether ``model_id`` belongs to the Hue model family (any version)."""
    if not isinstance(model_id, str) or not model_id.startswith(f"{MODEL_NAMESPACE}Hue"):
        return False
    base = model_id[len(MODEL_NAMESPACE) :].split(";", 1)[0]
    return any(base == model.display_name for model in HUE_MODELS)
