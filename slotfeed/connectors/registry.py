from __future__ import annotations

from importlib import import_module

from slotfeed.config import ConnectorConfig
from slotfeed.connectors.base import Connector, ConnectorSettings
from slotfeed.connectors.local_dir import LocalDirectoryConnector
from slotfeed.connectors.memory import MemoryConnector
from slotfeed.errors import ConfigError


def _connector_class(name: str) -> type:
    builtins: dict[str, type] = {
        "local_dir": LocalDirectoryConnector,
        "memory": MemoryConnector,
    }
    if name in builtins:
        return builtins[name]

    module_name = f"slotfeed.connectors.{name}"
    class_name = "".join(part.capitalize() for part in name.split("_")) + "Connector"
    try:
        module = import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"Unknown connector: {name}") from exc
    connector_cls = getattr(module, class_name, None)
    if connector_cls is None:
        raise ConfigError(f"Module {module_name} does not define {class_name}")
    return connector_cls


def build_connector(config: ConnectorConfig) -> Connector:
    settings = ConnectorSettings(name=config.name, params=dict(config.params))
    connector_cls = _connector_class(config.name)
    from_settings = getattr(connector_cls, "from_settings", None)
    if from_settings is not None:
        return from_settings(settings)
    return connector_cls(settings=settings)
