# ReQueue Dashboard - Queue Engine Access
#
# The engine itself lives outside this package; this module only loads it
# and wraps it for the API layer.

from .client import (
    ENGINE_EVENTS,
    EngineHandle,
    EngineState,
    QueueEngine,
    import_factory,
    load_engine,
    to_plain,
)

__all__ = [
    "ENGINE_EVENTS",
    "EngineHandle",
    "EngineState",
    "QueueEngine",
    "import_factory",
    "load_engine",
    "to_plain",
]
