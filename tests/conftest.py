"""Shared pytest fixtures for entity-canvas tests."""

import pytest

from entity_canvas import (
    CanvasConfig,
    CanvasEngine,
    Connection,
    Entity,
    EntityKind,
    InMemoryConnectionStore,
    InMemoryEntityStore,
    Point,
    RecordingNotifier,
    RuleBasedAdvisor,
    StructureExporter,
)


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def _make_entity(kind: EntityKind, x: float, y: float, name: str = "", entity_id: str | None = None) -> Entity:
    fields = {"kind": kind, "name": name, "position": Point(x=x, y=y)}
    if entity_id is not None:
        fields["id"] = entity_id
    return Entity(**fields)


@pytest.fixture
def make_entity():
    """Build an entity at (x, y): make_entity(EntityKind.LLC, 0, 0, "A", entity_id="a")."""
    return _make_entity


@pytest.fixture
def config() -> CanvasConfig:
    return CanvasConfig()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def entity_store() -> InMemoryEntityStore:
    return InMemoryEntityStore()


@pytest.fixture
def connection_store() -> InMemoryConnectionStore:
    return InMemoryConnectionStore()


@pytest.fixture
def engine(entity_store, connection_store, config, notifier, clock) -> CanvasEngine:
    """An engine over empty in-memory stores (nothing to load)."""
    return CanvasEngine(
        entity_store,
        connection_store,
        config=config,
        advisor=RuleBasedAdvisor(),
        exporter=StructureExporter(),
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def build_engine(config, notifier, clock):
    """Factory for an engine loaded from seeded stores; returns (engine, entity_store, connection_store)."""

    async def _build(entities: list[Entity] = (), connections: list[Connection] = (), **kwargs):
        entity_store = InMemoryEntityStore(entities)
        connection_store = InMemoryConnectionStore(connections)
        kwargs.setdefault("advisor", RuleBasedAdvisor())
        kwargs.setdefault("exporter", StructureExporter())
        engine = CanvasEngine(
            entity_store,
            connection_store,
            config=config,
            notifier=notifier,
            clock=clock,
            **kwargs,
        )
        await engine.load()
        return engine, entity_store, connection_store

    return _build
