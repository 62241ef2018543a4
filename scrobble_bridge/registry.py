import logging
from collections.abc import Callable, Iterator, Mapping, Sequence

from scrobble_bridge.entities import (
    CLIENT_TYPES,
    SOURCE_TYPES,
    Client,
    Entity,
    EntityConfig,
    EntityContext,
    Source,
)
from scrobble_bridge.events import PlayEvent

logger = logging.getLogger(__name__)

type Factory[E] = Callable[[EntityConfig, EntityContext], E]


class Registry[E: Entity]:
    """Named, typed entities, in registration order.

    Membership is fixed once built from configuration.
    """

    kind: str = "entity"

    def __init__(self, factories: Mapping[str, Factory[E]]):
        self._factories = factories
        self._entities: list[E] = []

    def __iter__(self) -> Iterator[E]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    @property
    def types(self) -> set[str]:
        return set(self._factories)

    def get_by_type(self, type_: str) -> list[E]:
        return [e for e in self._entities if e.type == type_]

    def get_by_name(self, name: str) -> E | None:
        return next((e for e in self._entities if e.name == name), None)

    def build_from_config(
        self,
        configs: Sequence[EntityConfig],
        context: EntityContext,
        legacy: Sequence[EntityConfig] = (),
    ) -> None:
        for config in (*legacy, *configs):
            if (factory := self._factories.get(config.type)) is None:
                logger.warning(
                    "unknown %s type %r for %r (%s), skipping",
                    self.kind,
                    config.type,
                    config.name,
                    config.provenance,
                )
                continue
            if any(e.name == config.name for e in self.get_by_type(config.type)):
                logger.warning(
                    "%s %s %r (%s) is already defined, skipping",
                    config.type,
                    self.kind,
                    config.name,
                    config.provenance,
                )
                continue
            try:
                entity = factory(config, context)
            except Exception as e:
                logger.warning(
                    "%s %s %r (%s) could not be built, skipping: %s",
                    config.type,
                    self.kind,
                    config.name,
                    config.provenance,
                    e,
                )
                continue
            self._entities.append(entity)
            logger.info(
                "built %s %s %r from %s",
                config.type,
                self.kind,
                config.name,
                config.provenance,
            )

    async def initialize(self) -> None:
        for entity in self._entities:
            try:
                await entity.initialize()
            except Exception:
                logger.exception("%s %r failed to initialize", self.kind, entity.name)


class Sources(Registry[Source]):
    kind = "source"

    def __init__(self, factories: Mapping[str, Factory[Source]] = SOURCE_TYPES):
        super().__init__(factories)


class Clients(Registry[Client]):
    kind = "client"

    def __init__(self, factories: Mapping[str, Factory[Client]] = CLIENT_TYPES):
        super().__init__(factories)

    async def scrobble(self, event: PlayEvent, names: Sequence[str] = ()) -> None:
        """Relay a play to the named clients, or all of them."""
        targets = [c for c in self if not names or c.name in names]
        if not targets:
            logger.warning("no client to scrobble %s to", event.display())
        for client in targets:
            try:
                await client.scrobble(event)
            except Exception:
                logger.exception(
                    "[%s] failed to scrobble %s", client.name, event.display()
                )


def warn_name_collisions(sources: Sources, clients: Clients) -> None:
    """Same name on both sides is legal, but callbacks will go to the client."""
    for type_ in sorted(sources.types & clients.types):
        client_names = {c.name for c in clients.get_by_type(type_)}
        if collisions := [
            s.name for s in sources.get_by_type(type_) if s.name in client_names
        ]:
            logger.warning(
                "%s sources and clients share names [%s], this may cause issues",
                type_,
                ",".join(collisions),
            )
