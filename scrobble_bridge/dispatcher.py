import logging
from collections.abc import Mapping
from typing import Any

from scrobble_bridge.events import PARSERS, Parser, PayloadError
from scrobble_bridge.registry import Clients, Sources

logger = logging.getLogger(__name__)


class Dispatcher:
    """Route webhook payloads to the sources they are meant for.

    Never raises: webhook senders only ever get an acknowledgement,
    failures end up in the logs.
    """

    def __init__(
        self,
        sources: Sources,
        clients: Clients,
        parsers: Mapping[str, Parser] = PARSERS,
    ):
        self._sources = sources
        self._clients = clients
        self._parsers = parsers

    async def handle_webhook(
        self,
        source_type: str,
        payload: Any,
        explicit_name: str | None = None,
    ) -> None:
        try:
            event = self._parsers[source_type](payload)
        except PayloadError as e:
            logger.warning("discarding malformed %s payload: %s", source_type, e)
            return
        except Exception:
            logger.exception("could not parse %s payload", source_type)
            return
        if event is None:
            logger.debug("ignoring %s event", source_type)
            return

        if explicit_name is not None:
            source = self._sources.get_by_name(explicit_name)
            if source is None:
                logger.warning(
                    "%s event specified a config name but no configured source found: %s",
                    source_type,
                    explicit_name,
                )
                return
            if source.type != source_type:
                logger.warning(
                    "%s event specified a config name but the configured source is a %s: %s",
                    source_type,
                    source.type,
                    explicit_name,
                )
                return
            targets = [source]
        else:
            # Sources filter for themselves.
            targets = self._sources.get_by_type(source_type)
            if not targets:
                logger.warning(
                    "received %s event but no such source is configured", source_type
                )

        for source in targets:
            try:
                await source.handle(event, self._clients)
            except Exception:
                logger.exception(
                    "[%s] failed to handle %s", source.name, event.display()
                )
