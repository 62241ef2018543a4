from datetime import UTC, datetime

import pytest

from scrobble_bridge.entities import EntityConfig, EntityContext
from scrobble_bridge.events import PlayEvent, PlayMeta


@pytest.fixture
def context(tmp_path):
    return EntityContext(base_url="http://localhost:9078", config_dir=tmp_path)


@pytest.fixture
def build(context):
    def _build(cls, name="test", **data):
        return cls(EntityConfig(type=cls.type, name=name, data=data), context)

    return _build


@pytest.fixture
def play():
    return PlayEvent(
        artists=("Pink Floyd",),
        track="Money",
        album="The Dark Side Of The Moon",
        duration=382,
        played_at=datetime(2024, 1, 1, 12, tzinfo=UTC),
        meta=PlayMeta(user="roger", server="home", library="Music"),
        source_type="tautulli",
    )
