from datetime import datetime
from typing import Callable, Dict, Optional

import pytest

from strata.compaction.compactor import Compactor
from strata.compaction.retention import ConfigHistory
from strata.database import build_engine, init_db
from strata.models.retention_models import RetentionTiers
from strata.query.planner import QueryPlanner
from strata.store.progression_store import ProgressionStore
from tests.utils import FixedClock


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'progression.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> ProgressionStore:
    return ProgressionStore(engine)


@pytest.fixture
def tiers() -> RetentionTiers:
    return RetentionTiers()


@pytest.fixture
def history(store, tiers) -> ConfigHistory:
    return ConfigHistory(store, tiers)


@pytest.fixture
def compactor(store, history, clock) -> Compactor:
    return Compactor(store, history, clock=clock)


@pytest.fixture
def planner(store, history, clock) -> QueryPlanner:
    return QueryPlanner(store, history, clock=clock)


@pytest.fixture
def snapshot(store) -> Callable[..., None]:
    """Insert a raw snapshot at `at`; power defaults to the sum of skills."""

    def fn(
        entity_id: str,
        at: datetime,
        skills: Dict[str, int],
        power: Optional[int] = None,
        name: str = "",
    ) -> None:
        power_level = power if power is not None else sum(skills.values())
        assert store.insert_snapshot(
            entity_id, name or entity_id, power_level, skills, timestamp=at
        )

    return fn
