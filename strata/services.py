"""STRATA — Service Container.

Wires one store handle into the config history, compactor and planner so
none of them reaches for ambient global state.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.engine import Engine

from strata.compaction.compactor import Compactor
from strata.compaction.metrics import CompressionMetrics
from strata.compaction.retention import ConfigHistory
from strata.config import Settings
from strata.core import buckets
from strata.core.logging import get_logger
from strata.database import build_engine, init_db
from strata.query.planner import QueryPlanner
from strata.store.progression_store import ProgressionStore

logger = get_logger("services")


@dataclass
class ProgressionServices:
    settings: Settings
    store: ProgressionStore
    history: ConfigHistory
    compactor: Compactor
    planner: QueryPlanner
    metrics: CompressionMetrics

    def is_active(self) -> bool:
        """Master toggle: when off, nothing is ingested or scheduled."""
        return self.settings.tracking_enabled

    def shutdown(self) -> None:
        self.store.close()


def build_services(
    app_settings: Settings,
    engine: Optional[Engine] = None,
    clock: Callable[[], datetime] = buckets.utcnow,
    create_tables: bool = True,
) -> ProgressionServices:
    """Build the full service graph for `app_settings`."""
    engine = engine or build_engine(app_settings.effective_database_url)
    if create_tables:
        init_db(engine)

    store = ProgressionStore(engine)
    history = ConfigHistory(store, app_settings.retention_tiers)
    metrics = CompressionMetrics()
    compactor = Compactor(
        store,
        history,
        clock=clock,
        cleanup_interval_hours=app_settings.cleanup_interval_hours,
        metrics=metrics,
    )
    planner = QueryPlanner(store, history, clock=clock)
    logger.info(
        f"Progression services ready — {app_settings.retention_tiers.describe()}"
    )
    return ProgressionServices(
        settings=app_settings,
        store=store,
        history=history,
        compactor=compactor,
        planner=planner,
        metrics=metrics,
    )
