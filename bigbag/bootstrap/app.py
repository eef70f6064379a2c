"""
bootstrap/app.py - Application context and wiring

Builds the production store and the machine session engine from
configuration, and runs the HTTP API.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
import json
import logging

from .config import BigBagConfig, load_config
from ..errors import ValidationError
from ..sessions.engine import MachineSessionEngine
from ..store import InMemoryProductionStore, ProductionStore, SqlProductionStore

logger = logging.getLogger(__name__)


class AppState(str, Enum):
    """Application lifecycle state."""
    CREATED = "created"
    READY = "ready"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class AppContext:
    """Runtime wiring shared by the CLI and the API."""

    config: BigBagConfig
    store: ProductionStore
    engine: MachineSessionEngine
    state: AppState = AppState.CREATED
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def waste_margin(self) -> float:
        return self.config.business.waste_margin

    def get_uptime(self) -> float:
        """Get uptime in seconds."""
        return (datetime.now(timezone.utc) - self.start_time).total_seconds()


def _read_seed(seed_file: Optional[str]) -> Dict[str, Any]:
    if not seed_file:
        return {}
    path = Path(seed_file)
    if not path.exists():
        raise ValidationError(f"Seed file not found: {seed_file}", field="storage.seed_file")
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def create_store(config: BigBagConfig) -> ProductionStore:
    """Create the configured store and load the seed file into it."""
    storage = config.storage
    seed = _read_seed(storage.seed_file)

    if storage.backend == "memory":
        store: ProductionStore = InMemoryProductionStore.from_dict(seed)
    elif storage.backend == "sql":
        sql_store = SqlProductionStore.from_url(storage.database_url, echo=storage.echo_sql)
        if seed:
            sql_store.seed(seed)
        store = sql_store
    else:
        raise ValidationError(
            f"Unknown storage backend: {storage.backend}", field="storage.backend"
        )

    if seed:
        logger.info(
            f"Seeded {storage.backend} store: {len(seed.get('fabric_specs', []))} fabric specs, "
            f"{len(seed.get('machines', []))} machines, {len(seed.get('batches', []))} batches"
        )
    return store


def create_app_context(config: BigBagConfig = None, store: ProductionStore = None) -> AppContext:
    """
    Build the application context.

    Args:
        config: Configuration (loaded from the default locations if omitted)
        store: Pre-built store, overrides the configured backend

    Returns:
        Ready AppContext
    """
    config = config or load_config()
    config.business.validate()
    store = store if store is not None else create_store(config)
    engine = MachineSessionEngine(
        store,
        variance_ok_pct=config.business.variance_ok_pct,
        variance_warning_pct=config.business.variance_warning_pct,
    )
    context = AppContext(config=config, store=store, engine=engine, state=AppState.READY)
    logger.info(
        f"Application context ready: backend={config.storage.backend}, "
        f"environment={config.environment}"
    )
    return context


def run_api(context: AppContext) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from ..deployment.api import create_fastapi_app

    app = create_fastapi_app(context)
    context.state = AppState.RUNNING
    logger.info(f"Starting API server on {context.config.api.host}:{context.config.api.port}")
    try:
        uvicorn.run(
            app,
            host=context.config.api.host,
            port=context.config.api.port,
            workers=context.config.api.workers,
        )
    finally:
        context.state = AppState.STOPPED
