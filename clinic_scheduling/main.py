"""Entry points for embedding the scheduling engine."""

import logging
import sys
from typing import Optional

from clinic_scheduling.config import Settings, get_settings
from clinic_scheduling.scheduling.engine import SchedulingEngine
from clinic_scheduling.scheduling.ports import ResourceDataPort


def setup_logging(settings: Optional[Settings] = None):
    """Configure logging based on settings."""
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_engine(port: ResourceDataPort, settings: Optional[Settings] = None) -> SchedulingEngine:
    """Create an engine wired to *port* with logging configured.

    Example:
        from clinic_scheduling.main import build_engine
        from clinic_scheduling.scheduling import InMemoryDataPort

        engine = build_engine(InMemoryDataPort(practitioners, rooms, appointments))
        slot = engine.find_optimal_slot(criteria)
    """
    settings = settings or get_settings()
    setup_logging(settings)
    return SchedulingEngine(port, settings)
