"""Location resolution orchestration."""

from .orchestrator import CURRENT_LOCATION_KEY, LocationService, ResolutionState, fallback_record, selection_score

__all__ = ["CURRENT_LOCATION_KEY", "LocationService", "ResolutionState", "fallback_record", "selection_score"]
