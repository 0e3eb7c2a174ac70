"""Configuration schema definitions for the sync engine."""

from typing import Dict, List

from pydantic import BaseModel, Field, validator


DEFAULT_RETRY_DELAYS_SECONDS = [1.0, 5.0, 15.0, 60.0, 300.0]

# Entity types known to the kanban backend. Unknown types fall back to "/{entity_type}s".
DEFAULT_ENTITY_ROUTES = {
    "user": "/users",
    "customer": "/customers",
    "order": "/orders",
    "product": "/products",
    "label": "/labels",
    "publicQuote": "/public-quotes",
    "publicContact": "/public-contacts",
}


class SyncConfig(BaseModel):
    """Runtime policy for the sync engine."""

    enabled: bool = Field(default=True, description="Whether syncing against the backend is enabled")

    # Retry policy
    max_retries: int = Field(default=5, description="Attempts before an operation is dead-lettered")
    retry_delays_seconds: List[float] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_DELAYS_SECONDS),
        description="Backoff table indexed by retry count"
    )
    fail_fast_on_permanent: bool = Field(
        default=False,
        description="Dead-letter operations on permanent (validation) errors without retrying"
    )

    # Triggers
    auto_sync_interval_seconds: float = Field(default=30.0, description="Periodic sync interval, 0 disables")
    online_debounce_seconds: float = Field(default=1.0, description="Delay between going online and syncing")

    # Remote
    detect_conflicts: bool = Field(default=True, description="Fetch remote state before updates and deletes")
    conflict_strategy: str = Field(default="latest_wins", description="Built-in conflict resolution strategy")
    entity_routes: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ENTITY_ROUTES),
        description="REST route per entity type"
    )

    @validator('max_retries')
    def validate_max_retries(cls, v):
        if v < 1:
            raise ValueError("max_retries must be at least 1")
        return v

    @validator('retry_delays_seconds')
    def validate_retry_delays(cls, v):
        if not v:
            raise ValueError("retry_delays_seconds must not be empty")
        if any(delay < 0 for delay in v):
            raise ValueError("retry delays must be non-negative")
        if any(later < earlier for earlier, later in zip(v, v[1:])):
            raise ValueError("retry delays must be in ascending order")
        return v

    @validator('auto_sync_interval_seconds', 'online_debounce_seconds')
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("intervals must be non-negative")
        return v

    @validator('entity_routes')
    def validate_entity_routes(cls, v):
        for entity_type, route in v.items():
            if not route.startswith("/"):
                raise ValueError(f"Route for '{entity_type}' must start with '/': {route}")
        return v

    def route_for(self, entity_type: str) -> str:
        """Get the REST route for an entity type."""
        return self.entity_routes.get(entity_type, f"/{entity_type}s")
