"""Category based destination lookup."""

from __future__ import annotations

from typing import Any, Mapping

from ..config.models import EventTypesConfig
from .models import Destination, NormalizedEvent, RoutingDecision


class RoutingResolver:
    """Resolve the logical destination of an event from its category."""

    def __init__(self, config: EventTypesConfig | None = None) -> None:
        config = config or EventTypesConfig()
        self.membership = frozenset(config.contact_categories)
        self.liveness = frozenset(config.presence_categories)

    def route(self, event: NormalizedEvent) -> Destination:
        return self.route_category(event.category)

    def route_category(self, category: str) -> Destination:
        # Membership wins if a category ever appears in both lists.
        if category in self.membership:
            return Destination.MEMBERSHIP
        if category in self.liveness:
            return Destination.LIVENESS
        return Destination.DEFAULT

    def decide(self, event: NormalizedEvent) -> RoutingDecision:
        return RoutingDecision(self.route(event), event.to_payload(), event)

    def ignored(self, envelope: Mapping[str, Any]) -> RoutingDecision:
        return RoutingDecision(Destination.IGNORED, envelope)


__all__ = ["RoutingResolver"]
