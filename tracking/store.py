"""
Purpose: The tracking store, the one shared piece of state of the tracking flow.
What it does:
- Owns the latest LocationSample per tracked entity (last-write-wins)
- Owns the latest DeliveryRequest per request id
- Notifies listeners when something actually changed

Pollers, push subscribers, the view and the reconciler all get the same
store injected. There is no global instance.

Ordering rule: every sample carries the time it was requested/taken. A
sample older than the one already held is discarded, so a slow poll that
resolves after a newer one cannot roll the driver marker back.
Delivery updates are checked against the status state machine for the same
reason (a stale "accepted" must not overwrite "delivering").
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from drivers.models import EntityRole, TrackedEntity
from location.models import LocationSample
from orders.models import DeliveryRequest
from orders.state_machine import DeliveryStateError, check_transition

logger = logging.getLogger(__name__)

LocationListener = Callable[[str, Optional[LocationSample]], None]
DeliveryListener = Callable[[DeliveryRequest], None]


class TrackingStore:
    def __init__(self):
        self.entities: Dict[str, TrackedEntity] = {}
        self.deliveries: Dict[str, DeliveryRequest] = {}
        self._location_listeners: List[LocationListener] = []
        self._delivery_listeners: List[DeliveryListener] = []

    # --- Locations ---

    def entity(self, entity_id: str) -> Optional[TrackedEntity]:
        return self.entities.get(entity_id)

    def latest(self, entity_id: str) -> Optional[LocationSample]:
        entity = self.entities.get(entity_id)
        return entity.current if entity else None

    def offer_location(
        self,
        entity_id: str,
        sample: LocationSample,
        role: EntityRole = EntityRole.DRIVER,
    ) -> bool:
        """
        Replace the entity's sample unless `sample` is older than the current one.

        Returns:
            True if the sample was accepted
        """
        entity = self.entities.get(entity_id) or TrackedEntity(id=entity_id, role=role)

        if not sample.is_newer_than(entity.current):
            logger.debug(
                "Discarding stale sample for %s (%s < %s)",
                entity_id, sample.timestamp, entity.current.timestamp,
            )
            return False

        self.entities[entity_id] = entity.with_sample(sample)
        self._notify_location(entity_id, sample)
        return True

    def clear_location(self, entity_id: str) -> None:
        entity = self.entities.get(entity_id)
        if entity is None or entity.current is None:
            return
        self.entities[entity_id] = entity.with_sample(None)
        self._notify_location(entity_id, None)

    # --- Deliveries ---

    def delivery(self, request_id: str) -> Optional[DeliveryRequest]:
        return self.deliveries.get(request_id)

    def offer_delivery(self, request: DeliveryRequest) -> bool:
        """
        Replace the stored request unless the new status could not follow
        the current one. Identical snapshots are accepted but not notified.
        """
        current = self.deliveries.get(request.id)
        if current is not None:
            try:
                check_transition(current, request)
            except DeliveryStateError as e:
                logger.warning("Ignoring delivery update: %s", e)
                return False
            if current == request:
                return True

        self.deliveries[request.id] = request
        for listener in list(self._delivery_listeners):
            try:
                listener(request)
            except Exception:
                logger.exception("Delivery listener failed for %s", request.id)
        return True

    # --- Listeners ---

    def on_location(self, listener: LocationListener) -> Callable[[], None]:
        """Register a listener, returns the function that removes it."""
        self._location_listeners.append(listener)
        return lambda: self._remove(self._location_listeners, listener)

    def on_delivery(self, listener: DeliveryListener) -> Callable[[], None]:
        self._delivery_listeners.append(listener)
        return lambda: self._remove(self._delivery_listeners, listener)

    @staticmethod
    def _remove(listeners: list, listener) -> None:
        if listener in listeners:
            listeners.remove(listener)

    def _notify_location(self, entity_id: str, sample: Optional[LocationSample]) -> None:
        for listener in list(self._location_listeners):
            try:
                listener(entity_id, sample)
            except Exception:
                logger.exception("Location listener failed for %s", entity_id)
