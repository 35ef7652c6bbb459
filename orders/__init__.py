"""
Purpose: Package entry + stable exports.
What it does:

Marks orders as a Python package.

Re-exports the public API so other modules can do:

from orders import DeliveryRequest, DeliveryStatus

Should not contain business logic.

Orders domain package.

Public API:
- Domain models: DeliveryRequest, DeliveryStatus, Place, DriverRef
- Status rules: DeliveryStateError, can_transition, is_terminal, is_trackable

"""
from .models import DeliveryRequest, DeliveryStatus, Place, DriverRef
from .state_machine import DeliveryStateError, can_transition, is_terminal, is_trackable

__all__ = ["DeliveryRequest",
           "DeliveryStatus",
             "Place",
               "DriverRef",
               "DeliveryStateError",
               "can_transition",
               "is_terminal",
               "is_trackable",
               ]
