#Marks tracking as a package.
#Re-exports only the leaf pieces (policy, store) so that low level packages
#can import tracking.policy without pulling in the view and the reconciler.
#Import the view/session/reconciler from their modules.

from .policy import TrackingPolicy, default_tracking_policy
from .store import TrackingStore

__all__ = [
    "TrackingPolicy",
    "default_tracking_policy",
    "TrackingStore",
]
