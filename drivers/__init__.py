#Marks drivers as a package.
#Only the models are re-exported: backend.client depends on them.
#Import DriverDiscovery from drivers.selection.

from .models import AvailableDriver, EntityRole, TrackedEntity

__all__ = ["AvailableDriver", "EntityRole", "TrackedEntity"]
