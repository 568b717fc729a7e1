#Drivers domain package.
#Public API: Driver, DriverStatus, DispatchPolicy and the radius selection helpers.

from .models import Driver, DriverStatus
from .policy import DispatchPolicy, default_dispatch_policy, dispatch_policy_from_env
from .selection import filter_available_drivers, drivers_within_radius

__all__ = [
    "Driver",
    "DriverStatus",
    "DispatchPolicy",
    "default_dispatch_policy",
    "dispatch_policy_from_env",
    "filter_available_drivers",
    "drivers_within_radius",
]
