from ..models import Ride, RideStatus


class RideStateException(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


_TRANSITIONS = {
    RideStatus.SEARCHING: {RideStatus.MATCHED, RideStatus.CANCELLED, RideStatus.TIMEOUT_NO_DRIVER},
    RideStatus.MATCHED: {RideStatus.ACCEPTED, RideStatus.SEARCHING, RideStatus.CANCELLED},
    RideStatus.ACCEPTED: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
    RideStatus.TIMEOUT_NO_DRIVER: set(),
}


def transition(ride: Ride, target: RideStatus) -> Ride:
    if target not in _TRANSITIONS[ride.status]:
        raise RideStateException(
            f"Cannot transition ride of rider {ride.rider_id} from {ride.status.value} to {target.value}"
        )
    ride.status = target
    return ride


def transition_ride_to_matched(ride: Ride, trip_id: str, driver_id: str) -> Ride:
    """
    Called when the matcher binds a driver to a searching ride.
    """
    transition(ride, RideStatus.MATCHED)
    ride.trip_id = trip_id
    ride.driver_id = driver_id
    return ride


def return_ride_to_search(ride: Ride) -> Ride:
    """
    The matched driver rejected or let the offer expire. The ride goes back to
    the pool with its original request time, so it keeps its wait priority.
    """
    transition(ride, RideStatus.SEARCHING)
    ride.trip_id = None
    ride.driver_id = None
    return ride


def transition_ride_to_accepted(ride: Ride) -> Ride:
    return transition(ride, RideStatus.ACCEPTED)


def transition_ride_to_completed(ride: Ride) -> Ride:
    return transition(ride, RideStatus.COMPLETED)


def cancel_ride(ride: Ride) -> Ride:
    return transition(ride, RideStatus.CANCELLED)


def expire_ride(ride: Ride) -> Ride:
    """
    Nobody could be matched before the search timeout.
    """
    return transition(ride, RideStatus.TIMEOUT_NO_DRIVER)
