class FairDispatchError(Exception):
    """Base class for every error raised by the dispatch engine."""
    pass


class AlreadyQueued(FairDispatchError):
    """Raised when a driver who already holds a queue entry tries to join again."""

    def __init__(self, driver_id: str, station_id: str):
        super().__init__(f"Driver {driver_id} is already queued at station {station_id}")
        self.driver_id = driver_id
        self.station_id = station_id


class NotAvailable(FairDispatchError):
    """Raised when a driver's tracked status does not allow queueing (mid-trip, offline, unknown)."""

    def __init__(self, driver_id: str, status: object = None):
        super().__init__(f"Driver {driver_id} is not available (status: {status})")
        self.driver_id = driver_id
        self.status = status


class NotQueued(FairDispatchError):
    """Raised when a requeue targets a driver with no current or prior queue entry."""

    def __init__(self, driver_id: str):
        super().__init__(f"Driver {driver_id} has no queue entry to requeue")
        self.driver_id = driver_id


class StoreUnavailable(FairDispatchError):
    """Raised when the shared queue store cannot run a transaction. Callers fail closed."""
    pass
