from typing import Optional

from pydantic import BaseModel, ConfigDict


class ConnectivityState(BaseModel):
    """
    Snapshot of the device's connectivity.

    Fields are None until first sampled. Snapshots are immutable; the monitor
    replaces its snapshot on every event.
    """
    model_config = ConfigDict(frozen=True)

    is_connected: Optional[bool] = None
    is_internet_reachable: Optional[bool] = None
    type: Optional[str] = None

    @property
    def is_online(self) -> bool:
        # Unknown connectivity counts as offline; unknown reachability does not.
        return self.is_connected is True and self.is_internet_reachable is not False

    def merge(self, event: "ConnectivityState") -> "ConnectivityState":
        """Applies an event, keeping previously sampled values for None fields."""
        return ConnectivityState(
            is_connected=self.is_connected if event.is_connected is None else event.is_connected,
            is_internet_reachable=(
                self.is_internet_reachable
                if event.is_internet_reachable is None
                else event.is_internet_reachable
            ),
            type=self.type if event.type is None else event.type,
        )
