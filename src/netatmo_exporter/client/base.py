"""
Upstream client interface.

A client is anything that can return the current list of stations.
This keeps the refresh-and-cache collector decoupled from where the
readings actually come from (the Netatmo API, the mock generator, tests).
"""

from abc import ABC, abstractmethod
from typing import List

from netatmo_exporter.metrics import Station


class StationClient(ABC):
    """Interface for all station data sources."""

    @abstractmethod
    def read(self) -> List[Station]:
        """Fetch every station with its modules. May be slow, may raise."""
        ...

    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this source."""
        ...

    def close(self):
        pass
