from abc import ABC, abstractmethod

from shipping_dashboard.services.paging import PagedResult


class DataClientInterface(ABC):
    """Contract shared by the DRX client and the fakes used to drive the orchestrator."""

    @abstractmethod
    def fetch_shipments_in_range(self, start_date: str, end_date: str) -> PagedResult:
        """Fetch shipments created within the inclusive ``[start_date, end_date]`` range."""
        pass

    @abstractmethod
    def fetch_deliveries_in_range(self, start_date: str, end_date: str) -> PagedResult:
        """Fetch deliveries scheduled within the inclusive ``[start_date, end_date]`` range."""
        pass

    @abstractmethod
    def fetch_delivery_routes(self) -> PagedResult:
        """Fetch every delivery route."""
        pass

    @abstractmethod
    def fetch_packing_lists(self) -> PagedResult:
        """Fetch every packing list."""
        pass
