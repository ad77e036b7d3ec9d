"""
Base data source interface.
"""

from abc import ABC, abstractmethod

from actorsync.comparison.types import CreditList, Entity, SubjectKind
from actorsync.services.client import ResilientClient


class BaseDataSource(ABC):
    """
    Abstract base class for credit data sources.

    All data sources should:
    - Use ResilientClient for HTTP requests (with caching, circuit breaker, etc.)
    - Return Pydantic models
    - Raise typed ServiceErrors instead of returning placeholders
    """

    def __init__(self, client: ResilientClient):
        self.client = client

    @property
    @abstractmethod
    def service_id(self) -> str:
        """Unique identifier for this data source."""
        ...

    @abstractmethod
    async def fetch_credit_list(
        self, subject_id: int, kind: SubjectKind = SubjectKind.PERSON
    ) -> CreditList:
        """Fetch one subject together with its credits."""
        ...

    @abstractmethod
    async def search_people(self, query: str) -> list[Entity]:
        """Search people by name."""
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the data source is properly configured."""
        ...
