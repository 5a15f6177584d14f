"""
Content Repository Interface

Abstract async access to the relational store. The query layer lives
outside this package; implementations are injected into the aggregator.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List


class ContentRepository(ABC):
    """Abstract data access for homepage content."""

    @abstractmethod
    async def get_sections(self) -> List[Dict[str, Any]]:
        """Visible homepage sections ordered for rendering."""
        pass

    @abstractmethod
    async def get_active_campaigns(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Currently active campaigns, newest first."""
        pass

    @abstractmethod
    async def get_category_stats(self) -> Dict[str, Any]:
        """Campaign counts keyed by category slug."""
        pass
