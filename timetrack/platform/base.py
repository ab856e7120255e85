"""Abstract base class for platform-specific sampling sources."""

from abc import ABC, abstractmethod
from typing import Optional

from timetrack.core.models import Sample


class Sampler(ABC):
    """Common interface for observing the focused application and window.

    Each supported platform provides a concrete implementation that
    uses OS-specific APIs behind this interface.
    """

    @abstractmethod
    def get_sample(self) -> Optional[Sample]:
        """Return the current focus context, or None if unavailable."""
        pass
