"""Abstract base class and tagged outcomes for stream resolvers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union

from streamsports.models import ResolvedStream


@dataclass
class Resolved:
    stream: ResolvedStream


@dataclass
class TryNext:
    """This strategy could not resolve the page; the next one should try."""
    reason: str
    timed_out: bool = False


@dataclass
class Fatal:
    """No strategy can succeed for this input."""
    reason: str


Outcome = Union[Resolved, TryNext, Fatal]


class Resolver(ABC):
    """Base class for all player page resolvers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Resolver name for logs."""
        ...

    @abstractmethod
    async def attempt(self, player_url: str) -> Outcome:
        """Try to resolve ``player_url`` to a playable manifest."""
        ...

    async def aclose(self) -> None:
        """Release any resources held between resolutions."""
