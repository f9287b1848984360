from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from core.nodes import ItemNode

NodesAddedCallback = Callable[[list[ItemNode]], None]


class Subscription(ABC):
    """Handle for a mutation subscription returned by a host."""

    @abstractmethod
    async def cancel(self) -> None:
        ...


class TimelineHost(ABC):
    """The environment a harvest runs against: a lazily rendered timeline."""

    @abstractmethod
    async def snapshot(self) -> ItemNode:
        """The whole document as it is rendered right now."""
        ...

    @abstractmethod
    async def subscribe(
        self, root_selector: str, callback: NodesAddedCallback
    ) -> Subscription:
        """Deliver every element added under *root_selector* (or the body)."""
        ...

    async def watch(
        self, root_selector: str, callback: NodesAddedCallback
    ) -> tuple[ItemNode, Subscription]:
        """Snapshot the document and subscribe to additions in one step.

        Hosts that can render between two calls must override this so the
        snapshot and the subscription cover the same instant.
        """
        document = await self.snapshot()
        return document, await self.subscribe(root_selector, callback)

    @abstractmethod
    async def advance(self) -> None:
        """Scroll the timeline by one viewport."""
        ...

    async def refresh(self, node: ItemNode) -> ItemNode | None:
        """Current state of *node*; ``None`` once the host has recycled it."""
        return node
