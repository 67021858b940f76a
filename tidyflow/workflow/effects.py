"""Side effects invoked by cleanup workflows.

Traffic reduction and configuration transforms are external operations. The
workflows only call them through :class:`CleanupEffects`; integrations supply
their own implementation and are responsible for retries and idempotency.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Protocol, Tuple

logger = logging.getLogger(__name__)


class CleanupEffects(Protocol):
    """Protocol for the external effects a cleanup workflow performs."""

    async def reduce_traffic(
        self,
        configuration_name: str,
        stage_name: str,
        from_percentage: int,
        to_percentage: int,
    ) -> None:
        """Move the configuration's traffic allocation in ``stage_name``."""

    async def transform_to_default(self, configuration_name: str) -> None:
        """Replace the configuration with its default values."""


@dataclass
class SimulatedEffects:
    """Effects that only log and record what they were asked to do.

    Useful for tests, demos and the CLI when no real traffic controller is
    wired in.
    """

    delay: float = 0.0
    reductions: List[Tuple[str, str, int, int]] = field(default_factory=list)
    transforms: List[str] = field(default_factory=list)

    async def reduce_traffic(
        self,
        configuration_name: str,
        stage_name: str,
        from_percentage: int,
        to_percentage: int,
    ) -> None:
        logger.info(
            f"Reducing traffic for {configuration_name} in {stage_name}: "
            f"{from_percentage}% -> {to_percentage}%"
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        self.reductions.append(
            (configuration_name, stage_name, from_percentage, to_percentage)
        )

    async def transform_to_default(self, configuration_name: str) -> None:
        logger.info(f"Transforming {configuration_name} to default values")
        if self.delay:
            await asyncio.sleep(self.delay)
        self.transforms.append(configuration_name)
