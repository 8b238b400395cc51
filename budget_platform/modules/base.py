from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar


class AsyncModule(ABC):
    """A runnable unit: the budget API service or one of the jobs.

    ``run()`` drives initialize, validate, execute and always finishes with
    teardown. The CLI awaits it inside ``asyncio.run()`` so the database pool
    and HTTP sessions live on the loop the module executes on.
    """

    #: Directory name under ``modules/``; also the logger component.
    name: ClassVar[str] = "module"

    async def initialize(self) -> None:
        """Connect resources. Override as needed."""

    async def validate(self) -> None:
        """Raise ValueError when the module cannot run as configured."""

    @abstractmethod
    async def execute(self) -> int:
        """Module body; returns the process exit code."""

    async def teardown(self) -> None:
        """Release what initialize acquired. Override as needed."""

    async def run(self) -> int:
        try:
            await self.initialize()
            await self.validate()
            return await self.execute()
        finally:
            await self.teardown()
