"""Common scaffolding for the four pipeline agents.

An agent is a function from one :class:`OrchestrationContext` to the next.
Subclasses implement :meth:`BaseAgent.execute`; :meth:`BaseAgent.run` times
the call and turns any failure into :class:`AgentExecutionError` carrying
the agent name and elapsed time, with the original exception chained.  On
success the agent itself appends its trace entry; on failure the
orchestrator appends the error entry.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod

import structlog

from kbcopilot.models.pipeline import OrchestrationContext
from kbcopilot.utils.errors import AgentExecutionError, KnowledgeBaseError


class BaseAgent(ABC):
    """One stage of the request pipeline."""

    #: Name recorded in trace entries and errors.
    name: str = "agent"

    def __init__(self) -> None:
        self._logger = structlog.get_logger(logger_name=f"kbcopilot.agents.{self.name}")

    async def run(self, context: OrchestrationContext) -> OrchestrationContext:
        start = time.perf_counter()
        try:
            return await self.execute(context, start)
        except AgentExecutionError:
            raise
        except Exception as exc:
            elapsed = self.elapsed_ms(start)
            message = exc.message if isinstance(exc, KnowledgeBaseError) else str(exc)
            self._logger.error(
                "agent_failed",
                agent=self.name,
                error_type=type(exc).__name__,
                error=message,
                duration_ms=round(elapsed, 2),
            )
            raise AgentExecutionError(
                message=message or type(exc).__name__,
                agent_name=self.name,
                duration_ms=elapsed,
                provider_name=getattr(exc, "provider_name", None),
            ) from exc

    @abstractmethod
    async def execute(self, context: OrchestrationContext, start: float) -> OrchestrationContext:
        """Run the stage; *start* is the ``perf_counter`` value at entry."""

    @staticmethod
    def elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000
