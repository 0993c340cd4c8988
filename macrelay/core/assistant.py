"""Hook for the exam assistant collaborator.

The relay never talks to a language model itself. It hands each request to an
``ExamAssistant`` and forwards whatever status text and result it produces to
the viewer that asked.
"""

from typing import Any, Awaitable, Callable, Protocol

from macrelay.core.exceptions import AssistantError

StatusReporter = Callable[[str], Awaitable[None]]


class ExamAssistant(Protocol):
    async def solve(self, request: Any, report_status: StatusReporter) -> Any:
        ...


class UnavailableAssistant:
    """Stand-in used when no assistant has been configured."""

    async def solve(self, request: Any, report_status: StatusReporter) -> Any:
        raise AssistantError("assistant unavailable")
