"""
Compensating actions for multi-step writes.
"""
from typing import Awaitable, Callable, List, Tuple

from ..exceptions import CleanupWarning

Compensation = Callable[[], Awaitable[object]]


class Saga:
    """
    Records how to undo each completed write step.

    compensate() runs the registered actions once, newest first. A failing
    action becomes a CleanupWarning and the remaining actions still run.
    """

    def __init__(self, logger):
        self.logger = logger
        self._steps: List[Tuple[str, Compensation]] = []
        self._compensated = False

    def register(self, name: str, action: Compensation) -> None:
        self._steps.append((name, action))

    @property
    def steps(self) -> List[str]:
        return [name for name, _ in self._steps]

    async def compensate(self) -> List[CleanupWarning]:
        if self._compensated:
            return []
        self._compensated = True

        warnings: List[CleanupWarning] = []
        for name, action in reversed(self._steps):
            try:
                await action()
                self.logger.info("Compensation completed", step=name)
            except Exception as e:
                warning = CleanupWarning(f"Cleanup failed: {name}: {e}", {'step': name, 'error': str(e)})
                self.logger.warning(warning.message, step=name)
                warnings.append(warning)
        return warnings
