"""
Ordered, titled task sequences.

Each task takes the current ``TaskContext`` and returns the next one; the
context itself is never mutated. Execution is strictly sequential and stops
at the first failing task.
"""

import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

logger = logging.getLogger(__name__)


class TaskContext(Mapping[str, Any]):
    """Immutable mapping passed from one task to the next."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        data: Dict[str, Any] = dict(values or {})
        data.update(kwargs)
        self._values = MappingProxyType(data)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._values[name]
        except KeyError:
            raise AttributeError(name) from None

    def evolve(self, **changes: Any) -> "TaskContext":
        """Return a new context with some values changed."""
        return TaskContext({**self._values, **changes})

    def __repr__(self) -> str:
        return f"TaskContext({dict(self._values)!r})"


TaskFn = Callable[[TaskContext], Optional[TaskContext]]
SkipFn = Callable[[TaskContext], Optional[str]]


@dataclass
class Task:
    """A titled unit of work."""
    title: str
    run: TaskFn
    skip: Optional[SkipFn] = None


@dataclass
class PipelineResult:
    """Result of a pipeline run."""
    name: str
    context: TaskContext
    duration: float
    completed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class Pipeline:
    """Run tasks in order over a shared, immutable context."""

    def __init__(self, name: str, tasks: List[Task]):
        self.name = name
        self.tasks = list(tasks)

    @property
    def titles(self) -> List[str]:
        return [task.title for task in self.tasks]

    def run(self, context: Optional[TaskContext] = None) -> PipelineResult:
        """
        Execute every task in order.

        Raises:
            Exception: Whatever the first failing task raised
        """
        context = context if context is not None else TaskContext()
        start = time.time()
        completed: List[str] = []
        skipped: List[str] = []

        for task in self.tasks:
            reason = task.skip(context) if task.skip else None
            if reason:
                logger.info(f"[{self.name}] {task.title} (skipped: {reason})")
                skipped.append(task.title)
                continue

            logger.info(f"[{self.name}] {task.title}")
            try:
                next_context = task.run(context)
            except Exception:
                logger.error(f"[{self.name}] {task.title} failed")
                raise

            if next_context is not None:
                context = next_context
            completed.append(task.title)

        return PipelineResult(
            name=self.name,
            context=context,
            duration=time.time() - start,
            completed=completed,
            skipped=skipped,
        )
