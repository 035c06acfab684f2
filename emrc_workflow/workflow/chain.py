"""Sequential chains of workflow steps.

A chain runs its steps strictly in order.  Building a chain checks the
data flow through the execution document: every path a step reads must
be covered by the result path of a strictly earlier step (or by a path
the chain declares as execution input).  The check runs on every
construction, so ``Chain.start(a).next(b)`` fails at ``.next(b)`` when
``b`` reads something ``a`` never wrote.

Only a validated chain is turned into an ``aws_stepfunctions.Chain``; that
happens in :func:`~emrc_workflow.workflow.state_machine.register_execution`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from emrc_workflow.errors import WorkflowValidationError
from emrc_workflow.workflow.paths import (
    Segments,
    find_writer,
    format_path,
    is_context_path,
    is_prefix,
    parse_path,
)
from emrc_workflow.workflow.steps import WorkflowStep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataDependency:
    """Step *reader* reads *path*, which *writer* wrote under *written_path*.

    *writer* is ``None`` when the path comes from the execution input.
    """

    reader: str
    path: str
    writer: Optional[str]
    written_path: str


def check_data_flow(
    steps: Sequence[WorkflowStep],
    input_paths: Iterable[str] = (),
) -> List[DataDependency]:
    """Validate reads against earlier writes and return the dependency edges.

    Raises :class:`WorkflowValidationError` on an empty chain, a repeated
    state name, a read no earlier step (or input) covers, or a read of a
    field the writer's result does not have.
    """
    if not steps:
        raise WorkflowValidationError("A chain needs at least one step")

    written: List[Tuple[Segments, Optional[str]]] = []
    for path in input_paths:
        if is_context_path(path):
            raise WorkflowValidationError(
                f"Execution input path '{path}' cannot be a context path"
            )
        written.append((parse_path(path), None))

    fields_by_step: Dict[str, frozenset] = {}
    seen: set = set()
    edges: List[DataDependency] = []

    for step in steps:
        if step.name in seen:
            raise WorkflowValidationError(
                f"State name '{step.name}' appears more than once in the chain"
            )
        seen.add(step.name)

        for path in step.input_paths():
            if is_context_path(path):
                continue
            read = parse_path(path)
            if not read:
                continue
            hit = find_writer(read, written)
            if hit is None:
                raise WorkflowValidationError(
                    f"Step '{step.name}' reads '{path}', which no earlier "
                    "step writes"
                )
            wpath, writer = hit
            if writer is not None and len(read) > len(wpath):
                fields = fields_by_step.get(writer) or frozenset()
                field = read[len(wpath)]
                if fields and field not in fields:
                    raise WorkflowValidationError(
                        f"Step '{step.name}' reads '{path}', but the result "
                        f"of '{writer}' written to '{format_path(wpath)}' has "
                        f"no field '{field}' (has: {', '.join(sorted(fields))})"
                    )
            edges.append(
                DataDependency(
                    reader=step.name,
                    path=path,
                    writer=writer,
                    written_path=format_path(wpath),
                )
            )

        if step.result_path is not None:
            target = parse_path(step.result_path)
            # A write replaces the whole subtree below its target.
            written = [w for w in written if not is_prefix(target, w[0])]
            written.append((target, step.name))
            fields_by_step[step.name] = step.result_fields

    return edges


class Chain:
    """An immutable, validated sequence of steps."""

    def __init__(
        self,
        steps: Sequence[WorkflowStep],
        *,
        input_paths: Iterable[str] = (),
    ) -> None:
        self._steps: Tuple[WorkflowStep, ...] = tuple(steps)
        self._input_paths: Tuple[str, ...] = tuple(input_paths)
        self._dependencies = check_data_flow(self._steps, self._input_paths)

    @classmethod
    def start(
        cls,
        step: WorkflowStep,
        *,
        input_paths: Iterable[str] = (),
    ) -> "Chain":
        return cls([step], input_paths=input_paths)

    def next(self, step: WorkflowStep) -> "Chain":
        """Return a new chain with *step* appended."""
        return Chain([*self._steps, step], input_paths=self._input_paths)

    # -- inspection ---------------------------------------------------------

    @property
    def steps(self) -> Tuple[WorkflowStep, ...]:
        return self._steps

    @property
    def input_paths(self) -> Tuple[str, ...]:
        return self._input_paths

    @property
    def start_state(self) -> WorkflowStep:
        return self._steps[0]

    @property
    def end_state(self) -> WorkflowStep:
        return self._steps[-1]

    @property
    def dependencies(self) -> List[DataDependency]:
        return list(self._dependencies)

    def successor(self, step: WorkflowStep) -> Optional[WorkflowStep]:
        idx = self._steps.index(step)
        return self._steps[idx + 1] if idx + 1 < len(self._steps) else None

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self):
        return iter(self._steps)


def chain(*steps: WorkflowStep, input_paths: Iterable[str] = ()) -> Chain:
    """Order *steps* strictly sequentially, validating the data flow."""
    result = Chain(steps, input_paths=input_paths)
    logger.debug(
        "Chain %s validated (%d data dependencies)",
        " -> ".join(s.name for s in steps),
        len(result.dependencies),
    )
    return result
