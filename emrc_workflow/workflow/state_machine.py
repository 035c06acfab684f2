"""State machine registration.

:func:`register_execution` hands a validated chain to the execution host:
it creates the steps' task constructs, links them with
``aws_stepfunctions.Chain``, wraps them in an
``aws_stepfunctions.StateMachine`` and exposes the state machine ARN as a
stack output.  The wall-clock timeout is a property of the state machine
as a whole (top-level ``TimeoutSeconds``); steps never carry their own.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional, Set

from aws_cdk import CfnOutput, Duration, Stack
from aws_cdk import aws_stepfunctions as sfn

from emrc_workflow.errors import WorkflowValidationError
from emrc_workflow.workflow.chain import Chain

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = timedelta(minutes=20)
MAX_TIMEOUT_SECONDS = 99999999
DEFAULT_OUTPUT_NAME = "stateMachineArn"
STATE_MACHINE_TYPE = "AWS::StepFunctions::StateMachine"


def timeout_seconds(timeout: timedelta) -> int:
    """Whole seconds of *timeout*; must be in ``1..MAX_TIMEOUT_SECONDS``."""
    seconds = int(timeout.total_seconds())
    if seconds != timeout.total_seconds():
        raise WorkflowValidationError(
            f"Timeout must be a whole number of seconds, got {timeout}"
        )
    if not (1 <= seconds <= MAX_TIMEOUT_SECONDS):
        raise WorkflowValidationError(
            f"Timeout must be between 1 and {MAX_TIMEOUT_SECONDS} seconds, "
            f"got {seconds}"
        )
    return seconds


def _check_ids(stack: Stack, definition: Chain, construct_id: str, output_name: str) -> None:
    if construct_id == output_name:
        raise WorkflowValidationError(
            f"State machine id and output name are both '{construct_id}'"
        )
    step_names = {step.name for step in definition.steps}
    for cid in (construct_id, output_name):
        if cid in step_names:
            raise WorkflowValidationError(
                f"'{cid}' is used both as a state name and a construct id"
            )
        if stack.node.try_find_child(cid) is not None:
            raise WorkflowValidationError(
                f"Stack {stack.stack_name} already has a construct named '{cid}'"
            )
    for step in definition.steps:
        step.check_scope(stack)


def _remove_children_since(stack: Stack, existing: Set[str]) -> None:
    for child in list(stack.node.children):
        if child.node.id not in existing:
            stack.node.try_remove_child(child.node.id)


def register_execution(
    stack: Stack,
    definition: Chain,
    timeout: Optional[timedelta] = DEFAULT_TIMEOUT,
    *,
    construct_id: str = "StateMachine",
    output_name: str = DEFAULT_OUTPUT_NAME,
    state_machine_name: Optional[str] = None,
) -> sfn.StateMachine:
    """Declare a state machine for *definition* and output its ARN.

    Everything is checked before the first construct is created.  Should
    CDK still reject something midway, every construct this call added is
    removed again, so the stack is left as it was and the call can be
    retried.
    """
    if not isinstance(definition, Chain):
        raise WorkflowValidationError(
            "State machine definition must be a validated Chain"
        )
    seconds = timeout_seconds(timeout) if timeout is not None else None
    _check_ids(stack, definition, construct_id, output_name)

    existing = {child.node.id for child in stack.node.children}
    try:
        states = [step.create_task(stack) for step in definition.steps]
        body = sfn.Chain.start(states[0])
        for state in states[1:]:
            body = body.next(state)
        state_machine = sfn.StateMachine(
            stack,
            construct_id,
            definition_body=sfn.DefinitionBody.from_chainable(body),
            timeout=Duration.seconds(seconds) if seconds is not None else None,
            state_machine_name=state_machine_name,
        )
        CfnOutput(stack, output_name, value=state_machine.state_machine_arn)
    except Exception:
        logger.warning("Registering %s failed; removing its constructs", construct_id)
        _remove_children_since(stack, existing)
        for step in definition.steps:
            step.task = None
        raise

    logger.info(
        "Registered state machine %s in %s (%d steps, timeout=%ss)",
        construct_id,
        stack.stack_name,
        len(definition),
        seconds,
    )
    return state_machine


# ---------------------------------------------------------------------------
# Reading the definition back out of a synthesized template
# ---------------------------------------------------------------------------


def _placeholder(part: Mapping[str, Any]) -> str:
    if "Ref" in part:
        return "${%s}" % part["Ref"]
    if "Fn::GetAtt" in part:
        return "${%s}" % ".".join(part["Fn::GetAtt"])
    return "${%s}" % next(iter(part), "?")


def render_definition(
    template: Mapping[str, Any],
    logical_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Return the States Language document of a state machine in *template*.

    CDK emits ``DefinitionString`` as an ``Fn::Join`` whenever the document
    embeds references; those are replaced by ``${LogicalId}`` or
    ``${LogicalId.Attribute}`` placeholders.  With *logical_id* unset the
    template must hold exactly one state machine.
    """
    machines = {
        lid: res for lid, res in template.get("Resources", {}).items()
        if res.get("Type") == STATE_MACHINE_TYPE
    }
    if logical_id is None:
        if len(machines) != 1:
            raise WorkflowValidationError(
                f"Expected one state machine in the template, found {len(machines)}"
            )
        (resource,) = machines.values()
    elif logical_id in machines:
        resource = machines[logical_id]
    else:
        raise WorkflowValidationError(f"No state machine '{logical_id}' in the template")

    value = resource["Properties"]["DefinitionString"]
    if isinstance(value, str):
        return json.loads(value)
    delimiter, parts = value["Fn::Join"]
    text = delimiter.join(
        p if isinstance(p, str) else _placeholder(p) for p in parts
    )
    return json.loads(text)
