"""
CloudFormation stack management operations.
"""

import json
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional, Set

import yaml
from botocore.exceptions import ClientError, WaiterError

from clients import ClientSet
from constants import RESOURCE_TYPES
from errors import NotFound, ServerError
from naming import get_console_link

logger = logging.getLogger(__name__)

Waiter = Callable[[], None]
StackPredicate = Callable[[Dict[str, Any]], bool]

LISTED_STACK_STATUSES = ["CREATE_COMPLETE", "UPDATE_COMPLETE", "UPDATE_ROLLBACK_COMPLETE"]
DELETE_CONFLICT_STATUS = "UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS"
NO_UPDATES_MESSAGE = "No updates are to be performed"

WAITER_EVENTS = {
    "create": "stack_create_complete",
    "update": "stack_update_complete",
    "delete": "stack_delete_complete",
}
WAITER_CONFIG = {"Delay": 30, "MaxAttempts": 120}

DELETE_RETRY_DELAY = 5
MAX_DELETE_ATTEMPTS = 60
MAX_NESTING_DEPTH = 5


class TemplateParseError(ValueError):
    """Raised when a stack template body can't be parsed."""


class CloudFormationLoader(yaml.SafeLoader):
    """YAML loader that understands CloudFormation short-form intrinsics."""


def _construct_intrinsic(loader: yaml.Loader, tag_suffix: str, node: yaml.Node) -> Dict[str, Any]:
    if isinstance(node, yaml.ScalarNode):
        value: Any = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)

    if tag_suffix in ("Ref", "Condition"):
        return {tag_suffix: value}

    # !GetAtt Resource.Attribute
    if tag_suffix == "GetAtt" and isinstance(value, str):
        value = value.split(".", 1)

    return {f"Fn::{tag_suffix}": value}


CloudFormationLoader.add_multi_constructor("!", _construct_intrinsic)


def parse_template(body: Any) -> Dict[str, Any]:
    """
    Parse a template body.

    A body that starts with ``{`` (ignoring whitespace) is JSON, anything
    else is YAML. boto3 already decodes JSON templates, so dicts are
    returned as is.

    Raises:
        TemplateParseError: If the body is malformed or isn't a mapping
    """
    if isinstance(body, dict):
        return body

    text = body.strip() if isinstance(body, str) else ""
    try:
        if text.startswith("{"):
            parsed = json.loads(text)
        else:
            parsed = yaml.load(text, Loader=CloudFormationLoader)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise TemplateParseError(f"Failed to parse template: {e}") from e

    if not isinstance(parsed, dict):
        raise TemplateParseError("Template must be a mapping")

    return parsed


def is_updateable_status(status: str) -> bool:
    """Check if a stack in this status can be updated."""
    return status.endswith("_COMPLETE") and not status.startswith("DELETE_")


class StackManager:
    """Manage CloudFormation stack operations."""

    def __init__(
        self,
        clients: ClientSet,
        max_delete_attempts: int = MAX_DELETE_ATTEMPTS,
        delete_retry_delay: float = DELETE_RETRY_DELAY,
    ):
        """
        Initialize stack manager.

        Args:
            clients: AWS clients to borrow
            max_delete_attempts: Bound on retries of a conflicting delete
            delete_retry_delay: Seconds between delete retries
        """
        self.clients = clients
        self.max_delete_attempts = max_delete_attempts
        self.delete_retry_delay = delete_retry_delay

    @property
    def cloudformation(self) -> Any:
        return self.clients.cloudformation

    # Lookup

    def list_stacks(self, predicate: Optional[StackPredicate] = None) -> List[Dict[str, str]]:
        """List stacks in a completed state, optionally filtered."""
        stacks = []
        paginator = self.cloudformation.get_paginator("list_stacks")

        for page in paginator.paginate(StackStatusFilter=LISTED_STACK_STATUSES):
            for summary in page.get("StackSummaries", []):
                if predicate and not predicate(summary):
                    continue
                stacks.append(
                    {
                        "id": summary["StackId"],
                        "name": summary["StackName"],
                        "status": summary["StackStatus"],
                    }
                )

        return stacks

    def resolve_id(self, stack_name: str) -> Optional[str]:
        """Resolve a stack name to the id of a stack that can be updated."""
        stacks = self.list_stacks(
            lambda s: s["StackName"] == stack_name
            and is_updateable_status(s["StackStatus"])
        )
        return stacks[0]["id"] if stacks else None

    def get_stack_status(self, stack_id: str) -> Optional[str]:
        """Get current stack status."""
        try:
            response = self.cloudformation.describe_stacks(StackName=stack_id)
            if response["Stacks"]:
                return str(response["Stacks"][0]["StackStatus"])
        except ClientError as e:
            if "does not exist" in str(e):
                return None
            raise
        return None

    def describe(self, stack_id: str) -> Dict[str, Any]:
        """Describe a single stack."""
        try:
            response = self.cloudformation.describe_stacks(StackName=stack_id)
        except ClientError as e:
            if "does not exist" in str(e):
                raise NotFound(f"stack not found: {stack_id}") from e
            raise

        stacks = response.get("Stacks", [])
        if not stacks:
            raise NotFound(f"stack not found: {stack_id}")
        if len(stacks) > 1:
            raise ServerError(f"multiple stacks matched query: {stack_id}")
        return stacks[0]

    def get_outputs(self, stack_id: str) -> Dict[str, str]:
        """Get outputs from a CloudFormation stack."""
        stack = self.describe(stack_id)
        return {o["OutputKey"]: o["OutputValue"] for o in stack.get("Outputs", [])}

    def get_parameters(self, stack_id: str) -> Dict[str, str]:
        """Get parameter values of a CloudFormation stack."""
        stack = self.describe(stack_id)
        return {
            p["ParameterKey"]: p.get("ParameterValue", "")
            for p in stack.get("Parameters", [])
        }

    def get_api_base_url(self, stack_id: str) -> str:
        """Get the API endpoint from the ServiceEndpoint output."""
        for key, value in self.get_outputs(stack_id).items():
            if re.match(r"^ServiceEndpoint", key):
                return value
        raise NotFound(f"stack {stack_id} has no ServiceEndpoint output")

    # Resources

    def list_resources(
        self, stack_id: str, resource_type: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        List all resources of a stack across every page.

        Args:
            stack_id: Stack name or id
            resource_type: Only return resources of this type

        Returns:
            Resource summaries in the order the provider returned them
        """
        resources: List[Dict[str, Any]] = []
        paginator = self.cloudformation.get_paginator("list_stack_resources")

        for page in paginator.paginate(StackName=stack_id):
            for summary in page.get("StackResourceSummaries", []):
                if resource_type and summary["ResourceType"] != resource_type:
                    continue
                resources.append(summary)

        return resources

    def list_resource_ids(self, stack_id: str, resource_type: str) -> List[str]:
        """List physical ids of a stack's resources of one type."""
        return [
            r["PhysicalResourceId"]
            for r in self.list_resources(stack_id, resource_type)
        ]

    def list_buckets(self, stack_id: str) -> List[Dict[str, Any]]:
        return self.list_resources(stack_id, RESOURCE_TYPES["bucket"])

    def list_bucket_ids(self, stack_id: str) -> List[str]:
        return self.list_resource_ids(stack_id, RESOURCE_TYPES["bucket"])

    def list_functions(self, stack_id: str) -> List[Dict[str, Any]]:
        return self.list_resources(stack_id, RESOURCE_TYPES["function"])

    def list_function_ids(self, stack_id: str) -> List[str]:
        return self.list_resource_ids(stack_id, RESOURCE_TYPES["function"])

    def list_tables(self, stack_id: str) -> List[Dict[str, Any]]:
        return self.list_resources(stack_id, RESOURCE_TYPES["table"])

    def list_table_ids(self, stack_id: str) -> List[str]:
        return self.list_resource_ids(stack_id, RESOURCE_TYPES["table"])

    def list_substacks(self, stack_id: str) -> List[Dict[str, Any]]:
        return self.list_resources(stack_id, RESOURCE_TYPES["stack"])

    def list_substack_ids(self, stack_id: str) -> List[str]:
        return self.list_resource_ids(stack_id, RESOURCE_TYPES["stack"])

    def _check_depth(self, stack_id: str, depth: int, max_depth: int) -> None:
        if depth > max_depth:
            raise ServerError(
                f"stack {stack_id} is nested more than {max_depth} levels deep"
            )

    def list_resources_recursive(
        self,
        stack_id: str,
        max_depth: int = MAX_NESTING_DEPTH,
        _depth: int = 0,
        _visited: Optional[Set[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        List a stack's resources, including those of nested stacks.

        Nested stacks are visited depth-first, each at most once.

        Raises:
            ServerError: If nesting goes deeper than ``max_depth``
        """
        self._check_depth(stack_id, _depth, max_depth)
        visited = _visited if _visited is not None else set()
        visited.add(stack_id)

        resources = self.list_resources(stack_id)
        result = list(resources)
        for resource in resources:
            if resource["ResourceType"] != RESOURCE_TYPES["stack"]:
                continue
            child_id = resource.get("PhysicalResourceId")
            if not child_id or child_id in visited:
                continue
            result.extend(
                self.list_resources_recursive(child_id, max_depth, _depth + 1, visited)
            )

        return result

    # Templates

    def get_template(self, stack_id: str) -> Dict[str, Any]:
        """Fetch and parse a stack's template."""
        response = self.cloudformation.get_template(StackName=stack_id)
        return parse_template(response["TemplateBody"])

    def get_stack_templates(
        self, stack_id: str, max_depth: int = MAX_NESTING_DEPTH, _depth: int = 0
    ) -> List[Dict[str, Any]]:
        """Get a stack's template followed by the templates of its nested stacks."""
        self._check_depth(stack_id, _depth, max_depth)
        templates = [self.get_template(stack_id)]
        for child_id in self.list_substack_ids(stack_id):
            templates.extend(self.get_stack_templates(child_id, max_depth, _depth + 1))
        return templates

    def list_retained_resources(
        self, stack_id: str, max_depth: int = MAX_NESTING_DEPTH, _depth: int = 0
    ) -> List[Dict[str, Any]]:
        """List resources with a Retain deletion policy, including nested stacks."""
        self._check_depth(stack_id, _depth, max_depth)
        template = self.get_template(stack_id)
        resources = self.list_resources(stack_id)
        by_logical_id = {r["LogicalResourceId"]: r for r in resources}

        retained = []
        for logical_id, definition in template.get("Resources", {}).items():
            if definition.get("DeletionPolicy") != "Retain":
                continue
            # Conditional resources may not exist
            if logical_id in by_logical_id:
                retained.append(by_logical_id[logical_id])

        for resource in resources:
            if resource["ResourceType"] == RESOURCE_TYPES["stack"]:
                retained.extend(
                    self.list_retained_resources(
                        resource["PhysicalResourceId"], max_depth, _depth + 1
                    )
                )

        return retained

    # Mutations

    def create(self, stack_name: str, params: Dict[str, Any]) -> Waiter:
        """Start creating a stack and return a waiter for its completion."""
        logger.info(f"Creating stack {stack_name}")
        self.cloudformation.create_stack(StackName=stack_name, **params)
        return lambda: self.wait_for(stack_name, "create")

    def update(self, stack_name: str, params: Dict[str, Any]) -> Waiter:
        """
        Start updating a stack and return a waiter for its completion.

        An update with no changes returns a waiter that completes at once.
        """
        logger.info(f"Updating stack {stack_name}")
        try:
            self.cloudformation.update_stack(StackName=stack_name, **params)
        except ClientError as e:
            if NO_UPDATES_MESSAGE not in str(e):
                raise
            logger.info(f"Stack {stack_name} is already up to date")
            return lambda: None

        return lambda: self.wait_for(stack_name, "update")

    def delete(self, stack_id: str) -> Waiter:
        """
        Start deleting a stack and return a waiter for its completion.

        A delete that conflicts with an in-flight rollback cleanup is retried
        every ``delete_retry_delay`` seconds, up to ``max_delete_attempts``.

        Raises:
            ServerError: If the conflict outlasts the retry bound
            ClientError: For any other provider error
        """
        for attempt in range(1, self.max_delete_attempts + 1):
            try:
                self.cloudformation.delete_stack(StackName=stack_id)
                return lambda: self.wait_for(stack_id, "delete")
            except ClientError as e:
                if DELETE_CONFLICT_STATUS not in str(e):
                    raise
                logger.info(
                    f"Stack {stack_id} is cleaning up a rollback "
                    f"(attempt {attempt}/{self.max_delete_attempts}), retrying..."
                )
                if attempt < self.max_delete_attempts:
                    time.sleep(self.delete_retry_delay)

        raise ServerError(
            f"gave up deleting {stack_id} after {self.max_delete_attempts} attempts: "
            f"stack is still in {DELETE_CONFLICT_STATUS}"
        )

    def wait_for(self, stack_id: str, event: str) -> None:
        """
        Block until a stack reaches the terminal state for ``event``.

        Args:
            stack_id: Stack name or id
            event: One of "create", "update", "delete"

        Raises:
            ServerError: If the waiter fails, with a link to the console
        """
        if event not in WAITER_EVENTS:
            raise ValueError(f"Unknown stack event: {event}")

        logger.info(f"Waiting for stack {event} to complete: {stack_id}")
        try:
            waiter = self.cloudformation.get_waiter(WAITER_EVENTS[event])
            waiter.wait(StackName=stack_id, WaiterConfig=WAITER_CONFIG)
        except WaiterError as e:
            url = get_console_link(self.clients.region, status="failed")
            raise ServerError(
                f"operation may have failed. Check your stacks here: {url}",
                stack_id=stack_id,
                event=event,
                reason=str(e),
            ) from e

    def disable_termination_protection(self, stack_id: str) -> None:
        """Turn off termination protection so the stack can be deleted."""
        self.cloudformation.update_termination_protection(
            StackName=stack_id, EnableTerminationProtection=False
        )
