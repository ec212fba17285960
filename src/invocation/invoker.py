"""
Dispatch a named function call to the deployed stack or a local emulator.

Both implementations share one contract: ``invoke`` never raises and
returns an ``InvokeResult``; ``invoke_and_return`` unwraps it.
"""

import json
import logging
import os
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from clients import ClientSet
from config import ConsoleConfig
from constants import FUNCTIONS, SAFE_REMOTE_COMMANDS
from errors import InvalidEnvironment, ServerError
from naming import get_long_function_name, get_short_function_name
from prompts import Confirm, confirm as default_confirm, confirm_or_abort

from .envelope import InvokeResult

logger = logging.getLogger(__name__)


def get_command_name(arg: Any) -> Optional[str]:
    """Get the command name from a ``cli`` argument like "log setconf"."""
    if isinstance(arg, str) and arg.strip():
        return arg.split()[0]
    return None


def is_safe_remote_command(arg: Any) -> bool:
    """Check if a command can run remotely without confirmation."""
    return get_command_name(arg) in SAFE_REMOTE_COMMANDS


class Invoker(ABC):
    """Base class for invocation targets."""

    @abstractmethod
    def _invoke(self, function_name: str, arg: Any, confirmed: bool = False) -> Any:
        """
        Execute the call and return the parsed result.

        Must be implemented by subclasses. May raise.
        """

    def invoke(self, function_name: str, arg: Any = None, confirmed: bool = False) -> InvokeResult:
        """
        Invoke a function.

        Args:
            function_name: Short or stack-prefixed function name
            arg: JSON-serializable argument
            confirmed: Caller already approved this call

        Returns:
            InvokeResult holding either the error or the result
        """
        try:
            result = self._invoke(function_name, arg, confirmed=confirmed)
        except Exception as error:
            logger.debug(f"Invocation of {function_name} failed: {error}")
            return InvokeResult(error=error)

        return InvokeResult(result=result)

    def invoke_and_return(self, function_name: str, arg: Any = None, confirmed: bool = False) -> Any:
        """Invoke a function and return its result, raising on error."""
        return self.invoke(function_name, arg, confirmed=confirmed).unwrap()


class RemoteInvoker(Invoker):
    """Invoke functions of the deployed stack through AWS Lambda."""

    def __init__(
        self,
        lambda_client: Any,
        stack_name: str,
        confirm: Confirm = default_confirm,
        remote: bool = False,
    ):
        """
        Initialize remote invoker.

        Args:
            lambda_client: boto3 Lambda client
            stack_name: Stack whose functions are invoked
            confirm: Prompt used before touching the remote deployment
            remote: The remote target was chosen explicitly, skip prompts
        """
        self.lambda_client = lambda_client
        self.stack_name = stack_name
        self.confirm = confirm
        self.remote = remote

    def get_long_function_name(self, function_name: str) -> str:
        return get_long_function_name(self.stack_name, function_name)

    def needs_confirmation(self, function_name: str, arg: Any, confirmed: bool = False) -> bool:
        """Safe commands skip the prompt only when sent to the cli function."""
        if confirmed or self.remote:
            return False
        is_cli = get_short_function_name(self.stack_name, function_name) == FUNCTIONS["cli"]
        return not (is_cli and is_safe_remote_command(arg))

    def _invoke(self, function_name: str, arg: Any, confirmed: bool = False) -> Any:
        if self.needs_confirmation(function_name, arg, confirmed):
            confirm_or_abort("Targeting REMOTE deployment. Continue?", self.confirm)

        long_name = self.get_long_function_name(function_name)
        logger.debug(f"Invoking {long_name}")
        response = self.lambda_client.invoke(
            FunctionName=long_name,
            InvocationType="RequestResponse",
            Payload=json.dumps(arg),
        )

        payload = response.get("Payload")
        body = payload.read() if hasattr(payload, "read") else payload
        if isinstance(body, bytes):
            body = body.decode("utf-8")

        status_code = response.get("StatusCode", 200)
        function_error = response.get("FunctionError")
        if function_error or status_code >= 300:
            raise ServerError(
                body or function_error or f"status code {status_code}",
                function=long_name,
                status_code=status_code,
            )

        return json.loads(body) if body else None


class LocalInvoker(Invoker):
    """Invoke functions through the Serverless emulator of a local project."""

    def __init__(self, project: Union[str, Path], node_flags: Optional[Dict[str, Any]] = None):
        """
        Initialize local invoker.

        Args:
            project: Path to the local serverless project
            node_flags: Flags for node, e.g. {"inspect": True}
        """
        self.project = Path(project).resolve()
        self.node_flags = node_flags or {}

    def _node_flag_args(self) -> List[str]:
        args = []
        for key, value in self.node_flags.items():
            if not value:
                continue
            args.append(f"--{key}" if value is True else f"--{key}={value}")
        return args

    def build_command(self, node: str, function_name: str, input_path: str, output_path: str) -> List[str]:
        """Build the emulator command line."""
        return [
            node,
            *self._node_flag_args(),
            str(self.project / "node_modules" / ".bin" / "sls"),
            "invoke",
            "local",
            "-f",
            function_name,
            "-l",
            "false",
            "--path",
            input_path,
            "--output",
            output_path,
        ]

    def _invoke(self, function_name: str, arg: Any, confirmed: bool = False) -> Any:
        node = shutil.which("node")
        if not node:
            raise InvalidEnvironment("Please install: node")

        # One pair of temp files per call; concurrent calls must not share them
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False) as input_file:
            json.dump(arg, input_file)
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False) as output_file:
            pass

        try:
            command = self.build_command(node, function_name, input_file.name, output_file.name)
            logger.debug(f"Running command: {' '.join(command)}")

            env = os.environ.copy()
            env["IS_OFFLINE"] = "1"
            result = subprocess.run(
                command,
                cwd=self.project,
                env=env,
                capture_output=True,
                text=True,
                check=False,
            )

            output = Path(output_file.name).read_text().strip()
            if result.returncode != 0:
                raise ServerError(
                    f"invoke failed: {result.stderr.strip() or output}",
                    function=function_name,
                    exit_code=result.returncode,
                )

            return json.loads(output) if output else None
        finally:
            for path in (input_file.name, output_file.name):
                Path(path).unlink(missing_ok=True)


def create_invoker(
    config: ConsoleConfig, clients: Optional[ClientSet] = None, confirm: Confirm = default_confirm
) -> Invoker:
    """Pick the invoker for a console config."""
    config = config.normalize()
    if config.local:
        return LocalInvoker(config.project, config.node_flags)

    if clients is None:
        raise ValueError("AWS clients are required for remote invocation")

    return RemoteInvoker(
        clients.lambda_client,
        config.require_stack_name(),
        confirm=confirm,
        remote=bool(config.remote),
    )
