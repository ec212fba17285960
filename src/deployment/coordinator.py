"""
High-level console operations over a MyCloud stack.

Each operation is an ordered ``Pipeline`` of titled tasks built from the
stack manager, the bucket destroyer and an invoker.
"""

import json
import logging
import re
import shutil
import subprocess
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import requests

from clients import ClientFactory, ClientSet
from cloudformation import StackManager
from config import ClientConfig, ConsoleConfig, save_console_config
from constants import (
    BIG_BUCKETS,
    FUNCTIONS,
    REMOTE_ONLY_COMMANDS,
    REPO_NAMES,
    SERVICES_STACK_TEMPLATE_URL,
    TRADLE_ACCOUNT_ID,
)
from errors import InvalidEnvironment, InvalidInput, NotFound, ServerError
from invocation import Invoker, RemoteInvoker, create_invoker, unwrap_nested
from invocation.invoker import get_command_name
from naming import (
    get_long_function_name,
    get_services_stack_name,
    get_short_function_name,
    is_mycloud_stack_name,
)
from prompts import Confirm, confirm as default_confirm, confirm_or_abort

from .bucket_destroyer import BucketDestroyer
from .deploy_items import DEPLOYABLES, LocalConfFiles, get_deploy_items, normalize_deploy_opts
from .pipeline import Pipeline, Task, TaskContext
from .prerequisites import (
    can_access_ecr_repos,
    key_pairs_exist,
    list_availability_zones,
    list_key_pairs,
)

logger = logging.getLogger(__name__)

SERVICES_STACK_CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM"]
INFO_TIMEOUT = 30


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _to_cli_option(name: str, value: Any) -> str:
    # camelCase -> kebab-case
    key = "-".join(re.split(r"(?=[A-Z])", name)).lower().replace("_", "-")
    if value is True:
        return f"--{key}"
    return f"--{key}={value}"


class DeploymentCoordinator:
    """Compose stack and invocation operations into console commands."""

    def __init__(
        self,
        config: ConsoleConfig,
        client_factory: Optional[ClientFactory] = None,
        confirm: Confirm = default_confirm,
        files: Optional[LocalConfFiles] = None,
        settings_path: Optional[Union[str, Path]] = None,
        invoker: Optional[Invoker] = None,
    ):
        """
        Initialize coordinator.

        Args:
            config: Console settings
            client_factory: Source of AWS clients
            confirm: Prompt used for every confirmation
            files: Local configuration files
            settings_path: Where ``init`` writes settings
            invoker: Invoker to use instead of one picked from the config
        """
        self.config = config
        self.client_factory = client_factory or ClientFactory()
        self.confirm = confirm
        self.files = files or LocalConfFiles()
        self.settings_path = settings_path
        self._invoker = invoker

    # Collaborators

    @property
    def clients(self) -> ClientSet:
        return self.client_factory.get(self.config.client_config)

    @property
    def stacks(self) -> StackManager:
        return StackManager(self.clients)

    @property
    def buckets(self) -> BucketDestroyer:
        return BucketDestroyer(self.clients)

    @property
    def invoker(self) -> Invoker:
        if self._invoker is not None:
            return self._invoker
        config = self.config.normalize()
        clients = None if config.local else self.clients
        return create_invoker(config, clients, confirm=self.confirm)

    @property
    def is_local(self) -> bool:
        return bool(self.config.normalize().local)

    def _remote_only(self) -> None:
        if self.is_local:
            raise InvalidInput("not supported for local dev env")

    def _remote_invoker(self) -> RemoteInvoker:
        if isinstance(self._invoker, RemoteInvoker):
            return self._invoker
        return RemoteInvoker(
            self.clients.lambda_client,
            self.config.require_stack_name(),
            confirm=self.confirm,
            remote=True,
        )

    # Invocation

    def invoke(self, function_name: str, arg: Any = None, confirmed: bool = False):
        return self.invoker.invoke(function_name, arg, confirmed=confirmed)

    def invoke_and_return(self, function_name: str, arg: Any = None, confirmed: bool = False) -> Any:
        return self.invoker.invoke_and_return(function_name, arg, confirmed=confirmed)

    def exec(self, command: str, confirmed: bool = False) -> Any:
        """
        Run a ``cli`` command on the stack and return its result.

        The ``cli`` function wraps its own outcome in an error/result
        envelope, which is unwrapped too.
        """
        name = get_command_name(command)
        if not name:
            raise InvalidInput("expected a command")
        if name in REMOTE_ONLY_COMMANDS and self.is_local:
            raise InvalidInput(f'"{name}" is only supported against a remote deployment')

        result = self.invoke(FUNCTIONS["cli"], command, confirmed=confirmed)
        return unwrap_nested(result)

    # Deploy / load

    def deploy(self, opts: Mapping[str, Any]) -> Any:
        """Push local configuration items to the stack."""
        dry_run = bool(opts.get("dry_run"))

        def validate(ctx: TaskContext) -> TaskContext:
            items = get_deploy_items(ctx.opts, self.files)
            logger.info(f"deploying: {', '.join(items)}")
            return ctx.evolve(deploy_items=items)

        def confirm_deploy(ctx: TaskContext) -> None:
            target = "local" if self.is_local else f"REMOTE stack {self.config.stack_name}"
            confirm_or_abort(f"Deploy {', '.join(ctx.deploy_items)} to {target}?", self.confirm)

        def push(ctx: TaskContext) -> TaskContext:
            result = self.invoke_and_return(FUNCTIONS["setconf"], ctx.deploy_items, confirmed=True)
            return ctx.evolve(result=result)

        def skip_dry_run(ctx: TaskContext) -> Optional[str]:
            return "dry run, not executing" if dry_run else None

        def skip_confirm(ctx: TaskContext) -> Optional[str]:
            if dry_run:
                return "dry run"
            return "pre-approved" if opts.get("yes") else None

        pipeline = Pipeline(
            "deploy",
            [
                Task("Validate deploy items", validate),
                Task("Confirm deployment", confirm_deploy, skip=skip_confirm),
                Task("Push configuration", push, skip=skip_dry_run),
            ],
        )
        result = pipeline.run(TaskContext(opts=dict(opts)))
        return result.context.get("result")

    def load(self, opts: Mapping[str, Any]) -> Optional[List[str]]:
        """
        Pull the stack's current configuration into local files.

        Returns:
            Names of the items written, or None on a dry run
        """
        dry_run = bool(opts.get("dry_run"))

        def validate(ctx: TaskContext) -> TaskContext:
            selected = normalize_deploy_opts(ctx.opts, "load")
            logger.info(f"loading: {', '.join(k for k in DEPLOYABLES if selected.get(k))}")
            return ctx.evolve(selected=selected)

        def fetch(ctx: TaskContext) -> TaskContext:
            return ctx.evolve(remote=self.exec("getconf --conf", confirmed=True) or {})

        def write(ctx: TaskContext) -> TaskContext:
            selected, remote = ctx.selected, ctx.remote
            written = []
            if selected.get("style") and remote.get("style"):
                self.files.write_style(remote["style"])
                written.append("style")
            if selected.get("bot") and remote.get("bot"):
                self.files.write_bot(remote["bot"])
                written.append("bot")
            terms = remote.get("termsAndConditions")
            if selected.get("terms") and terms:
                self.files.write_terms(terms["value"] if isinstance(terms, dict) else terms)
                written.append("terms")
            if selected.get("models") and remote.get("modelsPack"):
                self.files.write_models(remote["modelsPack"])
                written.append("models")
            return ctx.evolve(written=written)

        def skip_dry_run(ctx: TaskContext) -> Optional[str]:
            return "dry run, not executing" if dry_run else None

        pipeline = Pipeline(
            "load",
            [
                Task("Validate selection", validate),
                Task("Fetch remote configuration", fetch, skip=skip_dry_run),
                Task("Write local files", write, skip=skip_dry_run),
            ],
        )
        result = pipeline.run(TaskContext(opts=dict(opts)))
        return result.context.get("written")

    # Info / init

    def info(self) -> Dict[str, Any]:
        """Get the deployed stack's API endpoint, links and version."""
        self._remote_only()
        stack_name = self.config.require_stack_name()

        links = unwrap_nested(
            self._remote_invoker().invoke(FUNCTIONS["cli"], "links", confirmed=True)
        )
        api_base_url = self.stacks.get_api_base_url(stack_name)

        try:
            response = requests.get(f"{api_base_url}/info", timeout=INFO_TIMEOUT)
            response.raise_for_status()
            info = response.json()
        except requests.RequestException as e:
            raise ServerError(f"Failed to fetch {api_base_url}/info: {e}") from e

        return {"apiBaseUrl": api_base_url, "links": links, "version": info.get("version")}

    def init(self, answers: Mapping[str, Any]) -> Optional[ConsoleConfig]:
        """
        Adopt a stack/profile selection and save it as local settings.

        Args:
            answers: ``stack_name``, ``profile``, optional ``region``,
                ``project`` and ``overwrite``

        Returns:
            The saved config, or None if overwriting was declined
        """
        if answers.get("overwrite") is False:
            return None

        def apply_settings(ctx: TaskContext) -> None:
            self.config = replace(
                self.config,
                stack_name=answers.get("stack_name") or self.config.stack_name,
                profile=answers.get("profile") or self.config.profile,
                region=answers.get("region") or self.config.region,
                project=answers.get("project") or self.config.project,
            )
            # credentials may have changed
            self.client_factory.invalidate()

        def fetch_info(ctx: TaskContext) -> TaskContext:
            return ctx.evolve(info=self.info())

        def write_settings(ctx: TaskContext) -> TaskContext:
            info = ctx.get("info") or {}
            self.config = replace(self.config, api_base_url=info.get("apiBaseUrl"))
            path = save_console_config(self.config, self.settings_path)
            logger.info(f"wrote {path}")
            return ctx.evolve(settings_path=path)

        def create_dirs(ctx: TaskContext) -> None:
            self.files.ensure_dirs()

        def skip_info(ctx: TaskContext) -> Optional[str]:
            return None if self.config.stack_name else "no remote stack selected"

        Pipeline(
            "init",
            [
                Task("Apply settings", apply_settings),
                Task("Fetch deployment info", fetch_info, skip=skip_info),
                Task("Write settings", write_settings),
                Task("Create local directories", create_dirs),
            ],
        ).run()

        logger.info("initialization complete!")
        return self.config

    # Destroy

    def destroy(self, dry_run: bool = False) -> None:
        """Delete the stack and its buckets. There's no undo."""
        self._remote_only()
        if self.config.remote is not True:
            raise InvalidInput("destroy requires an explicit remote target (--remote)")
        stack_name = self.config.require_stack_name()
        stacks = self.stacks

        def check_stack(ctx: TaskContext) -> None:
            if not stacks.get_stack_status(stack_name):
                raise NotFound(f"stack not found: {stack_name}")

        def confirm_destroy(ctx: TaskContext) -> None:
            confirm_or_abort(
                f"DESTROY REMOTE MYCLOUD {stack_name}?? There's no undo for this one!",
                self.confirm,
            )
            confirm_or_abort(
                f"Are you REALLY REALLY sure you want to MURDER {stack_name}?",
                self.confirm,
            )

        def list_buckets(ctx: TaskContext) -> TaskContext:
            buckets = stacks.list_buckets(stack_name)
            retained = {r["LogicalResourceId"] for r in stacks.list_retained_resources(stack_name)}
            for bucket in buckets:
                logger.info(bucket["PhysicalResourceId"])
            return ctx.evolve(buckets=buckets, retained=retained)

        def confirm_buckets(ctx: TaskContext) -> None:
            names = "\n".join(b["PhysicalResourceId"] for b in ctx.buckets)
            confirm_or_abort(f"{names}\nDelete these buckets?", self.confirm)

        def delete_buckets(ctx: TaskContext) -> None:
            destroyer = self.buckets
            for bucket in ctx.buckets:
                bucket_id = bucket["PhysicalResourceId"]
                logical_id = bucket["LogicalResourceId"]
                if logical_id in BIG_BUCKETS and logical_id in ctx.retained:
                    logger.info(f"marking for deletion: {bucket_id}")
                    destroyer.schedule_deletion(bucket_id)
                else:
                    logger.info(f"emptying and deleting: {bucket_id}")
                    destroyer.destroy(bucket_id)

        def disable_protection(ctx: TaskContext) -> None:
            stacks.disable_termination_protection(stack_name)

        def delete_stack(ctx: TaskContext) -> TaskContext:
            return ctx.evolve(wait=stacks.delete(stack_name))

        def wait_for_delete(ctx: TaskContext) -> None:
            ctx.wait()

        def skip_without_buckets(ctx: TaskContext) -> Optional[str]:
            return None if ctx.buckets else "no buckets"

        pipeline = Pipeline(
            "destroy",
            [
                Task("Check stack exists", check_stack),
                Task("Confirm destruction", confirm_destroy),
                Task("List buckets", list_buckets),
                Task("Confirm bucket deletion", confirm_buckets, skip=skip_without_buckets),
                Task("Delete buckets", delete_buckets, skip=skip_without_buckets),
                Task("Disable termination protection", disable_protection),
                Task("Delete stack", delete_stack),
                Task("Wait for stack deletion", wait_for_delete),
            ],
        )
        if dry_run:
            logger.info(f"dry run, would run: {', '.join(pipeline.titles)}")
            return

        pipeline.run()

    # Optional services

    def enable_services(self, opts: Mapping[str, Any]) -> str:
        """
        Create or update the companion services stack.

        Args:
            opts: ``trueface_spoof`` / ``rank_one`` toggles, optional
                ``key_name`` for SSH access, ``dry_run``

        Returns:
            Name of the services stack
        """
        self._remote_only()
        stack_name = self.config.require_stack_name()
        services_stack_name = get_services_stack_name(stack_name)
        clients = self.clients
        stacks = StackManager(clients)
        region = clients.region

        trueface_spoof = bool(opts.get("trueface_spoof"))
        rank_one = bool(opts.get("rank_one"))
        key_name = opts.get("key_name")

        def confirm_intent(ctx: TaskContext) -> None:
            confirm_or_abort(
                f"Enable services stack {services_stack_name} for {stack_name}? "
                "This will incur additional AWS costs.",
                self.confirm,
            )

        def check_access(ctx: TaskContext) -> None:
            repos = [REPO_NAMES["nginx"]]
            if trueface_spoof:
                repos.append(REPO_NAMES["truefaceSpoof"])
            if rank_one:
                repos.append(REPO_NAMES["rankOne"])
            if not can_access_ecr_repos(clients, TRADLE_ACCOUNT_ID, repos):
                raise InvalidEnvironment(
                    "your AWS account doesn't have access to the services' container images, "
                    "please contact support@tradle.io"
                )

        def resolve_stack(ctx: TaskContext) -> TaskContext:
            stack_id = stacks.resolve_id(services_stack_name)
            logger.info(
                f"{'updating' if stack_id else 'creating'} services stack {services_stack_name}"
            )
            return ctx.evolve(services_stack_id=stack_id)

        def check_key_pair(ctx: TaskContext) -> None:
            if not key_pairs_exist(clients, [key_name]):
                available = ", ".join(list_key_pairs(clients)) or "none"
                raise NotFound(f"key pair not found: {key_name} (available: {available})")

        def assemble_parameters(ctx: TaskContext) -> TaskContext:
            parameters = {
                "MyCloudStackName": stack_name,
                "EnableTruefaceSpoof": _flag(trueface_spoof),
                "EnableRankOne": _flag(rank_one),
                "AZs": ",".join(list_availability_zones(clients, region)[:2]),
            }
            if key_name:
                parameters["KeyName"] = key_name

            return ctx.evolve(
                params={
                    "TemplateURL": SERVICES_STACK_TEMPLATE_URL,
                    "Parameters": [
                        {"ParameterKey": k, "ParameterValue": v}
                        for k, v in parameters.items()
                    ],
                    "Capabilities": SERVICES_STACK_CAPABILITIES,
                }
            )

        def trigger(ctx: TaskContext) -> TaskContext:
            clients.cloudformation.validate_template(TemplateURL=SERVICES_STACK_TEMPLATE_URL)
            if ctx.services_stack_id:
                wait = stacks.update(ctx.services_stack_id, ctx.params)
            else:
                wait = stacks.create(services_stack_name, ctx.params)
            return ctx.evolve(wait=wait)

        def await_completion(ctx: TaskContext) -> None:
            ctx.wait()

        def skip_without_key(ctx: TaskContext) -> Optional[str]:
            return None if key_name else "no key pair requested"

        pipeline = Pipeline(
            "enable-services",
            [
                Task("Confirm", confirm_intent),
                Task("Check access to container images", check_access),
                Task("Resolve services stack", resolve_stack),
                Task("Check key pair", check_key_pair, skip=skip_without_key),
                Task("Assemble parameters", assemble_parameters),
                Task("Validate and trigger stack mutation", trigger),
                Task("Wait for services stack", await_completion),
            ],
        )
        if opts.get("dry_run"):
            logger.info(f"dry run, would run: {', '.join(pipeline.titles)}")
            return services_stack_name

        pipeline.run()
        return services_stack_name

    # Stack queries

    def list_stacks(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        mycloud_only: bool = False,
    ) -> List[Dict[str, str]]:
        """List stacks visible to a profile in a region."""
        clients = self.client_factory.get(
            ClientConfig(region=region or self.config.region, profile=profile or self.config.profile)
        )
        predicate = (lambda s: is_mycloud_stack_name(s["StackName"])) if mycloud_only else None
        return StackManager(clients).list_stacks(predicate)

    def get_functions(self) -> List[str]:
        """List the short names of the stack's functions."""
        stack_name = self.config.require_stack_name()
        return [
            get_short_function_name(stack_name, f)
            for f in self.stacks.list_function_ids(stack_name)
        ]

    # Logs

    def log(self, function_name: Optional[str], watch: bool = False, **opts: Any) -> int:
        """
        Print a function's CloudWatch logs with awslogs.

        Returns:
            awslogs exit code
        """
        self._remote_only()
        awslogs = shutil.which("awslogs")
        if not awslogs:
            raise InvalidEnvironment("Please install: awslogs")
        if not function_name:
            raise InvalidInput("expected a function name")

        stack_name = self.config.require_stack_name()
        long_name = get_long_function_name(stack_name, function_name)
        command = [awslogs, "get", f"/aws/lambda/{long_name}"]
        if watch:
            command.append("--watch")
        command.extend(_to_cli_option(k, v) for k, v in opts.items() if v not in (None, False))
        if self.config.profile:
            command.append(f"--profile={self.config.profile}")

        logger.info(" ".join(command))
        return subprocess.run(command, check=False).returncode

    def tail(self, function_name: Optional[str], **opts: Any) -> int:
        return self.log(function_name, watch=True, **opts)

    # Data import utilities

    def _import_data_utils(self, method: str, data: Any) -> Any:
        return self.invoke_and_return(
            FUNCTIONS["import_data_utils"], {"method": method, "data": data}
        )

    def _call_data_method(
        self,
        method: str,
        data: Mapping[str, Any],
        props: List[str],
        required: Optional[List[str]] = None,
    ) -> Any:
        picked = {k: data[k] for k in props if k in data}
        for prop in props if required is None else required:
            if prop not in picked:
                raise InvalidInput(f'expected "{prop}"')
        return self._import_data_utils(method, picked)

    def create_data_bundle(self, path: Union[str, Path]) -> Any:
        """Upload a data bundle read from a JSON file."""
        try:
            with open(path, "r") as f:
                bundle = json.load(f)
        except (OSError, ValueError) as e:
            raise InvalidInput('expected "path" to bundle') from e
        return self._import_data_utils("createbundle", bundle)

    def create_data_claim(self, data: Mapping[str, Any]) -> Any:
        return self._call_data_method("createclaim", data, ["key", "claimType"])

    def list_data_claims(self, data: Mapping[str, Any]) -> Any:
        return self._call_data_method("listclaims", data, ["key"])

    def get_data_bundle(self, data: Mapping[str, Any]) -> Any:
        return self._call_data_method("getbundle", data, ["key", "claimId"], required=[])
