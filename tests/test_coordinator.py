"""
Tests for the deployment coordinator.
"""

import json
from unittest.mock import Mock, call, patch

import pytest
import requests
import yaml

from config import ClientConfig, ConsoleConfig
from deployment.coordinator import DeploymentCoordinator
from deployment.deploy_items import LocalConfFiles
from errors import InvalidEnvironment, InvalidInput, NotFound, ServerError, UserAborted
from invocation import InvokeResult, RemoteInvoker

STACK_NAME = "tdl-acme-ltd-dev"


@pytest.fixture
def files(tmp_path):
    files = LocalConfFiles(tmp_path / "conf-root")
    files.ensure_dirs()
    files.style.write_text(json.dumps({"logo": "x"}))
    files.bot.write_text(json.dumps({"products": {}}))
    return files


@pytest.fixture
def invoker():
    return Mock(spec=RemoteInvoker)


@pytest.fixture
def confirm():
    return Mock(return_value=True)


@pytest.fixture
def factory():
    return Mock()


@pytest.fixture
def stack_manager():
    with patch("deployment.coordinator.StackManager") as mock_class:
        yield mock_class.return_value


@pytest.fixture
def coordinator(factory, confirm, files, invoker, tmp_path):
    config = ConsoleConfig(stack_name=STACK_NAME, profile="dev", region="us-east-1", remote=True)
    return DeploymentCoordinator(
        config,
        client_factory=factory,
        confirm=confirm,
        files=files,
        settings_path=tmp_path / "settings.yml",
        invoker=invoker,
    )


@pytest.fixture
def local_project(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    (project / "serverless.yml").write_text("service: mycloud\n")
    return project


class TestDeploy:
    """Test pushing configuration."""

    def test_deploy(self, coordinator, invoker) -> None:
        invoker.invoke_and_return.return_value = {"updated": True}

        result = coordinator.deploy({"style": True, "bot": True, "yes": True})

        assert result == {"updated": True}
        invoker.invoke_and_return.assert_called_once_with(
            "setconf", {"style": {"logo": "x"}, "bot": {"products": {}}}, confirmed=True
        )

    def test_confirms_before_pushing(self, coordinator, confirm) -> None:
        coordinator.deploy({"style": True})
        confirm.assert_called_once()
        assert STACK_NAME in confirm.call_args[0][0]

    def test_declined(self, coordinator, confirm, invoker) -> None:
        confirm.return_value = False
        with pytest.raises(UserAborted):
            coordinator.deploy({"style": True})
        invoker.invoke_and_return.assert_not_called()

    def test_dry_run(self, coordinator, confirm, invoker) -> None:
        assert coordinator.deploy({"all": True, "dry_run": True}) is None
        confirm.assert_not_called()
        invoker.invoke_and_return.assert_not_called()

    def test_nothing_selected(self, coordinator, invoker) -> None:
        with pytest.raises(InvalidInput, match="you didn't indicate anything to deploy!"):
            coordinator.deploy({"dry_run": True})
        invoker.invoke_and_return.assert_not_called()


class TestLoad:
    """Test pulling configuration."""

    def test_load(self, coordinator, invoker, files) -> None:
        invoker.invoke.return_value = InvokeResult(
            result={
                "result": {
                    "style": {"logo": "remote"},
                    "termsAndConditions": {"value": "# Remote terms"},
                    "modelsPack": {"namespace": "io.acme", "models": [{"id": "io.acme.Form"}]},
                }
            }
        )

        written = coordinator.load({"all": True})

        assert written == ["style", "terms", "models"]
        invoker.invoke.assert_called_once_with("cli", "getconf --conf", confirmed=True)
        assert files.read_style() == {"logo": "remote"}
        assert files.read_terms() == "# Remote terms"
        assert files.read_models() == [{"id": "io.acme.Form"}]

    def test_only_selected(self, coordinator, invoker, files) -> None:
        invoker.invoke.return_value = InvokeResult(
            result={"result": {"style": {"logo": "remote"}, "bot": {"new": True}}}
        )

        assert coordinator.load({"bot": True}) == ["bot"]
        assert files.read_style() == {"logo": "x"}

    def test_remote_error(self, coordinator, invoker) -> None:
        invoker.invoke.return_value = InvokeResult(
            result={"error": {"kind": "NotFound", "message": "no conf"}}
        )
        with pytest.raises(NotFound):
            coordinator.load({"all": True})


class TestExec:
    """Test cli command execution."""

    def test_exec(self, coordinator, invoker) -> None:
        invoker.invoke.return_value = InvokeResult(result={"result": "ok"})
        assert coordinator.exec("reindex") == "ok"
        invoker.invoke.assert_called_once_with("cli", "reindex", confirmed=False)

    def test_remote_only_command_locally(self, local_project, invoker) -> None:
        coordinator = DeploymentCoordinator(
            ConsoleConfig(local=True, project=str(local_project)),
            client_factory=Mock(),
            invoker=invoker,
        )

        with pytest.raises(InvalidInput, match="remote"):
            coordinator.exec("log setconf")
        invoker.invoke.assert_not_called()

    def test_empty_command(self, coordinator) -> None:
        with pytest.raises(InvalidInput):
            coordinator.exec(" ")


class TestInfo:
    """Test deployment info."""

    @patch("deployment.coordinator.requests.get")
    def test_info(self, mock_get, coordinator, invoker, stack_manager) -> None:
        invoker.invoke.return_value = InvokeResult(result={"result": {"web": "https://app"}})
        stack_manager.get_api_base_url.return_value = "https://api.example.com/dev"
        mock_get.return_value.json.return_value = {"version": {"tag": "v2.0.0"}}

        info = coordinator.info()

        assert info == {
            "apiBaseUrl": "https://api.example.com/dev",
            "links": {"web": "https://app"},
            "version": {"tag": "v2.0.0"},
        }
        invoker.invoke.assert_called_once_with("cli", "links", confirmed=True)
        mock_get.assert_called_once_with("https://api.example.com/dev/info", timeout=30)

    @patch("deployment.coordinator.requests.get")
    def test_info_request_fails(self, mock_get, coordinator, invoker, stack_manager) -> None:
        invoker.invoke.return_value = InvokeResult(result={"result": {}})
        stack_manager.get_api_base_url.return_value = "https://api"
        mock_get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(ServerError, match="refused"):
            coordinator.info()

    def test_info_local(self, local_project) -> None:
        coordinator = DeploymentCoordinator(
            ConsoleConfig(stack_name=STACK_NAME, local=True, project=str(local_project)),
            client_factory=Mock(),
        )
        with pytest.raises(InvalidInput, match="local"):
            coordinator.info()

    def test_info_project_path_only(self, local_project, stack_manager) -> None:
        coordinator = DeploymentCoordinator(
            ConsoleConfig(stack_name=STACK_NAME, project=str(local_project)),
            client_factory=Mock(),
        )
        with pytest.raises(InvalidInput, match="local"):
            coordinator.info()
        stack_manager.get_api_base_url.assert_not_called()


class TestInit:
    """Test settings initialization."""

    def test_declined_overwrite(self, coordinator, tmp_path) -> None:
        assert coordinator.init({"overwrite": False}) is None
        assert not (tmp_path / "settings.yml").exists()

    def test_init(self, coordinator, factory, tmp_path, files) -> None:
        with patch.object(coordinator, "info", return_value={"apiBaseUrl": "https://api"}):
            config = coordinator.init(
                {"overwrite": True, "stack_name": "tdl-other-ltd-prod", "profile": "prod"}
            )

        assert config.stack_name == "tdl-other-ltd-prod"
        assert config.profile == "prod"
        assert config.region == "us-east-1"
        factory.invalidate.assert_called_once()

        saved = yaml.safe_load((tmp_path / "settings.yml").read_text())
        assert saved["stack_name"] == "tdl-other-ltd-prod"
        assert saved["api_base_url"] == "https://api"
        assert files.models_dir.is_dir()


class TestDestroy:
    """Test stack destruction."""

    def bucket(self, logical_id, physical_id):
        return {
            "LogicalResourceId": logical_id,
            "PhysicalResourceId": physical_id,
            "ResourceType": "AWS::S3::Bucket",
        }

    @patch("deployment.coordinator.BucketDestroyer")
    def test_destroy(self, mock_destroyer_class, coordinator, confirm, stack_manager) -> None:
        destroyer = mock_destroyer_class.return_value
        logs = self.bucket("LogsBucket", "logs-bucket")
        objects = self.bucket("ObjectsBucket", "objects-bucket")
        temp = self.bucket("TempBucket", "temp-bucket")
        wait = Mock()
        stack_manager.get_stack_status.return_value = "UPDATE_COMPLETE"
        stack_manager.list_buckets.return_value = [logs, objects, temp]
        stack_manager.list_retained_resources.return_value = [logs]
        stack_manager.delete.return_value = wait

        coordinator.destroy()

        assert confirm.call_count == 3
        assert "DESTROY REMOTE MYCLOUD" in confirm.call_args_list[0][0][0]
        assert "MURDER" in confirm.call_args_list[1][0][0]
        destroyer.schedule_deletion.assert_called_once_with("logs-bucket")
        assert destroyer.destroy.call_args_list == [call("objects-bucket"), call("temp-bucket")]
        stack_manager.disable_termination_protection.assert_called_once_with(STACK_NAME)
        stack_manager.delete.assert_called_once_with(STACK_NAME)
        wait.assert_called_once_with()

    def test_not_found(self, coordinator, confirm, stack_manager) -> None:
        stack_manager.get_stack_status.return_value = None
        with pytest.raises(NotFound):
            coordinator.destroy()
        confirm.assert_not_called()

    def test_declined(self, coordinator, confirm, stack_manager) -> None:
        stack_manager.get_stack_status.return_value = "CREATE_COMPLETE"
        confirm.side_effect = [True, False]

        with pytest.raises(UserAborted):
            coordinator.destroy()
        stack_manager.list_buckets.assert_not_called()
        stack_manager.delete.assert_not_called()

    def test_no_buckets(self, coordinator, confirm, stack_manager) -> None:
        stack_manager.get_stack_status.return_value = "CREATE_COMPLETE"
        stack_manager.list_buckets.return_value = []
        stack_manager.list_retained_resources.return_value = []

        coordinator.destroy()

        assert confirm.call_count == 2
        stack_manager.delete.assert_called_once_with(STACK_NAME)

    def test_dry_run(self, coordinator, confirm, stack_manager) -> None:
        coordinator.destroy(dry_run=True)
        stack_manager.get_stack_status.assert_not_called()
        confirm.assert_not_called()

    def test_requires_explicit_remote(self, confirm, stack_manager) -> None:
        coordinator = DeploymentCoordinator(
            ConsoleConfig(stack_name=STACK_NAME), client_factory=Mock(), confirm=confirm
        )
        with pytest.raises(InvalidInput, match="--remote"):
            coordinator.destroy()
        stack_manager.get_stack_status.assert_not_called()
        stack_manager.delete.assert_not_called()
        confirm.assert_not_called()

    def test_project_path_resolves_local(self, confirm, stack_manager, local_project) -> None:
        coordinator = DeploymentCoordinator(
            ConsoleConfig(stack_name=STACK_NAME, project=str(local_project)),
            client_factory=Mock(),
            confirm=confirm,
        )
        with pytest.raises(InvalidInput, match="local"):
            coordinator.destroy()
        stack_manager.get_stack_status.assert_not_called()
        stack_manager.delete.assert_not_called()
        confirm.assert_not_called()


@patch("deployment.coordinator.list_availability_zones", return_value=["us-east-1a", "us-east-1b", "us-east-1c"])
@patch("deployment.coordinator.key_pairs_exist", return_value=True)
@patch("deployment.coordinator.can_access_ecr_repos", return_value=True)
class TestEnableServices:
    """Test the optional services stack."""

    def test_create(self, mock_access, mock_keys, mock_zones, coordinator, factory, stack_manager) -> None:
        stack_manager.resolve_id.return_value = None
        wait = Mock()
        stack_manager.create.return_value = wait

        name = coordinator.enable_services({"rank_one": True, "key_name": "my-key"})

        assert name == "acme-srvcs"
        args, _ = mock_access.call_args
        assert args[1] == "210041114155"
        assert "rank-one" in args[2] and "trueface-spoof" not in args[2]
        mock_keys.assert_called_once_with(factory.get.return_value, ["my-key"])

        stack_name, params = stack_manager.create.call_args[0]
        assert stack_name == "acme-srvcs"
        assert params["Capabilities"] == ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM"]
        parameters = {p["ParameterKey"]: p["ParameterValue"] for p in params["Parameters"]}
        assert parameters == {
            "MyCloudStackName": STACK_NAME,
            "EnableTruefaceSpoof": "false",
            "EnableRankOne": "true",
            "AZs": "us-east-1a,us-east-1b",
            "KeyName": "my-key",
        }
        factory.get.return_value.cloudformation.validate_template.assert_called_once_with(
            TemplateURL=params["TemplateURL"]
        )
        wait.assert_called_once_with()

    def test_update(self, mock_access, mock_keys, mock_zones, coordinator, stack_manager) -> None:
        stack_manager.resolve_id.return_value = "arn:services"

        coordinator.enable_services({"trueface_spoof": True})

        stack_manager.update.assert_called_once()
        assert stack_manager.update.call_args[0][0] == "arn:services"
        stack_manager.create.assert_not_called()
        mock_keys.assert_not_called()

    def test_no_access(self, mock_access, mock_keys, mock_zones, coordinator, stack_manager) -> None:
        mock_access.return_value = False
        with pytest.raises(InvalidEnvironment):
            coordinator.enable_services({})
        stack_manager.create.assert_not_called()

    @patch("deployment.coordinator.list_key_pairs", return_value=["other"])
    def test_missing_key(self, mock_list, mock_access, mock_keys, mock_zones, coordinator, stack_manager) -> None:
        mock_keys.return_value = False
        with pytest.raises(NotFound, match="my-key"):
            coordinator.enable_services({"key_name": "my-key"})

    def test_declined(self, mock_access, mock_keys, mock_zones, coordinator, confirm) -> None:
        confirm.return_value = False
        with pytest.raises(UserAborted):
            coordinator.enable_services({})
        mock_access.assert_not_called()


class TestStackQueries:
    """Test stack listing and function names."""

    def test_list_stacks(self, coordinator, factory, stack_manager) -> None:
        stack_manager.list_stacks.return_value = [{"id": "a", "name": STACK_NAME, "status": "CREATE_COMPLETE"}]

        stacks = coordinator.list_stacks(profile="other", mycloud_only=True)

        assert stacks == stack_manager.list_stacks.return_value
        factory.get.assert_called_with(ClientConfig(region="us-east-1", profile="other"))
        predicate = stack_manager.list_stacks.call_args[0][0]
        assert predicate({"StackName": STACK_NAME})
        assert not predicate({"StackName": "random"})

    def test_get_functions(self, coordinator, stack_manager) -> None:
        stack_manager.list_function_ids.return_value = [f"{STACK_NAME}-cli", f"{STACK_NAME}-setconf"]
        assert coordinator.get_functions() == ["cli", "setconf"]


class TestLogs:
    """Test log retrieval through awslogs."""

    @patch("deployment.coordinator.subprocess.run")
    @patch("deployment.coordinator.shutil.which", return_value="/usr/bin/awslogs")
    def test_tail(self, mock_which, mock_run, coordinator) -> None:
        mock_run.return_value = Mock(returncode=0)

        assert coordinator.tail("cli", start="1h", filterPattern="ERROR", timestamp=True, end=None) == 0

        mock_run.assert_called_once_with(
            [
                "/usr/bin/awslogs",
                "get",
                f"/aws/lambda/{STACK_NAME}-cli",
                "--watch",
                "--start=1h",
                "--filter-pattern=ERROR",
                "--timestamp",
                "--profile=dev",
            ],
            check=False,
        )

    @patch("deployment.coordinator.shutil.which", return_value=None)
    def test_missing_awslogs(self, mock_which, coordinator) -> None:
        with pytest.raises(InvalidEnvironment, match="awslogs"):
            coordinator.log("cli")


class TestDataUtils:
    """Test data import helpers."""

    def test_create_claim(self, coordinator, invoker) -> None:
        coordinator.create_data_claim({"key": "k", "claimType": "prefill", "extra": 1})
        invoker.invoke_and_return.assert_called_once_with(
            "import_data_utils",
            {"method": "createclaim", "data": {"key": "k", "claimType": "prefill"}},
            confirmed=False,
        )

    def test_create_claim_missing_prop(self, coordinator, invoker) -> None:
        with pytest.raises(InvalidInput, match="claimType"):
            coordinator.create_data_claim({"key": "k"})
        invoker.invoke_and_return.assert_not_called()

    def test_get_bundle_requires_nothing(self, coordinator, invoker) -> None:
        coordinator.get_data_bundle({"claimId": "c"})
        invoker.invoke_and_return.assert_called_once_with(
            "import_data_utils",
            {"method": "getbundle", "data": {"claimId": "c"}},
            confirmed=False,
        )

    def test_create_bundle(self, coordinator, invoker, tmp_path) -> None:
        path = tmp_path / "bundle.json"
        path.write_text(json.dumps({"items": []}))

        coordinator.create_data_bundle(path)

        invoker.invoke_and_return.assert_called_once_with(
            "import_data_utils",
            {"method": "createbundle", "data": {"items": []}},
            confirmed=False,
        )

    def test_create_bundle_bad_path(self, coordinator, tmp_path) -> None:
        with pytest.raises(InvalidInput):
            coordinator.create_data_bundle(tmp_path / "missing.json")
