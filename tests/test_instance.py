from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from ephemera.config import Settings
from ephemera.exceptions import OperationError, TransferError, WaitTimeoutError
from ephemera.instance import Instance, LifecycleState

pytestmark = [pytest.mark.unit]

KEYS = ("ssh-ed25519 AAAA alice@laptop",)


@pytest.fixture
def executor() -> MagicMock:
    executor = MagicMock(name="executor")
    executor.execute.return_value = True
    executor.copy.return_value = True
    return executor


@pytest.fixture
def make_instance(lightsail, executor, settings):
    def make(name: str = "main", settings: Settings = settings, **kwargs) -> Instance:
        return Instance(
            name,
            settings,
            client=lightsail,
            executor=executor,
            key_fetcher=lambda admins, token: KEYS,
            sleep=lambda _: None,
            **kwargs,
        )

    return make


class TestAttributes:
    def test_name_is_normalized(self, make_instance):
        instance = make_instance("Feature/Login Page")
        assert instance.name == "feature-login-page"
        assert instance.subdomain == "feature-login-page"

    def test_ports_always_include_default_and_ssh(self, make_instance):
        instance = make_instance(settings=Settings(ports=("443", "80", "22")))
        assert instance.ports == ("443", "80", "22")
        assert make_instance().ports == ("80", "22")

    def test_public_dns_and_url(self, make_instance):
        instance = make_instance(settings=Settings(dns="my.preview.run", basic_auth="u:p"))
        assert instance.public_ip == "3.84.12.7"
        assert instance.ssh_address == "ec2-user@3.84.12.7"
        assert instance.public_dns == "main-3-84-12-7.my.preview.run"
        assert instance.url == "http://u:p@main-3-84-12-7.my.preview.run:80"

    def test_https_on_443(self, make_instance):
        instance = make_instance(settings=Settings(default_port="443"))
        assert instance.url.startswith("https://")
        assert instance.url.endswith(":443")

    def test_access_details_fetched_once(self, make_instance, lightsail):
        instance = make_instance()
        _ = instance.public_ip, instance.username, instance.public_dns, instance.url
        lightsail.get_instance_access_details.assert_called_once_with(instanceName="main", protocol="ssh")

    def test_access_details_repr_hides_secrets(self, make_instance):
        assert "PRIVATE KEY" not in repr(make_instance().access_details)


class TestLaunch:
    def test_fresh_instance_from_blueprint(self, make_instance, lightsail):
        instance = make_instance(settings=Settings(bundle_id="small_2_0", tags={"team": "web"}))
        operations = instance.launch({"pr": 42})

        lightsail.create_instances_from_snapshot.assert_not_called()
        kwargs = lightsail.create_instances.call_args.kwargs
        assert kwargs["instanceNames"] == ["main"]
        assert kwargs["blueprintId"] == "amazon_linux_2"
        assert kwargs["availabilityZone"] == "us-east-1a"
        assert kwargs["bundleId"] == "small_2_0"
        assert kwargs["userData"] == instance.setup_command()
        assert "/etc/pullpreview/ready" in kwargs["userData"]
        assert KEYS[0] in kwargs["userData"]
        assert kwargs["tags"] == [
            {"key": "stack", "value": "pullpreview"},
            {"key": "team", "value": "web"},
            {"key": "pr", "value": "42"},
        ]
        assert [op.id for op in operations] == ["op-1"]
        assert instance.state == LifecycleState.LAUNCHING

    def test_restores_from_latest_snapshot(self, make_instance, lightsail):
        lightsail.get_instance_snapshots.return_value = {
            "instanceSnapshots": [
                {"name": "main-1", "state": "available", "fromInstanceName": "main",
                 "createdAt": datetime(2026, 10, 1, tzinfo=UTC)},
                {"name": "main-2", "state": "available", "fromInstanceName": "main",
                 "createdAt": datetime(2026, 10, 2, tzinfo=UTC)},
            ]
        }
        make_instance().launch()

        lightsail.create_instances.assert_not_called()
        kwargs = lightsail.create_instances_from_snapshot.call_args.kwargs
        assert kwargs["instanceSnapshotName"] == "main-2"
        assert kwargs["userData"] == "service docker restart"
        assert "blueprintId" not in kwargs

    def test_zone_defaults_to_region(self, make_instance, lightsail):
        make_instance(settings=Settings(region="eu-west-1")).launch()
        assert lightsail.create_instances.call_args.kwargs["availabilityZone"] == "eu-west-1a"

    def test_owner_becomes_a_tag(self, make_instance, lightsail):
        make_instance(settings=Settings(github_repository_owner="acme")).launch()
        assert {"key": "repo_owner", "value": "acme"} in lightsail.create_instances.call_args.kwargs["tags"]


class TestReadiness:
    def test_running(self, make_instance):
        assert make_instance().running() is True

    def test_pending_is_not_running(self, make_instance, lightsail):
        lightsail.get_instance_state.return_value = {"state": {"code": 0, "name": "pending"}}
        assert make_instance().running() is False

    def test_not_found_is_not_running(self, make_instance, lightsail, client_error):
        lightsail.get_instance_state.side_effect = client_error("NotFoundException")
        assert make_instance().running() is False

    def test_other_errors_propagate(self, make_instance, lightsail, client_error):
        lightsail.get_instance_state.side_effect = client_error("AccessDeniedException")
        with pytest.raises(ClientError, match="AccessDeniedException"):
            make_instance().running()

    def test_wait_until_running(self, make_instance, lightsail, client_error):
        lightsail.get_instance_state.side_effect = [
            client_error("NotFoundException"),
            {"state": {"name": "pending"}},
            {"state": {"name": "running"}},
        ]
        instance = make_instance()
        instance.wait_until_running()
        assert instance.state == LifecycleState.RUNNING

    def test_wait_until_running_times_out(self, make_instance, lightsail):
        lightsail.get_instance_state.return_value = {"state": {"name": "pending"}}
        with pytest.raises(WaitTimeoutError, match="instance to be running"):
            make_instance().wait_until_running()
        assert lightsail.get_instance_state.call_count == 3

    def test_ssh_ready_checks_marker(self, make_instance, executor):
        instance = make_instance()
        instance.wait_until_ssh_ready()
        executor.execute.assert_called_once_with("test -f /etc/pullpreview/ready")
        assert instance.state == LifecycleState.READY

    def test_ssh_timeout(self, make_instance, executor):
        executor.execute.return_value = False
        with pytest.raises(WaitTimeoutError, match="ssh"):
            make_instance().wait_until_ssh_ready()
        assert executor.execute.call_count == 3


class TestProvision:
    def test_deploys_keys_and_scripts(self, make_instance, executor):
        instance = make_instance()
        instance.provision()

        targets = [(c.args[1], c.kwargs["mode"]) for c in executor.copy.call_args_list]
        assert targets == [
            ("/home/ec2-user/.ssh/authorized_keys", "0600"),
            ("/tmp/update_script.sh", "0755"),
            ("/tmp/pre_script.sh", "0755"),
        ]
        assert instance.state == LifecycleState.PROVISIONED

    def test_authorized_keys_failure_is_not_fatal(self, make_instance, executor):
        executor.copy.side_effect = [False, True, True]
        make_instance().provision()

    @pytest.mark.parametrize(("outcomes", "what"), [([True, False, True], "update script"),
                                                    ([True, True, False], "pre script")])
    def test_script_transfer_failure_is_fatal(self, make_instance, executor, outcomes, what):
        executor.copy.side_effect = outcomes
        with pytest.raises(TransferError, match=what):
            make_instance().provision()

    def test_open_ports(self, make_instance, lightsail):
        make_instance(settings=Settings(cidrs=("10.0.0.0/8",))).open_ports()
        port_infos = lightsail.put_instance_public_ports.call_args.kwargs["portInfos"]
        assert port_infos == [
            {"fromPort": 80, "toPort": 80, "protocol": "tcp", "cidrs": ["10.0.0.0/8"]},
            {"fromPort": 22, "toPort": 22, "protocol": "tcp", "cidrs": ["0.0.0.0/0"]},
        ]


class TestDestroy:
    def test_success(self, make_instance, lightsail):
        instance = make_instance()
        instance.destroy()
        lightsail.delete_instance.assert_called_once_with(instanceName="main")
        assert instance.state == LifecycleState.DESTROYED

    def test_error_code_is_fatal(self, make_instance, lightsail):
        lightsail.delete_instance.return_value = {
            "operations": [{"id": "op", "errorCode": "InternalFailure", "errorDetails": "try again"}]
        }
        with pytest.raises(OperationError, match="InternalFailure") as exc_info:
            make_instance().destroy()
        assert exc_info.value.code == "InternalFailure"
        assert "try again" in str(exc_info.value)
