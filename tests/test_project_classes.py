from unittest import mock

import pytest

from cdk_compose.project_classes import (
    AWSAccount,
    ComposerProject,
    StackTarget,
    Tag,
    load_declaration,
)
from cdk_compose.stacks import orders_stack


@pytest.fixture
def target():
    return StackTarget(
        name="orders-dev",
        aws_acct=AWSAccount(account="012345678912"),
        declare="cdk_compose.stacks.orders_stack:declare",
        tags=[Tag("environment", "dev")],
        physical_names=True,
    )


def test_explicit_account_skips_lookup():
    with mock.patch("boto3.client") as client:
        assert AWSAccount("012345678912").resolved_account() == "012345678912"
    client.assert_not_called()


def test_empty_account_uses_caller_identity():
    with mock.patch("boto3.client") as client:
        client.return_value.get_caller_identity.return_value = {"Account": "999999999999"}
        assert AWSAccount(region="us-east-1").resolved_account() == "999999999999"
    client.assert_called_once_with("sts", region_name="us-east-1")


def test_target_props(target):
    props = target.props()
    assert props.account == "012345678912"
    assert props.region == "ap-southeast-2"
    assert props.removal_policy == "DESTROY"
    assert props.physical_names is True
    assert props.tags == (("environment", "dev"),)


def test_context_region_overrides_account_region(target):
    assert target.props("us-west-2").region == "us-west-2"


def test_declaration_is_imported(target):
    assert target.declaration() is orders_stack.declare


@pytest.mark.parametrize(
    "path",
    ["cdk_compose.stacks.orders_stack", "cdk_compose.stacks.orders_stack:missing", ":declare"],
)
def test_bad_declaration_path(path):
    with pytest.raises(ValueError):
        load_declaration(path)


def test_active_stacks_skip(target):
    skipped = StackTarget(
        name="orders-prod",
        aws_acct=AWSAccount(account="012345678912"),
        declare="cdk_compose.stacks.orders_stack:declare",
        skip=True,
    )
    project = ComposerProject(name="p", stacks=[target, skipped])
    assert project.active_stacks() == [target]


def test_deploy_config_is_valid():
    from deploy_config import project

    for target in project.stacks:
        assert callable(target.declaration())
    assert all(t.aws_acct.account for t in project.active_stacks())
