"""Module to define dataclasses for deploy_config.py."""

import importlib
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

import boto3
import structlog

from cdk_compose.context import StackContext, StackProps

logger = structlog.get_logger()


@dataclass
class Tag:
    """Define AWS Tag structure."""

    key: str
    value: str


@dataclass
class AWSAccount:
    """Define AWS Account structure.

    An empty account is looked up from the caller identity of the current
    AWS credentials.
    """

    account: Optional[str] = field(default=None)
    region: str = field(default="ap-southeast-2")

    def resolved_account(self) -> str:
        if self.account:
            return self.account
        account = boto3.client("sts", region_name=self.region).get_caller_identity()["Account"]
        logger.info("account_resolved", account=account, region=self.region)
        return account


@dataclass
class StackTarget:
    """Define a stack to compose and deploy."""

    name: str
    aws_acct: AWSAccount
    declare: str  # noqa: E501 Declaration function EG: "cdk_compose.stacks.orders_stack:declare"
    tags: List[Tag] = field(default_factory=list)
    skip: bool = field(default=False)
    removal_policy: str = field(default="DESTROY")
    physical_names: bool = field(default=False)
    description: str = field(default=None)
    termination_protection: bool = field(default=False)

    def props(self, region: Optional[str] = None) -> StackProps:
        """Build the StackProps for this target.

        `region` overrides the account's region, EG: from CDK context.
        """
        return StackProps(
            account=self.aws_acct.resolved_account(),
            region=region or self.aws_acct.region,
            description=self.description,
            termination_protection=self.termination_protection,
            removal_policy=self.removal_policy,
            physical_names=self.physical_names,
            tags=tuple((tag.key, tag.value) for tag in self.tags),
        )

    def declaration(self) -> Callable[[StackContext], Any]:
        return load_declaration(self.declare)


@dataclass
class ComposerProject:
    """Define ComposerProject structure."""

    name: str
    stacks: List[StackTarget]
    tags: List[Tag] = field(default_factory=list)
    nag_checks: bool = field(default=False)

    def active_stacks(self) -> List[StackTarget]:
        return [target for target in self.stacks if not target.skip]


def load_declaration(path: str) -> Callable[[StackContext], Any]:
    """Import a stack declaration function from "package.module:function"."""
    module_name, sep, function_name = path.partition(":")
    if not sep or not module_name or not function_name:
        raise ValueError(
            f"Declaration '{path}' must look like 'package.module:function'"
        )
    module = importlib.import_module(module_name)
    try:
        return getattr(module, function_name)
    except AttributeError:
        raise ValueError(
            f"Module '{module_name}' has no declaration '{function_name}'"
        ) from None
