"""Define the desired configuration for the composed stacks.

Each StackTarget names the declaration function that describes its
resources, and the AWS account and region it is deployed into. An empty
account is resolved from the current AWS credentials at synth time.
"""
from typing import List

from cdk_compose.project_classes import (
    AWSAccount,
    ComposerProject,
    StackTarget,
    Tag
)

_prj_name = "cdk-compose"

"""A list of stacks to compose and deploy."""
stacks: List[StackTarget] = [
    StackTarget(
        name="orders-dev",
        declare="cdk_compose.stacks.orders_stack:declare",
        aws_acct=AWSAccount(
            account="012345678912",  # account number to deploy to e.g. "012345678912"
        ),
        description="Orders service (dev)",
        tags=[
            Tag("environment", "dev"),
        ]
    ),
    StackTarget(
        name="orders-prod",
        declare="cdk_compose.stacks.orders_stack:declare",
        skip=True,  # enable once the prod account is bootstrapped
        aws_acct=AWSAccount(
            account="012345678912",
        ),
        description="Orders service (prod)",
        removal_policy="RETAIN",
        termination_protection=True,
        physical_names=True,  # name resources {stack}-{name}
        tags=[
            Tag("environment", "prod"),
        ]
    ),
]

project = ComposerProject(
    name=_prj_name,
    stacks=stacks,
    nag_checks=False,  # apply cdk-nag AwsSolutions checks on synth
    tags=[
        Tag("project-name", _prj_name),
        Tag("owner", "orders-team"),
    ]
)
