"""Module to materialize stack manifests as AWS CDK stacks.

Every manifest becomes one CDKStack. Resources are created by CDKResource
from the CDKResourceDef of their kind; relationships are applied to the
constructs already created, in manifest order.
"""

import importlib
from typing import Callable, Dict, Optional

import aws_cdk as cdk
import cdk_nag
import structlog
from aws_cdk import (
    Aspects,
    Stack,
    Tags,
    aws_lambda,
    aws_lambda_event_sources,
    aws_sns,
    aws_sns_subscriptions,
)
from constructs import Construct

from cdk_compose.backends.cdk_resource import CDK_DEFS, CDKResourceDef
from cdk_compose.context import StackManifest
from cdk_compose.errors import UnknownKindError, UnresolvedNameError
from cdk_compose.registry import Handle
from cdk_compose.units import RelationshipDeclaration, ResourceDeclaration

logger = structlog.get_logger()


class CDKStack(Stack):
    """Stack built from the manifest of a closed StackContext."""

    def __init__(
        self,
        scope: Construct,
        manifest: StackManifest,
        cdk_defs: Dict[str, CDKResourceDef] = CDK_DEFS,
        **kwargs,
    ) -> None:
        props = manifest.props
        env = None
        if props.account or props.region:
            env = cdk.Environment(account=props.account, region=props.region)
        super().__init__(
            scope,
            manifest.stack_name,
            env=env,
            description=props.description,
            termination_protection=props.termination_protection,
            **kwargs,
        )
        self.manifest = manifest
        self.cdk_defs = cdk_defs
        self._provision_units()
        for key, value in props.tags:
            Tags.of(self).add(key, value)

    def _provision_units(self) -> None:
        """Create CDK Resource objects and wire their relationships."""
        self.resources: Dict[str, CDKResource] = {}
        for unit in self.manifest.units:
            if isinstance(unit, ResourceDeclaration):
                self._provision_resource(unit.handle)
            elif isinstance(unit, RelationshipDeclaration):
                self._apply_relationship(unit)
            else:
                raise TypeError(f"Not a materialization unit: {unit!r}")

    def _provision_resource(self, handle: Handle) -> None:
        try:
            cdk_def = self.cdk_defs[handle.kind]
        except KeyError:
            raise UnknownKindError(handle.kind) from None
        self.resources[handle.name] = CDKResource(
            scope=self,
            cdk_def=cdk_def,
            handle=handle
        )
        logger.debug(
            "resource_provisioned",
            stack=self.stack_name,
            name=handle.name,
            kind=handle.kind,
        )

    def _apply_relationship(self, unit: RelationshipDeclaration) -> None:
        for handle in unit.handles:
            if handle.name not in self.resources:
                raise UnresolvedNameError(handle.name)
        RELATIONSHIP_APPLIERS[unit.kind](self, unit)
        logger.debug(
            "relationship_applied",
            stack=self.stack_name,
            relationship=unit.kind,
            participants=list(unit.names),
        )

    def construct(self, name: str):
        """Return the CDK construct created for the logical `name`."""
        return self.resources[name].resource

    def _prefix(self) -> str:
        return self.manifest.stack_name


class CDKResource():
    """Class to create AWS CDK resources."""

    def __init__(
        self,
        scope: CDKStack,
        cdk_def: CDKResourceDef,
        handle: Handle
    ) -> None:
        self.stack = scope
        self.cdk_def = cdk_def
        self.handle = handle
        self.id = handle.name
        self._create_resource()

    def _create_resource(self) -> None:
        """Create the AWS CDK resource.

        The construct class is looked up on its aws_cdk module by name, so
        CDKResourceDef(type="Queue", module="aws_sqs", ...) equates to:
        aws_sqs.Queue(scope=self.stack, id=self.id, **kargs)
        """
        module = self._import_cdk_module()
        kargs = self._get_kargs()
        self.resource = getattr(module, self.cdk_def.type)(**kargs)

        self.resource.apply_removal_policy(self._removal_policy())

        configuration = self.handle.configuration
        if self.cdk_def.post_create:
            self.cdk_def.post_create(self.resource, configuration)
        for key, value in configuration["tags"]:
            Tags.of(self.resource).add(key, value)

        self.name = getattr(self.resource, self.cdk_def.name_ref)

    def _removal_policy(self) -> cdk.RemovalPolicy:
        """The resource's own removal policy, else the stack's."""
        policy = (
            self.handle.configuration["removal_policy"]
            or self.stack.manifest.props.removal_policy
        )
        return cdk.RemovalPolicy[policy]

    def _physical_name(self) -> str:
        """Create a physical name based on object context.

        Will create {stack name}-{logical name}, lower case.
        EG: orders-orders-dlq, or orders-events.fifo for FIFO queues/topics.
        """
        name = f"{self.stack._prefix()}-{self.id}".lower()
        if self.handle.configuration.get("fifo") and not name.endswith(".fifo"):
            name = f"{name}.fifo"
        return name

    def _import_cdk_module(self):
        """Import the aws_cdk module we need to create this resource."""
        return importlib.import_module(f"aws_cdk.{self.cdk_def.module}")

    def _get_kargs(self) -> dict:
        """Construct kargs for CDK resource.

        All CDK objects need a scope and an identifier.
        We then add the resource specific kargs built from the resolved
        configuration. EG: aws_sqs.Queue takes "enforce_ssl" and
        "encryption" as arguments.
        """
        kargs = {
            "scope": self.stack,
            "id": self.id
        }
        if self.cdk_def.karg_name and self.stack.manifest.props.physical_names:
            kargs[self.cdk_def.karg_name] = self._physical_name()
        kargs.update(self.cdk_def.kargs(self.handle.configuration))

        return kargs


TABLE_GRANTS = {
    "read": ("grant_read_data",),
    "write": ("grant_write_data",),
    "read-write": ("grant_read_write_data",),
    "full": ("grant_full_access",),
    "stream-read": ("grant_stream_read",),
}

BUCKET_GRANTS = {
    "read": ("grant_read",),
    "write": ("grant_put",),
    "read-write": ("grant_read_write",),
    "delete": ("grant_delete",),
}

QUEUE_GRANTS = {
    "send": ("grant_send_messages",),
    "consume": ("grant_consume_messages",),
    "purge": ("grant_purge",),
    "read-write": ("grant_send_messages", "grant_consume_messages"),
}

GRANT_METHODS = {
    "table": TABLE_GRANTS,
    "bucket": BUCKET_GRANTS,
    "queue": QUEUE_GRANTS,
    "topic": {"publish": ("grant_publish",)},
    "function": {"invoke": ("grant_invoke",)},
}


def apply_grant(stack: CDKStack, unit: RelationshipDeclaration) -> None:
    resource = unit.participant("resource")
    grantee = stack.construct(unit.participant("grantee").name)
    target = stack.construct(resource.name)
    for method in GRANT_METHODS[resource.kind][unit.attribute("access")]:
        getattr(target, method)(grantee)


def apply_subscription(stack: CDKStack, unit: RelationshipDeclaration) -> None:
    topic = stack.construct(unit.participant("topic").name)
    endpoint = unit.participant("endpoint")
    kargs = {}

    dead_letter = unit.participant("dead_letter")
    if dead_letter is not None:
        kargs["dead_letter_queue"] = stack.construct(dead_letter.name)

    filter_policy = unit.attribute("filter_policy")
    if filter_policy:
        kargs["filter_policy"] = {
            attribute: aws_sns.SubscriptionFilter.string_filter(
                allowlist=list(values)
            )
            for attribute, values in filter_policy
        }

    if endpoint.kind == "queue":
        subscription = aws_sns_subscriptions.SqsSubscription(
            stack.construct(endpoint.name),
            raw_message_delivery=unit.attribute("raw_message_delivery", False),
            **kargs
        )
    else:
        subscription = aws_sns_subscriptions.LambdaSubscription(
            stack.construct(endpoint.name),
            **kargs
        )
    topic.add_subscription(subscription)


def apply_address_subscription(
    stack: CDKStack,
    unit: RelationshipDeclaration
) -> None:
    topic = stack.construct(unit.participant("topic").name)
    protocol = unit.attribute("protocol")
    address = unit.attribute("address")
    if protocol == "email":
        subscription = aws_sns_subscriptions.EmailSubscription(address)
    elif protocol == "sms":
        subscription = aws_sns_subscriptions.SmsSubscription(address)
    else:
        subscription = aws_sns_subscriptions.UrlSubscription(
            address,
            protocol=aws_sns.SubscriptionProtocol[protocol.upper()]
        )
    topic.add_subscription(subscription)


def apply_dead_letter(stack: CDKStack, unit: RelationshipDeclaration) -> None:
    """Set the redrive policy on the source queue's CfnQueue."""
    source = stack.construct(unit.participant("source").name)
    target = stack.construct(unit.participant("target").name)
    source.node.default_child.redrive_policy = {
        "deadLetterTargetArn": target.queue_arn,
        "maxReceiveCount": unit.attribute("max_receives"),
    }


def apply_event_source(stack: CDKStack, unit: RelationshipDeclaration) -> None:
    source = unit.participant("source")
    function = stack.construct(unit.participant("function").name)
    batch_size = unit.attribute("batch_size", 10)
    if source.kind == "queue":
        event_source = aws_lambda_event_sources.SqsEventSource(
            stack.construct(source.name),
            batch_size=batch_size
        )
    else:
        event_source = aws_lambda_event_sources.DynamoEventSource(
            stack.construct(source.name),
            starting_position=aws_lambda.StartingPosition.LATEST,
            batch_size=batch_size
        )
    function.add_event_source(event_source)


RELATIONSHIP_APPLIERS: Dict[
    str, Callable[[CDKStack, RelationshipDeclaration], None]
] = {
    "grant": apply_grant,
    "subscription": apply_subscription,
    "address_subscription": apply_address_subscription,
    "dead_letter": apply_dead_letter,
    "event_source": apply_event_source,
}


class CDKBackend:
    """Provision manifests into a CDK app, one CDKStack per manifest."""

    def __init__(
        self,
        app: Optional[cdk.App] = None,
        nag_checks: bool = False,
        cdk_defs: Optional[Dict[str, CDKResourceDef]] = None,
    ) -> None:
        self.app = app or cdk.App()
        self.cdk_defs = CDK_DEFS if cdk_defs is None else cdk_defs
        self.stacks: Dict[str, CDKStack] = {}
        if nag_checks:
            Aspects.of(self.app).add(cdk_nag.AwsSolutionsChecks(verbose=True))

    def provision(self, manifest: StackManifest) -> CDKStack:
        cdk_stack = CDKStack(self.app, manifest, self.cdk_defs)
        self.stacks[manifest.stack_name] = cdk_stack
        logger.info(
            "stack_provisioned",
            stack=manifest.stack_name,
            resources=len(cdk_stack.resources),
            relationships=len(manifest.relationships()),
        )
        return cdk_stack
