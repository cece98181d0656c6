"""Module to define how each resource kind maps onto a CDK construct."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import aws_cdk as cdk
from aws_cdk import (
    aws_certificatemanager,
    aws_dynamodb,
    aws_iam,
    aws_lambda,
    aws_s3,
    aws_sqs,
)

from cdk_compose.defaults import Configuration


@dataclass
class CDKResourceDef:
    """Data class defining a resource kind's CDK construct."""
    type: str               # noqa: E501 The construct class EG: Table
    module: str             # noqa: E501 The aws_cdk module that provisions this resource EG: aws_dynamodb
    name_ref: str           # noqa: E501 The CDK name attribute of the created resource EG: table_name.
    kargs: Callable[[Configuration], dict]  # noqa: E501 Builds the construct keyword arguments from a resolved configuration.
    karg_name: Optional[str] = field(default=None)  # noqa: E501 The keyword receiving the physical name, when physical names are on.
    post_create: Optional[Callable[[Any, Configuration], None]] = field(default=None)  # noqa: E501


def _seconds(value: Optional[int]) -> Optional[cdk.Duration]:
    return None if value is None else cdk.Duration.seconds(value)


def _days(value: Optional[int]) -> Optional[cdk.Duration]:
    return None if value is None else cdk.Duration.days(value)


def _compact(kargs: dict) -> dict:
    """Drop unset keyword arguments so CDK applies its own defaults."""
    return {key: value for key, value in kargs.items() if value is not None}


def _attribute(key) -> Optional[aws_dynamodb.Attribute]:
    if key is None:
        return None
    name, attribute_type = key
    return aws_dynamodb.Attribute(
        name=name,
        type=aws_dynamodb.AttributeType[attribute_type]
    )


def _policy_statement(statement) -> aws_iam.PolicyStatement:
    statement = dict(statement)
    return aws_iam.PolicyStatement(
        actions=list(statement["actions"]),
        resources=list(statement.get("resources", ("*",))),
        effect=aws_iam.Effect[statement.get("effect", "ALLOW")],
    )


def _table_kargs(config: Configuration) -> dict:
    stream = config["stream"]
    return _compact({
        "partition_key": _attribute(config["partition_key"]),
        "sort_key": _attribute(config["sort_key"]),
        "billing_mode": aws_dynamodb.BillingMode[config["billing_mode"]],
        "encryption": aws_dynamodb.TableEncryption[config["encryption"]],
        "point_in_time_recovery_specification": (
            aws_dynamodb.PointInTimeRecoverySpecification(
                point_in_time_recovery_enabled=True
            )
            if config["point_in_time_recovery"] else None
        ),
        "stream": aws_dynamodb.StreamViewType[stream] if stream else None,
        "time_to_live_attribute": config["time_to_live_attribute"],
    })


def _add_indexes(table: aws_dynamodb.Table, config: Configuration) -> None:
    for index in config["global_secondary_indexes"]:
        index = dict(index)
        table.add_global_secondary_index(
            index_name=index["index_name"],
            partition_key=_attribute(index["partition_key"]),
            sort_key=_attribute(index.get("sort_key")),
        )


_RUNTIME_FAMILIES = {
    "python": aws_lambda.RuntimeFamily.PYTHON,
    "nodejs": aws_lambda.RuntimeFamily.NODEJS,
    "java": aws_lambda.RuntimeFamily.JAVA,
    "dotnet": aws_lambda.RuntimeFamily.DOTNET_CORE,
    "ruby": aws_lambda.RuntimeFamily.RUBY,
    "go": aws_lambda.RuntimeFamily.GO,
    "provided": aws_lambda.RuntimeFamily.OTHER,
}


def _runtime(name: str) -> aws_lambda.Runtime:
    family = next(
        (f for prefix, f in _RUNTIME_FAMILIES.items() if name.startswith(prefix)),
        None
    )
    return aws_lambda.Runtime(name, family)


def _function_kargs(config: Configuration) -> dict:
    return _compact({
        "handler": config["handler"],
        "runtime": _runtime(config["runtime"]),
        "code": aws_lambda.Code.from_asset(config["code"]),
        "memory_size": config["memory_size"],
        "timeout": _seconds(config["timeout"]),
        "reserved_concurrent_executions": config["reserved_concurrent_executions"],
        "tracing": aws_lambda.Tracing[config["tracing"]],
        "logging_format": aws_lambda.LoggingFormat[config["logging_format"]],
        "retry_attempts": config["retry_attempts"],
        "max_event_age": _seconds(config["max_event_age"]),
        "description": config["description"],
        "environment": dict(config["environment"]) or None,
        "initial_policy": [
            _policy_statement(s) for s in config["policy_statements"]
        ] or None,
    })


def _add_layers(function: aws_lambda.Function, config: Configuration) -> None:
    for n, arn in enumerate(config["layers"]):
        function.add_layers(
            aws_lambda.LayerVersion.from_layer_version_arn(
                function, f"layer-{n}", arn
            )
        )


def _queue_kargs(config: Configuration) -> dict:
    fifo = config["fifo"]
    return _compact({
        "visibility_timeout": _seconds(config["visibility_timeout"]),
        "retention_period": _seconds(config["retention_period"]),
        "fifo": True if fifo else None,
        "content_based_deduplication": (
            True if fifo and config["content_based_deduplication"] else None
        ),
        "delivery_delay": _seconds(config["delivery_delay"]),
        "encryption": aws_sqs.QueueEncryption[config["encryption"]],
        "enforce_ssl": config["enforce_ssl"],
    })


def _topic_kargs(config: Configuration) -> dict:
    fifo = config["fifo"]
    return _compact({
        "display_name": config["display_name"],
        "fifo": True if fifo else None,
        "content_based_deduplication": (
            True if fifo and config["content_based_deduplication"] else None
        ),
        "enforce_ssl": config["enforce_ssl"],
    })


def _certificate_kargs(config: Configuration) -> dict:
    validation = {
        "DNS": aws_certificatemanager.CertificateValidation.from_dns,
        "EMAIL": aws_certificatemanager.CertificateValidation.from_email,
    }[config["validation"]]()
    return _compact({
        "domain_name": config["domain_name"],
        "validation": validation,
        "key_algorithm": getattr(
            aws_certificatemanager.KeyAlgorithm, config["key_algorithm"]
        ),
        "subject_alternative_names": (
            list(config["subject_alternative_names"]) or None
        ),
    })


def _lifecycle_rule(rule) -> aws_s3.LifecycleRule:
    rule = dict(rule)
    return aws_s3.LifecycleRule(
        id=rule.get("id"),
        prefix=rule.get("prefix"),
        expiration=_days(rule.get("expiration_days")),
        noncurrent_version_expiration=_days(
            rule.get("noncurrent_version_expiration_days")
        ),
        abort_incomplete_multipart_upload_after=_days(
            rule.get("abort_incomplete_multipart_upload_after_days")
        ),
    )


def _bucket_kargs(config: Configuration) -> dict:
    auto_delete = config["auto_delete_objects"]
    return _compact({
        "block_public_access": getattr(
            aws_s3.BlockPublicAccess, config["block_public_access"]
        ),
        "encryption": aws_s3.BucketEncryption[config["encryption"]],
        "enforce_ssl": config["enforce_ssl"],
        "versioned": config["versioned"],
        "auto_delete_objects": True if auto_delete else None,
        # auto delete is only accepted together with a DESTROY policy prop
        "removal_policy": (
            cdk.RemovalPolicy[config["removal_policy"]]
            if auto_delete and config["removal_policy"] else None
        ),
        "lifecycle_rules": [
            _lifecycle_rule(r) for r in config["lifecycle_rules"]
        ] or None,
    })


def _role_kargs(config: Configuration) -> dict:
    statements = [_policy_statement(s) for s in config["policy_statements"]]
    return _compact({
        "assumed_by": aws_iam.ServicePrincipal(config["assumed_by"]),
        "description": config["description"],
        "managed_policies": [
            aws_iam.ManagedPolicy.from_aws_managed_policy_name(name)
            for name in config["managed_policies"]
        ] or None,
        "inline_policies": (
            {"inline": aws_iam.PolicyDocument(statements=statements)}
            if statements else None
        ),
    })


CDK_DEFS: Dict[str, CDKResourceDef] = {
    "table": CDKResourceDef(
        type="Table",
        module="aws_dynamodb",
        name_ref="table_name",
        kargs=_table_kargs,
        karg_name="table_name",
        post_create=_add_indexes,
    ),
    "function": CDKResourceDef(
        type="Function",
        module="aws_lambda",
        name_ref="function_name",
        kargs=_function_kargs,
        karg_name="function_name",
        post_create=_add_layers,
    ),
    "queue": CDKResourceDef(
        type="Queue",
        module="aws_sqs",
        name_ref="queue_name",
        kargs=_queue_kargs,
        karg_name="queue_name",
    ),
    "topic": CDKResourceDef(
        type="Topic",
        module="aws_sns",
        name_ref="topic_name",
        kargs=_topic_kargs,
        karg_name="topic_name",
    ),
    "certificate": CDKResourceDef(
        type="Certificate",
        module="aws_certificatemanager",
        name_ref="certificate_arn",
        kargs=_certificate_kargs,
        karg_name="certificate_name",
    ),
    "bucket": CDKResourceDef(
        type="Bucket",
        module="aws_s3",
        name_ref="bucket_name",
        kargs=_bucket_kargs,
        karg_name="bucket_name",
    ),
    "role": CDKResourceDef(
        type="Role",
        module="aws_iam",
        name_ref="role_name",
        kargs=_role_kargs,
        karg_name="role_name",
    ),
}
