"""Application to compose and synthesize the configured CDK stacks.

CDK context overrides:
    cdk synth -c region=us-east-1 -c log_level=debug -c nag=true
"""

import aws_cdk as cdk
import structlog

from cdk_compose.backends.cdk_backend import CDKBackend
from cdk_compose.context import compose_stack
from cdk_compose.log import configure_logging
from deploy_config import project


app = cdk.App()
region = app.node.try_get_context("region")
configure_logging(app.node.try_get_context("log_level") or "info")
logger = structlog.get_logger()

nag_checks = str(app.node.try_get_context("nag") or project.nag_checks).lower() == "true"
backend = CDKBackend(app, nag_checks=nag_checks)

for target in project.active_stacks():  # compose and provision each stack
    manifest = compose_stack(
        f"{project.name}-{target.name}",
        target.declaration(),
        target.props(region),
    )
    stack = backend.provision(manifest)
    for tag in project.tags:
        cdk.Tags.of(stack).add(
            tag.key,
            tag.value
        )

logger.info("app_composed", project=project.name, stacks=list(backend.stacks))
app.synth()
