#!/usr/bin/env python3
"""CDK App entry point for Music Store infrastructure."""

import logging

import aws_cdk as cdk

from infrastructure.hosting_stack import HostingStack
from infrastructure.registry_stack import RegistryStack

logger = logging.getLogger(__name__)


def build_stacks(app: cdk.App) -> list[cdk.Stack]:
    """Declare the registry and hosting stacks on the given app."""
    env = cdk.Environment(
        account=app.node.try_get_context("account") or None,
        region=app.node.try_get_context("region") or "us-east-1",
    )

    registry = RegistryStack(
        app,
        env=env,
        description="Music Store container registry",
    )
    hosting = HostingStack(
        app,
        env=env,
        description="Music Store ECS hosting environment",
    )
    # The hosting stack imports the registry stack's export
    hosting.add_dependency(registry)

    return [registry, hosting]


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = cdk.App()
    stacks = build_stacks(app)

    stack_names = '", "'.join(stack.stack_name for stack in stacks)
    logger.info(f'Stack names that can be deployed: "{stack_names}".')

    app.synth()


if __name__ == "__main__":
    main()
