"""CDK Stack for the Music Store build environment.

This stack owns the ECR repository that CI pushes the Windows container
image to. The repository name is exported so the hosting stack can import
it without a hard reference between the two stacks.
"""

import aws_cdk as cdk
from aws_cdk import aws_ecr as ecr
from constructs import Construct

REPOSITORY_NAME_EXPORT = "Music-Store-Windows-ECR-Repo-Name"


class RegistryStack(cdk.Stack):
    """Container registry stack."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str = "Music-Store-Windows-Build-Env-Stack",
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.ecr_repo_name = self.node.try_get_context("ecr_repo_name") or "music-store-windows"

        self.repository = ecr.Repository(
            self,
            "ECRrepo",
            repository_name=self.ecr_repo_name,
        )

        cdk.CfnOutput(
            self,
            "Ecr-Repo-Name",
            value=self.repository.repository_name,
            export_name=REPOSITORY_NAME_EXPORT,
            description="ECR repository name imported by the hosting stack",
        )

        cdk.CfnOutput(
            self,
            "Ecr-Repo-Uri",
            value=self.repository.repository_uri,
            description="ECR repository URI for pushing Docker images",
        )
