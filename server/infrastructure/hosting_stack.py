"""CDK Stack for the Music Store hosting environment.

This stack creates the AWS resources needed to run the Windows container
image on ECS, including:
- Secrets Manager secret holding the database master password
- VPC
- RDS SQL Server (Web edition) database
- ECS cluster backed by an auto-scaling group of Windows hosts
- Task definition and EC2 service for the web application
- Security group rules between the hosts, the internet and the database
"""

import aws_cdk as cdk
from aws_cdk import (
    aws_autoscaling as autoscaling,
    aws_ec2 as ec2,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

from infrastructure.registry_stack import REPOSITORY_NAME_EXPORT

MAIN_DATABASE_NAME = "MusicStore"
IDENTITY_DATABASE_NAME = "Identity"


def format_connection_string(
    server_address: str,
    db_name: str,
    password: str,
    user: str = "sa",
) -> str:
    """Build a SQL Server connection string for the application container."""
    return f"Server={server_address}; Database={db_name}; User Id={user}; Password={password}"


class HostingStack(cdk.Stack):
    """Hosting stack for the Music Store web application."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str = "Music-Store-Windows-Hosting-Env-Stack",
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Configuration from context or defaults
        self.max_azs = int(self.node.try_get_context("max_azs") or 3)
        self.cluster_name = self.node.try_get_context("cluster_name") or "Music-Store-Windows"
        self.image_tag = self.node.try_get_context("image_tag") or "latest"
        self.db_master_username = self.node.try_get_context("db_master_username") or "sa"

        self.db_password_secret = self._create_db_password_secret()
        self.vpc = self._create_vpc()
        self.database = self._create_database()
        self.cluster = self._create_ecs_cluster()
        self.auto_scaling_group = self._create_auto_scaling_group()
        self.task_definition, self.container = self._create_task_definition()
        self.service = self._create_service()

        # Hosts reach the database on its default port (1433). The capacity
        # provider does not register the host security groups on the cluster.
        self.database.connections.allow_default_port_from(
            self.auto_scaling_group.connections.security_groups[0]
        )

        self._create_outputs()

    def _create_db_password_secret(self) -> secretsmanager.Secret:
        """Create the generated master password for the database."""
        return secretsmanager.Secret(
            self,
            "DbPasswordSecret",
            secret_name="music-store-database-password",
            generate_secret_string=secretsmanager.SecretStringGenerator(
                exclude_characters='/@" ',
                password_length=10,
            ),
        )

    def _create_vpc(self) -> ec2.Vpc:
        """Create VPC with the default public/private subnet layout."""
        return ec2.Vpc(
            self,
            "VPC",
            max_azs=self.max_azs,
        )

    def _create_database(self) -> rds.DatabaseInstance:
        """Create RDS SQL Server Web edition instance."""
        return rds.DatabaseInstance(
            self,
            "RDS-SQL-Server",
            engine=rds.DatabaseInstanceEngine.sql_server_web(
                version=rds.SqlServerEngineVersion.VER_14
            ),
            license_model=rds.LicenseModel.LICENSE_INCLUDED,
            instance_type=ec2.InstanceType.of(
                ec2.InstanceClass.BURSTABLE3, ec2.InstanceSize.SMALL
            ),
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            deletion_protection=False,
            instance_identifier="Music-Store-SQL-Server",
            credentials=rds.Credentials.from_password(
                self.db_master_username,
                self.db_password_secret.secret_value,
            ),
            removal_policy=cdk.RemovalPolicy.DESTROY,
        )

    def _create_ecs_cluster(self) -> ecs.Cluster:
        """Create ECS cluster."""
        return ecs.Cluster(
            self,
            "ECS-cluster",
            vpc=self.vpc,
            cluster_name=self.cluster_name,
        )

    def _create_auto_scaling_group(self) -> autoscaling.AutoScalingGroup:
        """Create the Windows host fleet and register it with the cluster.

        The capacity provider writes the Windows ECS agent bootstrap
        (``Import-Module ECSTools`` and ``Initialize-ECSAgent``) into the
        hosts' user data.
        """
        auto_scaling_group = autoscaling.AutoScalingGroup(
            self,
            "Ecs-Auto-Scaling-Group",
            vpc=self.vpc,
            instance_type=ec2.InstanceType.of(
                ec2.InstanceClass.MEMORY5_NVME_DRIVE, ec2.InstanceSize.LARGE
            ),
            machine_image=ecs.EcsOptimizedImage.windows(ecs.WindowsOptimizedVersion.SERVER_2019),
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
            associate_public_ip_address=True,
        )

        host_security_group = ec2.SecurityGroup(
            self,
            "ECS-EC2-SG",
            vpc=self.vpc,
            description="Security group for ECS Windows hosts",
        )
        host_security_group.add_ingress_rule(
            ec2.Peer.any_ipv4(),
            ec2.Port.tcp(80),
            "Allow HTTP from internet",
        )
        host_security_group.add_ingress_rule(
            ec2.Peer.any_ipv4(),
            ec2.Port.tcp(8080),
            "Allow mapped container port from internet",
        )
        auto_scaling_group.add_security_group(host_security_group)

        capacity_provider = ecs.AsgCapacityProvider(
            self,
            "AsgCapacityProvider",
            auto_scaling_group=auto_scaling_group,
        )
        self.cluster.add_asg_capacity_provider(capacity_provider)

        # Store reference to security group for later use
        self.host_security_group = host_security_group

        return auto_scaling_group

    def _create_task_definition(self) -> tuple[ecs.TaskDefinition, ecs.ContainerDefinition]:
        """Create the task definition for the web application container."""
        task_definition = ecs.TaskDefinition(
            self,
            "TaskDef",
            compatibility=ecs.Compatibility.EC2,
            network_mode=ecs.NetworkMode.NAT,
        )

        ecr_name = cdk.Fn.import_value(REPOSITORY_NAME_EXPORT)
        ecr_repository = ecr.Repository.from_repository_name(
            self, "ExistingEcrRepository", ecr_name
        )

        # TODO: pass the password through ecs.Secret once the application
        # reads it separately from the rest of the connection string.
        password = self.db_password_secret.secret_value.unsafe_unwrap()
        server_address = self.database.db_instance_endpoint_address
        main_db_connection_string = format_connection_string(
            server_address, MAIN_DATABASE_NAME, password, self.db_master_username
        )
        identity_db_connection_string = format_connection_string(
            server_address, IDENTITY_DATABASE_NAME, password, self.db_master_username
        )

        container = task_definition.add_container(
            "ContainerDef",
            essential=True,
            memory_limit_mib=2048,
            cpu=1024,
            image=ecs.ContainerImage.from_ecr_repository(ecr_repository, self.image_tag),
            environment={
                "MusicStoreEntities": main_db_connection_string,
                "identitydb": identity_db_connection_string,
            },
        )

        container.add_port_mappings(
            ecs.PortMapping(
                container_port=80,
                host_port=8080,
                protocol=ecs.Protocol.TCP,
            )
        )

        return task_definition, container

    def _create_service(self) -> ecs.Ec2Service:
        """Create ECS EC2 service running the task on the cluster."""
        return ecs.Ec2Service(
            self,
            "ECS-Service",
            cluster=self.cluster,
            task_definition=self.task_definition,
        )

    def _create_outputs(self) -> None:
        cdk.CfnOutput(
            self,
            "DatabaseEndpoint",
            value=self.database.db_instance_endpoint_address,
            description="RDS SQL Server endpoint address",
        )

        cdk.CfnOutput(
            self,
            "ClusterName",
            value=self.cluster.cluster_name,
            description="ECS cluster name",
        )
