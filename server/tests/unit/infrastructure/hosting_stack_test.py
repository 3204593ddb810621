"""Unit tests for the hosting stack.

These tests synthesize the stack and check the declared resources and the
wiring between them.
"""

import json

import aws_cdk as cdk
import pytest
from aws_cdk import aws_ecs as ecs
from aws_cdk.assertions import Match, Template

from infrastructure.hosting_stack import HostingStack, format_connection_string
from infrastructure.registry_stack import REPOSITORY_NAME_EXPORT

# Same feature flag the deployment enables in cdk.json
_CONTEXT = {"@aws-cdk/aws-autoscaling:generateLaunchTemplateInsteadOfLaunchConfig": True}


@pytest.fixture(scope="module")
def stack():
    app = cdk.App(context=_CONTEXT)
    return HostingStack(app)


@pytest.fixture(scope="module")
def template(stack):
    return Template.from_stack(stack)


def _only_resource(template, resource_type):
    resources = template.find_resources(resource_type)
    assert len(resources) == 1
    return next(iter(resources.values()))


class TestFormatConnectionString:
    def test_format(self):
        assert (
            format_connection_string("db.local", "MusicStore", "pw")
            == "Server=db.local; Database=MusicStore; User Id=sa; Password=pw"
        )

    def test_custom_user(self):
        assert "User Id=admin;" in format_connection_string("h", "d", "p", user="admin")


class TestHostingStackDatabase:
    """Test the secret, network and database declarations."""

    def test_default_stack_name(self, stack):
        assert stack.stack_name == "Music-Store-Windows-Hosting-Env-Stack"

    def test_password_secret(self, template):
        template.has_resource_properties(
            "AWS::SecretsManager::Secret",
            {
                "Name": "music-store-database-password",
                "GenerateSecretString": {
                    "ExcludeCharacters": '/@" ',
                    "PasswordLength": 10,
                },
            },
        )

    def test_vpc(self, template):
        template.resource_count_is("AWS::EC2::VPC", 1)

    def test_database_instance(self, template):
        template.has_resource_properties(
            "AWS::RDS::DBInstance",
            {
                "Engine": "sqlserver-web",
                "EngineVersion": "14.00",
                "DBInstanceClass": "db.t3.small",
                "LicenseModel": "license-included",
                "DeletionProtection": False,
                "MasterUsername": "sa",
            },
        )
        database = _only_resource(template, "AWS::RDS::DBInstance")
        assert database["Properties"]["DBInstanceIdentifier"].lower() == "music-store-sql-server"
        assert database["DeletionPolicy"] == "Delete"

    def test_database_password_from_secret(self, template):
        database = _only_resource(template, "AWS::RDS::DBInstance")
        password = json.dumps(database["Properties"]["MasterUserPassword"])
        assert "resolve:secretsmanager" in password

    def test_database_in_private_subnets(self, stack, template):
        subnet_group = _only_resource(template, "AWS::RDS::DBSubnetGroup")
        subnet_ids = json.dumps(subnet_group["Properties"]["SubnetIds"])
        assert "PrivateSubnet" in subnet_ids
        assert "PublicSubnet" not in subnet_ids

    def test_database_accepts_cluster_hosts(self, template):
        ingress_rules = [
            json.dumps(rule["Properties"])
            for rule in template.find_resources("AWS::EC2::SecurityGroupIngress").values()
        ]
        database_rules = [rule for rule in ingress_rules if "RDSSQLServerSecurityGroup" in rule]
        assert len(database_rules) == 1
        assert "EcsAutoScalingGroupInstanceSecurityGroup" in database_rules[0]
        assert "Endpoint.Port" in database_rules[0]


class TestHostingStackCluster:
    """Test the cluster and its Windows host fleet."""

    def test_cluster(self, template):
        template.has_resource_properties(
            "AWS::ECS::Cluster", {"ClusterName": "Music-Store-Windows"}
        )

    def test_auto_scaling_group_in_public_subnets(self, template):
        group = _only_resource(template, "AWS::AutoScaling::AutoScalingGroup")
        subnets = json.dumps(group["Properties"]["VPCZoneIdentifier"])
        assert "PublicSubnet" in subnets
        assert "PrivateSubnet" not in subnets

    def test_launch_template(self, template):
        template.has_resource_properties(
            "AWS::EC2::LaunchTemplate",
            {
                "LaunchTemplateData": Match.object_like(
                    {
                        "InstanceType": "r5d.large",
                        "NetworkInterfaces": [
                            Match.object_like({"AssociatePublicIpAddress": True})
                        ],
                    }
                )
            },
        )

    def test_hosts_bootstrap_windows_ecs_agent(self, template):
        launch_template = json.dumps(_only_resource(template, "AWS::EC2::LaunchTemplate"))
        assert "Import-Module ECSTools" in launch_template
        assert "Initialize-ECSAgent -Cluster" in launch_template

    def test_capacity_provider_registered(self, template):
        template.resource_count_is("AWS::ECS::CapacityProvider", 1)
        template.resource_count_is("AWS::ECS::ClusterCapacityProviderAssociations", 1)

    def test_host_security_group_ingress(self, template):
        template.has_resource_properties(
            "AWS::EC2::SecurityGroup",
            {
                "SecurityGroupIngress": Match.array_with(
                    [
                        Match.object_like(
                            {"CidrIp": "0.0.0.0/0", "IpProtocol": "tcp", "FromPort": 80, "ToPort": 80}
                        ),
                        Match.object_like(
                            {"CidrIp": "0.0.0.0/0", "IpProtocol": "tcp", "FromPort": 8080, "ToPort": 8080}
                        ),
                    ]
                )
            },
        )

    def test_host_security_group_attached(self, stack):
        security_groups = stack.auto_scaling_group.connections.security_groups
        assert stack.host_security_group in security_groups


class TestHostingStackWorkload:
    """Test the task definition, container and service."""

    def test_task_definition(self, template):
        template.has_resource_properties(
            "AWS::ECS::TaskDefinition",
            {
                # Windows hosts default to NAT, so CDK leaves the key out
                "NetworkMode": Match.absent(),
                "RequiresCompatibilities": ["EC2"],
                "ContainerDefinitions": [
                    Match.object_like(
                        {
                            "Essential": True,
                            "Memory": 2048,
                            "Cpu": 1024,
                            "PortMappings": [
                                {"ContainerPort": 80, "HostPort": 8080, "Protocol": "tcp"}
                            ],
                        }
                    )
                ],
            },
        )

    def test_task_definition_uses_nat(self, stack):
        assert stack.task_definition.network_mode == ecs.NetworkMode.NAT
        assert stack.task_definition.is_ec2_compatible

    def test_container_environment(self, template):
        task_definition = _only_resource(template, "AWS::ECS::TaskDefinition")
        container = task_definition["Properties"]["ContainerDefinitions"][0]
        environment = {item["Name"]: json.dumps(item["Value"]) for item in container["Environment"]}

        assert set(environment) == {"MusicStoreEntities", "identitydb"}
        assert "Database=MusicStore; User Id=sa; Password=" in environment["MusicStoreEntities"]
        assert "Database=Identity; User Id=sa; Password=" in environment["identitydb"]
        for value in environment.values():
            assert "Endpoint.Address" in value
            assert "resolve:secretsmanager" in value

    def test_image_from_imported_repository(self, template):
        task_definition = _only_resource(template, "AWS::ECS::TaskDefinition")
        image = json.dumps(task_definition["Properties"]["ContainerDefinitions"][0]["Image"])
        assert "Fn::ImportValue" in image
        assert REPOSITORY_NAME_EXPORT in image
        assert ":latest" in image

    def test_service(self, template):
        template.resource_count_is("AWS::ECS::Service", 1)
        template.has_resource_properties(
            "AWS::ECS::Service",
            {
                "Cluster": {"Ref": Match.string_like_regexp("ECScluster")},
                "TaskDefinition": {"Ref": Match.string_like_regexp("TaskDef")},
            },
        )

    def test_outputs(self, template):
        template.has_output("DatabaseEndpoint", {})
        template.has_output("ClusterName", {})


class TestHostingStackContext:
    """Test context overrides."""

    def test_overrides(self):
        app = cdk.App(
            context={
                **_CONTEXT,
                "cluster_name": "Music-Store-Staging",
                "image_tag": "v42",
                "max_azs": 2,
            }
        )
        stack = HostingStack(app)
        template = Template.from_stack(stack)

        template.has_resource_properties(
            "AWS::ECS::Cluster", {"ClusterName": "Music-Store-Staging"}
        )
        task_definition = _only_resource(template, "AWS::ECS::TaskDefinition")
        image = json.dumps(task_definition["Properties"]["ContainerDefinitions"][0]["Image"])
        assert ":v42" in image
        assert stack.max_azs == 2
