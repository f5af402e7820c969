"""Shared fixtures: an in-memory ECS / ELBv2 pair that behaves like the real APIs."""
import copy
import logging

import pytest
from botocore.exceptions import ClientError

from ecs_bluegreen.config import DeploymentConfig

ACCOUNT = "123456789012"
REGION = "us-east-1"
CLUSTER_ARN = f"arn:aws:ecs:{REGION}:{ACCOUNT}:cluster/demo"
LB_ARN = f"arn:aws:elasticloadbalancing:{REGION}:{ACCOUNT}:loadbalancer/app/web/50dc6c495c0c9188"
LISTENER_ARN = f"arn:aws:elasticloadbalancing:{REGION}:{ACCOUNT}:listener/app/web/50dc6c495c0c9188/f2f7dc8efc522ab2"
HTTP_LISTENER_ARN = f"arn:aws:elasticloadbalancing:{REGION}:{ACCOUNT}:listener/app/web/50dc6c495c0c9188/0467ef3c8400ae65"
IMAGE_REPO = f"{ACCOUNT}.dkr.ecr.{REGION}.amazonaws.com/web"

PRODUCTION_HOST = "web.example.com"
STAGING_HOST = "staging.web.example.com"


def client_error(code="ThrottlingException", operation="Operation", message="Rate exceeded"):
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def target_group_arn(colour):
    return f"arn:aws:elasticloadbalancing:{REGION}:{ACCOUNT}:targetgroup/web-{colour}/{colour[:3]}9d2e1f0a1b2c"


def rule_arn(colour):
    return (f"arn:aws:elasticloadbalancing:{REGION}:{ACCOUNT}:listener-rule/app/web/"
            f"50dc6c495c0c9188/f2f7dc8efc522ab2/{colour[:3]}83b2d02a6cabee")


def make_task_definition(family, revision, version):
    return {
        "taskDefinitionArn": f"arn:aws:ecs:{REGION}:{ACCOUNT}:task-definition/{family}:{revision}",
        "family": family,
        "revision": revision,
        "status": "ACTIVE",
        "taskRoleArn": f"arn:aws:iam::{ACCOUNT}:role/web-task",
        "executionRoleArn": f"arn:aws:iam::{ACCOUNT}:role/ecsTaskExecutionRole",
        "networkMode": "awsvpc",
        "containerDefinitions": [
            {
                "name": "web",
                "image": f"{IMAGE_REPO}:{version}",
                "cpu": 256,
                "memory": 512,
                "essential": True,
                "portMappings": [{"containerPort": 8080, "protocol": "tcp"}],
                "environment": [
                    {"name": "LOG_LEVEL", "value": "info"},
                    {"name": "AC_SERVICE_VERSION", "value": version},
                ],
                "mountPoints": [{"sourceVolume": "scratch", "containerPath": "/tmp/scratch"}],
            },
            {
                "name": "log-router",
                "image": "public.ecr.aws/aws-observability/aws-for-fluent-bit:2.31.12",
                "essential": False,
            },
        ],
        "volumes": [{"name": "scratch"}],
        "placementConstraints": [],
        "requiresAttributes": [{"name": "com.amazonaws.ecs.capability.task-iam-role"}],
        "compatibilities": ["EC2", "FARGATE"],
        "requiresCompatibilities": ["FARGATE"],
        "cpu": "512",
        "memory": "1024",
        "pidMode": "task",
        "ipcMode": "none",
        "runtimePlatform": {"cpuArchitecture": "X86_64", "operatingSystemFamily": "LINUX"},
        "ephemeralStorage": {"sizeInGiB": 30},
        "registeredBy": f"arn:aws:iam::{ACCOUNT}:user/deployer",
    }


class FakeEcs:
    """
    Minimal stateful stand-in for the boto3 ECS client.

    ``errors`` maps an operation name to a queue of exceptions to raise on
    successive calls; a None entry lets that call through.
    """

    def __init__(self):
        self.services = {}
        self.task_definitions = {}
        self.calls = []
        self.errors = {}
        self.rollout_states = {}

    def _record(self, operation, **kwargs):
        self.calls.append((operation, kwargs))
        queue = self.errors.get(operation)
        if queue:
            error = queue.pop(0)
            if error is not None:
                raise error

    def calls_to(self, operation):
        return [kwargs for op, kwargs in self.calls if op == operation]

    def add_task_definition(self, family, version):
        revision = 1 + sum(1 for t in self.task_definitions.values() if t["family"] == family)
        definition = make_task_definition(family, revision, version)
        self.task_definitions[definition["taskDefinitionArn"]] = definition
        return definition["taskDefinitionArn"]

    def add_service(self, name, task_definition_arn, tg_arn):
        self.services[name] = {
            "serviceName": name,
            "serviceArn": f"arn:aws:ecs:{REGION}:{ACCOUNT}:service/demo/{name}",
            "clusterArn": CLUSTER_ARN,
            "taskDefinition": task_definition_arn,
            "loadBalancers": [{"targetGroupArn": tg_arn, "containerName": "web", "containerPort": 8080}],
            "deployments": [{
                "id": f"ecs-svc/{len(self.services) + 1}",
                "status": "PRIMARY",
                "taskDefinition": task_definition_arn,
                "rolloutState": "COMPLETED",
            }],
        }

    def _find_service(self, key):
        for service in self.services.values():
            if key in (service["serviceName"], service["serviceArn"]):
                return service
        return None

    def describe_services(self, cluster, services):
        self._record("describe_services", cluster=cluster, services=services)
        found, failures = [], []
        for key in services:
            service = self._find_service(key)
            if service is None:
                failures.append({"arn": key, "reason": "MISSING"})
                continue
            service = copy.deepcopy(service)
            states = self.rollout_states.get(service["serviceName"])
            if states:
                state = states.pop(0) if len(states) > 1 else states[0]
                service["deployments"][0]["rolloutState"] = state
            found.append(service)
        return {"services": found, "failures": failures}

    def describe_task_definition(self, taskDefinition):
        self._record("describe_task_definition", taskDefinition=taskDefinition)
        return {"taskDefinition": copy.deepcopy(self.task_definitions[taskDefinition])}

    def list_task_definitions(self, familyPrefix, sort="ASC", maxResults=100):
        self._record("list_task_definitions", familyPrefix=familyPrefix, sort=sort, maxResults=maxResults)
        matching = [t for t in self.task_definitions.values() if t["family"].startswith(familyPrefix)]
        matching.sort(key=lambda t: t["revision"], reverse=(sort == "DESC"))
        return {"taskDefinitionArns": [t["taskDefinitionArn"] for t in matching][:maxResults]}

    def register_task_definition(self, **kwargs):
        self._record("register_task_definition", **copy.deepcopy(kwargs))
        family = kwargs["family"]
        revision = 1 + sum(1 for t in self.task_definitions.values() if t["family"] == family)
        definition = copy.deepcopy(kwargs)
        definition.update({
            "taskDefinitionArn": f"arn:aws:ecs:{REGION}:{ACCOUNT}:task-definition/{family}:{revision}",
            "revision": revision,
            "status": "ACTIVE",
        })
        self.task_definitions[definition["taskDefinitionArn"]] = definition
        return {"taskDefinition": copy.deepcopy(definition)}

    def update_service(self, cluster, service, taskDefinition):
        self._record("update_service", cluster=cluster, service=service, taskDefinition=taskDefinition)
        target = self._find_service(service)
        target["taskDefinition"] = taskDefinition
        target["deployments"][0].update({"taskDefinition": taskDefinition, "rolloutState": "IN_PROGRESS"})
        return {"service": copy.deepcopy(target)}


class FakeElb:
    """Minimal stateful stand-in for the boto3 ELBv2 client."""

    def __init__(self):
        self.target_groups = {}
        self.listeners = {LB_ARN: []}
        self.rules = {}
        self.calls = []
        self.errors = {}

    def _record(self, operation, **kwargs):
        self.calls.append((operation, kwargs))
        queue = self.errors.get(operation)
        if queue:
            error = queue.pop(0)
            if error is not None:
                raise error

    def calls_to(self, operation):
        return [kwargs for op, kwargs in self.calls if op == operation]

    def add_listener(self, listener_arn, port):
        self.listeners[LB_ARN].append({"ListenerArn": listener_arn, "LoadBalancerArn": LB_ARN, "Port": port})
        self.rules[listener_arn] = [{
            "RuleArn": f"{listener_arn.replace(':listener/', ':listener-rule/')}/default",
            "Priority": "default",
            "Conditions": [],
            "Actions": [{"Type": "fixed-response", "FixedResponseConfig": {"StatusCode": "404"}}],
            "IsDefault": True,
        }]

    def add_rule(self, listener_arn, arn, host, tg_arn, priority):
        self.target_groups.setdefault(tg_arn, {"TargetGroupArn": tg_arn, "LoadBalancerArns": [LB_ARN]})
        self.rules[listener_arn].insert(len(self.rules[listener_arn]) - 1, {
            "RuleArn": arn,
            "Priority": str(priority),
            "Conditions": [{"Field": "host-header", "Values": [host], "HostHeaderConfig": {"Values": [host]}}],
            "Actions": [{"Type": "forward", "TargetGroupArn": tg_arn, "Order": 1}],
            "IsDefault": False,
        })

    def rule(self, arn):
        for rules in self.rules.values():
            for rule in rules:
                if rule["RuleArn"] == arn:
                    return rule
        raise KeyError(arn)

    def routing(self):
        """Snapshot of host and target group per rule, for comparing before and after."""
        return {
            rule["RuleArn"]: (rule["Conditions"][0]["HostHeaderConfig"]["Values"][0], rule["Actions"][0]["TargetGroupArn"])
            for rules in self.rules.values() for rule in rules if not rule["IsDefault"]
        }

    def describe_target_groups(self, TargetGroupArns):
        self._record("describe_target_groups", TargetGroupArns=TargetGroupArns)
        return {"TargetGroups": [copy.deepcopy(self.target_groups[arn]) for arn in TargetGroupArns]}

    def describe_listeners(self, LoadBalancerArn):
        self._record("describe_listeners", LoadBalancerArn=LoadBalancerArn)
        return {"Listeners": copy.deepcopy(self.listeners[LoadBalancerArn])}

    def describe_rules(self, ListenerArn):
        self._record("describe_rules", ListenerArn=ListenerArn)
        return {"Rules": copy.deepcopy(self.rules[ListenerArn])}

    def modify_rule(self, RuleArn, Conditions, Actions):
        self._record("modify_rule", RuleArn=RuleArn, Conditions=Conditions, Actions=Actions)
        rule = self.rule(RuleArn)
        rule["Conditions"] = copy.deepcopy(Conditions)
        rule["Actions"] = copy.deepcopy(Actions)
        return {"Rules": [copy.deepcopy(rule)]}


class FakeAws:
    def __init__(self, ecs, elbv2):
        self.ecs = ecs
        self.elbv2 = elbv2


def build_aws(production="v1.0", staging="v1.1", production_colour="green", history=()):
    """
    Builds a consistent blue/green setup.

    ``history`` lists versions registered before the two live ones, oldest first.
    """
    ecs, elbv2 = FakeEcs(), FakeElb()
    for version in history:
        ecs.add_task_definition("web", version)
    production_td = ecs.add_task_definition("web", production)
    staging_td = ecs.add_task_definition("web", staging)

    staging_colour = "blue" if production_colour == "green" else "green"
    elbv2.add_listener(HTTP_LISTENER_ARN, 80)
    elbv2.add_listener(LISTENER_ARN, 443)
    elbv2.add_rule(LISTENER_ARN, rule_arn(production_colour), PRODUCTION_HOST, target_group_arn(production_colour), 10)
    elbv2.add_rule(LISTENER_ARN, rule_arn(staging_colour), STAGING_HOST, target_group_arn(staging_colour), 20)

    ecs.add_service(f"web-{production_colour}", production_td, target_group_arn(production_colour))
    ecs.add_service(f"web-{staging_colour}", staging_td, target_group_arn(staging_colour))
    return FakeAws(ecs, elbv2)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """setup_logging detaches the package logger from root; undo it so caplog keeps working."""
    yield
    logger = logging.getLogger("ecs_bluegreen")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def config():
    return DeploymentConfig(
        service_name="web",
        listener_port=443,
        region=REGION,
        cluster="demo",
        production_url=PRODUCTION_HOST,
        staging_url=STAGING_HOST,
        production_health_check_url=f"https://{PRODUCTION_HOST}/health",
        swap_retry_interval_seconds=0,
    )


@pytest.fixture
def aws():
    return build_aws()


@pytest.fixture
def aws_factory():
    return build_aws


class FakeClock:
    """Replaces time.sleep; accumulates simulated seconds."""

    def __init__(self):
        self.elapsed = 0.0
        self.sleeps = []

    def __call__(self, seconds):
        self.sleeps.append(seconds)
        self.elapsed += seconds


@pytest.fixture
def clock():
    return FakeClock()
