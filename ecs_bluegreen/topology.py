"""
Resolves the live blue/green topology from ECS and the load balancer.

Each slot is found by the ``<service>-green`` / ``<service>-blue`` naming
convention. Its role is whatever host its listener rule answers to; the
resolver never remembers roles between calls.
"""
import logging
from typing import List, Optional

from .backends import backend_errors
from .exceptions import InvariantViolation, SplitStateDetected
from .models import ServiceTopology, SlotInstance, image_tag, primary_image

logger = logging.getLogger(__name__)


def rule_forwards_to(rule: dict, target_group_id: str) -> bool:
    """True if any forward action of the rule targets the given target group."""
    for action in rule.get("Actions", []):
        if action.get("Type", "forward") != "forward":
            continue
        if action.get("TargetGroupArn") == target_group_id:
            return True
        for weighted in action.get("ForwardConfig", {}).get("TargetGroups", []):
            if weighted.get("TargetGroupArn") == target_group_id:
                return True
    return False


def rule_host(rule: dict) -> Optional[str]:
    """Returns the first host-header value of a rule, if it has one."""
    for condition in rule.get("Conditions", []):
        if condition.get("Field") != "host-header":
            continue
        values = condition.get("HostHeaderConfig", {}).get("Values") or condition.get("Values") or []
        if values:
            return values[0]
    return None


def primary_deployment(service: dict) -> dict:
    deployments = service.get("deployments", [])
    for deployment in deployments:
        if deployment.get("status") == "PRIMARY":
            return deployment
    return deployments[0] if deployments else {}


class TopologyResolver:
    def __init__(self, config, ecs_client, elbv2_client):
        self.config = config
        self.ecs = ecs_client
        self.elbv2 = elbv2_client

    def resolve(self) -> ServiceTopology:
        """
        Builds the current production/staging view of both slots.

        Raises:
            BackendUnavailable: if any ECS or ELBv2 call fails.
            InvariantViolation: if the slots cannot be resolved, or the hosts do
                not give exactly one production and one staging slot.
        """
        names = self.config.slot_service_names
        with backend_errors(f"describing services {', '.join(names)}"):
            response = self.ecs.describe_services(cluster=self.config.cluster, services=names)

        services = response.get("services", [])
        for failure in response.get("failures", []):
            logger.error(f"Service lookup failed for {failure.get('arn')}: {failure.get('reason')}")
        if len(services) < 2:
            found = ", ".join(s.get("serviceName", "?") for s in services) or "none"
            raise InvariantViolation(
                f"expected services {', '.join(names)} in cluster '{self.config.cluster}', found {found}"
            )

        slots = [self._resolve_slot(service) for service in services]
        return self._classify(slots)

    def _resolve_slot(self, service: dict) -> SlotInstance:
        service_name = service["serviceName"]

        with backend_errors(f"describing task definition of {service_name}"):
            artifact = self.ecs.describe_task_definition(
                taskDefinition=service["taskDefinition"]
            )["taskDefinition"]

        load_balancers = service.get("loadBalancers", [])
        if not load_balancers or not load_balancers[0].get("targetGroupArn"):
            raise InvariantViolation(f"service '{service_name}' is not bound to a target group")
        target_group_id = load_balancers[0]["targetGroupArn"]

        with backend_errors(f"describing target group {target_group_id}"):
            target_group = self.elbv2.describe_target_groups(
                TargetGroupArns=[target_group_id]
            )["TargetGroups"][0]
        if not target_group.get("LoadBalancerArns"):
            raise InvariantViolation(f"target group '{target_group_id}' is not attached to a load balancer")
        load_balancer_id = target_group["LoadBalancerArns"][0]

        with backend_errors(f"describing listeners of {load_balancer_id}"):
            listeners = self.elbv2.describe_listeners(LoadBalancerArn=load_balancer_id)["Listeners"]
        listener = next((l for l in listeners if l.get("Port") == self.config.listener_port), None)
        if listener is None:
            raise InvariantViolation(
                f"load balancer '{load_balancer_id}' has no listener on port {self.config.listener_port}"
            )

        with backend_errors(f"describing rules of {listener['ListenerArn']}"):
            rules = self.elbv2.describe_rules(ListenerArn=listener["ListenerArn"])["Rules"]
        # First match wins; duplicate rules for one target group are not tie-broken.
        rule = next((r for r in rules if rule_forwards_to(r, target_group_id)), None)
        if rule is None:
            raise InvariantViolation(
                f"no rule on listener port {self.config.listener_port} forwards to '{target_group_id}'"
            )
        host = rule_host(rule)
        if host is None:
            raise InvariantViolation(f"rule '{rule['RuleArn']}' has no host-header condition")

        deployment = primary_deployment(service)
        slot = SlotInstance(
            service_name=service_name,
            version=image_tag(primary_image(artifact)),
            traffic_host=host,
            load_balancer_id=load_balancer_id,
            target_group_id=target_group_id,
            routing_rule_id=rule["RuleArn"],
            cluster_id=service["clusterArn"],
            service_id=service["serviceArn"],
            artifact_id=artifact["taskDefinitionArn"],
            artifact=artifact,
            rollout_state=deployment.get("rolloutState"),
            rollout_status=deployment.get("status"),
        )
        logger.debug(f"Resolved {service_name}: version={slot.version} host={host} revision={slot.revision}")
        return slot

    def _classify(self, slots: List[SlotInstance]) -> ServiceTopology:
        production = [s for s in slots if s.traffic_host == self.config.production_url]
        staging = [s for s in slots if s.traffic_host == self.config.staging_url]

        if len(production) == 1 and len(staging) == 1:
            return ServiceTopology(production=production[0], staging=staging[0])

        # an interrupted swap leaves both rules on the production host
        if len(production) > 1:
            raise SplitStateDetected(self.config.production_url, [s.routing_rule_id for s in production])

        summary = ", ".join(f"{s.service_name}={s.traffic_host}" for s in slots)
        raise InvariantViolation(
            f"expected one slot on '{self.config.production_url}' and one on "
            f"'{self.config.staging_url}', found {summary}"
        )
