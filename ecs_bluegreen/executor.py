import logging
import time

from .backends import backend_errors
from .exceptions import DeploymentTimeout
from .models import RolloutOutcome, SlotInstance
from .topology import primary_deployment

logger = logging.getLogger(__name__)

ROLLOUT_COMPLETED = "COMPLETED"
ROLLOUT_FAILED = "FAILED"


class DeploymentExecutor:
    """Points a slot's ECS service at a task definition and watches the rollout."""

    def __init__(self, config, ecs_client, artifacts, sleep=time.sleep):
        self.config = config
        self.ecs = ecs_client
        self.artifacts = artifacts
        self.sleep = sleep

    def resolve_artifact(self, slot: SlotInstance, version: str) -> str:
        """Reuses a recent revision tagged ``version`` or clones the slot's current one."""
        arn = self.artifacts.find_matching(version, self.config.deploy_search_depth)
        if arn:
            logger.info(f"... reusing existing revision {arn.split(':')[-1]} for version '{version}'")
            return arn
        return self.artifacts.clone_with_version(slot.artifact, version)

    def deploy(self, slot: SlotInstance, version: str, wait_for_completion: bool = True) -> RolloutOutcome:
        """
        Updates the slot's service to run ``version``.

        A rollout that does not complete within the polling budget is only a
        warning: the update call itself succeeded and ECS keeps rolling out.
        No rollback is attempted in any case.
        """
        arn = self.resolve_artifact(slot, version)

        logger.info(f"... deploying revision {arn.split(':')[-1]} to service '{slot.service_id}'")
        with backend_errors(f"updating service {slot.service_name}"):
            self.ecs.update_service(
                cluster=slot.cluster_id,
                service=slot.service_id,
                taskDefinition=arn,
            )

        if not wait_for_completion:
            logger.info("Deployment issued, not waiting for completion")
            return RolloutOutcome.ISSUED

        try:
            outcome = self.wait_for_rollout(slot)
        except DeploymentTimeout as e:
            logger.warning(f"Deployment timed out: {e}. The update was issued; check the service before acting.")
            return RolloutOutcome.TIMED_OUT

        if outcome is RolloutOutcome.COMPLETED:
            logger.info("Deployment complete")
        else:
            logger.error(f"Deployment of '{version}' to {slot.service_name} reported rollout FAILED")
        return outcome

    def wait_for_rollout(self, slot: SlotInstance) -> RolloutOutcome:
        """
        Polls the service until its primary deployment finishes.

        Raises:
            DeploymentTimeout: after ``max_poll_attempts`` checks without a
                terminal rollout state.
        """
        attempts = self.config.max_poll_attempts
        interval = self.config.poll_interval_seconds

        for attempt in range(1, attempts + 1):
            with backend_errors(f"describing service {slot.service_name}"):
                response = self.ecs.describe_services(cluster=slot.cluster_id, services=[slot.service_id])
            services = response.get("services", [])
            state = primary_deployment(services[0]).get("rolloutState") if services else None

            if state == ROLLOUT_COMPLETED:
                return RolloutOutcome.COMPLETED
            if state == ROLLOUT_FAILED:
                return RolloutOutcome.FAILED

            logger.debug(f"Rollout of {slot.service_name} is {state} (check {attempt}/{attempts})")
            self.sleep(interval)

        raise DeploymentTimeout(slot.service_id, attempts, interval)
