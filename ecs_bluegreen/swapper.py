"""
Blue/green traffic swap.

A swap exchanges the host-header conditions of the two listener rules. Each
rule keeps forwarding to its own slot's target group, so the artifacts never
move; only the hostname each target group answers to changes.

The two rule updates cannot be made atomic. Phase one (staging rule takes the
production host) either succeeds or leaves everything untouched. Phase two
(production rule takes the staging host) is retried; if it still fails the
listener has two rules on the production host, which ``SwapIncomplete``
reports and the next topology resolve flags as split state.
"""
import logging
import time

from botocore.exceptions import BotoCoreError, ClientError

from .backends import backend_errors
from .exceptions import SwapIncomplete
from .models import ServiceTopology, SlotInstance

logger = logging.getLogger(__name__)


class TrafficSwapper:
    def __init__(self, config, elbv2_client, sleep=time.sleep):
        self.config = config
        self.elbv2 = elbv2_client
        self.sleep = sleep

    def swap(self, topology: ServiceTopology) -> None:
        staging, production = topology.staging, topology.production

        self.log_rule(staging)
        self.log_rule(production)

        with backend_errors(f"updating rule {staging.rule_name}"):
            self.update_rule(staging.routing_rule_id, production.traffic_host, staging.target_group_id)

        self._finish_swap(production, staging.traffic_host)
        logger.info(f"Swap complete: '{production.traffic_host}' now serves {staging.service_name}")

    def _finish_swap(self, production: SlotInstance, host: str) -> None:
        attempts = self.config.swap_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                self.update_rule(production.routing_rule_id, host, production.target_group_id)
                return
            except (ClientError, BotoCoreError) as e:
                if attempt == attempts:
                    logger.error(
                        f"Rule '{production.rule_name}' could not be updated after {attempts} attempts; "
                        f"both rules now answer to the production host"
                    )
                    raise SwapIncomplete(production.routing_rule_id, host, production.target_group_id, e) from e
                logger.warning(
                    f"Updating rule '{production.rule_name}' failed ({e}), "
                    f"retrying in {self.config.swap_retry_interval_seconds}s ({attempt}/{attempts})"
                )
                self.sleep(self.config.swap_retry_interval_seconds)

    def log_rule(self, slot: SlotInstance) -> None:
        logger.info(
            f"Rule '{slot.rule_name}' uses HostCondition '{slot.traffic_host}' "
            f"and points to target {slot.target_group_name}"
        )

    def update_rule(self, rule_id: str, host: str, target_group_id: str) -> None:
        logger.info(
            f"... updating conditions on rule '{rule_id.split('/')[-1]}' to use HostCondition "
            f"'{host}' and point to target {target_group_id}"
        )
        self.elbv2.modify_rule(
            RuleArn=rule_id,
            Conditions=[{
                "Field": "host-header",
                "HostHeaderConfig": {"Values": [host]},
            }],
            Actions=[{
                "Type": "forward",
                "TargetGroupArn": target_group_id,
            }],
        )
