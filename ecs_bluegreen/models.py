from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class RolloutOutcome(Enum):
    """Result of issuing a deployment to a slot."""
    ISSUED = "issued"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


def _strip_digest(image: str) -> str:
    # repo[:tag]@sha256:<hex>
    return image.partition("@")[0]


def image_tag(image: str) -> str:
    """
    Returns the tag of a container image reference.

    The tag is the text after the last ':', unless that colon belongs to a
    registry port (``host:5000/repo``), in which case the image is untagged
    and resolves to ``latest``. A ``@sha256:...`` digest is not a tag and is
    ignored.
    """
    name, sep, tag = _strip_digest(image).rpartition(":")
    if not sep or "/" in tag:
        return "latest"
    return tag


def image_repository(image: str) -> str:
    """Returns the image reference without its tag or digest."""
    image = _strip_digest(image)
    name, sep, tag = image.rpartition(":")
    if not sep or "/" in tag:
        return image
    return name


def primary_image(artifact: dict) -> str:
    return artifact["containerDefinitions"][0]["image"]


@dataclass(frozen=True)
class SlotInstance:
    """One deployment slot (blue or green) as observed on the backends."""
    service_name: str
    version: str
    traffic_host: str
    load_balancer_id: str
    target_group_id: str
    routing_rule_id: str
    cluster_id: str
    service_id: str
    artifact_id: str
    artifact: dict = field(repr=False, compare=False)
    rollout_state: Optional[str] = None
    rollout_status: Optional[str] = None

    @property
    def instance(self) -> str:
        return self.service_id.split("/")[-1]

    @property
    def revision(self) -> str:
        return self.artifact_id.split(":")[-1]

    @property
    def rule_name(self) -> str:
        return self.routing_rule_id.split("/")[-1]

    @property
    def target_group_name(self) -> str:
        # arn:...:targetgroup/<name>/<id>
        parts = self.target_group_id.split("/")
        return parts[-2] if len(parts) > 1 else parts[-1]

    def to_report(self) -> dict:
        return {
            "url": self.traffic_host,
            "version": self.version,
            "instance": self.instance,
            "revision": self.revision,
        }


@dataclass(frozen=True)
class ServiceTopology:
    """Both slots of the service, keyed by the traffic role they currently serve."""
    production: SlotInstance
    staging: SlotInstance

    def to_report(self) -> dict:
        return {
            "production": self.production.to_report(),
            "staging": self.staging.to_report(),
        }
