import copy
import logging
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from .backends import backend_errors, error_code
from .exceptions import ArtifactCreationFailed, BackendUnavailable
from .models import image_repository, image_tag, primary_image

logger = logging.getLogger(__name__)

# Task definition fields accepted by RegisterTaskDefinition.
REGISTERABLE_FIELDS = (
    "taskRoleArn",
    "executionRoleArn",
    "networkMode",
    "containerDefinitions",
    "volumes",
    "placementConstraints",
    "requiresCompatibilities",
    "cpu",
    "memory",
    "pidMode",
    "ipcMode",
    "proxyConfiguration",
    "inferenceAccelerators",
    "ephemeralStorage",
    "runtimePlatform",
)

# Error codes meaning the definition itself is malformed; retrying cannot help.
REJECTION_CODES = ("ClientException", "InvalidParameterException")

MAX_SEARCH_DEPTH = 100


class ArtifactResolver:
    """Finds or creates the task definition revision for a version."""

    def __init__(self, config, ecs_client):
        self.config = config
        self.ecs = ecs_client

    def find_matching(self, version: str, max_depth: int) -> Optional[str]:
        """
        Searches the newest ``max_depth`` revisions of the task family.

        Returns:
            The ARN of the first revision whose primary image tag equals
            ``version``, or None. Older revisions beyond the depth are not
            inspected even if one of them matches.
        """
        if not 1 <= max_depth <= MAX_SEARCH_DEPTH:
            raise ValueError(f"max_depth must be between 1 and {MAX_SEARCH_DEPTH}, got {max_depth}")

        family = self.config.task_family
        with backend_errors(f"listing task definitions of family '{family}'"):
            response = self.ecs.list_task_definitions(
                familyPrefix=family, sort="DESC", maxResults=max_depth
            )

        for arn in response.get("taskDefinitionArns", [])[:max_depth]:
            with backend_errors(f"describing task definition {arn}"):
                artifact = self.ecs.describe_task_definition(taskDefinition=arn)["taskDefinition"]
            if image_tag(primary_image(artifact)) == version:
                logger.debug(f"Version {version} found in {arn}")
                return arn

        logger.debug(f"Version {version} not found in the last {max_depth} revisions of '{family}'")
        return None

    def build_definition(self, base_artifact: dict, version: str) -> dict:
        """Returns registration parameters for ``base_artifact`` retagged to ``version``."""
        definition = {"family": self.config.task_family}
        for key in REGISTERABLE_FIELDS:
            if base_artifact.get(key) is not None:
                definition[key] = copy.deepcopy(base_artifact[key])
        if "requiresCompatibilities" not in definition and base_artifact.get("compatibilities"):
            definition["requiresCompatibilities"] = list(base_artifact["compatibilities"])

        container = definition["containerDefinitions"][0]
        container["image"] = f"{image_repository(container['image'])}:{version}"

        env_name = self.config.version_env_var
        environment = [e for e in container.get("environment", []) if e.get("name") != env_name]
        environment.append({"name": env_name, "value": version})
        container["environment"] = environment
        return definition

    def clone_with_version(self, base_artifact: dict, version: str) -> str:
        """
        Registers a new revision copied from ``base_artifact`` with the image
        tag and version variable set to ``version``.

        Raises:
            ArtifactCreationFailed: if ECS rejects the definition.
            BackendUnavailable: for any other backend failure.
        """
        definition = self.build_definition(base_artifact, version)
        logger.info(
            f"... adding new version '{version}' to task '{base_artifact.get('taskDefinitionArn')}'"
        )
        try:
            response = self.ecs.register_task_definition(**definition)
        except ClientError as e:
            if error_code(e) in REJECTION_CODES:
                raise ArtifactCreationFailed(
                    f"task definition for version '{version}' rejected: {e}"
                ) from e
            raise BackendUnavailable(f"registering task definition for version '{version}'", e) from e
        except BotoCoreError as e:
            raise BackendUnavailable(f"registering task definition for version '{version}'", e) from e

        arn = response["taskDefinition"]["taskDefinitionArn"]
        logger.info(f"... registered {arn}")
        return arn
