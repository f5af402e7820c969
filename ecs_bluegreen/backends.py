"""
AWS client construction and error translation.

The core talks to two remote APIs: ECS (services, task definitions,
deployments) and ELBv2 (target groups, listeners, rules). Components receive
the clients explicitly so tests can hand them in-memory fakes.
"""
import logging
from contextlib import contextmanager

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import BackendUnavailable

logger = logging.getLogger(__name__)

# The SDK retries throttling on its own; the core never retries a failed call.
CLIENT_CONFIG = Config(retries={"max_attempts": 3, "mode": "standard"})


def create_clients(config, session=None):
    """
    Builds the ECS and ELBv2 clients for the configured region.

    Returns:
        tuple: (ecs_client, elbv2_client)
    """
    session = session or boto3.session.Session(region_name=config.region)
    logger.debug(f"Creating ECS and ELBv2 clients in {config.region}")
    ecs = session.client("ecs", region_name=config.region, config=CLIENT_CONFIG)
    elbv2 = session.client("elbv2", region_name=config.region, config=CLIENT_CONFIG)
    return ecs, elbv2


def error_code(error: Exception) -> str:
    """Returns the AWS error code of a ClientError, or an empty string."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code", "")
    return ""


@contextmanager
def backend_errors(action: str):
    """Translates botocore failures raised inside the block into BackendUnavailable."""
    try:
        yield
    except (ClientError, BotoCoreError) as e:
        logger.debug(f"Backend call failed while {action}: {e}")
        raise BackendUnavailable(action, e) from e
