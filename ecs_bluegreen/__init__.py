"""Blue/green deployment orchestration for ECS services behind an application load balancer."""

__version__ = "1.0.0"

from .config import ConfigurationError, DeploymentConfig, load_config
from .exceptions import (
    ArtifactCreationFailed,
    BackendUnavailable,
    DeploymentException,
    DeploymentTimeout,
    InvariantViolation,
    PreconditionFailed,
    SplitStateDetected,
    SwapIncomplete,
)
from .models import RolloutOutcome, ServiceTopology, SlotInstance
