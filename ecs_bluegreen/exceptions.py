"""
Error taxonomy for blue/green deployment operations.

Every error carries a ``condition`` name. The CLI prints it as the leading
token of the error line so scripts can branch on it.
"""


class DeploymentException(Exception):
    """Base class for all blue/green deployment errors."""

    condition = "Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BackendUnavailable(DeploymentException):
    """A call to ECS or the load balancer API failed (network, auth, throttling)."""

    condition = "BackendUnavailable"

    def __init__(self, action: str, cause: Exception):
        super().__init__(f"{action} failed: {cause}")
        self.action = action
        self.cause = cause


class InvariantViolation(DeploymentException):
    """The resolved topology does not hold exactly one production and one staging slot."""

    condition = "InvariantViolation"


class SplitStateDetected(InvariantViolation):
    """Both slots answer the same hostname, usually after an interrupted swap."""

    condition = "SplitStateDetected"

    def __init__(self, host: str, rule_ids: list):
        rules = ", ".join(rule_ids)
        super().__init__(
            f"rules {rules} all use host '{host}'. A previous swap did not finish: "
            f"set the host-header of the rule forwarding to the old production target group "
            f"to the staging hostname, then run status to confirm. The swap command refuses to run until then"
        )
        self.host = host
        self.rule_ids = rule_ids


class PreconditionFailed(DeploymentException):
    """A named workflow precondition did not hold; nothing was changed."""

    def __init__(self, condition: str, message: str):
        super().__init__(message)
        self.condition = condition


class ArtifactCreationFailed(DeploymentException):
    """ECS rejected a cloned task definition."""

    condition = "ArtifactCreationFailed"


class DeploymentTimeout(DeploymentException):
    """The rollout did not reach COMPLETED within the polling budget.

    The service update itself was accepted, so this is reported as a warning
    by the executor and never as a failed deployment.
    """

    condition = "DeploymentTimeout"

    def __init__(self, service_id: str, attempts: int, interval: float):
        super().__init__(
            f"rollout of '{service_id}' not completed after {attempts} checks "
            f"({attempts * interval:.0f}s)"
        )
        self.service_id = service_id
        self.attempts = attempts


class SwapIncomplete(DeploymentException):
    """The staging rule was switched but the production rule could not be updated."""

    condition = "SwapIncomplete"

    def __init__(self, rule_id: str, host: str, target_group_id: str, cause: Exception):
        super().__init__(
            f"rule '{rule_id}' still needs host-header '{host}' forwarding to '{target_group_id}': {cause}"
        )
        self.rule_id = rule_id
        self.host = host
        self.target_group_id = target_group_id
        self.cause = cause
