"""
Named blue/green commands.

Every command resolves the topology first and then checks its preconditions
in a fixed order. The first failing check raises ``PreconditionFailed`` with
its condition name before anything is changed.
"""
import logging
from typing import Optional

from .exceptions import PreconditionFailed
from .health import HealthReport, check_health
from .models import RolloutOutcome, ServiceTopology

logger = logging.getLogger(__name__)


class DeploymentWorkflow:
    def __init__(self, config, resolver, artifacts, executor, swapper, http_session=None):
        self.config = config
        self.resolver = resolver
        self.artifacts = artifacts
        self.executor = executor
        self.swapper = swapper
        self.http_session = http_session

    def status(self) -> ServiceTopology:
        return self.resolver.resolve()

    def version_search(self, version: str, depth: Optional[int] = None) -> Optional[str]:
        if depth is None:
            depth = self.config.version_search_depth
        arn = self.artifacts.find_matching(version, depth)
        if arn:
            logger.info(f"Version {version} exists in {arn}")
        else:
            logger.info(f"Cannot find version {version}")
        return arn

    def stage_ensure(self, version: str) -> RolloutOutcome:
        """Brings staging up to the production version without waiting."""
        topology = self.resolver.resolve()
        production, staging = topology.production, topology.staging

        if production.version != version:
            raise PreconditionFailed(
                "VersionMismatch",
                f"{version} is not deployed to production, {production.version} is instead",
            )
        if staging.version == version:
            raise PreconditionFailed(
                "StagingIsCurrent",
                f"{staging.version} already deployed to staging: nothing to update",
            )

        logger.info(f"StagingOutdated: updating staging from {staging.version} to {version}...")
        return self.executor.deploy(staging, version, wait_for_completion=False)

    def stage_deploy(self, version: str) -> RolloutOutcome:
        topology = self.resolver.resolve()
        staging = topology.staging

        if staging.version == version:
            raise PreconditionFailed(
                "StagingIsCurrent",
                f"{staging.version} already deployed to staging: nothing to update",
            )

        logger.info(f"Deploy: updating staging from {staging.version} to {version}...")
        return self.executor.deploy(staging, version)

    def prod_deploy(self, version: str) -> RolloutOutcome:
        topology = self.resolver.resolve()
        production = topology.production

        if production.version == version:
            raise PreconditionFailed(
                "ProdIsCurrent",
                f"{production.version} already deployed to production: nothing to update",
            )

        logger.warning("Deploying straight to production bypasses staging; do not use this in a pipeline")
        logger.info(f"Deploy: updating production from {production.version} to {version}...")
        return self.executor.deploy(production, version)

    def swap(self) -> ServiceTopology:
        topology = self.resolver.resolve()
        production, staging = topology.production, topology.staging

        if staging.version == production.version:
            raise PreconditionFailed(
                "SwapIsNoop",
                f"production and staging are both on {production.version}: "
                f"blue/green swap will not change anything",
            )

        logger.info(
            f"Swap: swapping slots: production will now be on {staging.version}, "
            f"staging on {production.version}"
        )
        self.swapper.swap(topology)
        return topology

    def rollback(self, version: str) -> ServiceTopology:
        """Swaps back to the version still running in staging."""
        topology = self.resolver.resolve()
        production, staging = topology.production, topology.staging

        if version == production.version:
            raise PreconditionFailed(
                "Matched",
                f"production already on {production.version}: nothing to update",
            )
        if staging.version == production.version:
            raise PreconditionFailed(
                "RollbackIsNoop",
                f"production and staging are both on {production.version}: "
                f"rollback will not change anything",
            )
        if staging.version != version:
            raise PreconditionFailed(
                "VersionMismatch",
                f"staging is not on {version}: cannot rollback to desired version",
            )

        logger.info(
            f"Rollback: swapping slots: production will now be on {staging.version}, "
            f"staging on {production.version}"
        )
        self.swapper.swap(topology)
        return topology

    def health(self) -> HealthReport:
        report = check_health(
            self.config.production_health_check_url,
            self.config.health_check_timeout_seconds,
            session=self.http_session,
        )
        if not report.healthy:
            detail = report.error or f"HTTP {report.status_code}"
            raise PreconditionFailed(
                "ProdUnhealthy",
                f"{self.config.production_health_check_url} is not healthy: {detail}",
            )
        return report
