"""
Command-line entry point.

    ecs-bluegreen status
    ecs-bluegreen stage-deploy v1.1
    ecs-bluegreen swap
    ecs-bluegreen rollback v1.0

Settings come from ``AC_*`` environment variables, optionally layered over a
YAML file given with ``--config``.
"""
import argparse
import json
import logging
import sys

from . import __version__
from .artifacts import MAX_SEARCH_DEPTH, ArtifactResolver
from .backends import create_clients
from .config import ConfigurationError, load_config
from .exceptions import DeploymentException
from .executor import DeploymentExecutor
from .logging_setup import setup_logging
from .models import RolloutOutcome
from .swapper import TrafficSwapper
from .topology import TopologyResolver
from .workflow import DeploymentWorkflow

logger = logging.getLogger(__name__)


def search_depth(value: str) -> int:
    """argparse type for --depth: an integer between 1 and the ListTaskDefinitions page size."""
    try:
        depth = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid depth: {value!r}")
    if not 1 <= depth <= MAX_SEARCH_DEPTH:
        raise argparse.ArgumentTypeError(f"must be between 1 and {MAX_SEARCH_DEPTH}, got {depth}")
    return depth


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ecs-bluegreen",
        description="Blue/green deployments of an ECS service behind an application load balancer.",
    )
    parser.add_argument("--config", help="YAML file with settings; AC_* environment variables override it")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Logging verbosity (default: AC_LOG_LEVEL or INFO)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    subparsers.add_parser("status", help="Print production and staging slots as JSON")

    search = subparsers.add_parser("version-search", help="Look for a task definition running a version")
    search.add_argument("version", help="Image tag to look for")
    search.add_argument("--depth", type=search_depth, help="Number of recent revisions to inspect")

    ensure = subparsers.add_parser("stage-ensure", help="Bring staging up to the production version, no wait")
    ensure.add_argument("version", help="Version currently in production")

    stage = subparsers.add_parser("stage-deploy", help="Deploy a version to staging and wait")
    stage.add_argument("version", help="Image tag to deploy")

    prod = subparsers.add_parser("prod-deploy", help="Deploy a version straight to production and wait")
    prod.add_argument("version", help="Image tag to deploy")

    subparsers.add_parser("swap", help="Swap production and staging traffic")

    rollback = subparsers.add_parser("rollback", help="Swap back to the version running in staging")
    rollback.add_argument("version", help="Version to roll production back to")

    subparsers.add_parser("health", help="Probe the production health-check URL")

    return parser


def build_workflow(config, ecs_client=None, elbv2_client=None) -> DeploymentWorkflow:
    if ecs_client is None or elbv2_client is None:
        ecs_client, elbv2_client = create_clients(config)
    artifacts = ArtifactResolver(config, ecs_client)
    return DeploymentWorkflow(
        config,
        resolver=TopologyResolver(config, ecs_client, elbv2_client),
        artifacts=artifacts,
        executor=DeploymentExecutor(config, ecs_client, artifacts),
        swapper=TrafficSwapper(config, elbv2_client),
    )


def run_command(workflow: DeploymentWorkflow, args) -> int:
    """Dispatches one command and returns the process exit code."""
    command = args.command

    if command == "status":
        print(json.dumps(workflow.status().to_report(), indent=2))
    elif command == "version-search":
        arn = workflow.version_search(args.version, args.depth)
        if arn:
            print(f"Version {args.version} exists in {arn}")
        else:
            print(f"Cannot find version {args.version}")
    elif command == "stage-ensure":
        return _outcome_code(workflow.stage_ensure(args.version))
    elif command == "stage-deploy":
        return _outcome_code(workflow.stage_deploy(args.version))
    elif command == "prod-deploy":
        return _outcome_code(workflow.prod_deploy(args.version))
    elif command == "swap":
        workflow.swap()
    elif command == "rollback":
        workflow.rollback(args.version)
    elif command == "health":
        print(json.dumps(workflow.health().to_dict(), indent=2))
    else:
        raise ValueError(f"unknown command: {command}")
    return 0


def _outcome_code(outcome: RolloutOutcome) -> int:
    if outcome is RolloutOutcome.FAILED:
        print("RolloutFailed: the service update was issued but its rollout failed", file=sys.stderr)
        return 1
    return 0


def main(argv=None, workflow=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level or "INFO")

    try:
        config = load_config(args.config, overrides={"log_level": args.log_level})
        setup_logging(config.log_level)
        if workflow is None:
            workflow = build_workflow(config)
        return run_command(workflow, args)
    except ConfigurationError as e:
        print(f"{e.condition}: {e}", file=sys.stderr)
        return 1
    except DeploymentException as e:
        print(f"{e.condition}: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted by user; a swap in progress may have left split state, run status")
        return 130


def entrypoint():
    sys.exit(main())


if __name__ == "__main__":
    entrypoint()
