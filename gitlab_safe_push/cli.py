"""CLI entry point for gitlab-safe-push."""

import argparse
import asyncio
import logging
import os
import signal
import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from gitlab_safe_push.blocking import BlockingRules
from gitlab_safe_push.config import (
    ConfigError,
    Settings,
    default_config_path,
    load_config_file,
    resolve_settings,
)
from gitlab_safe_push.gate import GateController
from gitlab_safe_push.git import (
    GitError,
    get_current_branch,
    get_remote_url,
    parse_project_path,
    push,
)
from gitlab_safe_push.gitlab.client import PipelineQueryClient
from gitlab_safe_push.models.decision import (
    Abort,
    AbortKind,
    GateDecision,
    Proceed,
    ProceedWithWarning,
)
from gitlab_safe_push.models.ref import PipelineRef
from gitlab_safe_push.policy import WaitPolicy

EXIT_CONFIG_ERROR = 2

ABORT_EXIT_CODES: Mapping[AbortKind, int] = {
    "pipeline_active": 1,
    "unverified": 1,
    "timeout": 124,
    "canceled": 130,
}


def build_wait_policy(settings: Settings, *, wait: bool) -> WaitPolicy:
    """Build the wait policy from resolved settings."""
    return WaitPolicy(
        mode="wait" if wait else "no_wait",
        poll_interval=settings.check_interval,
        max_wait=settings.max_wait,
        fail_open=settings.fail_open,
    )


def build_blocking_rules(settings: Settings) -> BlockingRules:
    """Build blocking rules from resolved settings."""
    return BlockingRules(
        stage=settings.blocking_stage,
        jobs=tuple(settings.blocking_jobs),
        pre_block_duration=settings.pre_block_duration,
        post_block_duration=settings.post_block_duration,
    )


def log_configuration(
    log: logging.Logger, policy: WaitPolicy, rules: BlockingRules
) -> None:
    """Log the effective gate configuration."""
    log.info("⚙️ Configuration:")
    if rules.is_simple:
        log.info("  Mode: Simple (block on any running pipeline)")
    else:
        log.info("  Mode: Advanced")
        if rules.stage:
            log.info("  Blocking stage: %s", rules.stage)
            log.info("  Pre-block duration: %.0fs", rules.pre_block_duration)
            log.info("  Post-block duration: %.0fs", rules.post_block_duration)
        if rules.jobs:
            log.info("  Blocking jobs: %s", ", ".join(rules.jobs))
    log.info("  Check interval: %ds", policy.poll_interval)
    if policy.max_wait is not None:
        log.info("  Max wait: %ds", policy.max_wait)
    if not policy.fail_open:
        log.info("  On GitLab errors: abort")


def install_interrupt_handler(cancel_event: asyncio.Event) -> Callable[[], None]:
    """Turn SIGINT into a cancellation request; return a function undoing it."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except NotImplementedError:
        # Event loops without signal support keep the KeyboardInterrupt default.
        return lambda: None
    return lambda: loop.remove_signal_handler(signal.SIGINT)


async def resolve_ref(cwd: Path | None = None) -> PipelineRef:
    """Derive the project and branch to gate from the local checkout."""
    branch = await get_current_branch(cwd)
    remote_url = await get_remote_url(cwd)

    project_path = parse_project_path(remote_url)
    if project_path is None:
        raise ConfigError(f"Unable to parse GitLab project from remote {remote_url}")

    return PipelineRef(project_id=project_path, ref=branch)


async def run(
    git_args: Sequence[str],
    settings: Settings,
    *,
    wait: bool = True,
    cwd: Path | None = None,
) -> int:
    """Gate the push on pipeline state and return the process exit code."""
    log = logging.getLogger("gitlab_safe_push")

    try:
        policy = build_wait_policy(settings, wait=wait)
        rules = build_blocking_rules(settings)
        ref = await resolve_ref(cwd)
    except (ConfigError, GitError) as e:
        log.error("❌ Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    log.info("📋 Project: %s", ref.project_id)
    log.info("🌿 Branch: %s", ref.ref)
    log_configuration(log, policy, rules)

    cancel_event = asyncio.Event()
    restore = install_interrupt_handler(cancel_event)
    try:
        async with PipelineQueryClient.from_config(settings.gitlab) as client:
            gate = GateController(
                client=client,
                policy=policy,
                rules=rules,
                cancel_event=cancel_event,
            )
            decision = await gate.run(ref)
    finally:
        restore()

    return await apply_decision(log, decision, git_args, cwd)


async def apply_decision(
    log: logging.Logger,
    decision: GateDecision,
    git_args: Sequence[str],
    cwd: Path | None = None,
) -> int:
    """Push or refuse according to the gate decision."""
    match decision:
        case Proceed():
            log.info("✅ Push authorized!")
            return await push(git_args, cwd)
        case ProceedWithWarning(reason=reason):
            log.warning("⚠️ %s", reason)
            log.warning("⚠️ Push authorized with warning")
            return await push(git_args, cwd)
        case Abort(reason=reason, kind=kind):
            log.error("❌ Push cancelled: %s", reason)
            if kind == "pipeline_active":
                log.info("💡 Use --wait to wait for completion")
            return ABORT_EXIT_CODES[kind]


def load_settings(
    args: argparse.Namespace, environ: Mapping[str, str] = os.environ
) -> Settings:
    """Resolve settings from parsed arguments, the environment and config file."""
    overrides: dict[str, Any] = {
        "token": args.token,
        "gitlab_url": args.gitlab_url,
        "check_interval": args.check_interval,
        "max_wait": args.max_wait,
        "blocking_stage": args.blocking_stage,
        "blocking_jobs": args.blocking_jobs,
        "pre_block_duration": args.pre_block_duration,
        "post_block_duration": args.post_block_duration,
        "simple_mode": args.simple_mode,
        "fail_closed": args.fail_closed,
    }
    config_path = args.config or default_config_path()
    return resolve_settings(overrides, environ, load_config_file(config_path))


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="gitlab-safe-push",
        description="Check GitLab pipelines before pushing to prevent breaking CI/CD",
        epilog="Unrecognized arguments are passed to git push.",
        allow_abbrev=False,
    )
    wait_group = parser.add_mutually_exclusive_group()
    wait_group.add_argument(
        "--wait",
        dest="wait",
        action="store_true",
        default=True,
        help="Wait for pipelines to complete before pushing (default)",
    )
    wait_group.add_argument(
        "--no-wait",
        dest="wait",
        action="store_false",
        help="Don't wait, cancel push if pipeline is running",
    )
    parser.add_argument("--token", help="GitLab personal access token")
    parser.add_argument("--gitlab-url", help="GitLab instance URL")
    parser.add_argument(
        "--check-interval",
        type=int,
        help="Check interval in seconds (default: 30)",
    )
    parser.add_argument(
        "--max-wait",
        type=int,
        help="Give up waiting after this many seconds (default: wait forever)",
    )
    parser.add_argument(
        "--blocking-stage",
        help='Stage name that blocks pushes (e.g., "deploy")',
    )
    parser.add_argument(
        "--blocking-jobs",
        help='Job names that block pushes, comma-separated (e.g., "deploy:dev")',
    )
    parser.add_argument(
        "--pre-block-duration",
        type=float,
        help="Seconds before blocking stage to start blocking (default: 15)",
    )
    parser.add_argument(
        "--post-block-duration",
        type=float,
        help="Seconds after blocking stage to resume allowing pushes (default: 5)",
    )
    parser.add_argument(
        "--simple-mode",
        action="store_true",
        default=None,
        help="Block on any running pipeline (default without blocking stage or jobs)",
    )
    parser.add_argument(
        "--fail-closed",
        action="store_true",
        default=None,
        help="Cancel the push when pipelines cannot be checked",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to the JSON config file (default: ~/.gitlab-safe-push-config.json)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse gate options anywhere on the command line.

    Everything the parser does not recognize, options included, is kept in
    order as git_args and passed on to git push.
    """
    args, git_args = build_parser().parse_known_args(argv)
    args.git_args = git_args
    return args


def main() -> None:
    """CLI entry point."""
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        settings = load_settings(args)
    except ConfigError as e:
        logging.getLogger("gitlab_safe_push").error("❌ Configuration error: %s", e)
        sys.exit(EXIT_CONFIG_ERROR)

    exit_code = asyncio.run(run(args.git_args, settings, wait=args.wait))
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
