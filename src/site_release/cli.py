"""Command-line interface for site-release."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Optional

from .config import AppConfig, load_config
from .errors import ConfigurationError
from .utils.logging import configure_logging, get_logger
from .workflow import INFRA_COMMANDS, ReleaseWorkflow

logger = get_logger(__name__)

_EPILOG = """\
Environment Variables:
  S3_BUCKET                    S3 bucket name for hosting
  CLOUDFRONT_DISTRIBUTION_ID   CloudFront distribution ID for cache invalidation
  AWS_REGION                   AWS region (default: us-east-1)
  SITE_URL                     Primary site URL to health check
  S3_URL                       S3 website URL to health check (optional)
"""


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {number}")
    return number


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="site-release",
        description="Provision, publish and verify a static site.",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", default=False,
        help="Show detailed output",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )

    # 子命令也接受 -v；SUPPRESS 避免覆盖全局选项的值
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--verbose", "-v", action="store_true", default=argparse.SUPPRESS,
        help="Show detailed output",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # infra 子命令 - 基础设施生命周期
    infra_parser = subparsers.add_parser(
        "infra", parents=[common], help="Manage infrastructure with OpenTofu"
    )
    infra_parser.add_argument("action", choices=INFRA_COMMANDS, help="Lifecycle command to run")
    infra_parser.add_argument(
        "--auto-approve", action="store_true",
        help="Skip interactive approval prompts",
    )
    infra_parser.add_argument(
        "--dry-run", action="store_true",
        help="For apply, run plan instead",
    )

    # deploy 子命令 - 同步站点并刷新 CDN
    deploy_parser = subparsers.add_parser(
        "deploy", parents=[common], help="Upload the built site and invalidate the CDN"
    )
    deploy_parser.add_argument(
        "--dry-run", action="store_true",
        help="Show what would be deployed without actually doing it",
    )
    deploy_parser.add_argument(
        "--build-dir", type=str, default=None,
        help="Directory holding the built site (default: site/dist)",
    )
    deploy_parser.add_argument(
        "--from-infra", action="store_true",
        help="Read bucket and distribution from the infrastructure outputs first",
    )

    # health 子命令 - 上线后检查
    health_parser = subparsers.add_parser(
        "health", parents=[common], help="Check that the live site responds"
    )
    health_parser.add_argument(
        "--url", action="append", dest="urls", default=None,
        help="URL to check (repeatable, overrides SITE_URL/S3_URL)",
    )
    health_parser.add_argument(
        "--timeout-ms", type=_positive_int, default=None,
        help="Per-request timeout in milliseconds (default: 10000)",
    )

    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    config = load_config(args.config)
    verbose = bool(args.verbose) or config.verbose
    config.verbose = verbose
    return CLIContext(config=config, verbose=verbose)


def dispatch_command(args: argparse.Namespace) -> int:
    try:
        context = _build_context(args)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 1

    configure_logging(context.verbose)

    workflow = ReleaseWorkflow(config=context.config)

    if args.command == "infra":
        return workflow.run_infra(
            args.action,
            auto_approve=args.auto_approve,
            dry_run=args.dry_run,
        )

    if args.command == "deploy":
        return workflow.run_deploy(
            dry_run=args.dry_run,
            build_dir=args.build_dir,
            from_infra=args.from_infra,
        )

    if args.command == "health":
        return workflow.run_health(urls=args.urls, timeout_ms=args.timeout_ms)

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return dispatch_command(args)
