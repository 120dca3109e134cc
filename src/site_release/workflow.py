"""High-level release orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from .cdn import CDNInvalidator, InvalidationRecord
from .config import AppConfig, DeployConfig, resolve_placeholder
from .errors import ReleaseError, UserAbort
from .health import HealthProbe, HealthReport
from .infra import ConfirmationStrategy, InfraController, InfraOutputs, PlanResult
from .sync import AssetSyncPipeline, S3Uploader, SyncSummary
from .utils.logging import get_logger

logger = get_logger(__name__)

INFRA_COMMANDS = ("plan", "apply", "destroy", "output")


@dataclass
class DeployReport:
    """What one ``deploy`` run produced."""

    config: DeployConfig
    summary: SyncSummary
    invalidation: Optional[InvalidationRecord]


class ReleaseWorkflow:
    """Sequences the release stages and maps their failures to exit codes.

    Each ``run_*`` method returns 0 on success and 1 on any failure. Stages
    are never retried here; every stage is idempotent, so the operator can
    simply run the command again.
    """

    def __init__(
        self,
        config: AppConfig,
        console: Optional[Console] = None,
        controller: Optional[InfraController] = None,
        confirmation: Optional[ConfirmationStrategy] = None,
        uploader_factory: Optional[Callable[[DeployConfig], S3Uploader]] = None,
        invalidator_factory: Optional[Callable[[DeployConfig], CDNInvalidator]] = None,
        probe: Optional[HealthProbe] = None,
    ) -> None:
        self.config = config
        self.verbose = config.verbose
        self.console = console or Console()
        self._controller = controller
        self._confirmation = confirmation
        self._uploader_factory = uploader_factory
        self._invalidator_factory = invalidator_factory
        self._probe = probe

    # ------------------------------------------------------------------ infra

    @property
    def controller(self) -> InfraController:
        if self._controller is None:
            self._controller = InfraController(
                self.config.infra,
                confirmation=self._confirmation,
                verbose=self.verbose,
            )
        return self._controller

    def run_infra(self, command: str, auto_approve: bool = False, dry_run: bool = False) -> int:
        titles = {
            "plan": "📋 Planning Infrastructure Changes",
            "apply": "🚀 Applying Infrastructure Changes",
            "destroy": "💥 Destroying Infrastructure",
            "output": "📊 Infrastructure Outputs",
        }
        if command not in titles:
            logger.error("Unknown command: %s", command)
            return 1

        self.console.print(f"[bold cyan]{titles[command]}[/]\n")
        try:
            if command == "plan":
                self._report_plan(self.controller.plan())
            elif command == "apply":
                result = self.controller.apply(auto_approve=auto_approve, dry_run=dry_run)
                if result.plan is not None:
                    self._report_plan(result.plan)
                if result.outputs is not None:
                    self._print_outputs(result.outputs)
                if result.applied:
                    self.console.print("\n[bold green]✅ Infrastructure deployment completed![/]")
            elif command == "destroy":
                self.controller.destroy(auto_approve=auto_approve)
                self.console.print("\n[bold green]✅ Infrastructure destruction completed![/]")
            else:
                self._print_outputs(self.controller.outputs())
        except UserAbort as exc:
            return self._aborted(exc)
        except ReleaseError as exc:
            return self._failed(f"Infrastructure {command} failed!", exc)
        return 0

    def _report_plan(self, plan: PlanResult) -> None:
        if not self.verbose and plan.result.stdout:
            self.console.print(plan.result.stdout, markup=False, highlight=False)
        if plan.has_changes:
            logger.info('Run "site-release infra apply" to apply the changes')
        else:
            logger.info("Your infrastructure is up to date")

    def _print_outputs(self, outputs: InfraOutputs) -> None:
        if not outputs:
            return
        table = Table(title="Infrastructure Outputs", show_header=True)
        table.add_column("Output", style="yellow")
        table.add_column("Value")
        for name in sorted(outputs):
            table.add_row(name, outputs.display_value(name))
        self.console.print(table)

    # ----------------------------------------------------------------- deploy

    def deploy_config(self, dry_run: bool = False, build_dir: Optional[str] = None) -> DeployConfig:
        return DeployConfig.from_app_config(self.config, dry_run=dry_run, build_dir=build_dir)

    def deploy(self, config: DeployConfig) -> DeployReport:
        """Validate, sync, invalidate. Raises on the first failing stage."""
        config.validate()
        logger.info("Configuration validated")
        logger.debug("Build directory: %s", config.build_dir)
        logger.debug("S3 bucket: %s", config.bucket_name)
        logger.debug("CloudFront distribution: %s", config.distribution_id)

        uploader = self._uploader_factory(config) if self._uploader_factory else None
        pipeline = AssetSyncPipeline(config, uploader=uploader)
        with self.console.status("Uploading files to S3...") as status:
            summary = pipeline.sync_all(
                progress=lambda done, total: status.update(
                    f"Uploading files to S3... ({done}/{total})"
                )
            )

        invalidator = (
            self._invalidator_factory(config)
            if self._invalidator_factory
            else CDNInvalidator(region=config.region, dry_run=config.dry_run)
        )
        record = invalidator.invalidate(config.distribution_id)
        return DeployReport(config=config, summary=summary, invalidation=record)

    def run_deploy(
        self,
        dry_run: bool = False,
        build_dir: Optional[str] = None,
        from_infra: bool = False,
    ) -> int:
        self.console.print("[bold cyan]🚀 Deploying Site[/]\n")
        try:
            config = self.deploy_config(dry_run=dry_run, build_dir=build_dir)
            if from_infra:
                logger.info("Fetching infrastructure outputs...")
                config = config.with_infra_outputs(self.controller.outputs())
            report = self.deploy(config)
        except UserAbort as exc:
            return self._aborted(exc)
        except ReleaseError as exc:
            return self._failed("Deployment failed!", exc)

        self.console.print("\n[bold green]✅ Deployment completed successfully![/]")
        self._print_site_urls(report.config)
        return 0

    def _print_site_urls(self, config: DeployConfig) -> None:
        if config.dry_run:
            return
        logger.info("Your site should be available at:")
        logger.info("  • S3: http://%s.s3-website-%s.amazonaws.com", config.bucket_name, config.region)
        domain = resolve_placeholder(self.config.site.domain_name)
        if domain:
            logger.info("  • CloudFront: https://%s (after DNS propagation)", domain)

    # ----------------------------------------------------------------- health

    @property
    def probe(self) -> HealthProbe:
        if self._probe is None:
            health = self.config.health
            self._probe = HealthProbe(
                timeout_ms=health.timeout_ms,
                expected_marker=health.expected_marker,
                user_agent=health.user_agent,
                max_workers=health.max_workers,
            )
        return self._probe

    def run_health(self, urls: Optional[Sequence[str]] = None, timeout_ms: Optional[int] = None) -> int:
        self.console.print("[bold cyan]🏥 Running Health Checks[/]\n")
        targets: List[str] = list(urls) if urls else self.config.health.urls()
        timeout = timeout_ms or self.config.health.timeout_ms

        with self.console.status(f"Checking {len(targets)} endpoint(s)..."):
            report = self.probe.check_all(targets, timeout)

        self._report_health(report)
        return 0 if report.healthy else 1

    def _report_health(self, report: HealthReport) -> None:
        if not report.results:
            return

        for result in report.results:
            if result.success:
                self.console.print(
                    f"[green]✓[/] {result.url} - [green]{result.status}[/] ({result.response_time_ms}ms)"
                )
                logger.debug("Response headers: %s", result.headers)
                logger.debug("Body length: %d bytes", result.body_length)
                logger.debug("Has expected content: %s", result.content_signature_matched)
                if not result.content_signature_matched:
                    logger.warning("Response body does not contain the expected marker")
            else:
                self.console.print(
                    f"[red]✗[/] {result.url} - [red]{result.error or 'Failed'}[/] ({result.response_time_ms}ms)"
                )

        self.console.print("\n[bold cyan]📊 Health Check Summary:[/]")
        if report.healthy:
            self.console.print(f"[green]✅ All {report.total} endpoints are healthy[/]")
        else:
            failed = report.total - report.succeeded
            self.console.print(f"[red]❌ {failed}/{report.total} endpoints failed[/]")
            for result in report.results:
                if not result.success:
                    logger.error("%s: %s", result.url, result.error or "Failed")
        self.console.print(f"⏱️  Average response time: {round(report.average_response_time_ms)}ms")

    # ---------------------------------------------------------------- helpers

    def _failed(self, title: str, exc: ReleaseError) -> int:
        self.console.print(f"\n[bold red]❌ {title}[/]")
        logger.error("%s", exc)
        if self.verbose:
            logger.error("Full error details:", exc_info=exc)
        return 1

    def _aborted(self, exc: UserAbort) -> int:
        logger.warning("Cancelled: %s", exc)
        return 0
