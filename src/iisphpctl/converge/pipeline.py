"""Ordered convergence of an IIS host onto a PHP site definition."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from ..config import AppConfig
from ..locking import LockManager
from ..logging import OperationScope
from ..models import ConvergenceReport, DesiredConfiguration, SiteSpec, StepOutcome
from ..providers import (
    HttpDownloadService,
    IISAdministration,
    IISConfigStore,
    PowerShellRunner,
    ProcessInstallerRunner,
    RegistryInventory,
    WindowsAclService,
    WindowsFeatureProvider,
    ZipArchiveService,
    build_session,
    is_elevated,
)
from .documents import set_default_documents
from .fastcgi import ensure_handler_registered, ensure_path_handler
from .features import ensure_features
from .interfaces import Collaborators
from .interpreter import ensure_interpreter, ensure_php_ini
from .pool import ensure_pool
from .privilege import require_privileged
from .runtime import ensure_runtime_present
from .site import SiteStrategy, ensure_site
from .site_directory import ensure_directory, ensure_index_file, grant_read_execute

LOGGER = logging.getLogger(__name__)

PHP_HANDLER_PATTERN = "*.php"


def build_collaborators(config: AppConfig) -> Collaborators:
    """Return the production host services configured from *config*."""
    shell = PowerShellRunner(powershell_bin=config.powershell_bin)
    iis_shell = PowerShellRunner(
        powershell_bin=config.powershell_bin, modules=("WebAdministration",)
    )
    session = build_session(
        retries=config.downloads.retries,
        backoff_factor=config.downloads.backoff_factor,
    )
    return Collaborators(
        features=WindowsFeatureProvider(runner=shell),
        inventory=RegistryInventory(runner=shell),
        downloads=HttpDownloadService(session, timeout=config.downloads.timeout),
        archives=ZipArchiveService(),
        installers=ProcessInstallerRunner(),
        config_store=IISConfigStore(runner=iis_shell),
        web_admin=IISAdministration(runner=iis_shell),
        acl=WindowsAclService(runner=shell),
    )


class ConvergencePipeline:
    """Run every convergence step in order for one site.

    The privilege check runs before anything else. When a lock manager is
    supplied the remaining steps run while holding the site's advisory lock.
    A pending reboot reported by the feature step ends the run early with
    ``reboot_required`` set on the returned report; every other failure
    propagates as a :class:`~iisphpctl.errors.ConvergenceError`.
    """

    def __init__(
        self,
        services: Collaborators,
        config: AppConfig,
        *,
        locks: LockManager | None = None,
        scope: OperationScope | None = None,
        privilege_check: Callable[[], bool] = is_elevated,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Bind the pipeline to host *services* and the resolved *config*."""
        self.services = services
        self.config = config
        self.desired: DesiredConfiguration = config.desired_configuration()
        self.locks = locks
        self.scope = scope
        self.privilege_check = privilege_check
        self.sleep = sleep

    def run(self) -> ConvergenceReport:
        """Converge the host and return the per-step report."""
        report = ConvergenceReport(desired=self.desired)

        require_privileged(self.privilege_check)
        self._record(report, StepOutcome("privilege", False, "Running with administrator rights."))

        with self._site_lock():
            features, reboot_required = self._features()
            self._record(report, features)
            if reboot_required:
                report.reboot_required = True
                report.halted_after = "features"
                LOGGER.warning("Reboot required before convergence can continue.")
                return report

            self._record(report, self._runtime())
            binary, interpreter = self._interpreter()
            self._record(report, interpreter)
            self._record(report, self._fastcgi(binary))
            self._record(report, self._site_directory())
            self._record(report, self._pool())
            self._record(report, self._site())
            self._record(report, self._handler_mapping(binary))
            self._record(report, self._default_documents())
        return report

    @contextmanager
    def _site_lock(self) -> Iterator[None]:
        if self.locks is None:
            yield
            return
        with self.locks.site_lock(self.desired.site_name) as handle:
            LOGGER.debug("Acquired %s after %d ms", handle.path, handle.wait_ms)
            yield

    def _record(self, report: ConvergenceReport, outcome: StepOutcome) -> None:
        report.steps.append(outcome)
        if self.scope is not None:
            self.scope.step(
                outcome.name,
                changed=outcome.changed,
                detail=outcome.detail,
                warnings=outcome.warnings,
            )

    def _features(self) -> tuple[StepOutcome, bool]:
        result = ensure_features(self.services.features, self.config.features)
        if result.enabled:
            detail = f"Enabled {', '.join(result.enabled)}"
        else:
            detail = f"All {len(result.already_enabled)} features already enabled"
        detail += "; reboot required." if result.reboot_required else "."
        return StepOutcome("features", bool(result.enabled), detail), result.reboot_required

    def _runtime(self) -> StepOutcome:
        vc = self.config.vc_runtime
        installed = ensure_runtime_present(
            self.services.inventory,
            self.services.downloads,
            self.services.installers,
            display_name=vc.display_name,
            url=vc.url,
            temp_dir=self.config.temp_dir,
        )
        detail = f"Installed {vc.display_name}." if installed else f"{vc.display_name} present."
        return StepOutcome("runtime", installed, detail)

    def _interpreter(self) -> tuple[Path, StepOutcome]:
        php = self.config.php
        binary, downloaded = ensure_interpreter(
            self.services.downloads,
            self.services.archives,
            version=php.version,
            install_path=php.install_path,
            base_url=php.download_base,
            temp_dir=self.config.temp_dir,
        )
        seeded = php.seed_ini and ensure_php_ini(php.install_path)
        detail = f"PHP {php.version} {'installed' if downloaded else 'present'} at {binary}"
        if seeded:
            detail += "; seeded php.ini"
        return binary, StepOutcome("interpreter", downloaded or seeded, detail + ".")

    def _fastcgi(self, binary: Path) -> StepOutcome:
        created = ensure_handler_registered(
            self.services.config_store,
            str(binary),
            max_instances=self.config.fastcgi.max_instances,
        )
        state = "Registered" if created else "Already registered"
        return StepOutcome("fastcgi", created, f"{state} FastCGI application {binary}.")

    def _site_directory(self) -> StepOutcome:
        path = self.desired.content_path
        created = ensure_directory(path)
        granted = grant_read_execute(self.services.acl, path, self.desired.web_identity)
        index_written = ensure_index_file(path)
        parts = [
            f"{'Created' if created else 'Found'} {path}",
            f"{'granted' if granted else 'kept'} read/execute for {self.desired.web_identity}",
        ]
        if index_written:
            parts.append("wrote index.php")
        changed = created or granted or index_written
        return StepOutcome("site-directory", changed, "; ".join(parts) + ".")

    def _pool(self) -> StepOutcome:
        name = self.desired.site_name
        created = ensure_pool(
            self.services.config_store,
            self.services.web_admin,
            name,
            runtime_version=self.desired.pool_runtime_version,
            allow_32bit=self.desired.pool_enable_32bit,
            settle_seconds=self.config.pool.settle_seconds,
            sleep=self.sleep,
        )
        state = "Created" if created else "Reconfigured"
        return StepOutcome("pool", created, f"{state} application pool {name}.")

    def _site(self) -> StepOutcome:
        desired = self.desired
        spec = SiteSpec(
            name=desired.site_name,
            physical_path=str(desired.content_path),
            application_pool=desired.site_name,
            port=desired.port,
            host_header=desired.host_header,
        )
        result = ensure_site(
            self.services.web_admin,
            spec,
            strategy=SiteStrategy(self.config.site.strategy),
        )
        detail = f"Site {spec.name} {result.action} ({desired.binding_information})"
        if result.differences:
            detail += f"; differed in {', '.join(result.differences)}"
        if result.started:
            detail += "; started"
        return StepOutcome("site", result.changed, detail + ".")

    def _handler_mapping(self, binary: Path) -> StepOutcome:
        name = self.config.fastcgi.handler_name
        result = ensure_path_handler(
            self.services.config_store,
            self.desired.site_name,
            handler_name=name,
            pattern=PHP_HANDLER_PATTERN,
            script_processor=str(binary),
        )
        for warning in result.warnings:
            LOGGER.warning(warning)
        state = "Added" if result.created else "Kept existing"
        return StepOutcome(
            "handler-mapping",
            result.created,
            f"{state} handler mapping {name} for {PHP_HANDLER_PATTERN}.",
            warnings=list(result.warnings),
        )

    def _default_documents(self) -> StepOutcome:
        names = self.desired.default_documents
        changed = set_default_documents(
            self.services.config_store, self.desired.site_name, names
        )
        return StepOutcome("default-documents", changed, f"Default documents: {', '.join(names)}.")


__all__ = ["ConvergencePipeline", "PHP_HANDLER_PATTERN", "build_collaborators"]
