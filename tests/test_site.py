"""Tests for website convergence."""
from __future__ import annotations

import pytest
from fakes import FakeWebAdministration

from iisphpctl.converge.site import SiteStrategy, ensure_site, site_differences
from iisphpctl.errors import ConfigWriteFailed
from iisphpctl.models import SiteBinding, SiteInfo, SiteSpec
from iisphpctl.providers.powershell import PowerShellError

SPEC = SiteSpec(
    name="test.local",
    physical_path="C:\\inetpub\\test.local",
    application_pool="test.local",
    port=8080,
    host_header="test.local",
)


def _existing(**changes: object) -> SiteInfo:
    values: dict[str, object] = {
        "name": "test.local",
        "physical_path": "C:\\inetpub\\test.local",
        "application_pool": "test.local",
        "bindings": (SiteBinding("http", "*:8080:test.local"),),
        "state": "Started",
    }
    values.update(changes)
    return SiteInfo(**values)  # type: ignore[arg-type]


@pytest.mark.parametrize("strategy", list(SiteStrategy))
def test_absent_site_is_created_and_started(strategy: SiteStrategy) -> None:
    """A new site is created with the canonical binding and started."""
    admin = FakeWebAdministration()

    result = ensure_site(admin, SPEC, strategy=strategy)

    assert result.action == "created"
    assert result.started is True
    assert result.changed is True
    site = admin.sites["test.local"]
    assert site.bindings == (SiteBinding("http", "*:8080:test.local"),)
    assert site.state == "Started"
    assert admin.calls == [("create_site", "test.local"), ("start_site", "test.local")]


def test_reconcile_leaves_matching_site_alone() -> None:
    """A site matching the desired definition is neither removed nor recreated."""
    admin = FakeWebAdministration(sites={"test.local": _existing()})

    result = ensure_site(admin, SPEC)

    assert result.action == "unchanged"
    assert result.changed is False
    assert admin.calls == []


def test_reconcile_normalises_path_case_and_trailing_separator() -> None:
    """Equivalent Windows paths do not count as a difference."""
    existing = _existing(physical_path="c:\\INETPUB\\test.local\\")

    assert site_differences(existing, SPEC) == ()


@pytest.mark.parametrize(
    ("changes", "field"),
    [
        ({"physical_path": "C:\\inetpub\\old"}, "physicalPath"),
        ({"application_pool": "DefaultAppPool"}, "applicationPool"),
        ({"bindings": (SiteBinding("http", "*:80:test.local"),)}, "bindings"),
        (
            {
                "bindings": (
                    SiteBinding("http", "*:8080:test.local"),
                    SiteBinding("http", "*:8081:manual.local"),
                )
            },
            "bindings",
        ),
    ],
)
def test_reconcile_recreates_drifted_site(changes: dict[str, object], field: str) -> None:
    """Any differing field triggers remove-then-create."""
    admin = FakeWebAdministration(sites={"test.local": _existing(**changes)})
    admin.start_sites_on_create = True

    result = ensure_site(admin, SPEC)

    assert result.action == "recreated"
    assert field in result.differences
    assert admin.calls == [("remove_site", "test.local"), ("create_site", "test.local")]
    assert admin.sites["test.local"].bindings == SPEC.bindings


def test_recreate_strategy_always_rebuilds() -> None:
    """The recreate strategy removes even a matching site."""
    admin = FakeWebAdministration(sites={"test.local": _existing()})

    result = ensure_site(admin, SPEC, strategy=SiteStrategy.RECREATE)

    assert result.action == "recreated"
    assert admin.calls == [
        ("remove_site", "test.local"),
        ("create_site", "test.local"),
        ("start_site", "test.local"),
    ]
    assert len(admin.sites) == 1


def test_stopped_matching_site_is_started() -> None:
    """An unchanged but stopped site is started."""
    admin = FakeWebAdministration(sites={"test.local": _existing(state="Stopped")})

    result = ensure_site(admin, SPEC)

    assert result.action == "unchanged"
    assert result.started is True
    assert result.changed is True
    assert admin.sites["test.local"].state == "Started"


def test_provider_failure_is_config_write_error() -> None:
    """PowerShell failures are reported against the site."""

    class FailingAdmin(FakeWebAdministration):
        def create_site(self, spec: SiteSpec) -> None:
            raise PowerShellError("binding already in use")

    with pytest.raises(ConfigWriteFailed, match=r"\[site\] test.local: binding already in use"):
        ensure_site(FailingAdmin(), SPEC)
