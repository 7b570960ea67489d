"""Tests for the privilege guard and feature enabler."""
from __future__ import annotations

import pytest
from fakes import FakeFeatureService

from iisphpctl.converge.features import ensure_features
from iisphpctl.converge.privilege import require_privileged, verify_privileged
from iisphpctl.errors import FeatureEnableFailed, PrivilegeDenied
from iisphpctl.models import FeatureState


def test_verify_privileged_reflects_check() -> None:
    """The guard reports the identity check verbatim."""
    assert verify_privileged(lambda: True) is True
    assert verify_privileged(lambda: False) is False


def test_require_privileged_raises_when_not_elevated() -> None:
    """A non-elevated process is rejected with a privilege error."""
    with pytest.raises(PrivilegeDenied) as excinfo:
        require_privileged(lambda: False)

    assert excinfo.value.step == "privilege"
    assert "Administrator" in str(excinfo.value)


def test_disabled_features_are_enabled_once() -> None:
    """Only features that are not enabled receive an enable request."""
    service = FakeFeatureService(
        states={"IIS-WebServerRole": FeatureState("IIS-WebServerRole", enabled=True)}
    )

    report = ensure_features(service, ["IIS-WebServerRole", "IIS-CGI", "IIS-CGI"])

    assert service.enable_calls == ["IIS-CGI"]
    assert report.enabled == ["IIS-CGI"]
    assert report.already_enabled == ["IIS-WebServerRole"]
    assert report.reboot_required is False


def test_reboot_flag_is_or_of_all_features() -> None:
    """Any feature needing a reboot sets the aggregate flag."""
    service = FakeFeatureService(reboot_on_enable={"IIS-WebServerRole"})

    report = ensure_features(service, ["IIS-WebServerRole", "IIS-CGI"])

    assert report.reboot_required is True
    assert report.enabled == ["IIS-WebServerRole", "IIS-CGI"]


def test_already_enabled_feature_pending_reboot_counts() -> None:
    """An enabled feature still awaiting a restart keeps the reboot flag set."""
    service = FakeFeatureService(
        states={"IIS-CGI": FeatureState("IIS-CGI", enabled=True, pending_reboot=True)}
    )

    report = ensure_features(service, ["IIS-CGI"])

    assert report.reboot_required is True
    assert service.enable_calls == []


def test_second_run_is_a_no_op() -> None:
    """Re-running against enabled features issues no enable calls."""
    service = FakeFeatureService()
    ensure_features(service, ["IIS-WebServerRole", "IIS-CGI"])
    service.enable_calls.clear()

    report = ensure_features(service, ["IIS-WebServerRole", "IIS-CGI"])

    assert service.enable_calls == []
    assert report.enabled == []


def test_enable_failure_names_the_feature() -> None:
    """Failures stop at the feature that could not be enabled."""
    service = FakeFeatureService(failing={"IIS-CGI"})

    with pytest.raises(FeatureEnableFailed) as excinfo:
        ensure_features(service, ["IIS-CGI", "IIS-StaticContent"])

    assert excinfo.value.resource == "IIS-CGI"
    assert "[features] IIS-CGI" in str(excinfo.value)
    assert service.enable_calls == ["IIS-CGI"]
