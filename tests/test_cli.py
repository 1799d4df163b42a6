"""
Unit tests for the command line interface.
"""
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from kpay_payments import cli
from kpay_payments.config import Settings
from kpay_payments.core.store import InMemoryTransactionStore
from kpay_payments.services import build_services

runner = CliRunner()


class TestCheckConfig:
    """Test suite for the check-config command."""

    @pytest.mark.unit
    def test_valid_configuration(
        self, monkeypatch: pytest.MonkeyPatch, test_settings: Settings
    ) -> None:
        monkeypatch.setattr(cli, "get_settings", lambda: test_settings)

        result = runner.invoke(cli.app, ["check-config"])

        assert result.exit_code == 0
        assert "Configuration validated" in result.output
        assert "AOA" in result.output
        assert "test-token" not in result.output

    @pytest.mark.unit
    def test_missing_token(self, monkeypatch: pytest.MonkeyPatch, test_settings: Settings) -> None:
        settings = test_settings.model_copy(update={"token": ""})
        monkeypatch.setattr(cli, "get_settings", lambda: settings)

        result = runner.invoke(cli.app, ["check-config"])

        assert result.exit_code == 1
        assert "KPAY_TOKEN not configured" in result.output


class TestReconcileCommand:
    """Test suite for the reconcile command."""

    @pytest.mark.unit
    def test_reconcile_reports_unknown_references(
        self,
        monkeypatch: pytest.MonkeyPatch,
        test_settings: Settings,
        gateway: MagicMock,
    ) -> None:
        """Test discrepancies are printed and reflected in the exit code."""
        gateway.list_paid_references.return_value = [{"reference": "999999999999999"}]
        services = build_services(test_settings, gateway=gateway, store=InMemoryTransactionStore())
        monkeypatch.setattr(cli, "get_settings", lambda: test_settings)
        monkeypatch.setattr(cli, "build_services", lambda settings: services)

        result = runner.invoke(cli.app, ["reconcile"])

        assert result.exit_code == 2
        assert "999999999999999" in result.output

    @pytest.mark.unit
    def test_reconcile_clean(
        self,
        monkeypatch: pytest.MonkeyPatch,
        test_settings: Settings,
        gateway: MagicMock,
    ) -> None:
        services = build_services(test_settings, gateway=gateway, store=InMemoryTransactionStore())
        monkeypatch.setattr(cli, "get_settings", lambda: test_settings)
        monkeypatch.setattr(cli, "build_services", lambda settings: services)

        result = runner.invoke(cli.app, ["reconcile"])

        assert result.exit_code == 0
        assert "Reconciliation" in result.output


class TestSimulateCommand:
    """Test suite for the simulate command."""

    @pytest.mark.unit
    def test_simulate_outside_sandbox(
        self,
        monkeypatch: pytest.MonkeyPatch,
        test_settings: Settings,
        gateway: MagicMock,
    ) -> None:
        gateway.simulate_payment.return_value = False
        services = build_services(test_settings, gateway=gateway, store=InMemoryTransactionStore())
        monkeypatch.setattr(cli, "get_settings", lambda: test_settings)
        monkeypatch.setattr(cli, "build_services", lambda settings: services)

        result = runner.invoke(cli.app, ["simulate", "123456789012345", "100.00"])

        assert result.exit_code == 1
        gateway.simulate_payment.assert_called_once_with("123456789012345", "100.00")
