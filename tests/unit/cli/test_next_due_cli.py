"""Tests for the fleetdesk CLI."""

from typer.testing import CliRunner

from fleetdesk.cli import app

runner = CliRunner()


class TestNextDue:
    """Test the next-due command."""

    def test_monthly_clamps_to_month_end(self) -> None:
        result = runner.invoke(app, ["next-due", "2024-01-31", "MONTHLY", "--count", "3"])

        assert result.exit_code == 0
        assert "2024-02-29" in result.output
        assert "2024-03-29" in result.output
        assert "2024-04-29" in result.output

    def test_interval_is_case_insensitive(self) -> None:
        result = runner.invoke(app, ["next-due", "2024-02-29", "yearly"])
        assert result.exit_code == 0
        assert "2025-02-28" in result.output

    def test_custom_days(self) -> None:
        result = runner.invoke(app, ["next-due", "2024-05-01", "CUSTOM", "--days", "10"])
        assert result.exit_code == 0
        assert "2024-05-11" in result.output

    def test_custom_without_days_fails(self) -> None:
        result = runner.invoke(app, ["next-due", "2024-05-01", "CUSTOM"])
        assert result.exit_code == 2

    def test_bad_date_fails(self) -> None:
        result = runner.invoke(app, ["next-due", "31/01/2024", "MONTHLY"])
        assert result.exit_code == 2
        assert "Invalid date" in result.output

    def test_help(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "next-due" in result.output
