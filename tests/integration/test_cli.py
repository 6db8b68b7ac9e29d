"""
Integration tests for the command line interface.
"""

import json

import pytest
from click.testing import CliRunner

from bidescrow.cli.main import cli, replay, resolve_principal
from bidescrow.core.auction import AuctionError
from bidescrow.crypto import address_from_seed


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    import os
    for key in list(os.environ):
        if key.startswith("BIDESCROW_"):
            monkeypatch.delenv(key)


class TestReplay:
    """Tests for the action replayer."""

    def test_resolve_principal(self):
        address = address_from_seed("alice")
        assert resolve_principal("alice") == address
        assert resolve_principal(address) == address

    def test_scenario(self):
        engine, bank, results = replay([
            {"op": "create", "duration": 60, "creator": "owner"},
            {"op": "bid", "bidder": "x", "amount": 100},
            {"op": "bid", "bidder": "y", "amount": 104},
            {"op": "advance", "seconds": 3600},
            {"op": "finalize", "caller": "owner"},
            {"op": "withdraw_funds", "caller": "owner"},
        ])
        assert [r.success for _, r in results] == [True, True, False, True, True]
        assert results[2][1].error == AuctionError.BID_TOO_LOW
        assert bank.balance_of(address_from_seed("owner")) == 100

    def test_invalid_create(self):
        engine, _, results = replay([{"op": "create", "duration": 0, "creator": "owner"}])
        assert engine is None
        assert results[0][1].error == AuctionError.INVALID_DURATION

    def test_action_before_create(self):
        import click
        with pytest.raises(click.ClickException):
            replay([{"op": "bid", "bidder": "x", "amount": 1}])

    def test_unknown_op(self):
        import click
        with pytest.raises(click.ClickException, match="unknown op"):
            replay([
                {"op": "create", "duration": 1, "creator": "owner"},
                {"op": "cancel"},
            ])

    def test_explicit_time(self):
        engine, _, results = replay([
            {"op": "create", "duration": 60, "creator": "owner"},
            {"op": "bid", "bidder": "x", "amount": 1, "at": 3599},
        ])
        assert results[1][1].success
        assert engine.end_time == 4200

    @pytest.mark.parametrize("action, field", [
        ({"op": "bid", "bidder": "x", "amount": 1, "at": "soon"}, "at"),
        ({"op": "advance", "seconds": None}, "seconds"),
    ])
    def test_non_numeric_time(self, action, field):
        import click
        with pytest.raises(click.ClickException, match=f"'{field}' must be an integer"):
            replay([{"op": "create", "duration": 60, "creator": "owner"}, action])

    def test_action_not_an_object(self):
        import click
        with pytest.raises(click.ClickException, match="expected an object"):
            replay([["create", 60, "owner"]])

    def test_principal_not_a_string(self):
        import click
        with pytest.raises(click.ClickException, match="Principal"):
            replay([
                {"op": "create", "duration": 60, "creator": "owner"},
                {"op": "bid", "bidder": 7, "amount": 1},
            ])


class TestCommands:
    """Tests for click commands."""

    def test_demo(self, runner):
        result = runner.invoke(cli, ["demo"])
        assert result.exit_code == 0, result.output
        assert "BID_TOO_LOW" in result.output
        assert "WINNER_RESTRICTED" in result.output
        assert "ALREADY_FINALIZED" in result.output
        assert "Demo complete" in result.output

    def test_run(self, runner, tmp_path):
        script = tmp_path / "script.json"
        script.write_text(json.dumps({
            "start_time": 100,
            "actions": [
                {"op": "create", "duration": 60, "creator": "owner"},
                {"op": "bid", "bidder": "alice", "amount": 50},
            ],
        }))
        result = runner.invoke(cli, ["run", str(script)])
        assert result.exit_code == 0, result.output
        assert "highest_bid: 50" in result.output
        assert "end_time: 3700" in result.output

    def test_run_fail_on_error(self, runner, tmp_path):
        script = tmp_path / "script.json"
        script.write_text(json.dumps([
            {"op": "create", "duration": 10, "creator": "owner"},
            {"op": "bid", "bidder": "alice", "amount": 0},
        ]))
        result = runner.invoke(cli, ["run", str(script), "--fail-on-error"])
        assert result.exit_code == 1
        assert "ZERO_VALUE" in result.output

    @pytest.mark.parametrize("content, message", [
        ("{not json", "not valid JSON"),
        (json.dumps({"steps": []}), "'actions' list"),
        (json.dumps({"actions": {"op": "create"}}), "'actions' list"),
        ("42", "'actions' list"),
        (json.dumps({"start_time": "later", "actions": []}), "'start_time' must be an integer"),
        (json.dumps([
            {"op": "create", "duration": 60, "creator": "owner"},
            {"op": "bid", "bidder": "alice", "amount": 5, "at": "noon"},
        ]), "'at' must be an integer"),
    ])
    def test_run_malformed_script(self, runner, tmp_path, content, message):
        """Malformed scripts end with a usage error, not a traceback."""
        script = tmp_path / "script.json"
        script.write_text(content)
        result = runner.invoke(cli, ["run", str(script)])
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Error:" in result.output
        assert message in result.output

    def test_stats_with_env_file(self, runner, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("BIDESCROW_COMMISSION_RATE=9\n")
        result = runner.invoke(cli, ["--env-file", str(env_file), "stats"])
        assert result.exit_code == 0, result.output
        assert "Commission: 9%" in result.output

    def test_bad_config(self, runner, monkeypatch):
        monkeypatch.setenv("BIDESCROW_REFUND_POLICY", "nope")
        result = runner.invoke(cli, ["stats"])
        assert result.exit_code != 0
        assert "refund_policy" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
