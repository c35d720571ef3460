from __future__ import annotations

from unittest import mock

import pytest

from scripts.directory_ingestion import cli
from scripts.directory_ingestion.errors import ConfigurationError
from scripts.directory_ingestion.pipeline import RunResult, RunState


@pytest.fixture(autouse=True)
def no_logging_setup():
    with mock.patch.object(cli, "configure_logging") as configure:
        yield configure


def test_configuration_error_exits_non_zero() -> None:
    with mock.patch.object(cli, "load_config", side_effect=ConfigurationError("missing")), \
            mock.patch.object(cli, "run_once") as run_once:
        with pytest.raises(SystemExit) as excinfo:
            cli.main([])

    assert excinfo.value.code == 1
    run_once.assert_not_called()


@pytest.mark.parametrize(
    "state,expected_code", [(RunState.DONE, 0), (RunState.FAILED, 1)]
)
def test_exit_status_reflects_terminal_state(
    no_logging_setup, state: RunState, expected_code: int
) -> None:
    config = mock.Mock()
    config.log_analytics.table_name = "Staff"
    config.log_analytics.shared_key = "c2VjcmV0LWtleS1ieXRlcw=="
    result = RunResult(run_id="r1", state=state, rows_written=4)

    with mock.patch.object(cli, "load_config", return_value=config) as load, \
            mock.patch.object(cli, "run_once", return_value=result) as run_once:
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["Staff"])

    assert excinfo.value.code == expected_code
    load.assert_called_once_with(table_name="Staff")
    run_once.assert_called_once_with(config, "Staff")
    assert no_logging_setup.call_args.kwargs["secrets"] == ["c2VjcmV0LWtleS1ieXRlcw=="]
