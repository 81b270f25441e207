import logging

import pytest

from clusterplan.config import Settings
from clusterplan.errors import InvalidIntent
from clusterplan.logger import configure_from_settings, configure_logging, get_logger
from clusterplan.metrics import record_planning_pass, render_metrics


@pytest.fixture
def plan_logger():
    logger = logging.getLogger("clusterplan")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


def test_operation_log_lines(plan_logger, tmp_path):
    log_file = tmp_path / "logs" / "clusterplan.log"
    configure_logging("INFO", str(log_file))

    with get_logger("tests").operation("plan.run", "Planning", universe="u1") as op:
        op.step("balance", "Balanced zones", zones=3)
    with pytest.raises(InvalidIntent):
        with get_logger("tests").operation("plan.run", "Planning", expected=(InvalidIntent,)):
            raise InvalidIntent("plan.run", "bad factor")
    for handler in plan_logger.handlers:
        handler.flush()

    lines = log_file.read_text().splitlines()
    assert "(*) operation.start | Planning | operation: plan.run | universe: u1" in lines[0]
    assert "(*) >> balance | Balanced zones | operation: plan.run | zones: 3" in lines[1]
    assert "operation.complete" in lines[2]
    assert "(!) operation.rejected | plan.run: bad factor" in lines[-1]
    assert "Traceback" not in log_file.read_text()


def test_unexpected_errors_are_logged_with_traceback(plan_logger, tmp_path):
    log_file = tmp_path / "clusterplan.log"
    configure_logging("INFO", str(log_file))

    with pytest.raises(KeyError):
        with get_logger("tests").operation("plan.run", "Planning", expected=(InvalidIntent,)):
            raise KeyError("zone")
    for handler in plan_logger.handlers:
        handler.flush()

    text = log_file.read_text()
    assert "(x) operation.error | Failed" in text
    assert "Traceback" in text


def test_planning_pass_counter_is_exported():
    record_planning_pass(ok=True)
    assert b'clusterplan_planning_passes_total{result="ok"}' in render_metrics()


def test_configure_from_settings(plan_logger, tmp_path):
    log_file = tmp_path / "settings.log"
    configure_from_settings(Settings(log_level="WARNING", log_file=str(log_file)))

    get_logger("tests").info("ignored", "Below threshold")
    get_logger("tests").warning("kept", "At threshold")
    for handler in plan_logger.handlers:
        handler.flush()

    text = log_file.read_text()
    assert plan_logger.level == logging.WARNING
    assert "(!) kept | At threshold" in text
    assert "ignored" not in text
