import logging

import pytest

from cvmatch.utils.logging_config import PerformanceMonitor, configure_for_environment, get_logger, setup_logging


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_logger_names():
    assert get_logger("cvmatch.services.search").name == "cvmatch.services.search"
    assert get_logger("tests").name == "cvmatch.tests"


def test_file_logging(tmp_path, restore_root):
    log_file = tmp_path / "logs" / "app.log"
    setup_logging(level="INFO", log_file=str(log_file), enable_console=False)

    get_logger("tests").error("pipeline exploded")
    for handler in restore_root.handlers:
        handler.flush()

    assert "pipeline exploded" in log_file.read_text()
    errors = [p for p in log_file.parent.iterdir() if p.name.startswith("cvmatch_errors_")]
    assert len(errors) == 1 and "pipeline exploded" in errors[0].read_text()
    assert logging.getLogger("pdfminer").level == logging.ERROR


def test_testing_profile_has_no_files(tmp_path, monkeypatch, restore_root):
    monkeypatch.setenv("ENVIRONMENT", "testing")
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))

    configure_for_environment()

    assert restore_root.level == logging.WARNING
    assert not (tmp_path / "logs").exists()


class TestPerformanceMonitor:
    def test_within_threshold(self, caplog):
        caplog.set_level(logging.INFO, logger="cvmatch")
        with PerformanceMonitor("quick op", get_logger("tests")) as monitor:
            pass
        assert monitor.elapsed_ms >= 0
        assert "quick op completed" in caplog.text

    def test_over_threshold_warns(self, caplog):
        caplog.set_level(logging.INFO, logger="cvmatch")
        with PerformanceMonitor("slow op", get_logger("tests"), threshold_ms=-1):
            pass
        assert any(r.levelno == logging.WARNING and "slow op took" in r.message for r in caplog.records)

    def test_failure_logged_and_reraised(self, caplog):
        caplog.set_level(logging.INFO, logger="cvmatch")
        with pytest.raises(RuntimeError):
            with PerformanceMonitor("doomed op", get_logger("tests")):
                raise RuntimeError("boom")
        assert "doomed op failed" in caplog.text
