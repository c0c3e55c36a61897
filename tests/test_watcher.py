"""Tests for watcher module and intake.watching"""
import os
import tempfile
import shutil
import logging
import threading
import time
from pathlib import Path
import pytest
from unittest.mock import Mock, patch
from intake.errors import SetupError
from intake.watching import DirectoryWatcher, NewFileHandler, WatcherState
from watcher import ensure_dir, setup_logger, parse_args, main


def wait_for(predicate, timeout=5.0, interval=0.02):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class TestEnsureDir:
    """Test suite for ensure_dir function"""

    def test_ensure_dir_creates_directory(self):
        """Test that ensure_dir creates a directory"""
        with tempfile.TemporaryDirectory() as tmpdir:
            new_dir = os.path.join(tmpdir, "test_dir")
            assert not os.path.exists(new_dir)

            ensure_dir(new_dir)

            assert os.path.isdir(new_dir)

    def test_ensure_dir_existing_directory(self):
        """Test that ensure_dir handles existing directories"""
        with tempfile.TemporaryDirectory() as tmpdir:
            ensure_dir(tmpdir)
            assert os.path.exists(tmpdir)

    def test_ensure_dir_nested_paths(self):
        """Test that ensure_dir creates nested directory structures"""
        with tempfile.TemporaryDirectory() as tmpdir:
            nested = os.path.join(tmpdir, "a", "b", "c")
            ensure_dir(nested)
            assert os.path.exists(nested)


class TestSetupLogger:
    """Test suite for setup_logger function"""

    @pytest.fixture
    def logfile(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield os.path.join(tmpdir, "test.log")
            # Cleanup: remove handlers to release file locks
            logger = logging.getLogger("intake")
            for handler in logger.handlers[:]:
                handler.close()
                logger.removeHandler(handler)

    def test_setup_logger_creates_file(self, logfile):
        """Test that setup_logger creates a log file"""
        logger = setup_logger(logfile)
        logger.info("Test message")

        assert os.path.exists(logfile)
        assert logger.name == "intake"

    def test_setup_logger_returns_logger(self, logfile):
        """Test that setup_logger returns a Logger instance"""
        logger = setup_logger(logfile)

        assert isinstance(logger, logging.Logger)
        assert logger.level == logging.INFO

    def test_setup_logger_rotating_handler(self, logfile):
        """Test that rotating file handler is configured"""
        logger = setup_logger(logfile)

        assert any(hasattr(h, "maxBytes") for h in logger.handlers)


class TestNewFileHandler:
    """Test suite for NewFileHandler class"""

    @pytest.fixture
    def mock_logger(self):
        return Mock(spec=logging.Logger)

    @pytest.fixture
    def watch_dir(self):
        watch_dir = tempfile.mkdtemp()
        yield Path(watch_dir)
        shutil.rmtree(watch_dir, ignore_errors=True)

    def make_event(self, path, is_directory=False):
        event = Mock()
        event.is_directory = is_directory
        event.src_path = str(path)
        return event

    def test_handler_ignores_directories(self, mock_logger):
        """Test that on_created ignores directory events"""
        dispatch = Mock()
        handler = NewFileHandler(dispatch, mock_logger, settle_seconds=0.01)

        handler.on_created(self.make_event("/some/dir", is_directory=True))

        dispatch.assert_not_called()
        mock_logger.info.assert_not_called()

    def test_handler_dispatches_new_file(self, mock_logger, watch_dir):
        """Test that a settled file is handed to dispatch"""
        dispatch = Mock()
        handler = NewFileHandler(dispatch, mock_logger, settle_seconds=0.01, max_tries=3)
        test_file = watch_dir / "test.csv"
        test_file.write_text("a,b\n1,2\n")

        handler.on_created(self.make_event(test_file))

        dispatch.assert_called_once_with(test_file)
        assert any("New file detected" in str(call) for call in mock_logger.info.call_args_list)

    def test_handler_waits_at_least_one_settle_period(self, mock_logger, watch_dir):
        dispatch = Mock()
        handler = NewFileHandler(dispatch, mock_logger, settle_seconds=0.05, max_tries=3)
        test_file = watch_dir / "test.csv"
        test_file.write_text("content")

        started = time.monotonic()
        handler.on_created(self.make_event(test_file))

        assert time.monotonic() - started >= 0.05

    def test_handler_processes_growing_file_after_max_tries(self, mock_logger, watch_dir):
        """Test that a file still changing size is processed with a warning log"""
        dispatch = Mock()
        handler = NewFileHandler(dispatch, mock_logger, settle_seconds=0.01, max_tries=3)
        test_file = watch_dir / "growing.csv"
        test_file.write_text("x")
        sizes = iter([1, 2, 3, 4])

        with patch("intake.watching.os.path.getsize", side_effect=lambda _: next(sizes)):
            handler.on_created(self.make_event(test_file))

        dispatch.assert_called_once_with(test_file)
        assert any("may be incomplete" in str(call) for call in mock_logger.info.call_args_list)

    def test_handler_skips_vanished_file(self, mock_logger, watch_dir):
        dispatch = Mock()
        handler = NewFileHandler(dispatch, mock_logger, settle_seconds=0.01, max_tries=2)

        handler.on_created(self.make_event(watch_dir / "gone.csv"))

        dispatch.assert_not_called()
        assert mock_logger.warning.called

    def test_handler_logs_time_since_detection(self, mock_logger, watch_dir):
        dispatch = Mock()
        handler = NewFileHandler(dispatch, mock_logger, settle_seconds=0.05, max_tries=3)
        test_file = watch_dir / "test.csv"
        test_file.write_text("content")

        handler.on_created(self.make_event(test_file))

        detected = [c for c in mock_logger.info.call_args_list if "settled after" in c[0][0]]
        assert len(detected) == 1
        waited, path = detected[0][0][1:]
        assert waited >= 0.05
        assert path == test_file

    def test_handler_drops_event_when_stopped_during_settle(self, mock_logger, watch_dir):
        dispatch = Mock()
        stop_event = threading.Event()
        stop_event.set()
        handler = NewFileHandler(dispatch, mock_logger, stop_event=stop_event, settle_seconds=5)
        test_file = watch_dir / "test.csv"
        test_file.write_text("content")

        started = time.monotonic()
        handler.on_created(self.make_event(test_file))

        assert time.monotonic() - started < 1
        dispatch.assert_not_called()

    def test_handler_handles_dispatch_errors(self, mock_logger, watch_dir):
        """Test that handler logs errors during processing"""
        dispatch = Mock(side_effect=Exception("Test error"))
        handler = NewFileHandler(dispatch, mock_logger, settle_seconds=0.01, max_tries=2)
        test_file = watch_dir / "test.csv"
        test_file.write_text("content")

        # Should handle exception gracefully
        handler.on_created(self.make_event(test_file))

        assert mock_logger.exception.called


class TestDirectoryWatcher:
    """Test suite for DirectoryWatcher with a real observer"""

    def test_start_fails_for_missing_directory(self, tmp_path):
        logger = Mock(spec=logging.Logger)
        watcher = DirectoryWatcher(tmp_path / "missing", Mock(), logger=logger)

        with pytest.raises(SetupError):
            watcher.start()

        assert watcher.state is WatcherState.IDLE
        assert logger.error.call_count == 1

    def test_watcher_dispatches_created_files(self, tmp_path):
        seen = []
        watcher = DirectoryWatcher(tmp_path, seen.append, settle_seconds=0.05, max_tries=5)
        watcher.start()
        try:
            assert watcher.state is WatcherState.WATCHING
            (tmp_path / "report.csv").write_text("a,b\n1,2\n")
            assert wait_for(lambda: tmp_path / "report.csv" in seen)
        finally:
            watcher.stop(timeout=5)

        assert watcher.state is WatcherState.STOPPED

    def test_watcher_is_not_recursive(self, tmp_path):
        nested = tmp_path / "nested"
        nested.mkdir()
        seen = []
        watcher = DirectoryWatcher(tmp_path, seen.append, settle_seconds=0.05, max_tries=5)
        watcher.start()
        try:
            (nested / "inner.csv").write_text("a\n")
            (tmp_path / "outer.csv").write_text("a\n")
            assert wait_for(lambda: tmp_path / "outer.csv" in seen)
        finally:
            watcher.stop(timeout=5)

        assert nested / "inner.csv" not in seen

    def test_stop_prevents_further_dispatch(self, tmp_path):
        seen = []
        watcher = DirectoryWatcher(tmp_path, seen.append, settle_seconds=0.05, max_tries=5)
        watcher.start()
        watcher.stop(timeout=5)

        (tmp_path / "late.csv").write_text("a\n")
        time.sleep(0.3)

        assert seen == []

    def test_start_twice_is_noop_and_restart_after_stop_works(self, tmp_path):
        seen = []
        watcher = DirectoryWatcher(tmp_path, seen.append, settle_seconds=0.05, max_tries=5)
        watcher.start()
        watcher.start()
        watcher.stop(timeout=5)
        watcher.stop(timeout=5)

        watcher.start()
        try:
            (tmp_path / "again.csv").write_text("a\n")
            assert wait_for(lambda: tmp_path / "again.csv" in seen)
        finally:
            watcher.stop(timeout=5)


class TestParseArgs:
    """Test suite for parse_args function"""

    def test_parse_args_defaults(self):
        """Test that parse_args returns default values"""
        with patch("sys.argv", ["watcher.py"]):
            args = parse_args()

        assert args.input == "./input"
        assert args.output == "./output"
        assert args.archive == "./archive"
        assert args.logdir == "./logs"
        assert args.settle == 0.5
        assert args.tries == 10
        assert args.export_interval == 3600
        assert args.export_delay == 60
        assert args.export_format == "csv"
        assert args.archive_policy == "overwrite"
        assert not args.no_backup
        assert not args.no_archive
        assert not args.convert
        assert not args.enable_binary

    def test_parse_args_short_flags(self):
        """Test that parse_args accepts short flags"""
        args = parse_args(["-i", "/in", "-o", "/out", "-a", "/arch", "-l", "/logs"])
        assert args.input == "/in"
        assert args.output == "/out"
        assert args.archive == "/arch"
        assert args.logdir == "/logs"

    def test_parse_args_settle_and_tries(self):
        """Test that parse_args accepts settle and tries parameters"""
        args = parse_args(["--settle", "1.5", "--tries", "20"])
        assert args.settle == 1.5
        assert args.tries == 20

    def test_parse_args_enable_binary(self):
        args = parse_args(["--enable-binary"])
        assert args.enable_binary

    def test_parse_args_rejects_unknown_policy(self):
        with pytest.raises(SystemExit):
            parse_args(["--archive-policy", "merge"])


class TestMain:
    """Test suite for main with the console reading from a patched stdin"""

    @pytest.fixture(autouse=True)
    def cleanup_logger(self):
        yield
        logger = logging.getLogger("intake")
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    def test_main_runs_console_until_quit(self, tmp_path):
        argv = [
            "-i", str(tmp_path / "in"),
            "-o", str(tmp_path / "out"),
            "-a", str(tmp_path / "arch"),
            "-l", str(tmp_path / "logs"),
        ]
        with patch("sys.stdin") as stdin:
            stdin.readline.side_effect = ["status\n", "quit\n"]
            assert main(argv) == 0

        assert (tmp_path / "in").is_dir()
        assert (tmp_path / "out" / "backups").is_dir()
        assert (tmp_path / "arch").is_dir()
        assert (tmp_path / "logs" / "file_intake.log").exists()
