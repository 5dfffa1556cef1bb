"""
Unit tests for logging setup and the command-line interface.
"""

import logging
from pathlib import Path

import pytest
import yaml

from main import build_parser, main, setup_logging
from notifications import NotificationCenter
from database_ops import RecordStores


class TestSetupLogging:
    """Test setup_logging function."""

    def test_basic_logging_config(self):
        """Test basic logging configuration with defaults."""
        config = {
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        }

        setup_logging(config)

        root = logging.getLogger()
        assert root.level == logging.INFO
        assert any(isinstance(h, logging.StreamHandler) for h in root.handlers)

    def test_file_logging_enabled(self, tmp_path):
        """A FileHandler is added when a log file is configured."""
        log_file = tmp_path / "logs" / "tracker.log"

        setup_logging({"logging": {"level": "DEBUG", "file": str(log_file)}})
        logging.getLogger("test").debug("hello")

        root = logging.getLogger()
        file_handlers = [h for h in root.handlers if isinstance(h, logging.FileHandler)]
        assert len(file_handlers) == 1
        assert root.level == logging.DEBUG
        for handler in file_handlers:
            handler.flush()
        assert "hello" in log_file.read_text()

        for handler in file_handlers:
            handler.close()
            root.removeHandler(handler)

    def test_invalid_level_falls_back_to_info(self):
        """An unknown level is replaced with INFO and reported."""
        setup_logging({"logging": {"level": "CHATTY"}})

        assert logging.getLogger().level == logging.INFO


class TestParser:
    """Tests for command-line parsing."""

    def test_expense_add(self):
        args = build_parser().parse_args([
            "--user", "alice", "expense", "add",
            "--amount", "12.5", "--category", "Travel", "--description", "Bus"
        ])
        assert args.command == "expense"
        assert args.expense_action == "add"
        assert args.user == "alice"

    def test_unknown_category_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["expense", "add", "--amount", "1", "--category", "Nope", "--description", "x"])

    def test_advise_collects_messages(self):
        args = build_parser().parse_args(["advise", "-m", "hi", "-m", "there"])
        assert args.messages == ["hi", "there"]


class TestCommands:
    """End-to-end runs against a temporary database."""

    @pytest.fixture
    def config_path(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DB_CONNECTION_STRING", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({
            "database": {"connection_string": f"sqlite:///{tmp_path / 'cli.db'}", "data_dir": str(tmp_path)},
            "logging": {"level": "WARNING"},
        }))
        return path

    def _stores(self, config_path):
        db_url = yaml.safe_load(Path(config_path).read_text())["database"]["connection_string"]
        return RecordStores.from_connection_string(db_url)

    def test_add_expense_over_limit_raises_alert(self, config_path, capsys):
        base = ["--config", str(config_path), "--user", "u1"]

        main(base + ["limit", "add", "--category", "Travel", "--amount", "100"])
        main(base + ["expense", "add", "--amount", "120", "--category", "Travel", "--description", "Train"])

        output = capsys.readouterr().out
        assert "You're over budget for Travel!" in output

        stores = self._stores(config_path)
        try:
            messages = [n.message for n in NotificationCenter(stores.notifications).list_notifications("u1")]
        finally:
            stores.db_manager.close()
        assert sum("over budget" in m for m in messages) == 1
        assert any(m.startswith("New expense added: $120.00") for m in messages)
        assert any(m.startswith("New monthly spending limit set for Travel") for m in messages)

    def test_export_csv(self, config_path, tmp_path):
        base = ["--config", str(config_path), "--user", "u1"]
        output = tmp_path / "out.csv"

        main(base + ["expense", "add", "--amount", "3", "--category", "Other", "--description", "Pen"])
        main(base + ["export", "csv", "--output", str(output)])

        assert output.read_text().splitlines()[1].endswith('"Pen",3.00')

    def test_export_csv_applies_filters(self, config_path, tmp_path, capsys):
        base = ["--config", str(config_path), "--user", "u1"]
        output = tmp_path / "travel.csv"

        main(base + ["expense", "add", "--amount", "3", "--category", "Other", "--description", "Pen"])
        main(base + ["expense", "add", "--amount", "40", "--category", "Travel", "--description", "Bus"])
        main(base + ["export", "csv", "--category", "Travel", "--output", str(output)])

        lines = output.read_text().splitlines()
        assert len(lines) == 2
        assert lines[1].endswith('"Bus",40.00')
        assert "Exported 1 expense(s)" in capsys.readouterr().out

    def test_receipt_rejects_non_image_file(self, config_path, tmp_path, capsys):
        notes = tmp_path / "notes.txt"
        notes.write_text("not a receipt")

        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config_path), "receipt", "--file", str(notes)])

        assert exc_info.value.code == 1
        assert "Please upload an image file" in capsys.readouterr().err

    def test_validation_error_exits(self, config_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config_path), "expense", "add",
                  "--amount", "-1", "--category", "Other", "--description", "x"])

        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_no_command_prints_help(self):
        with pytest.raises(SystemExit):
            main([])
