import logging
import os
import shutil
import tempfile
import unittest

from pipefilter.config import FilterSettings, deep_merge, load_config, setup_logging
from pipefilter.status import StatusLine


class TestLoadConfig(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def write(self, text):
        path = os.path.join(self.tmpdir, "config.toml")
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text)
        return path

    def test_defaults(self):
        config = load_config(self.write(""))
        self.assertIn("filter", config)
        self.assertEqual(config["filter"]["shell"], ["/bin/sh", "-c"])
        self.assertEqual(config["filter"]["path_variable"], "FILE_PATH")
        self.assertEqual(config["filter"]["markers"]["sync"], " Filtering ")
        self.assertEqual(config["status"]["width"], 80)

    def test_user_file_overrides_single_keys(self):
        path = self.write('[filter]\nlock_variable = "busy"\n[filter.markers]\nasync = "..."\n')
        config = load_config(path)
        self.assertEqual(config["filter"]["lock_variable"], "busy")
        self.assertEqual(config["filter"]["markers"]["async"], "...")
        self.assertEqual(config["filter"]["markers"]["async_locked"], " Filtering (async), buffer locked ")
        self.assertEqual(config["filter"]["line_variable"], "FILE_LINE")

    def test_invalid_toml_falls_back_to_defaults(self):
        path = self.write("[filter\nshell = ")
        with self.assertLogs(level="ERROR") as logs:
            config = load_config(path)
        self.assertIn("TOML parse error", "\n".join(logs.output))
        self.assertEqual(config["filter"]["encoding"], "utf-8")

    def test_missing_explicit_file_warns(self):
        with self.assertLogs(level="WARNING"):
            config = load_config(os.path.join(self.tmpdir, "absent.toml"))
        self.assertEqual(config["filter"]["lock_variable"], "filter_lock")

    def test_deep_merge_does_not_modify_inputs(self):
        base = {"a": {"x": 1, "y": 2}}
        override = {"a": {"y": 3}, "b": 4}
        self.assertEqual(deep_merge(base, override), {"a": {"x": 1, "y": 3}, "b": 4})
        self.assertEqual(base, {"a": {"x": 1, "y": 2}})


class TestFilterSettings(unittest.TestCase):

    def test_from_empty_config(self):
        settings = FilterSettings.from_config({})
        self.assertEqual(settings, FilterSettings())
        self.assertEqual(settings.shell, ("/bin/sh", "-c"))

    def test_from_config(self):
        settings = FilterSettings.from_config({"filter": {
            "shell": ["bash", "-lc"],
            "path_variable": "NVIM_FILEPATH",
            "markers": {"sync": "working"},
        }})
        self.assertEqual(settings.shell, ("bash", "-lc"))
        self.assertEqual(settings.path_variable, "NVIM_FILEPATH")
        self.assertEqual(settings.markers["sync"], "working")
        self.assertEqual(settings.markers["async"], " Filtering (async) ")

    def test_string_shell_gets_c_flag(self):
        self.assertEqual(FilterSettings.from_config({"filter": {"shell": "zsh"}}).shell, ("zsh", "-c"))

    def test_invalid_shell_falls_back(self):
        with self.assertLogs(level="WARNING"):
            settings = FilterSettings.from_config({"filter": {"shell": []}})
        self.assertEqual(settings.shell, ("/bin/sh", "-c"))

    def test_loaded_config_round_trip(self):
        self.assertEqual(FilterSettings.from_config(load_config()).line_variable, "FILE_LINE")


class TestStatusConfig(unittest.TestCase):

    def test_status_line_from_config(self):
        status = StatusLine.from_config({"status": {"width": 12, "history": 3}})
        self.assertEqual(status.width, 12)
        for i in range(5):
            status(f"notice {i}")
        self.assertEqual(len(status.notices), 3)

    def test_invalid_status_section_uses_defaults(self):
        with self.assertLogs("pipefilter.status", level="WARNING"):
            status = StatusLine.from_config({"status": {"width": "wide"}})
        self.assertEqual(status.width, 80)


class TestSetupLogging(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.root = logging.getLogger()
        self.saved_handlers = self.root.handlers[:]
        self.saved_level = self.root.level
        self.root.handlers = []

    def tearDown(self):
        for handler in self.root.handlers:
            handler.close()
        self.root.handlers = self.saved_handlers
        self.root.setLevel(self.saved_level)
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_file_and_error_handlers(self):
        log_file = os.path.join(self.tmpdir, "logs", "filter.log")
        setup_logging({"logging": {
            "log_file": log_file,
            "file_level": "INFO",
            "log_to_console": False,
            "separate_error_log": True,
        }})
        self.assertEqual(len(self.root.handlers), 2)
        self.assertEqual(self.root.level, logging.INFO)

        logging.getLogger("pipefilter.test").error("written to both files")
        for handler in self.root.handlers:
            handler.flush()

        with open(log_file, encoding="utf-8") as fh:
            self.assertIn("written to both files", fh.read())
        with open(os.path.join(self.tmpdir, "logs", "error.log"), encoding="utf-8") as fh:
            self.assertIn("written to both files", fh.read())

    def test_repeated_setup_replaces_handlers(self):
        config = {"logging": {"log_file": os.path.join(self.tmpdir, "a.log"), "log_to_console": True}}
        setup_logging(config)
        setup_logging(config)
        self.assertEqual(len(self.root.handlers), 2)
        console = [h for h in self.root.handlers if not isinstance(h, logging.FileHandler)]
        self.assertEqual(console[0].level, logging.WARNING)


if __name__ == '__main__':
    unittest.main()
