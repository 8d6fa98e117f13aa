from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory
import unittest

from inscriber.config import InscriberConfig, explain_config, load_inscriber_toml


class TestInscriberConfig(unittest.TestCase):
    def test_missing_file_uses_defaults(self) -> None:
        with TemporaryDirectory() as tmp:
            cfg, warning = load_inscriber_toml(Path(tmp) / "inscriber.toml")

            self.assertEqual("", warning)
            self.assertEqual(InscriberConfig(), cfg)
            self.assertEqual(1800.0, cfg.engine.cooldown_s)
            self.assertEqual(5, cfg.engine.max_challenge_retries)
            self.assertEqual(3, cfg.solver.attempts)

    def test_values_are_parsed_and_clamped(self) -> None:
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "inscriber.toml"
            path.write_text(
                "\n".join(
                    [
                        "[engine]",
                        "target_id = 42",
                        'cooldown_s = "900"',
                        "backoff_initial_s = -3",
                        "max_challenge_retries = 2",
                        'client_version = "1.3.0"',
                        "",
                        "[solver]",
                        "attempts = 0",
                        "",
                        "[backend]",
                        'provider = "my_agent.backends:make_provider"',
                        "",
                        "[logging]",
                        'level = "DEBUG"',
                        'console = "off"',
                    ]
                ),
                encoding="utf-8",
            )

            cfg, warning = load_inscriber_toml(path)

            self.assertEqual("", warning)
            self.assertEqual(42, cfg.engine.target_id)
            self.assertEqual(900.0, cfg.engine.cooldown_s)
            self.assertEqual(0.1, cfg.engine.backoff_initial_s)
            self.assertEqual(2, cfg.engine.max_challenge_retries)
            self.assertEqual("1.3.0", cfg.engine.client_version)
            self.assertEqual(1, cfg.solver.attempts)
            self.assertEqual("my_agent.backends:make_provider", cfg.backend.provider)
            self.assertEqual("", cfg.backend.client)
            self.assertEqual("debug", cfg.logging.level)
            self.assertFalse(cfg.logging.console)

    def test_parse_error_returns_defaults_and_warning(self) -> None:
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "inscriber.toml"
            path.write_text("[engine\ncooldown_s = 1", encoding="utf-8")

            cfg, warning = load_inscriber_toml(path)

            self.assertEqual(InscriberConfig(), cfg)
            self.assertIn("parse failed", warning)

    def test_explain_config_lists_every_setting(self) -> None:
        lines = explain_config(InscriberConfig())

        self.assertIn("engine.cooldown_s = 1800", lines)
        self.assertIn("backend.provider = (unset)", lines)
        self.assertIn("logging.console = true", lines)


if __name__ == "__main__":
    unittest.main()
