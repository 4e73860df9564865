from __future__ import annotations

import contextlib
import io
import json
import tempfile
import unittest
from pathlib import Path

from voidclicker.cli import main
from voidclicker.persistence import SaveRepository


def run_cli(argv: list[str]) -> tuple[int, str]:
    buffer = io.StringIO()
    with contextlib.redirect_stdout(buffer):
        code = main(argv)
    return code, buffer.getvalue()


class CliTests(unittest.TestCase):
    def test_simulate_writes_save_and_json_summary(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "save.json").write_text(json.dumps({"essence": 120, "totalEssence": 120}), encoding="utf-8")
            (root / "actions.json").write_text(
                json.dumps(
                    [
                        {"type": "buy_upgrade", "upgrade_id": "dps1"},
                        {"type": "tick", "delta_ms": 1000},
                        {"type": "buy_upgrade", "upgrade_id": "missing"},
                    ]
                ),
                encoding="utf-8",
            )

            code, output = run_cli(
                [
                    "simulate",
                    "--save", str(root / "save.json"),
                    "--actions", str(root / "actions.json"),
                    "--seed", "1",
                    "--now-ms", "5000",
                    "--out", str(root / "out.json"),
                    "--format", "json",
                ]
            )

            self.assertEqual(code, 0)
            payload = json.loads(output)
            self.assertEqual((payload["applied"], payload["rejected"]), (2, 1))
            self.assertEqual(payload["summary"]["dps"], 1.0)
            saved = json.loads((root / "out.json").read_text(encoding="utf-8"))
            self.assertEqual(saved["essence"], 81.0)
            self.assertEqual(saved["lastSaveTime"], 5000)

    def test_simulate_table_for_new_game(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            actions = Path(tmp) / "actions.json"
            actions.write_text(json.dumps([{"type": "click"}, {"type": "click"}]), encoding="utf-8")
            code, output = run_cli(["simulate", "--actions", str(actions), "--seed", "3"])

        self.assertEqual(code, 0)
        self.assertIn("Applied 2/2 actions", output)
        self.assertIn("Clicks: 2", output)

    def test_inspect_accepts_server_document(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "doc.json"
            path.write_text(json.dumps({"user_id": "alice", "state": {"rebirthLevel": 3}}), encoding="utf-8")
            code, output = run_cli(["inspect", str(path), "--format", "json"])

        self.assertEqual(code, 0)
        summary = json.loads(output)["summary"]
        self.assertEqual(summary["rebirth_level"], 3)
        self.assertTrue(summary["abilities"]["ability2"]["unlocked"])

    def test_leaderboard_table_and_json(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = SaveRepository(saves_dir=Path(tmp))
            repo.put("alice", {"totalClicks": 10})
            repo.put("bob", {"totalClicks": 30})

            code, output = run_cli(["leaderboard", tmp, "--sort-by", "clicks", "--format", "json"])
            self.assertEqual(code, 0)
            self.assertEqual([item["user_id"] for item in json.loads(output)], ["bob", "alice"])

            code, output = run_cli(["leaderboard", tmp, "--limit", "1"])
            self.assertEqual(code, 0)
            self.assertIn("Rank", output)
            self.assertNotIn("bob", output)

    def test_leaderboard_defaults_to_config_save_dir(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            SaveRepository(saves_dir=root / "saves").put("alice", {"totalClicks": 4})
            config = root / "game.yaml"
            config.write_text("save_dir: saves\n", encoding="utf-8")

            code, output = run_cli(["--config", str(config), "leaderboard", "--format", "json"])

            self.assertEqual(code, 0)
            self.assertEqual([item["user_id"] for item in json.loads(output)], ["alice"])

    def test_run_writes_local_save(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = Path(tmp) / "game.json"
            config.write_text(json.dumps({"local_save_path": "local.json", "seed": 1}), encoding="utf-8")
            code, output = run_cli(["--config", str(config), "run", "--seconds", "0.05"])

            self.assertEqual(code, 0)
            self.assertIn("Essence:", output)
            saved = json.loads((Path(tmp) / "local.json").read_text(encoding="utf-8"))
            self.assertIn("lastSaveTime", saved)

    def test_errors_exit_through_parser(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            bad_actions = Path(tmp) / "actions.json"
            bad_actions.write_text(json.dumps([{"type": "warp"}]), encoding="utf-8")
            bad_config = Path(tmp) / "game.json"
            bad_config.write_text(json.dumps({"tick_interval_ms": -1}), encoding="utf-8")

            cases = [
                ["simulate", "--actions", str(bad_actions)],
                ["simulate", "--actions", str(Path(tmp) / "missing.json")],
                ["--catalog-version", "9.9.9", "inspect", str(bad_actions)],
                ["--config", str(bad_config), "inspect", str(bad_actions)],
                ["leaderboard", str(Path(tmp) / "nowhere")],
            ]
            for argv in cases:
                with contextlib.redirect_stderr(io.StringIO()):
                    with self.assertRaises(SystemExit, msg=str(argv)) as ctx:
                        run_cli(argv)
                self.assertEqual(ctx.exception.code, 2)


class LauncherTests(unittest.TestCase):
    def setUp(self) -> None:
        try:
            from voidclicker import launcher
        except Exception as exc:  # pragma: no cover
            self.skipTest(f"uvicorn is not importable in this environment: {exc}")
            return
        self.launcher = launcher

    def test_saves_dir_comes_from_flag_then_config(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            config = root / "game.json"
            config.write_text(json.dumps({"save_dir": "data/saves"}), encoding="utf-8")

            self.assertEqual(self.launcher.resolve_saves_dir(str(root / "explicit"), str(config)), root / "explicit")
            self.assertEqual(self.launcher.resolve_saves_dir(None, str(config)), root / "data" / "saves")
            self.assertIsNone(self.launcher.resolve_saves_dir(None, None))


if __name__ == "__main__":
    unittest.main()
