import json
import tempfile
import unittest
from pathlib import Path

from taskviewer.services.team_cache import TeamConfigCache


class FakeClock:
    def __init__(self, now: float = 50.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TeamConfigCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.teams_dir = Path(tmpdir.name) / "teams"
        self.clock = FakeClock()
        self.cache = TeamConfigCache(self.teams_dir, ttl=5, clock=self.clock)

    def _write_config(self, team_id: str, members: list[dict]) -> None:
        team_dir = self.teams_dir / team_id
        team_dir.mkdir(parents=True, exist_ok=True)
        (team_dir / "config.json").write_text(json.dumps({"name": team_id, "members": members}), encoding="utf-8")

    def test_entry_is_reused_within_window(self) -> None:
        self._write_config("alpha", [{"name": "lead"}])
        first = self.cache.load("alpha")

        self._write_config("alpha", [{"name": "lead"}, {"name": "tester"}])
        self.clock.now += 4
        second = self.cache.load("alpha")

        self.assertIs(first, second)
        assert second is not None
        self.assertEqual(len(second.members), 1)

    def test_entry_reloads_after_window(self) -> None:
        self._write_config("alpha", [{"name": "lead"}])
        self.cache.load("alpha")
        self._write_config("alpha", [{"name": "lead"}, {"name": "tester"}])
        self.clock.now += 5

        team = self.cache.load("alpha")
        assert team is not None
        self.assertEqual(len(team.members), 2)

    def test_absence_is_cached(self) -> None:
        self.assertIsNone(self.cache.load("alpha"))
        self.assertIn("alpha", self.cache)

        self._write_config("alpha", [{"name": "lead"}])
        self.assertIsNone(self.cache.load("alpha"))

        self.clock.now += 5
        self.assertIsNotNone(self.cache.load("alpha"))

    def test_evict_forces_reload_for_that_team_only(self) -> None:
        self._write_config("alpha", [{"name": "lead"}])
        self._write_config("beta", [{"name": "lead"}])
        self.cache.load("alpha")
        beta = self.cache.load("beta")

        self._write_config("alpha", [{"name": "lead"}, {"name": "tester"}])
        self.cache.evict("alpha")

        alpha = self.cache.load("alpha")
        assert alpha is not None
        self.assertEqual(len(alpha.members), 2)
        self.assertIs(self.cache.load("beta"), beta)

    def test_path_like_ids_are_rejected(self) -> None:
        self.assertIsNone(self.cache.load("../alpha"))
        self.assertIsNone(self.cache.load(""))
        self.assertNotIn("../alpha", self.cache)


if __name__ == "__main__":
    unittest.main()
