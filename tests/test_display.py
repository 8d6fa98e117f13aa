from __future__ import annotations

from datetime import datetime
import unittest

from inscriber.display import (
    format_amount,
    format_cooldown,
    format_duration,
    format_result,
    format_stats,
    format_trust,
    preview_prompt,
    shorten_hash,
)
from inscriber.outcomes import Success
from inscriber.state import EngineState

AT = datetime(2026, 3, 1, 9, 5, 7)


class TestDisplay(unittest.TestCase):
    def test_small_formatters(self) -> None:
        self.assertEqual("1,234,567", format_amount(1234567))
        self.assertEqual("0xabcd...7890", shorten_hash("0xabcdef1234567890"))
        self.assertEqual("0xabc", shorten_hash("0xabc"))
        self.assertEqual("29m05s", format_duration(1745))
        self.assertEqual("0m00s", format_duration(-5))
        self.assertEqual("85 (+3)", format_trust(85, 82))
        self.assertEqual("85", format_trust(85, 0))

    def test_prompt_preview_truncates(self) -> None:
        preview = preview_prompt("x" * 200)

        self.assertEqual(80, len(preview))
        self.assertTrue(preview.endswith("..."))

    def test_result_line(self) -> None:
        outcome = Success(reward=2500, trust_score=85, remaining_count=892, hash="0xabcdef1234567890")

        lines = format_result(outcome, 82, now=AT)

        self.assertEqual(
            ["[09:05:07] Inscribed | Hash: 0xabcd...7890 | Reward: 2,500 | Trust: 85 (+3) | Remaining: 892"],
            lines,
        )

    def test_result_with_ip_penalty(self) -> None:
        outcome = Success(reward=1, trust_score=1, remaining_count=1, ip_multiplier=3, agents_on_ip=4)

        lines = format_result(outcome, 0, now=AT)

        self.assertIn("multiplier: 3x, 4 agents on IP", lines[1])

    def test_hit_banner(self) -> None:
        outcome = Success(reward=1, trust_score=1, remaining_count=1, hit=True, target_id=42, image="https://i/42.png")

        lines = format_result(outcome, 0, now=AT)

        self.assertIn("[09:05:07] *** HIT! #42 is yours! ***", lines)
        self.assertIn("[09:05:07] Image: https://i/42.png", lines)

    def test_cooldown_and_stats(self) -> None:
        self.assertEqual(
            "[09:05:07] Next inscription in 30m00s (Ctrl+C to stop)",
            format_cooldown(1800, now=AT),
        )
        lines = format_stats(EngineState(total_submissions=3, total_reward=7500, challenges_failed=1))
        self.assertIn("Reward:       7,500", lines)
        self.assertIn("Challenges:   0 passed / 1 failed", lines)


if __name__ == "__main__":
    unittest.main()
