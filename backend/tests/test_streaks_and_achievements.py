import unittest
from datetime import date, datetime, timedelta, timezone

from backend.services.scoring_service import achievements as ach
from backend.services.scoring_service.achievements import achievement_catalog, check_milestones
from backend.services.scoring_service.streaks import update_streak

TODAY = date(2026, 3, 10)


class UpdateStreakTests(unittest.TestCase):
    def test_first_activity_starts_at_one(self):
        s = update_streak(None, TODAY, 0, 0)
        self.assertEqual((s.current, s.longest, s.changed), (1, 1, True))

    def test_consecutive_day_extends(self):
        s = update_streak(TODAY - timedelta(days=1), TODAY, 6, 6)
        self.assertEqual((s.current, s.longest), (7, 7))
        self.assertTrue(s.changed)

    def test_same_day_is_unchanged(self):
        s = update_streak(TODAY, TODAY, 4, 9)
        self.assertEqual((s.current, s.longest, s.changed), (4, 9, False))

    def test_gap_resets_but_keeps_longest(self):
        s = update_streak(TODAY - timedelta(days=5), TODAY, 12, 12)
        self.assertEqual((s.current, s.longest), (1, 12))

    def test_time_of_day_is_ignored(self):
        late = datetime(2026, 3, 9, 23, 59, tzinfo=timezone.utc)
        early = datetime(2026, 3, 10, 0, 1, tzinfo=timezone.utc)
        self.assertEqual(update_streak(late, early, 2, 2).current, 3)

    def test_accepts_iso_strings(self):
        self.assertEqual(update_streak("2026-03-09", "2026-03-10T08:00:00Z", 1, 1).current, 2)

    def test_longest_never_decreases(self):
        last, current, longest = None, 0, 0
        for offset in [0, 1, 2, 6, 7, 7, 20]:
            day = TODAY + timedelta(days=offset)
            s = update_streak(last, day, current, longest)
            self.assertGreaterEqual(s.longest, longest)
            self.assertGreaterEqual(s.longest, s.current)
            last, current, longest = day, s.current, s.longest


class MilestoneTests(unittest.TestCase):
    def test_week_warrior_unlocks_once(self):
        first = ach.STREAK_MILESTONES.check(7, set())
        self.assertEqual([a.id for a in first], ["streak-3", "streak-7"])
        self.assertEqual(first[1].name, "Week Warrior")

        again = ach.STREAK_MILESTONES.check(7, {a.id for a in first})
        self.assertEqual(again, [])

    def test_reset_streak_triggers_nothing(self):
        self.assertEqual(ach.STREAK_MILESTONES.check(1, {"streak-3", "streak-7"}), [])

    def test_unlocked_at_is_the_given_time(self):
        now = datetime(2026, 3, 10, 9, tzinfo=timezone.utc)
        earned = check_milestones(10, ach.CARD_MILESTONES.milestones, [], now=now, category="cards")
        self.assertEqual([a.id for a in earned], ["cards-10"])
        self.assertEqual(earned[0].unlocked_at, now)
        self.assertEqual(earned[0].category, "cards")

    def test_threshold_not_reached(self):
        self.assertEqual(ach.QUIZ_MILESTONES.check(0, []), [])

    def test_bonus_xp_only_for_bonus_milestones(self):
        goal = ach.DAILY_GOAL_MILESTONES.check(1, [])
        self.assertEqual(ach.DAILY_GOAL_MILESTONES.bonus_xp(goal), 20)
        self.assertEqual(ach.STREAK_MILESTONES.bonus_xp(goal), 0)

    def test_ids_are_unique_across_families(self):
        ids = [m.id for family in ach.ALL_FAMILIES for m in family.milestones]
        self.assertEqual(len(ids), len(set(ids)))

    def test_catalog_lists_every_family(self):
        catalog = achievement_catalog()
        self.assertEqual({c["category"] for c in catalog}, {f.category for f in ach.ALL_FAMILIES})
        streaks = next(c for c in catalog if c["category"] == "streak")
        self.assertEqual([m["threshold"] for m in streaks["milestones"]], [3, 7, 30, 100, 365])


if __name__ == "__main__":
    unittest.main()
