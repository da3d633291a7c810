import unittest

from backend.services.scoring_service import analytics
from backend.services.scoring_service.analytics import AttemptSample, fold, running_mean
from backend.services.scoring_service.errors import NotFoundError, PermissionDeniedError
from backend.services.scoring_service.models import AnalyticsAggregate, EvaluatedAnswer, Result

from .fixtures import AUTHOR, at, cardio_quiz, make_store


def sample(score, time_spent=60.0, answers=None, question_ids=("q1", "q2")):
    return AttemptSample(
        completed=True,
        score_percentage=score,
        time_spent=time_spent,
        question_ids=tuple(question_ids),
        answers=answers or {},
    )


def answered(qid, correct, time_spent=10.0, user_answer="x"):
    return EvaluatedAnswer(question_id=qid, user_answer=user_answer, is_correct=correct, time_spent=time_spent)


class FoldTests(unittest.TestCase):
    def test_fifth_attempt_moves_average_score(self):
        agg = AnalyticsAggregate(quiz_id="cardio", total_attempts=4, average_score=70.0, completion_rate=100.0)
        updated = fold(agg, sample(50))
        self.assertEqual(updated.total_attempts, 5)
        self.assertAlmostEqual(updated.average_score, 66.0)
        self.assertAlmostEqual(updated.completion_rate, 100.0)

    def test_fold_does_not_modify_input(self):
        agg = AnalyticsAggregate(quiz_id="cardio")
        fold(agg, sample(80, answers={"q1": answered("q1", True)}))
        self.assertEqual(agg.total_attempts, 0)
        self.assertEqual(agg.question_stats, {})

    def test_running_mean(self):
        self.assertEqual(running_mean(0.0, 1, 42), 42)
        self.assertEqual(running_mean(10.0, 2, 20), 15)
        self.assertEqual(running_mean(15.0, 3, 0), 10)

    def test_question_stats_created_on_first_appearance(self):
        agg = fold(AnalyticsAggregate(quiz_id="cardio"), sample(50, answers={"q1": answered("q1", True, time_spent=8)}))
        q1, q2 = agg.question_stats["q1"], agg.question_stats["q2"]

        self.assertEqual((q1.success_rate, q1.skip_rate, q1.average_time_spent), (100.0, 0.0, 8.0))
        # q2 was never answered
        self.assertEqual((q2.success_rate, q2.skip_rate, q2.average_time_spent), (0.0, 100.0, 0.0))

    def test_skip_rate_and_time_use_their_own_samples(self):
        agg = AnalyticsAggregate(quiz_id="cardio")
        for answer in [
            answered("q1", True, time_spent=10),
            answered("q1", False, time_spent=0, user_answer=None),
            answered("q1", False, time_spent=20),
        ]:
            agg = fold(agg, sample(0, answers={"q1": answer}, question_ids=["q1"]))

        stat = agg.question_stats["q1"]
        self.assertEqual((stat.attempts, stat.answered), (3, 2))
        self.assertAlmostEqual(stat.success_rate, 100 / 3)
        self.assertAlmostEqual(stat.skip_rate, 100 / 3)
        self.assertAlmostEqual(stat.average_time_spent, 15.0)

    def test_rates_stay_in_bounds(self):
        agg = AnalyticsAggregate(quiz_id="cardio")
        for score in [100, 0, 100, 100, 0]:
            agg = fold(agg, sample(score, answers={"q1": answered("q1", score == 100)}))
        for stat in agg.question_stats.values():
            self.assertTrue(0 <= stat.success_rate <= 100)
            self.assertTrue(0 <= stat.skip_rate <= 100)
        self.assertTrue(0 <= agg.completion_rate <= 100)


class AnalyticsStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = make_store()

    def test_record_attempt_is_applied_once(self):
        result = self.store.add_result(Result(
            quiz_id="cardio", user_id="u1", score=2, total_questions=4,
            answers=[answered("q1", True), answered("q2", True)],
            time_spent=40, completed_at=at(10),
        ))

        first = analytics.record_attempt(self.store, cardio_quiz(), result)
        self.assertEqual(first.total_attempts, 1)
        self.assertEqual(first.average_score, 50.0)
        self.assertEqual(set(first.question_stats), {"q1", "q2", "q3", "q4"})

        self.assertIsNone(analytics.record_attempt(self.store, cardio_quiz(), result))
        self.assertEqual(self.store.get_analytics("cardio").total_attempts, 1)

    def test_get_analytics_author_only(self):
        body = analytics.get_analytics(self.store, "cardio", AUTHOR)
        self.assertTrue(body["ok"])
        self.assertEqual(body["analytics"]["totalAttempts"], 0)

        with self.assertRaises(PermissionDeniedError):
            analytics.get_analytics(self.store, "cardio", "someone-else")
        with self.assertRaises(NotFoundError):
            analytics.get_analytics(self.store, "missing", AUTHOR)


def stored(user_id, score, day, time_spent=60):
    return Result(
        quiz_id="cardio", user_id=user_id, score=score, total_questions=4,
        answers=[], time_spent=time_spent, completed_at=at(day),
    )


class UserPerformanceTests(unittest.TestCase):
    def test_rank_bands(self):
        for percentile, rank in [(100, "Expert"), (95, "Expert"), (94, "Advanced"), (80, "Advanced"),
                                 (60, "Intermediate"), (40, "Novice"), (39, "Beginner"), (0, "Beginner")]:
            with self.subTest(percentile=percentile):
                self.assertEqual(analytics.rank_for_percentile(percentile), rank)

    def test_latest_attempt_against_everyone(self):
        results = [
            stored("u1", 1, day=1, time_spent=90),
            stored("u1", 3, day=5, time_spent=40),
            stored("u2", 2, day=2, time_spent=30),
            stored("u3", 4, day=3, time_spent=50),
        ]
        perf = analytics.user_performance(results, "u1")
        # 75% beats the 25% and 50% attempts: 2 of 4
        self.assertEqual(perf, {
            "percentile": 50,
            "rank": "Novice",
            "fastestTime": False,
            "highestAccuracy": False,
        })

        best = analytics.user_performance(results, "u3")
        self.assertEqual((best["percentile"], best["rank"], best["highestAccuracy"]), (75, "Intermediate", True))
        self.assertTrue(analytics.user_performance(results, "u2")["fastestTime"])
        self.assertIsNone(analytics.user_performance(results, "nobody"))

    def test_accuracy_trend_oldest_first(self):
        results = [stored("u1", 3, day=5), stored("u2", 4, day=4), stored("u1", 1, day=1)]
        self.assertEqual(analytics.accuracy_trend(results, "u1"), [
            {"date": at(1).isoformat(), "score": 25.0},
            {"date": at(5).isoformat(), "score": 75.0},
        ])

    def test_get_analytics_includes_author_standing(self):
        store = make_store()
        store.add_result(stored(AUTHOR, 4, day=2, time_spent=20))
        store.add_result(stored("u2", 2, day=3))

        body = analytics.get_analytics(store, "cardio", AUTHOR)
        self.assertEqual(body["userPerformance"]["percentile"], 50)
        self.assertTrue(body["userPerformance"]["highestAccuracy"])
        self.assertEqual(body["accuracyTrend"], [{"date": at(2).isoformat(), "score": 100.0}])


if __name__ == "__main__":
    unittest.main()
