import unittest

from skoolreports.core.models import Pupil, SubjectMark
from skoolreports.core.results import calculate_results
from skoolreports.core.summary import summarize_class


def pupil(pid, **marks):
    return Pupil(id=pid, name=pid.title(), class_name="P.6", marks={s: SubjectMark(s, m) for s, m in marks.items()})


class SummaryTests(unittest.TestCase):
    def setUp(self):
        self.pupils = calculate_results(
            [
                pupil("amina", MTC=100, ENG=100, SCIE=100, SST=100),
                pupil("brian", MTC=30, ENG=30, SCIE=30, SST=30),
                pupil("cissy", MTC=80, ENG=60),
            ]
        )

    def test_counts_and_averages(self):
        summary = summarize_class("P.6", self.pupils)
        self.assertEqual(summary.total_pupils, 3)
        self.assertEqual(summary.pupils_with_results, 3)
        self.assertEqual(summary.class_average, round((400 + 120 + 140) / 3, 1))
        self.assertEqual(summary.subject_averages["MTC"], round((100 + 30 + 80) / 3, 1))
        # cissy has no SCIE mark, which counts as 0
        self.assertEqual(summary.subject_averages["SCIE"], round(130 / 3, 1))

    def test_divisions_and_top_performer(self):
        summary = summarize_class("P.6", self.pupils)
        self.assertEqual(summary.division_counts["Division 1"], 2)
        self.assertEqual(summary.division_counts["Ungraded (U)"], 1)
        self.assertEqual(summary.division_counts["Division 4"], 0)
        self.assertEqual(summary.division_1_percent, 66.7)
        self.assertEqual(summary.top_performer.id, "amina")

    def test_grade_counts(self):
        summary = summarize_class("P.6", self.pupils)
        self.assertEqual(summary.grade_counts["MTC"]["D1"], 1)
        self.assertEqual(summary.grade_counts["MTC"]["D2"], 1)
        self.assertEqual(summary.grade_counts["MTC"]["F9"], 1)
        self.assertEqual(summary.grade_counts["SCIE"]["P8"], 0)
        self.assertEqual(summary.grade_percents["ENG"]["C5"], 33.3)

    def test_unranked_pupils_are_excluded_from_averages(self):
        pupils = [self.pupils[0], pupil("new", MTC=10)]
        summary = summarize_class("P.6", pupils)
        self.assertEqual(summary.total_pupils, 2)
        self.assertEqual(summary.pupils_with_results, 1)
        self.assertEqual(summary.class_average, 400.0)
        self.assertEqual(summary.division_1_percent, 50.0)
        self.assertEqual(summary.grade_counts["MTC"]["F9"], 1)

    def test_empty_class(self):
        summary = summarize_class("P.7", [])
        self.assertEqual(summary.total_pupils, 0)
        self.assertEqual(summary.class_average, 0.0)
        self.assertEqual(summary.subject_averages, {"MTC": 0.0, "ENG": 0.0, "SCIE": 0.0, "SST": 0.0})
        self.assertIsNone(summary.top_performer)
        self.assertEqual(summary.division_1_percent, 0.0)
        self.assertIsNone(summary.to_dict()["top_performer"])


if __name__ == "__main__":
    unittest.main()
