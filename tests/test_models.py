import unittest

from skoolreports.core.models import (
    Pupil,
    PupilResult,
    SubjectMark,
    marks_by_subject,
    validate_class_name,
    validate_subject,
)


class ModelTests(unittest.TestCase):
    def test_validate_codes(self):
        self.assertEqual(validate_subject(" scie "), "SCIE")
        self.assertEqual(validate_class_name("p.4"), "P.4")
        with self.assertRaises(ValueError):
            validate_subject("ART")
        with self.assertRaises(ValueError):
            validate_class_name("P.3")

    def test_marks_by_subject_orders_and_keeps_latest(self):
        marks = marks_by_subject(
            [SubjectMark("SST", 40), SubjectMark("MTC", 50), SubjectMark("SST", 90), SubjectMark("ART", 10)]
        )
        self.assertEqual(list(marks), ["MTC", "SST"])
        self.assertEqual(marks["SST"].marks, 90)
        self.assertEqual(marks["SST"].grade, "D2")

    def test_pupil_to_dict(self):
        pupil = Pupil("p1", "Auma", "P.5", marks={"ENG": SubjectMark("ENG", 51, "Ms. Kemigisha")})
        data = pupil.to_dict()
        self.assertFalse(pupil.is_ranked)
        self.assertIsNone(data["division"])
        self.assertEqual(data["marks"][0]["grade"], "P7")
        self.assertIsNone(pupil.mark_for("MTC"))

        pupil.result = PupilResult(51, 7, "Division 1", 1)
        self.assertTrue(pupil.is_ranked)
        self.assertEqual(pupil.to_dict()["total_aggregate"], 7)


if __name__ == "__main__":
    unittest.main()
