import unittest

from skoolreports.core.models import Pupil, PupilResult, SubjectMark
from skoolreports.core.results import (
    PupilTotals,
    assign_positions,
    calculate_results,
    compute_totals,
    needs_calculation,
    needs_ranking,
    order_by_position,
    rank_key,
)


def make_pupil(pupil_id, marks, class_name="P.5", name=None):
    subjects = ["MTC", "ENG", "SCIE", "SST"]
    return Pupil(
        id=pupil_id,
        name=name or pupil_id,
        class_name=class_name,
        marks={s: SubjectMark(s, m) for s, m in zip(subjects, marks)},
    )


def totals(pupil_id, aggregate, total_marks):
    return PupilTotals(pupil=make_pupil(pupil_id, []), total_marks=total_marks, total_aggregate=aggregate)


class ComputeTotalsTests(unittest.TestCase):
    def test_all_hundreds(self):
        pupil = make_pupil("a", [100, 100, 100, 100])
        self.assertTrue(all(m.grade == "D1" and m.points == 1 for m in pupil.marks.values()))
        result = calculate_results([pupil])[0].result
        self.assertEqual(result.total_marks, 400)
        self.assertEqual(result.total_aggregate, 4)
        self.assertEqual(result.division, "Division 1")
        self.assertEqual(result.position, 1)

    def test_all_thirties(self):
        pupil = make_pupil("a", [30, 30, 30, 30])
        self.assertTrue(all(m.grade == "F9" and m.points == 9 for m in pupil.marks.values()))
        result = calculate_results([pupil])[0].result
        self.assertEqual(result.total_marks, 120)
        self.assertEqual(result.total_aggregate, 36)
        self.assertEqual(result.division, "Ungraded (U)")

    def test_partial_marks(self):
        pupil = make_pupil("a", [85, 62])
        t = compute_totals(pupil)
        self.assertEqual(t.total_marks, 147)
        self.assertEqual(t.total_aggregate, 7)
        result = calculate_results([pupil])[0].result
        self.assertEqual(result.total_aggregate, 7)
        self.assertEqual(result.division, "Division 1")
        self.assertEqual(result.position, 1)

    def test_no_marks(self):
        result = calculate_results([make_pupil("a", [])])[0].result
        self.assertEqual(result, PupilResult(total_marks=0, total_aggregate=0, division="Ungraded (U)", position=1))


class RankingTests(unittest.TestCase):
    def test_sort_by_aggregate_then_total_marks(self):
        ranked = sorted(
            [totals("a", 12, 200), totals("b", 8, 150), totals("c", 8, 180)],
            key=rank_key,
        )
        self.assertEqual([t.pupil.id for t in ranked], ["c", "b", "a"])
        self.assertEqual(assign_positions(ranked), [1, 2, 3])

    def test_ties_share_position_and_leave_gap(self):
        ranked = sorted(
            [totals("a", 10, 300), totals("b", 10, 300), totals("c", 20, 250)],
            key=rank_key,
        )
        self.assertEqual(assign_positions(ranked), [1, 1, 3])

    def test_four_way_tie(self):
        ranked = [totals(str(i), 8, 320) for i in range(4)] + [totals("e", 9, 330)]
        self.assertEqual(assign_positions(ranked), [1, 1, 1, 1, 5])

    def test_tie_in_middle(self):
        ranked = sorted(
            [totals("a", 5, 380), totals("b", 10, 300), totals("c", 10, 300), totals("d", 12, 290)],
            key=rank_key,
        )
        self.assertEqual(assign_positions(ranked), [1, 2, 2, 4])

    def test_equal_aggregate_different_marks_do_not_tie(self):
        ranked = sorted([totals("a", 10, 300), totals("b", 10, 301)], key=rank_key)
        self.assertEqual([t.pupil.id for t in ranked], ["b", "a"])
        self.assertEqual(assign_positions(ranked), [1, 2])

    def test_calculate_results_tie_rule_with_real_marks(self):
        pupils = [
            make_pupil("low", [62, 62, 63, 63]),
            make_pupil("first", [80, 80, 70, 70]),
            make_pupil("second", [70, 70, 80, 80]),
        ]
        ranked = calculate_results(pupils)
        self.assertEqual([p.id for p in ranked], ["first", "second", "low"])
        self.assertEqual([(p.result.total_aggregate, p.result.total_marks) for p in ranked], [(10, 300), (10, 300), (20, 250)])
        self.assertEqual([p.result.position for p in ranked], [1, 1, 3])

    def test_stable_for_full_ties(self):
        pupils = [make_pupil(pid, [75, 75, 75, 75]) for pid in ("x", "y", "z")]
        ranked = calculate_results(pupils)
        self.assertEqual([p.id for p in ranked], ["x", "y", "z"])
        self.assertEqual([p.result.position for p in ranked], [1, 1, 1])

    def test_idempotent(self):
        pupils = [
            make_pupil("a", [90, 40, 55, 70]),
            make_pupil("b", [66, 66, 66, 66]),
            make_pupil("c", [90, 40, 55, 70]),
            make_pupil("d", [20, 99]),
        ]
        first = calculate_results(pupils)
        second = calculate_results(pupils)
        self.assertEqual([(p.id, p.result) for p in first], [(p.id, p.result) for p in second])
        again = calculate_results(first)
        self.assertEqual([(p.id, p.result) for p in first], [(p.id, p.result) for p in again])

    def test_inputs_are_not_mutated(self):
        pupils = [make_pupil("a", [50, 50]), make_pupil("b", [90, 90])]
        calculate_results(pupils)
        self.assertTrue(all(p.result is None for p in pupils))
        self.assertEqual([p.id for p in pupils], ["a", "b"])

    def test_empty_class(self):
        self.assertEqual(calculate_results([]), [])

    def test_mixed_classes_rejected(self):
        with self.assertRaises(ValueError):
            calculate_results([make_pupil("a", [50], "P.4"), make_pupil("b", [50], "P.5")])


class HelperTests(unittest.TestCase):
    def test_needs_calculation(self):
        unranked = make_pupil("a", [50])
        ranked = calculate_results([make_pupil("b", [60])])[0]
        self.assertTrue(needs_calculation([unranked, ranked]))
        self.assertFalse(needs_calculation([ranked]))
        self.assertFalse(needs_calculation([make_pupil("c", [])]))
        self.assertFalse(needs_calculation([]))

    def test_needs_ranking_includes_pupils_without_marks(self):
        ranked = calculate_results([make_pupil("b", [60])])[0]
        self.assertTrue(needs_ranking([make_pupil("c", [])]))
        self.assertTrue(needs_ranking([ranked, make_pupil("c", [])]))
        self.assertFalse(needs_ranking([ranked]))
        self.assertFalse(needs_ranking([]))

    def test_order_by_position(self):
        ranked = calculate_results([make_pupil("a", [40]), make_pupil("b", [90])])
        unranked = make_pupil("z", [], name="Aaron")
        ordered = order_by_position([unranked, *ranked])
        self.assertEqual([p.id for p in ordered], ["b", "a", "z"])


if __name__ == "__main__":
    unittest.main()
