"""
Unit tests for record validation.

The validator collects every violated rule and is the only producer of
ValidatedSyllabusRecord.
"""

import unittest

import pydantic

from kosengrade.model import CandidateSyllabusRecord, EvaluationItem, ValidatedSyllabusRecord
from kosengrade.validate import validate_candidate


def candidate(**overrides) -> CandidateSyllabusRecord:
    base = dict(
        subject_name="線形代数",
        instructor="山田 太郎",
        credits=2,
        term="fall",
        class_type="lecture",
        evaluation_criteria=[EvaluationItem(name="試験", percentage=80), EvaluationItem(name="レポート", percentage=20)],
        description="行列と線形写像",
    )
    base.update(overrides)
    return CandidateSyllabusRecord(**base)


class TestValidateCandidate(unittest.TestCase):
    def test_valid_record(self) -> None:
        result = validate_candidate(candidate())
        self.assertTrue(result.valid)
        self.assertEqual(result.errors, [])
        self.assertIsInstance(result.data, ValidatedSyllabusRecord)
        self.assertEqual(result.data.subject_name, "線形代数")
        self.assertEqual(result.data.credits, 2)
        self.assertEqual(sum(i.percentage for i in result.data.evaluation_criteria), 100)

    def test_validated_record_is_frozen(self) -> None:
        data = validate_candidate(candidate()).data
        with self.assertRaises(pydantic.ValidationError):
            data.credits = 5  # type: ignore[misc]

    def test_credits_out_of_range(self) -> None:
        for bad in (0, 11, -1, "2", None, True):
            with self.subTest(credits=bad):
                result = validate_candidate(candidate(credits=bad))
                self.assertFalse(result.valid)
                self.assertTrue(any("Credits" in e for e in result.errors))

    def test_credit_bounds_accepted(self) -> None:
        self.assertTrue(validate_candidate(candidate(credits=1)).valid)
        self.assertTrue(validate_candidate(candidate(credits=10)).valid)

    def test_sum_within_tolerance_is_normalized(self) -> None:
        for pair in ((58, 40), (62, 40)):
            with self.subTest(pair=pair):
                result = validate_candidate(
                    candidate(evaluation_criteria=[EvaluationItem(name="exam", percentage=pair[0]), EvaluationItem(name="report", percentage=pair[1])])
                )
                self.assertTrue(result.valid)
                self.assertEqual(sum(i.percentage for i in result.data.evaluation_criteria), 100)
                self.assertTrue(any("normalized" in w for w in result.warnings))

    def test_sum_outside_tolerance_is_rejected(self) -> None:
        short = validate_candidate(candidate(evaluation_criteria=[EvaluationItem(name="exam", percentage=57), EvaluationItem(name="report", percentage=40)]))
        self.assertFalse(short.valid)
        self.assertIn("Evaluation percentages sum to 97% (must be 100%)", short.errors)
        self.assertIn("Shortfall: 3%", short.errors)

        excess = validate_candidate(candidate(evaluation_criteria=[EvaluationItem(name="exam", percentage=63), EvaluationItem(name="report", percentage=40)]))
        self.assertFalse(excess.valid)
        self.assertIn("Excess: 3%", excess.errors)

    def test_errors_accumulate(self) -> None:
        result = validate_candidate(candidate(subject_name="  ", instructor="", term="winter", class_type="seminar"))
        self.assertFalse(result.valid)
        self.assertIsNone(result.data)
        self.assertIn("Subject name is missing or empty", result.errors)
        self.assertIn("Instructor is missing or empty", result.errors)
        self.assertTrue(any("Term" in e for e in result.errors))
        self.assertTrue(any("Class type" in e for e in result.errors))
        self.assertEqual(len(result.errors), 4)

    def test_malformed_criteria(self) -> None:
        malformed = (
            [],
            None,
            "exam 100%",
            [{"name": "", "percentage": 100}],
            [{"name": "exam", "percentage": -5}],
            [{"name": "exam", "percentage": "100"}],
            [{"name": "exam"}],
        )
        for bad in malformed:
            with self.subTest(criteria=bad):
                result = validate_candidate(candidate(evaluation_criteria=bad))
                self.assertIn("Evaluation criteria are missing or malformed", result.errors)

    def test_bad_items_give_one_message(self) -> None:
        result = validate_candidate(
            candidate(evaluation_criteria=[{"name": "", "percentage": 50}, {"name": "report", "percentage": -1}])
        )
        self.assertEqual(result.errors, ["Evaluation criteria are missing or malformed"])

    def test_exact_hundred_has_no_warning(self) -> None:
        self.assertEqual(validate_candidate(candidate()).warnings, [])

    def test_fractional_credits_rejected(self) -> None:
        result = validate_candidate(candidate(credits=2.5))
        self.assertEqual(result.errors, ["Credits must be an integer between 1 and 10 (got 2.5)"])

    def test_accepts_untrusted_mapping(self) -> None:
        result = validate_candidate(
            {
                "subjectName": " Applied Physics ",
                "instructor": "Jane Doe",
                "credits": 1,
                "term": "both",
                "classType": "experiment",
                "evaluationCriteria": [{"name": "report", "percentage": 100}],
            }
        )
        self.assertTrue(result.valid)
        self.assertEqual(result.data.subject_name, "Applied Physics")
        self.assertEqual(result.data.class_type, "experiment")
        self.assertIsNone(result.data.description)


if __name__ == "__main__":
    unittest.main()
