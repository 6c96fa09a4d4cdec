"""
Tests for field extraction from syllabus markdown.

Fixtures mirror the shapes Firecrawl returns for the public KOSEN syllabus
pages: key/value pipe tables, an 評価割合 matrix and free-text grading notes.
"""

import unittest

from kosengrade.extract import (
    INSTRUCTOR_PLACEHOLDER,
    UNKNOWN_TITLE,
    credits_from_registered_label,
    credits_from_unit_label,
    evaluation_from_grading_notes,
    evaluation_from_inline,
    evaluation_from_table,
    extract_candidate,
    extract_class_type,
    extract_credits,
    extract_description,
    extract_evaluation,
    extract_instructor,
    extract_term,
    extract_title,
    map_term,
)
from kosengrade.model import EvaluationItem, RawDocument
from kosengrade.validate import validate_candidate


DETAIL_URL = (
    "https://syllabus.kosen-k.go.jp/Pages/PublicSyllabus"
    "?school_id=20&department_id=31&subject_id=0042&year=2025&lang=ja"
)

SYLLABUS_PAGE = """\
# 線形代数

| 科目基礎情報 | | | |
|---|---|---|---|
| 学校 | 長野工業高等専門学校 | 開講年度 | 2025 |
| 授業科目 | 線形代数 | 科目番号 | 0042 |
| 科目区分 | 一般 / 必修 | 授業形態 | 講義 |
| 単位の種別と単位数 | 履修単位: 2 | 対象学生 | 情報エレクトロニクス系 |
| 開設期 | 後期 | 週時間数 | 2 |
| 担当教員 | 山田 太郎 | | |

**授業の概要**
行列と線形写像の基礎を学ぶ。

### 評価割合

| | 試験 | 発表 | 相互評価 | 態度 | ポートフォリオ | その他 | 合計 |
|---|---|---|---|---|---|---|---|
| 総合評価割合 | 80 | 0 | 0 | 0 | 20 | 0 | 100 |
| 基礎的能力 | 80 | 0 | 0 | 0 | 20 | 0 | 100 |
"""


def names_and_pcts(items):
    return [(i.name, i.percentage) for i in items]


class TestTitle(unittest.TestCase):
    def test_first_meaningful_heading(self) -> None:
        self.assertEqual(extract_title("# シラバス\n## 応用物理\ntext"), "応用物理")

    def test_deep_headings_are_ignored(self) -> None:
        self.assertEqual(extract_title("#### 注意事項\n| 科目名 | 応用数学 |"), "応用数学")

    def test_falls_back_to_subject_id_in_url(self) -> None:
        url = "https://syllabus.kosen-k.go.jp/detail?subject_id=0042"
        self.assertEqual(extract_title("plain body text without structure", url), "0042")

    def test_unknown_is_logged_as_ambiguity(self) -> None:
        with self.assertLogs("kosengrade.extract", level="WARNING") as logs:
            self.assertEqual(extract_title("nothing here"), UNKNOWN_TITLE)
        self.assertTrue(any("extraction-ambiguity" in line and "title" in line for line in logs.output))


class TestInstructor(unittest.TestCase):
    def test_table(self) -> None:
        self.assertEqual(extract_instructor("| 担当教員 | 山田 太郎 | | |"), "山田 太郎")

    def test_colon(self) -> None:
        self.assertEqual(extract_instructor("Instructor: Jane Doe\nmore"), "Jane Doe")

    def test_placeholder(self) -> None:
        self.assertEqual(extract_instructor("no contact information"), INSTRUCTOR_PLACEHOLDER)


class TestCredits(unittest.TestCase):
    def test_unit_label(self) -> None:
        self.assertEqual(credits_from_unit_label("単位数：３"), 3)

    def test_registered_label(self) -> None:
        self.assertEqual(credits_from_registered_label("| 単位の種別と単位数 | 履修単位: 2 |"), 2)

    def test_generic(self) -> None:
        self.assertEqual(extract_credits("This course is worth 4 credits."), 4)

    def test_out_of_range_is_ignored(self) -> None:
        self.assertEqual(extract_credits("単位数: 12"), 2)

    def test_default(self) -> None:
        self.assertEqual(extract_credits("nothing"), 2)


class TestTerm(unittest.TestCase):
    def test_map_term(self) -> None:
        self.assertEqual(map_term("前期"), "spring")
        self.assertEqual(map_term("後期"), "fall")
        self.assertEqual(map_term("通年"), "both")
        self.assertEqual(map_term("前期・後期"), "both")
        self.assertIsNone(map_term("集中"))

    def test_field(self) -> None:
        self.assertEqual(extract_term("| 開設期 | 後期 |"), "fall")
        self.assertEqual(extract_term("| 開設期 | 通年 |"), "both")

    def test_unrecognized_field_value_is_spring(self) -> None:
        self.assertEqual(extract_term("| 開設期 | 集中 |"), "spring")

    def test_document_wide(self) -> None:
        self.assertEqual(extract_term("This course runs in the second semester."), "fall")

    def test_english_keywords_need_whole_words(self) -> None:
        self.assertIsNone(map_term("See the fallback rules."))
        self.assertIsNone(map_term("Offspring of the falls"))
        self.assertEqual(map_term("Offered in Fall."), "fall")
        self.assertEqual(extract_term("If this falls through, use the fallback."), "spring")

    def test_default(self) -> None:
        self.assertEqual(extract_term("nothing"), "spring")


class TestClassType(unittest.TestCase):
    def test_field(self) -> None:
        self.assertEqual(extract_class_type("| 授業形態 | 実験 |", "x"), "experiment")
        self.assertEqual(extract_class_type("| 授業形態 | 演習 |", "x"), "practical")
        self.assertEqual(extract_class_type("| 授業形態 | 講義 |", "電気電子工学実験"), "lecture")

    def test_title_keywords(self) -> None:
        self.assertEqual(extract_class_type("body", "電気電子工学実験"), "experiment")
        self.assertEqual(extract_class_type("body", "英語演習"), "practical")

    def test_default(self) -> None:
        self.assertEqual(extract_class_type("body", "線形代数"), "lecture")


class TestEvaluation(unittest.TestCase):
    def test_english_matrix(self) -> None:
        text = (
            "## Evaluation percentages\n"
            "| | exam | report | routine | | other | total |\n"
            "|---|---|---|---|---|---|---|\n"
            "| overall evaluation percentage | 80 | 20 | 0 | 0 | 0 | 100 |\n"
        )
        self.assertEqual(names_and_pcts(evaluation_from_table(text)), [("exam", 80), ("report", 20)])

    def test_japanese_matrix(self) -> None:
        self.assertEqual(names_and_pcts(evaluation_from_table(SYLLABUS_PAGE)), [("試験", 80), ("ポートフォリオ", 20)])

    def test_matrix_without_value_row(self) -> None:
        self.assertIsNone(evaluation_from_table("| | 試験 | レポート |\n|---|---|---|\n| 基礎的能力 | 50 | 50 |"))

    def test_grading_notes(self) -> None:
        text = "**評価方法**\n定期試験(70%)、レポート(30%)で評価する。\n"
        self.assertEqual(names_and_pcts(evaluation_from_grading_notes(text)), [("定期試験", 70), ("レポート", 30)])

    def test_grading_notes_full_width(self) -> None:
        text = "**評価方法**\n定期試験（６０％）、課題（４０％）\n"
        self.assertEqual(names_and_pcts(evaluation_from_grading_notes(text)), [("定期試験", 60), ("課題", 40)])

    def test_inline(self) -> None:
        self.assertEqual(
            names_and_pcts(evaluation_from_inline("Exam 70%, report 30%")),
            [("Exam", 70), ("report", 30)],
        )

    def test_implausible_inline_total_is_rejected(self) -> None:
        self.assertIsNone(evaluation_from_inline("exam 50%, report 20%"))

    def test_default_breakdown(self) -> None:
        self.assertEqual(
            extract_evaluation("no grading info"),
            [EvaluationItem(name="exam", percentage=80), EvaluationItem(name="report", percentage=20)],
        )


class TestDescription(unittest.TestCase):
    def test_bold_label(self) -> None:
        self.assertEqual(extract_description(SYLLABUS_PAGE), "行列と線形写像の基礎を学ぶ。")

    def test_truncated(self) -> None:
        text = "**Course overview:** " + "a" * 500
        self.assertEqual(len(extract_description(text)), 400)

    def test_colon(self) -> None:
        self.assertEqual(extract_description("概要: 電磁気学の入門"), "電磁気学の入門")

    def test_missing(self) -> None:
        self.assertIsNone(extract_description("# Title\n| a | b |"))


class TestExtractCandidate(unittest.TestCase):
    def test_full_page(self) -> None:
        cand = extract_candidate(RawDocument(url=DETAIL_URL, content=SYLLABUS_PAGE))

        self.assertEqual(cand.subject_name, "線形代数")
        self.assertEqual(cand.instructor, "山田 太郎")
        self.assertEqual(cand.credits, 2)
        self.assertEqual(cand.term, "fall")
        self.assertEqual(cand.class_type, "lecture")
        self.assertEqual(names_and_pcts(cand.evaluation_criteria), [("試験", 80), ("ポートフォリオ", 20)])
        self.assertEqual(cand.source_url, DETAIL_URL)
        self.assertEqual(cand.fallback_fields, [])

        self.assertTrue(validate_candidate(cand).valid)

    def test_empty_page_degrades_to_defaults(self) -> None:
        url = "https://syllabus.kosen-k.go.jp/detail?subject_id=0042"
        with self.assertLogs("kosengrade.extract", level="WARNING"):
            cand = extract_candidate(RawDocument(url=url, content=""))

        self.assertEqual(cand.subject_name, "0042")
        self.assertEqual(cand.instructor, INSTRUCTOR_PLACEHOLDER)
        self.assertEqual(cand.credits, 2)
        self.assertEqual(cand.term, "spring")
        self.assertEqual(cand.class_type, "lecture")
        self.assertEqual(
            cand.fallback_fields,
            ["instructor", "credits", "term", "class_type", "evaluation_criteria"],
        )
        # defaults alone still form a valid record
        self.assertTrue(validate_candidate(cand).valid)


if __name__ == "__main__":
    unittest.main()
