"""
Unit tests for the course pool file.

Storage contract:
- Missing/invalid file -> empty list
- Records are merged by id (existing keep their position, new appended)
- JSON schema: {"courses": [ ... ]}
"""

import json
import tempfile
import unittest
from pathlib import Path

from kosengrade.assemble import assemble_course_record
from kosengrade.model import EvaluationItem, ValidatedSyllabusRecord
from kosengrade.storage import delete_course_record, load_course_records, save_course_records


def course(name: str):
    record = ValidatedSyllabusRecord(
        subject_name=name,
        instructor="山田 太郎",
        credits=2,
        term="spring",
        class_type="lecture",
        evaluation_criteria=(EvaluationItem(name="試験", percentage=100),),
    )
    return assemble_course_record(record, "spring", 2025)


class TestStorage(unittest.TestCase):
    def test_load_missing_file_returns_empty(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            self.assertEqual(load_course_records(Path(d) / "missing.json"), [])

    def test_load_corrupt_file_returns_empty(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "course_pool.json"
            p.write_text("{not json", encoding="utf-8")
            with self.assertLogs("kosengrade.storage", level="WARNING"):
                self.assertEqual(load_course_records(p), [])

    def test_save_and_load_roundtrip(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "nested" / "course_pool.json"
            a, b = course("線形代数"), course("応用物理")
            save_course_records([a, b], p)

            self.assertEqual(load_course_records(p), [a, b])

            data = json.loads(p.read_text(encoding="utf-8"))
            self.assertIn("courses", data)
            self.assertEqual([c["name"] for c in data["courses"]], ["線形代数", "応用物理"])

    def test_save_merges_by_id(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "course_pool.json"
            a, b = course("線形代数"), course("応用物理")
            save_course_records([a, b], p)

            a.absences = 3
            c = course("英語")
            save_course_records([c, a], p)

            loaded = load_course_records(p)
            self.assertEqual([r.name for r in loaded], ["線形代数", "応用物理", "英語"])
            self.assertEqual(loaded[0].absences, 3)

    def test_broken_entries_are_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "course_pool.json"
            good = course("線形代数")
            p.write_text(
                json.dumps({"courses": [{"id": "broken"}, "junk", good.to_dict()]}, ensure_ascii=False),
                encoding="utf-8",
            )
            with self.assertLogs("kosengrade.storage", level="WARNING"):
                self.assertEqual(load_course_records(p), [good])

    def test_delete(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "course_pool.json"
            a, b = course("線形代数"), course("応用物理")
            save_course_records([a, b], p)

            self.assertTrue(delete_course_record(a.id, p))
            self.assertFalse(delete_course_record(a.id, p))
            self.assertEqual(load_course_records(p), [b])


if __name__ == "__main__":
    unittest.main()
