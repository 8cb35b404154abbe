import unittest
from unittest.mock import patch
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from taxintake.models.form_answer import ANSWER_SOURCE_CLIENT, FormAnswer
from taxintake.services.filing_exceptions import FilingNotFoundError, MappingTableMissingError
from taxintake.services.filing_store import FieldRegistry, FilingStore, MappingRegistry
from tests.base import FirmApiBase


class FilingStoreTests(FirmApiBase):
    def setUp(self):
        super().setUp()
        self.filing = self._seed_filing()
        self._seed_fields(
            {"field_key": "a", "section": "Income", "sort_order": 1},
            {"field_key": "b", "section": "Income", "sort_order": 2},
            {"field_key": "c", "section": "Income", "sort_order": 3, "is_calculated": True, "calculation": "a - b"},
        )

    def _fields(self, db):
        return FieldRegistry(db).get_field_definitions("1041")

    def test_saved_answers_read_back_unchanged(self):
        answers = {
            "name": "Estate of A",
            "entity_type": ["Simple trust", "Q-SUB"],
            "wrapped": {"value": "x"},
            "amount": 12.5,
            "flag": True,
            "empty": None,
        }
        with self.SessionLocal() as db:
            FilingStore(db).save_answers(self.filing.id, answers)
        with self.SessionLocal() as db:
            self.assertEqual(FilingStore(db).get_answers(self.filing.id), answers)

    def test_save_replaces_whole_set_and_recomputes(self):
        self._seed_answers(self.filing.id, {"stale": "old"})
        with self.SessionLocal() as db:
            saved = FilingStore(db).save_answers(
                self.filing.id, {"a": 10, "b": 5, "c": 999}, fields=self._fields(db), updated_by="member-1"
            )
        self.assertEqual(saved, {"a": 10, "b": 5, "c": 5})
        self.assertEqual(self._answers(self.filing.id), {"a": 10, "b": 5, "c": 5})

    def test_failed_save_leaves_previous_answers(self):
        self._seed_answers(self.filing.id, {"a": 1})
        with self.SessionLocal() as db:
            store = FilingStore(db)
            with patch.object(db, "commit", side_effect=SQLAlchemyError("disk full")):
                with self.assertLogs("taxintake.filings", level="ERROR"):
                    with self.assertRaises(SQLAlchemyError):
                        store.save_answers(self.filing.id, {"a": 2, "b": 3})
        self.assertEqual(self._answers(self.filing.id), {"a": 1})

    def test_upsert_repersists_calculated_fields(self):
        with self.SessionLocal() as db:
            store = FilingStore(db)
            fields = self._fields(db)
            store.save_answers(self.filing.id, {"a": 10, "b": 5}, fields=fields)
            merged = store.upsert_answer(self.filing.id, "a", 20, fields=fields, source=ANSWER_SOURCE_CLIENT)
        self.assertEqual(merged, {"a": 20, "b": 5, "c": 15})
        self.assertEqual(self._answers(self.filing.id), {"a": 20, "b": 5, "c": 15})
        with self.SessionLocal() as db:
            row = db.query(FormAnswer).filter(FormAnswer.field_key == "a").one()
            self.assertEqual(row.source, ANSWER_SOURCE_CLIENT)

    def test_merge_keeps_untouched_answers(self):
        self._seed_answers(self.filing.id, {"note": "keep", "a": 1})
        with self.SessionLocal() as db:
            FilingStore(db).merge_answers(self.filing.id, {"b": 4}, fields=self._fields(db))
        self.assertEqual(self._answers(self.filing.id), {"note": "keep", "a": 1, "b": 4, "c": -3})

    def test_other_firm_filing_is_not_found(self):
        with self.SessionLocal() as db:
            self.assertEqual(FilingStore(db, firm_id=self.firm_id).get_filing(str(self.filing.id)).id, self.filing.id)
            with self.assertRaises(FilingNotFoundError):
                FilingStore(db, firm_id=self.other_firm_id).get_filing(self.filing.id)
            with self.assertRaises(FilingNotFoundError):
                FilingStore(db).get_filing("not-a-uuid")
            with self.assertRaises(FilingNotFoundError):
                FilingStore(db).get_filing(uuid4())

    def test_field_definitions_order(self):
        self._seed_fields({"field_key": "z", "section": "Income"}, {"field_key": "h", "section": "Header"})
        with self.SessionLocal() as db:
            keys = [f.field_key for f in self._fields(db)]
        self.assertEqual(keys, ["h", "a", "b", "c", "z"])


class MappingRegistryTests(FirmApiBase):
    def test_missing_table_raises(self):
        self._seed_mappings(("a", "a", "text", None), tax_year=2023)
        with self.SessionLocal() as db:
            with self.assertRaises(MappingTableMissingError):
                MappingRegistry(db).get_mapping_rows("1041", 2024)
            self.assertEqual(len(MappingRegistry(db).get_mapping_rows("1041", 2023)), 1)

    def test_checkbox_rows(self):
        self._seed_mappings(
            ("a", "a", "text", None),
            ("t", "t__x", "checkbox", "X"),
            ("t", "t__y", "CheckBox", "Y"),
        )
        with self.SessionLocal() as db:
            rows = MappingRegistry(db).get_checkbox_mappings("1041", 2024)
        self.assertEqual([row.pdf_field_name for row in rows], ["t__x", "t__y"])
