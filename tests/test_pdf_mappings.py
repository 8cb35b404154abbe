import io
import os
import tempfile
import unittest
from unittest.mock import patch

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from taxintake.models.form_field import FormField
from taxintake.models.pdf_field_mapping import PdfFieldMapping
from taxintake.scripts import pdf_mappings as cli
from taxintake.services.pdf_fill import MappingRow
from taxintake.services.pdf_mappings import (
    MappingCsvError,
    parse_options,
    read_mapping_csv,
    slugify_option,
    suggest_mapping_rows,
    upsert_mapping_rows,
    write_mapping_csv,
)
from tests.pdf_builders import build_form_pdf


def _field(key, **kwargs):
    return FormField(form_code="1041", field_key=key, label=key, **kwargs)


class SuggestMappingTests(unittest.TestCase):
    def test_option_helpers(self):
        self.assertEqual(slugify_option("Trust & Estate"), "trust_and_estate")
        self.assertEqual(slugify_option(" Ch. 11 "), "ch_11")
        self.assertEqual(parse_options("A; B\nC;;"), ["A", "B", "C"])
        self.assertEqual(parse_options(["X", " ", "Y"]), ["X", "Y"])
        self.assertEqual(parse_options(None), [])

    def test_rows_per_field_kind(self):
        rows = suggest_mapping_rows(
            [
                _field("estate_name"),
                _field("entity_type", input_type="checkbox multi", options=["Simple trust", "Grantor type trust"]),
                _field("is_final", input_type="checkbox"),
                _field("   "),
            ]
        )
        self.assertEqual(
            [(r.field_key, r.pdf_field_name, r.format, r.constant_value) for r in rows],
            [
                ("estate_name", "estate_name", "text", None),
                ("entity_type", "entity_type__simple_trust", "checkbox", "Simple trust"),
                ("entity_type", "entity_type__grantor_type_trust", "checkbox", "Grantor type trust"),
                ("is_final", "is_final", "checkbox", None),
            ],
        )


class MappingCsvTests(unittest.TestCase):
    def test_written_csv_reads_back(self):
        rows = [
            MappingRow("estate_name", "estate_name", "text"),
            MappingRow("entity_type", "entity_type__a", "checkbox", "A"),
        ]
        buffer = io.StringIO()
        self.assertEqual(write_mapping_csv(rows, buffer), 2)
        self.assertTrue(buffer.getvalue().startswith("field_key,pdf_field_name,format,constant_value\n"))
        buffer.seek(0)
        self.assertEqual(read_mapping_csv(buffer), rows)

    def test_blank_lines_skipped_and_format_lowercased(self):
        text = "field_key,pdf_field_name,format,constant_value\n,,,\nk,f,CheckBox,\n"
        rows = read_mapping_csv(io.StringIO(text))
        self.assertEqual(rows, [MappingRow("k", "f", "checkbox", None)])

    def test_invalid_csv(self):
        with self.assertRaises(MappingCsvError):
            read_mapping_csv(io.StringIO("field_key,format\nk,text\n"))
        with self.assertRaises(MappingCsvError):
            read_mapping_csv(io.StringIO("field_key,pdf_field_name\nk,\n"))
        with self.assertRaises(MappingCsvError) as ctx:
            read_mapping_csv(io.StringIO("field_key,pdf_field_name\na,x\nb,x\n"))
        self.assertIn("line 3", str(ctx.exception))


class UpsertMappingTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autocommit=False, autoflush=False)
        FormField.__table__.create(bind=cls.engine)
        PdfFieldMapping.__table__.create(bind=cls.engine)

    @classmethod
    def tearDownClass(cls):
        PdfFieldMapping.__table__.drop(bind=cls.engine)
        FormField.__table__.drop(bind=cls.engine)
        cls.engine.dispose()

    def setUp(self):
        with self.SessionLocal() as db:
            db.execute(delete(PdfFieldMapping))
            db.execute(delete(FormField))
            db.commit()

    def test_upsert_counts_created_and_updated(self):
        with self.SessionLocal() as db:
            created, updated = upsert_mapping_rows(
                db,
                "1041",
                2024,
                [MappingRow("a", "a", "text"), MappingRow("b", "b__x", "checkbox", "X")],
            )
            self.assertEqual((created, updated), (2, 0))

            created, updated = upsert_mapping_rows(
                db,
                "1041",
                2024,
                [MappingRow("a", "a", "text"), MappingRow("b", "b__x", "checkbox", "Y"), MappingRow("c", "c")],
            )
            self.assertEqual((created, updated), (1, 1))

            upsert_mapping_rows(db, "1041", 2025, [MappingRow("a", "a", "text")])
            self.assertEqual(db.query(PdfFieldMapping).filter(PdfFieldMapping.tax_year == 2024).count(), 3)
            row = db.query(PdfFieldMapping).filter(PdfFieldMapping.pdf_field_name == "b__x").first()
            self.assertEqual(row.constant_value, "Y")

    def test_cli_import_then_check(self):
        with tempfile.TemporaryDirectory() as tmp:
            csv_path = os.path.join(tmp, "map.csv")
            template_path = os.path.join(tmp, "f1041.pdf")
            with open(csv_path, "w", encoding="utf-8", newline="") as fh:
                fh.write("field_key,pdf_field_name,format,constant_value\n")
                fh.write("estate_name,estate_name,text,\n")
                fh.write("is_final,is_final,checkbox,\n")
            with open(template_path, "wb") as fh:
                fh.write(build_form_pdf(text_fields=["estate_name"]))

            with patch.object(cli, "SessionLocal", self.SessionLocal):
                self.assertEqual(cli.main(["import", "--form", "1041", "--year", "2024", "--csv", csv_path]), 0)
                exit_code = cli.main(
                    ["check", "--form", "1041", "--year", "2024", "--template", template_path]
                )
            self.assertEqual(exit_code, 1)

            with self.SessionLocal() as db:
                self.assertEqual(db.query(PdfFieldMapping).count(), 2)

    def test_cli_suggest_without_fields_fails(self):
        with tempfile.TemporaryDirectory() as tmp, patch.object(cli, "SessionLocal", self.SessionLocal):
            self.assertEqual(cli.main(["suggest", "--form", "706", "--out", os.path.join(tmp, "x.csv")]), 1)
