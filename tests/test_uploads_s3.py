from unittest.mock import patch
from uuid import UUID, uuid4

from botocore.exceptions import ClientError

from taxintake.models.attachment import Attachment
from tests.base import FirmApiBase


class _FakeS3Storage:
    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_delete = False
        self.download_names = {}

    def create_presigned_put_url(self, key: str, mime_type: str, expires_sec: int = 900) -> str:
        return f"https://s3.local/{key}?expires={expires_sec}"

    def create_presigned_get_url(self, key: str, file_name: str | None = None, expires_sec: int = 900) -> str:
        self.download_names[key] = file_name
        return f"https://s3.local/{key}?get=1"

    def head_object(self, key: str) -> dict:
        obj = self.objects.get(key)
        if obj is None:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {"ContentLength": obj["size"], "ContentType": obj["mime"]}

    def delete_object(self, key: str) -> None:
        if self.fail_delete:
            raise ClientError({"Error": {"Code": "500", "Message": "Boom"}}, "DeleteObject")
        self.deleted.append(key)
        self.objects.pop(key, None)


class UploadsS3Tests(FirmApiBase):
    def setUp(self):
        super().setUp()
        self.filing = self._seed_filing()
        self.fake_s3 = _FakeS3Storage()
        self._patcher = patch("taxintake.api.firm.uploads.get_s3_storage", return_value=self.fake_s3)
        self._patcher.start()

    def tearDown(self):
        self._patcher.stop()
        super().tearDown()

    def _init(self, **overrides):
        payload = {
            "filing_id": str(self.filing.id),
            "field_key": "death_certificate",
            "file_name": "death cert.pdf",
            "mime_type": "application/pdf",
            "size_bytes": 4096,
        }
        payload.update(overrides)
        return self.client.post("/api/firm/uploads/init", headers=self._headers(), json=payload)

    def _complete(self, key: str, **overrides):
        payload = {
            "filing_id": str(self.filing.id),
            "field_key": "death_certificate",
            "key": key,
            "file_name": "death cert.pdf",
            "mime_type": "application/pdf",
            "size_bytes": 4096,
        }
        payload.update(overrides)
        return self.client.post("/api/firm/uploads/complete", headers=self._headers(), json=payload)

    def test_attachment_upload_flow_creates_attachment(self):
        init_resp = self._init()
        self.assertEqual(init_resp.status_code, 200)
        key = init_resp.json()["key"]
        self.assertTrue(key.startswith(f"filings/{self.filing.id}/death_certificate/"))
        self.assertTrue(key.endswith("-death_cert.pdf"))
        self.assertEqual(init_resp.json()["method"], "PRESIGNED_PUT")

        self.fake_s3.objects[key] = {"size": 4000, "mime": "application/pdf"}
        done_resp = self._complete(key)
        self.assertEqual(done_resp.status_code, 200)
        body = done_resp.json()
        self.assertTrue(body["attachment_id"])
        self.assertEqual(body["download_url"], f"https://s3.local/{key}?get=1")
        self.assertEqual(self.fake_s3.download_names[key], "death cert.pdf")

        with self.SessionLocal() as db:
            rows = db.query(Attachment).filter(Attachment.filing_id == self.filing.id).all()
            self.assertEqual(len(rows), 1)
            self.assertEqual(rows[0].s3_key, key)
            self.assertEqual(rows[0].size_bytes, 4000)
            self.assertEqual(rows[0].field_key, "death_certificate")
        self.assertEqual(self._answers(self.filing.id), {})

    def test_init_validates_payload(self):
        self.assertEqual(self._init(size_bytes=0).status_code, 400)
        self.assertEqual(self._init(size_bytes=10 * 1024 * 1024 * 1024).status_code, 400)
        self.assertEqual(self._init(mime_type="application/x-msdownload").status_code, 400)
        self.assertEqual(self._init(field_key="  ").status_code, 400)
        self.assertEqual(self._init(filing_id=str(uuid4())).status_code, 404)

    def test_complete_rejects_foreign_key_and_missing_object(self):
        foreign = f"filings/{uuid4()}/death_certificate/x.pdf"
        self.fake_s3.objects[foreign] = {"size": 10, "mime": "application/pdf"}
        response = self._complete(foreign)
        self.assertEqual(response.status_code, 400)

        key = self._init().json()["key"]
        response = self._complete(key)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "File not found in storage")

    def test_other_firm_cannot_complete(self):
        key = self._init().json()["key"]
        self.fake_s3.objects[key] = {"size": 10, "mime": "application/pdf"}
        response = self.client.post(
            "/api/firm/uploads/complete",
            headers=self._member_headers(self.other_firm_id),
            json={
                "filing_id": str(self.filing.id),
                "field_key": "death_certificate",
                "key": key,
                "file_name": "x.pdf",
                "mime_type": "application/pdf",
                "size_bytes": 10,
            },
        )
        self.assertEqual(response.status_code, 404)

    def test_delete_attachment(self):
        key = self._init().json()["key"]
        self.fake_s3.objects[key] = {"size": 10, "mime": "application/pdf"}
        attachment_id = self._complete(key).json()["attachment_id"]

        response = self.client.delete(
            f"/api/firm/uploads/{attachment_id}", headers=self._member_headers(self.other_firm_id)
        )
        self.assertEqual(response.status_code, 404)

        self.fake_s3.fail_delete = True
        response = self.client.delete(f"/api/firm/uploads/{attachment_id}", headers=self._headers())
        self.assertEqual(response.status_code, 502)

        self.fake_s3.fail_delete = False
        response = self.client.delete(f"/api/firm/uploads/{attachment_id}", headers=self._headers())
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.fake_s3.deleted, [key])
        with self.SessionLocal() as db:
            self.assertIsNone(db.get(Attachment, UUID(attachment_id)))

        missing = self.client.delete(f"/api/firm/uploads/{uuid4()}", headers=self._headers())
        self.assertEqual(missing.status_code, 404)
