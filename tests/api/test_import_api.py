from io import BytesIO

import openpyxl
import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse

from targets.imports import COLUMN_KEYS, IMPORT_COLUMNS
from targets.models import Target

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def record(**overrides):
    data = {
        "year": 2025,
        "account_name": "Hanmi Pharm",
        "product_name": "Cefaclor API",
        "quantity_kg": "1000",
        "owner_name": "Lee Jisoo",
        "segment": "S",
        "estimate_currency": "USD",
        "estimate_unit_price_foreign": "9",
        "estimate_fx_rate": "1300",
    }
    data.update(overrides)
    return data


def xlsx_upload(records, name="targets.xlsx"):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append([header for _, header in IMPORT_COLUMNS])
    for values in records:
        ws.append([values.get(key) for key in COLUMN_KEYS])
    buffer = BytesIO()
    wb.save(buffer)
    return SimpleUploadedFile(name, buffer.getvalue(), content_type=XLSX)


@pytest.mark.django_db
class TestImportAPI:
    def test_authentication_is_required(self, anonymous_client):
        response = anonymous_client.post(
            reverse("api:target-import-commit"), {"rows": [record()]}, format="json"
        )

        assert response.status_code in (401, 403)
        assert not Target.objects.exists()

    def test_template_download(self, api_client):
        response = api_client.get(reverse("api:target-import-template"))

        assert response.status_code == 200
        assert response["Content-Type"] == XLSX

    def test_validate_json_rows(self, api_client):
        response = api_client.post(
            reverse("api:target-import-validate"),
            {"rows": [record(), record(account_name="Yuhan", quantity_kg="-1")]},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["total_rows"] == 2
        assert response.data["valid_rows"] == 1
        assert response.data["invalid_rows"] == 1
        assert response.data["rows"][1]["errors"][0]["field"] == "quantity_kg"
        assert not Target.objects.exists()

    def test_validate_xlsx_upload(self, api_client):
        response = api_client.post(
            reverse("api:target-import-validate"),
            {"file": xlsx_upload([record(), record(account_name="Yuhan")])},
            format="multipart",
        )

        assert response.status_code == 200
        assert response.data["valid_rows"] == 2
        assert response.data["rows"][0]["row"] == 2

    def test_only_xlsx_files(self, api_client):
        upload = SimpleUploadedFile("targets.csv", b"account,product\n", content_type="text/csv")

        response = api_client.post(reverse("api:target-import-validate"), {"file": upload}, format="multipart")

        assert response.status_code == 400
        assert response.data["details"]["field"] == "file"

    def test_nothing_to_import(self, api_client):
        response = api_client.post(reverse("api:target-import-validate"), {}, format="json")

        assert response.status_code == 400

    def test_commit_rejects_invalid_batch(self, api_client):
        response = api_client.post(
            reverse("api:target-import-commit"),
            {"rows": [record(), record(account_name="Yuhan", estimate_currency="")]},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["committed"] is False
        assert response.data["valid_rows"] == 1
        assert response.data["invalid_rows"] == 1
        assert not Target.objects.exists()

    def test_commit_creates_and_updates(self, api_client, target):
        response = api_client.post(
            reverse("api:target-import-commit"),
            {"file": xlsx_upload([record(quantity_kg="1500"), record(account_name="Yuhan")])},
            format="multipart",
        )

        assert response.status_code == 200
        assert response.data == {
            "committed": True,
            "total_rows": 2,
            "created": 1,
            "updated": 1,
            "errors": [],
        }
        created = Target.objects.get(account_name="Yuhan")
        assert created.created_by == "Minji Kim"
        target.refresh_from_db()
        assert target.quantity_kg == 1500

    def test_export_download(self, api_client, target):
        response = api_client.get(reverse("api:target-export"))

        assert response.status_code == 200
        sheet = openpyxl.load_workbook(BytesIO(response.content)).active
        assert sheet.cell(row=2, column=COLUMN_KEYS.index("account_name") + 1).value == "Hanmi Pharm"
