import pytest

from leadcall.errors import ValidationError
from leadcall.intake import import_leads_csv, parse_leads_csv, sample_csv
from leadcall.states import LeadStatus


class TestParseLeadsCsv:
    def test_valid_rows(self):
        result = parse_leads_csv(
            "name,phone,email\n"
            "John Doe,+1234567890,john@example.com\n"
            "Jane Smith,(512) 555-1234,Jane@Example.com\n"
        )
        assert result.rows == [
            ("John Doe", "+1234567890", "john@example.com"),
            ("Jane Smith", "5125551234", "jane@example.com"),
        ]
        assert result.errors == []

    def test_header_is_case_insensitive_and_reordered(self):
        result = parse_leads_csv("Email, Name ,PHONE\njohn@example.com,John,+1234567890\n")
        assert result.rows == [("John", "+1234567890", "john@example.com")]

    def test_bad_rows_reported_with_line_numbers(self):
        result = parse_leads_csv(
            "name,phone,email\n"
            "John,+1234567890,john@example.com\n"
            ",+1234567890,nobody@example.com\n"
            "Jane,call me,jane@example.com\n"
        )
        assert len(result.rows) == 1
        assert [e["row"] for e in result.errors] == [3, 4]
        assert "name" in result.errors[0]["message"]
        assert "phone" in result.errors[1]["message"]

    def test_blank_rows_skipped(self):
        result = parse_leads_csv("name,phone,email\n,,\nJohn,+1234567890,john@example.com\n")
        assert len(result.rows) == 1
        assert result.errors == []

    def test_missing_column(self):
        with pytest.raises(ValidationError, match="email"):
            parse_leads_csv("name,phone\nJohn,+1234567890\n")

    def test_empty_file(self):
        with pytest.raises(ValidationError, match="empty"):
            parse_leads_csv("")

    def test_byte_order_mark_ignored(self):
        result = parse_leads_csv("\ufeffname,phone,email\nJohn,+1234567890,john@example.com\n")
        assert len(result.rows) == 1


class TestImportLeadsCsv:
    def test_creates_pending_leads(self, store):
        result = import_leads_csv(store, sample_csv(), campaign_type="feedback")
        assert result.count == 3
        leads = store.list_leads()
        assert len(leads) == 3
        assert all(lead.status == LeadStatus.PENDING for lead in leads)
        assert result.to_dict()["message"] == "Successfully uploaded 3 customers"

    def test_partial_upload_message(self, store):
        result = import_leads_csv(
            store,
            "name,phone,email\nJohn,+1234567890,john@example.com\nBad,,\n",
        )
        data = result.to_dict()
        assert data["count"] == 1
        assert data["message"] == "Successfully uploaded 1 customers (1 rows skipped)"

    def test_no_valid_rows_creates_nothing(self, store):
        with pytest.raises(ValidationError, match="No valid customers"):
            import_leads_csv(store, "name,phone,email\nBad,,\n")
        assert store.list_leads() == []


def test_sample_csv_has_header_and_rows():
    lines = sample_csv().strip().split("\n")
    assert lines[0] == "name,phone,email"
    assert len(lines) == 4
