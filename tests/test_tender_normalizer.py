from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_release
from services.tender_normalizer import (
    DEFAULT_INDUSTRY,
    infer_industry,
    infer_province,
    is_open,
    normalize_raw,
    parse_datetime,
    parse_release,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_gauteng_it_release():
    raw = make_release("ocds-gp-1", title="IT support services for Johannesburg offices")
    raw["buyer"] = {"name": "City of Johannesburg"}

    row = normalize_raw(raw, NOW)

    assert row["province"] == "Gauteng"
    assert row["industry_category"] == "Information Technology"


def test_keywords_match_whole_words_only():
    # "security" contains "it" and "secunda" contains "ec"
    raw = make_release("ocds-sec-1", title="Security guarding at Secunda depot")
    raw["buyer"] = {"name": "Sasol Agency"}
    release = parse_release(raw)

    assert infer_industry(release) == "Security Services"
    assert infer_province(release) == "Mpumalanga"


def test_industry_priority_order():
    release = parse_release(make_release("ocds-1", title="Computer equipment for hospital wards"))

    assert infer_industry(release) == "Information Technology"


def test_no_keywords_falls_back():
    raw = make_release("ocds-2", title="Supply of office furniture")
    raw["buyer"] = {"name": "National Treasury"}
    release = parse_release(raw)

    assert infer_industry(release) == DEFAULT_INDUSTRY
    assert infer_province(release) is None


def test_province_from_buyer_address():
    raw = make_release("ocds-3")
    raw["buyer"] = {"name": "Municipality", "address": {"locality": "Durban", "region": "KZN"}}

    assert infer_province(parse_release(raw)) == "KwaZulu-Natal"


def test_is_open_boundaries():
    later = make_release("ocds-open", close_date=(NOW + timedelta(seconds=1)).isoformat())
    earlier = make_release("ocds-closed", close_date=(NOW - timedelta(seconds=1)).isoformat())
    exactly = make_release("ocds-now", close_date=NOW.isoformat())

    assert is_open(parse_release(later), NOW)
    assert not is_open(parse_release(earlier), NOW)
    assert not is_open(parse_release(exactly), NOW)


def test_missing_close_date_is_never_open():
    release = parse_release(make_release("ocds-no-close"))

    assert release.close_date is None
    assert not is_open(release, NOW)


def test_nulls_stay_null():
    raw = {
        "ocid": "ocds-sparse",
        "tender": {"title": "  ", "description": None, "documents": None, "items": None},
        "buyer": None,
    }

    row = normalize_raw(raw, NOW)

    assert row["title"] is None
    assert row["description"] is None
    assert row["buyer"] is None
    assert row["documents"] is None
    assert row["items"] is None
    assert row["close_date"] is None
    assert row["full_data"] is raw


def test_contact_documents_and_dates_are_projected():
    raw = make_release(
        "ocds-full",
        title="Road maintenance",
        close_date="2025-07-01T11:00:00",
        mainProcurementCategory="works",
        procurementMethod="open",
        documents=[{"id": "d1", "title": "Bid pack", "url": "https://etenders.example/d1.pdf", "format": "pdf"}],
        items=[{"id": "1", "deliveryLocation": {"description": "Polokwane depot"}}],
    )
    raw["buyer"]["contactPoint"] = {"name": "J Doe", "email": "jdoe@example.gov.za", "telephone": "012 000 0000"}

    row = normalize_raw(raw, NOW)

    assert row["close_date"] == "2025-07-01T11:00:00+00:00"
    assert row["category"] == "works"
    assert row["submission_method"] == "open"
    assert row["contact_email"] == "jdoe@example.gov.za"
    assert row["contact_fax"] is None
    assert row["service_location"] == "Polokwane depot"
    assert row["documents"][0]["url"] == "https://etenders.example/d1.pdf"
    assert row["bid_number"] == "BID-ocds-full"
    assert row["updated_at"] == NOW.isoformat()
    assert "submission_email" not in row


def test_stray_items_and_documents_do_not_reject_the_release():
    raw = make_release(
        "ocds-loose",
        items=[{"id": "1", "deliveryLocation": {"description": "Kimberley stores"}}, "free text line"],
        documents=["see notice board", {"id": "d1", "title": {"en": "nested"}}, {"id": "d2", "url": "https://etenders.example/d2.pdf"}],
    )

    row = normalize_raw(raw, NOW)

    assert row["ocid"] == "ocds-loose"
    assert row["items"] == [{"id": "1", "deliveryLocation": {"description": "Kimberley stores"}}, "free text line"]
    assert row["service_location"] == "Kimberley stores"
    assert [doc["id"] for doc in row["documents"]] == ["d2"]


def test_normalization_is_deterministic():
    raw = make_release("ocds-det", title="Cloud hosting", close_date="2025-09-01T00:00:00Z")

    assert normalize_raw(raw, NOW) == normalize_raw(raw, NOW)


def test_release_without_ocid_is_rejected():
    with pytest.raises(ValueError):
        normalize_raw({"ocid": "   ", "tender": {"title": "x"}}, NOW)


def test_parse_datetime_variants():
    assert parse_datetime("2025-01-02") == datetime(2025, 1, 2, tzinfo=timezone.utc)
    assert parse_datetime("2025-01-02T10:00:00+02:00") == datetime(2025, 1, 2, 8, 0, tzinfo=timezone.utc)
    assert parse_datetime("not a date") is None
    assert parse_datetime("") is None
