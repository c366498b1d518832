"""
Typed view of an OCDS release as returned by the upstream tender API.

Only the fields the normalizer reads are modelled. The complete upstream
object is kept untouched in ``Release.payload`` and stored as ``full_data``.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class _OcdsModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)


class Address(_OcdsModel):
    street_address: Optional[str] = Field(default=None, alias="streetAddress")
    locality: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = Field(default=None, alias="postalCode")
    country_name: Optional[str] = Field(default=None, alias="countryName")


class ContactPoint(_OcdsModel):
    name: Optional[str] = None
    email: Optional[str] = None
    telephone: Optional[str] = None
    fax_number: Optional[str] = Field(default=None, alias="faxNumber")
    url: Optional[str] = None


class Buyer(_OcdsModel):
    id: Optional[str] = None
    name: Optional[str] = None
    address: Optional[Address] = None
    contact_point: Optional[ContactPoint] = Field(default=None, alias="contactPoint")


class Period(_OcdsModel):
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")


class Document(_OcdsModel):
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    format: Optional[str] = None
    document_type: Optional[str] = Field(default=None, alias="documentType")
    date_published: Optional[str] = Field(default=None, alias="datePublished")


class Tender(_OcdsModel):
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    main_procurement_category: Optional[str] = Field(default=None, alias="mainProcurementCategory")
    procurement_method: Optional[str] = Field(default=None, alias="procurementMethod")
    procurement_method_details: Optional[str] = Field(default=None, alias="procurementMethodDetails")
    tender_period: Optional[Period] = Field(default=None, alias="tenderPeriod")
    documents: List[Document] = Field(default_factory=list)
    # Stored verbatim; entries need not be objects
    items: List[Any] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []

    @field_validator("documents", mode="before")
    @classmethod
    def _skip_bad_documents(cls, value: Any) -> Any:
        """Drop document entries that are not usable objects instead of rejecting the release."""
        if not isinstance(value, list):
            return []
        documents = []
        for entry in value:
            if not isinstance(entry, dict):
                continue
            try:
                documents.append(Document.model_validate(entry))
            except ValidationError:
                continue
        return documents


class Release(_OcdsModel):
    ocid: str
    id: Optional[str] = None
    date: Optional[str] = None
    tender: Optional[Tender] = None
    buyer: Optional[Buyer] = None
    payload: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @classmethod
    def from_payload(cls, raw: Dict[str, Any]) -> "Release":
        """Validate the fields we read and keep the raw object as an opaque blob."""
        release = cls.model_validate(raw)
        release.payload = raw
        return release

    @property
    def close_date(self) -> Optional[str]:
        if self.tender and self.tender.tender_period:
            return self.tender.tender_period.end_date
        return None

    @property
    def opening_date(self) -> Optional[str]:
        if self.tender and self.tender.tender_period:
            return self.tender.tender_period.start_date
        return None


class ReleasePage(_OcdsModel):
    """One page of the upstream response. A missing ``releases`` field means no data."""
    releases: List[Dict[str, Any]] = Field(default_factory=list)
    page_number: int = 1
    page_size: int = 0

    @property
    def count(self) -> int:
        return len(self.releases)

    @property
    def is_empty(self) -> bool:
        return not self.releases

    @property
    def is_short(self) -> bool:
        return 0 < len(self.releases) < self.page_size
