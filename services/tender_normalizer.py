"""
Tender Normalizer

Maps a raw OCDS release onto the ``tenders`` write-shape and enriches it with
an inferred province and industry category. Pure functions only: the output
depends on the release, the evaluation instant and the keyword tables below.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Pattern, Tuple

from models.release import Release

DEFAULT_INDUSTRY = "Other"

# Checked in order; the first province with a matching keyword wins
PROVINCE_KEYWORDS: Dict[str, List[str]] = {
    "Eastern Cape": ["eastern cape", "ec", "port elizabeth", "east london", "grahamstown", "mthatha"],
    "Free State": ["free state", "fs", "bloemfontein", "welkom", "kroonstad"],
    "Gauteng": ["gauteng", "gp", "johannesburg", "pretoria", "soweto", "sandton", "midrand", "centurion"],
    "KwaZulu-Natal": ["kwazulu-natal", "kzn", "durban", "pietermaritzburg", "newcastle", "richards bay"],
    "Limpopo": ["limpopo", "lp", "polokwane", "tzaneen", "thohoyandou"],
    "Mpumalanga": ["mpumalanga", "mp", "nelspruit", "witbank", "secunda", "emalahleni"],
    "Northern Cape": ["northern cape", "nc", "kimberley", "upington", "springbok"],
    "North West": ["north west", "nw", "mafikeng", "potchefstroom", "klerksdorp", "rustenburg"],
    "Western Cape": ["western cape", "wc", "cape town", "stellenbosch", "paarl", "george", "worcester"],
}

# Priority order matters: "IT equipment for a hospital" is Information Technology
INDUSTRY_KEYWORDS: Dict[str, List[str]] = {
    "Information Technology": [
        "it", "software", "hardware", "ict", "information technology", "website", "development",
        "computer", "system", "network", "database", "programming", "digital", "cyber", "cloud",
        "server", "application", "mobile app", "web development", "data management",
    ],
    "Construction & Infrastructure": [
        "construction", "building", "civil", "roads", "infrastructure", "maintenance",
        "renovation", "repair", "plumbing", "electrical", "roofing", "painting",
        "concrete", "steel", "bridge", "highway", "municipal infrastructure",
    ],
    "Consulting Services": [
        "consulting", "advisory", "professional services", "facilitation", "strategy",
        "management consulting", "business consulting", "technical consulting",
        "project management", "change management", "organizational development",
    ],
    "Marketing & Communications": [
        "marketing", "advertising", "communication", "media", "brand", "public relations",
        "social media", "graphic design", "printing", "promotional", "campaign",
        "corporate communications", "event management",
    ],
    "Health & Medical": [
        "health", "medical", "hospital", "pharmaceutical", "ppe", "healthcare",
        "clinic", "nursing", "medical equipment", "laboratory", "dental",
        "mental health", "public health", "medical supplies",
    ],
    "Security Services": [
        "security", "guarding", "cctv", "alarm", "surveillance", "access control",
        "security systems", "patrol", "monitoring", "safety", "protection",
    ],
    "Education & Training": [
        "education", "training", "learning", "school", "university", "college",
        "workshop", "course", "curriculum", "teaching", "academic", "skills development",
        "capacity building", "educational services",
    ],
    "Financial Services": [
        "financial", "banking", "insurance", "accounting", "audit", "tax",
        "bookkeeping", "payroll", "financial management", "investment",
        "treasury", "risk management",
    ],
    "Transportation & Logistics": [
        "transport", "logistics", "delivery", "freight", "shipping", "courier",
        "vehicle", "fleet", "distribution", "supply chain", "warehousing",
    ],
    "Energy & Utilities": [
        "energy", "electricity", "power", "solar", "renewable", "utilities",
        "water", "gas", "fuel", "generator", "electrical services",
    ],
    "Agriculture & Food": [
        "agriculture", "farming", "food", "catering", "agricultural", "livestock",
        "crops", "irrigation", "food services", "nutrition", "agricultural equipment",
    ],
    "Manufacturing": [
        "manufacturing", "production", "factory", "industrial", "machinery",
        "equipment", "tools", "fabrication", "assembly",
    ],
    "Legal Services": [
        "legal", "law", "attorney", "lawyer", "litigation", "compliance",
        "regulatory", "legal advice", "contract", "legal services",
    ],
}


def _compile(table: Dict[str, List[str]]) -> List[Tuple[str, Pattern[str]]]:
    # Whole words only, so "ec" does not fire on "secunda" or "it" on "security"
    compiled = []
    for label, keywords in table.items():
        alternatives = "|".join(re.escape(keyword) for keyword in keywords)
        compiled.append((label, re.compile(rf"(?<![a-z0-9])(?:{alternatives})(?![a-z0-9])")))
    return compiled


_PROVINCE_PATTERNS = _compile(PROVINCE_KEYWORDS)
_INDUSTRY_PATTERNS = _compile(INDUSTRY_KEYWORDS)


def _clean(value: Any) -> Optional[str]:
    """Blank strings become None so they are never mistaken for real data."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _join_lower(*parts: Optional[str]) -> str:
    return " ".join(part for part in parts if part).lower()


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse upstream timestamps into aware UTC datetimes; naive values are taken as UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in ("%Y-%m-%dT%H:%M:%S.%f", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            else:
                return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    return None


def parse_release(raw: Dict[str, Any]) -> Release:
    return Release.from_payload(raw)


def province_search_text(release: Release) -> str:
    buyer = release.buyer
    address = buyer.address if buyer else None
    tender = release.tender
    return _join_lower(
        address.locality if address else None,
        address.region if address else None,
        address.street_address if address else None,
        buyer.name if buyer else None,
        tender.title if tender else None,
        tender.description if tender else None,
    )


def industry_search_text(release: Release) -> str:
    tender = release.tender
    if not tender:
        return ""
    return _join_lower(tender.title, tender.description, tender.main_procurement_category)


def infer_province(release: Release) -> Optional[str]:
    text = province_search_text(release)
    if not text:
        return None
    for province, pattern in _PROVINCE_PATTERNS:
        if pattern.search(text):
            return province
    return None


def infer_industry(release: Release) -> str:
    text = industry_search_text(release)
    if not text:
        return DEFAULT_INDUSTRY
    for industry, pattern in _INDUSTRY_PATTERNS:
        if pattern.search(text):
            return industry
    return DEFAULT_INDUSTRY


def is_open(release: Release, now: Optional[datetime] = None) -> bool:
    """Open iff the release has a close date strictly later than ``now``."""
    close = parse_datetime(release.close_date)
    if close is None:
        return False
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return close > now


def _service_location(release: Release) -> Optional[str]:
    tender = release.tender
    if tender:
        for item in tender.items:
            delivery = item.get("deliveryLocation") if isinstance(item, dict) else None
            if isinstance(delivery, dict) and _clean(delivery.get("description")):
                return _clean(delivery.get("description"))
    buyer = release.buyer
    if buyer and buyer.address:
        parts = [_clean(buyer.address.locality), _clean(buyer.address.region)]
        joined = ", ".join(part for part in parts if part)
        return joined or None
    return None


def _documents(release: Release) -> Optional[List[Dict[str, Any]]]:
    if not release.tender or not release.tender.documents:
        return None
    documents = []
    for doc in release.tender.documents:
        documents.append({
            "id": _clean(doc.id),
            "title": _clean(doc.title),
            "url": _clean(doc.url),
            "format": _clean(doc.format),
            "document_type": _clean(doc.document_type),
            "date_published": _clean(doc.date_published),
        })
    return documents


def _iso(value: Any) -> Optional[str]:
    parsed = parse_datetime(value)
    return parsed.isoformat() if parsed else None


def normalize_release(release: Release, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Project a release onto the ``tenders`` columns. Re-normalizing the same release gives the same row."""
    if not _clean(release.ocid):
        raise ValueError("Release has no ocid")
    now = now or datetime.now(timezone.utc)

    tender = release.tender
    buyer = release.buyer
    contact = buyer.contact_point if buyer else None

    title = _clean(tender.title) if tender else None
    description = _clean(tender.description) if tender else None
    tender_id = _clean(tender.id) if tender else None
    buyer_name = _clean(buyer.name) if buyer else None

    return {
        "ocid": release.ocid.strip(),
        "title": title,
        "description": description,
        "category": _clean(tender.main_procurement_category) if tender else None,
        "close_date": _iso(release.close_date),
        "opening_date": _iso(release.opening_date),
        "buyer": buyer_name,
        "department": buyer_name,
        "bid_number": tender_id,
        "reference_number": tender_id,
        "bid_description": description,
        "service_location": _service_location(release),
        "contact_person": _clean(contact.name) if contact else None,
        "contact_email": _clean(contact.email) if contact else None,
        "contact_tel": _clean(contact.telephone) if contact else None,
        "contact_fax": _clean(contact.fax_number) if contact else None,
        "submission_method": _clean(tender.procurement_method) if tender else None,
        "province": infer_province(release),
        "industry_category": infer_industry(release),
        "documents": _documents(release),
        "items": (tender.items or None) if tender else None,
        "full_data": release.payload,
        "updated_at": now.isoformat(),
    }


def normalize_raw(raw: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Validate and normalize a raw upstream release in one step."""
    return normalize_release(parse_release(raw), now)
