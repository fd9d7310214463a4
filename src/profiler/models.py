from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

UNKNOWN = "unknown"
# Values the synthesizer uses when it found nothing.
_UNKNOWN_MARKERS = {"", UNKNOWN, "n/a", "na", "none", "null", "not found", "not available", "not specified"}

LIST_FIELDS = ("main_products", "main_services", "key_features", "unique_selling_points")
SCALAR_FIELDS = (
    "business_name",
    "business_description",
    "target_audience",
    "business_hours",
    "pricing_info",
    "additional_info",
)
CONTACT_FIELDS = ("email", "phone", "address")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_known(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() not in _UNKNOWN_MARKERS


def _dedupe_key(item: str) -> str:
    return " ".join(item.split()).casefold()


def unique_items(items: Iterable[Any]) -> List[str]:
    """Stringify, drop blanks and keep the first occurrence of each value."""
    out: List[str] = []
    seen = set()
    for item in items:
        if item is None:
            continue
        text = str(item).strip()
        key = _dedupe_key(text)
        if not text or key in seen:
            continue
        seen.add(key)
        out.append(text)
    return out


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContactInfo(_CamelModel):
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("email", "phone", "address", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class StructuredProfile(_CamelModel):
    """The synthesized business profile, serialized with camelCase keys."""

    business_name: str = UNKNOWN
    business_description: str = UNKNOWN
    main_products: List[str] = Field(default_factory=list)
    main_services: List[str] = Field(default_factory=list)
    key_features: List[str] = Field(default_factory=list)
    target_audience: str = UNKNOWN
    unique_selling_points: List[str] = Field(default_factory=list)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    business_hours: str = UNKNOWN
    pricing_info: str = UNKNOWN
    additional_info: str = UNKNOWN

    @field_validator(*LIST_FIELDS, mode="before")
    @classmethod
    def _coerce_list(cls, v):
        if v is None:
            return []
        if isinstance(v, (str, int, float)):
            return unique_items([v])
        if isinstance(v, (list, tuple, set)):
            return unique_items(v)
        return v

    @field_validator(*SCALAR_FIELDS, mode="before")
    @classmethod
    def _coerce_scalar(cls, v):
        if v is None:
            return UNKNOWN
        if isinstance(v, (list, tuple)):
            v = "; ".join(str(item) for item in v if item is not None)
        v = str(v).strip()
        return v or UNKNOWN

    @field_validator("contact_info", mode="before")
    @classmethod
    def _coerce_contact(cls, v):
        return v if v is not None else {}

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> "StructuredProfile":
        return cls.model_validate_json(raw)


def preserve_existing(existing: StructuredProfile, merged: StructuredProfile) -> StructuredProfile:
    """Re-apply the no-data-loss rule to a merge result.

    List fields become the ordered union (existing items first). Scalars and
    contact fields take the merged value only when it carries information.
    """
    data = {}
    for name in LIST_FIELDS:
        data[name] = unique_items([*getattr(existing, name), *getattr(merged, name)])
    for name in SCALAR_FIELDS:
        new_value = getattr(merged, name)
        data[name] = new_value if is_known(new_value) else getattr(existing, name)
    data["contact_info"] = ContactInfo(**{
        name: (getattr(merged.contact_info, name)
               if is_known(getattr(merged.contact_info, name))
               else getattr(existing.contact_info, name))
        for name in CONTACT_FIELDS
    })
    return StructuredProfile(**data)


class AnalysisStatus(str, Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class AnalysisRecord(_CamelModel):
    business_account_id: str
    website_url: str = ""
    status: AnalysisStatus = AnalysisStatus.PENDING
    profile: Optional[StructuredProfile] = None
    error_message: Optional[str] = None
    last_analyzed_at: Optional[datetime] = None
    # Version stamp: id of the run allowed to write this record.
    run_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AnalyzedPageRecord(_CamelModel):
    business_account_id: str
    page_url: str
    analyzed_at: datetime = Field(default_factory=utcnow)


def normalize_page_url(url: str) -> str:
    """Key used for the analyzed-page history: lower-cased, no trailing slash."""
    return url.strip().lower().rstrip("/")
