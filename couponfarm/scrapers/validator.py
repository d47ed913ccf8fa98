"""Field validator for scraped coupon records.

Every site adapter builds its output through a DataValidator: one instance per
scraped candidate, populated field by field as the adapter discovers values,
and checked for required fields only once, right before persistence. Sites
expose fields out of order or conditionally, so individual add_value() calls
never fail hard; they return a ValidationResultCode instead.

The serialized form (get_data / load_data) uses the camelCase keys the coupon
API expects, which is also what travels in a follow-up request's user data.
"""

from dataclasses import dataclass, fields as dataclass_fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import structlog

from couponfarm.core.exceptions import ValidationError
from couponfarm.scrapers.utils.normalizer import format_datetime

logger = structlog.get_logger(__name__)


class ValidationResultCode(Enum):
    VALUE_ADDED = "value_added"
    INVALID_KEY = "invalid_key"
    INVALID_VALUE = "invalid_value"


@dataclass(frozen=True)
class FieldSchema:
    attr: str  # CouponRecord attribute name
    type: str  # 'string', 'url', 'date' or 'boolean'
    required: bool = False
    default: Any = None


# Wire key -> schema, in the order fields are serialized
FIELD_SCHEMA: Dict[str, FieldSchema] = {
    "sourceUrl": FieldSchema("source_url", "url", required=True),
    "merchantName": FieldSchema("merchant_name", "string", required=True),
    "title": FieldSchema("title", "string", required=True),
    "idInSite": FieldSchema("id_in_site", "string", required=True),
    "domain": FieldSchema("domain", "string"),
    "description": FieldSchema("description", "string"),
    "termsAndConditions": FieldSchema("terms_and_conditions", "string"),
    "expiryDateAt": FieldSchema("expiry_date_at", "date"),
    "startDateAt": FieldSchema("start_date_at", "date"),
    "isExclusive": FieldSchema("is_exclusive", "boolean"),
    "isExpired": FieldSchema("is_expired", "boolean", default=False),
    "isShown": FieldSchema("is_shown", "boolean", default=True),
    "code": FieldSchema("code", "string"),
}

REQUIRED_FIELDS: List[str] = [k for k, s in FIELD_SCHEMA.items() if s.required]

_ATTR_TO_KEY: Dict[str, str] = {s.attr: k for k, s in FIELD_SCHEMA.items()}


@dataclass
class CouponRecord:
    """A finalized coupon, as handed to the record store."""

    source_url: str
    merchant_name: str
    title: str
    id_in_site: str
    domain: Optional[str] = None
    description: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    expiry_date_at: Optional[str] = None  # ISO-8601
    start_date_at: Optional[str] = None  # ISO-8601
    is_exclusive: Optional[bool] = None
    is_expired: bool = False
    is_shown: bool = True
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the coupon API's camelCase keys."""
        return {_ATTR_TO_KEY[f.name]: getattr(self, f.name) for f in dataclass_fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CouponRecord":
        """Build a record from camelCase (or snake_case) keys without validation."""
        kwargs = {}
        for key, value in data.items():
            schema = FIELD_SCHEMA.get(key)
            attr = schema.attr if schema else key
            if attr in _ATTR_TO_KEY:
                kwargs[attr] = value
        return cls(**kwargs)


class DataValidator:
    """Accumulates the fields of one coupon and enforces its required fields.

    Example:
        validator = DataValidator()
        validator.add_value("sourceUrl", request.url)
        validator.add_value("merchantName", merchant_name)
        validator.add_value("title", title)
        validator.add_value("idInSite", id_in_site)
        validator.add_value("isExclusive", True)
        validator.final_check()
        record = validator.to_record()
    """

    def __init__(self, logger=None):
        self.logger = logger or structlog.get_logger(__name__)
        self._data: Dict[str, Any] = {
            key: schema.default for key, schema in FIELD_SCHEMA.items()
        }

    def __repr__(self) -> str:
        return (
            f"DataValidator(merchantName={self._data['merchantName']!r}, "
            f"title={self._data['title']!r}, idInSite={self._data['idInSite']!r})"
        )

    @staticmethod
    def _resolve_key(field: str) -> Optional[str]:
        if field in FIELD_SCHEMA:
            return field
        return _ATTR_TO_KEY.get(field)

    def add_value(self, field: str, value: Any) -> ValidationResultCode:
        """Store a value, overwriting any previous one.

        Empty values (None, blank strings) clear the field back to its default.
        Values of the wrong type are rejected and leave the field unchanged.

        Args:
            field: camelCase wire key or snake_case attribute name
            value: Raw value from the page

        Returns:
            ValidationResultCode describing what happened
        """
        key = self._resolve_key(field)
        if key is None:
            self.logger.debug("validator_invalid_key", field=field)
            return ValidationResultCode.INVALID_KEY

        schema = FIELD_SCHEMA[key]

        if value is None or (isinstance(value, str) and not value.strip()):
            self._data[key] = schema.default
            if schema.required:
                return ValidationResultCode.INVALID_VALUE
            return ValidationResultCode.VALUE_ADDED

        converted = self._convert(value, schema.type)
        if converted is None:
            self.logger.debug(
                "validator_invalid_value",
                field=key,
                value_type=type(value).__name__,
            )
            return ValidationResultCode.INVALID_VALUE

        self._data[key] = converted
        return ValidationResultCode.VALUE_ADDED

    @staticmethod
    def _convert(value: Any, field_type: str) -> Any:
        """Convert a raw value to its stored form, or None if it is invalid."""
        if field_type == "boolean":
            return value if isinstance(value, bool) else None

        if field_type == "date":
            if isinstance(value, (datetime, date, str)):
                return format_datetime(value) or None
            return None

        if field_type == "url":
            if isinstance(value, str) and "://" in value:
                return value.strip()
            return None

        # string
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, str):
            return value.strip()
        return None

    def load_data(self, data: Mapping[str, Any]) -> None:
        """Hydrate from a mapping previously produced by get_data()."""
        for key, value in data.items():
            self.add_value(key, value)

    def get_data(self) -> Dict[str, Any]:
        """Return a JSON-safe copy of the current fields (camelCase keys)."""
        return dict(self._data)

    def get_value(self, field: str) -> Any:
        key = self._resolve_key(field)
        if key is None:
            raise KeyError(field)
        return self._data[key]

    def missing_fields(self) -> List[str]:
        return [key for key in REQUIRED_FIELDS if not self._data.get(key)]

    def final_check(self) -> None:
        """Raise ValidationError if any required field is missing or empty."""
        missing = self.missing_fields()
        if missing:
            raise ValidationError(missing)

    def to_record(self) -> CouponRecord:
        """Build the typed record from the current fields."""
        return CouponRecord.from_dict(self._data)
