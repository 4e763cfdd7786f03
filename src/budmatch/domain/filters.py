"""Typed listing filter.

Only the predicates declared here are supported; anything else is rejected
instead of being passed through to the store.
"""

from decimal import Decimal
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, model_validator

from .errors import ValidationError
from .models import Condition, Listing, ListingStatus, Side
from .validation import describe_validation_error


class ListingFilter(BaseModel):
    """Conjunction of optional predicates over listings.

    ``search`` is a case-insensitive substring match against brand, model or
    description (any of the three).
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, str_strip_whitespace=True, frozen=True)

    owner: Optional[str] = Field(default=None, alias="user")
    search: Optional[str] = None
    min_price: Optional[Decimal] = Field(default=None, alias="minPrice", ge=0)
    max_price: Optional[Decimal] = Field(default=None, alias="maxPrice", ge=0)
    brand: Optional[str] = None
    model: Optional[str] = None
    side: Optional[Side] = None
    condition: Optional[Condition] = None
    status: Optional[ListingStatus] = None
    location: Optional[str] = None

    @model_validator(mode="after")
    def _price_range(self) -> "ListingFilter":
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("minPrice must not exceed maxPrice")
        return self

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> "ListingFilter":
        """Build a filter from raw query parameters, dropping empty values."""
        cleaned = {key: value for key, value in params.items() if value not in (None, "")}
        try:
            return cls.model_validate(cleaned)
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e

    def matches(self, listing: Listing) -> bool:
        if self.owner is not None and listing.owner_id != self.owner:
            return False
        if self.brand is not None and listing.brand != self.brand:
            return False
        if self.model is not None and listing.model != self.model:
            return False
        if self.side is not None and listing.side is not self.side:
            return False
        if self.condition is not None and listing.condition is not self.condition:
            return False
        if self.status is not None and listing.status is not self.status:
            return False
        if self.location is not None and listing.location != self.location:
            return False
        if self.min_price is not None and listing.price < self.min_price:
            return False
        if self.max_price is not None and listing.price > self.max_price:
            return False
        if self.search:
            needle = self.search.lower()
            haystacks = (listing.brand, listing.model, listing.description or "")
            if not any(needle in text.lower() for text in haystacks):
                return False
        return True
