"""Domain models for listings, conversations and messages."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional, Tuple
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Stored exactly, rendered as a JSON number.
Price = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class Side(str, Enum):
    LEFT = "left"
    RIGHT = "right"

    @property
    def opposite(self) -> "Side":
        return Side.RIGHT if self is Side.LEFT else Side.LEFT


class Condition(str, Enum):
    NEW = "new"
    LIKE_NEW = "like_new"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class ListingStatus(str, Enum):
    AVAILABLE = "available"
    MATCHED = "matched"
    SOLD = "sold"


class Listing(BaseModel):
    """A single earbud offered by its owner.

    ``matched_with`` is set if and only if ``status`` is ``matched``, and the
    link is always symmetric. Only the match committer writes either field.
    ``version`` increases by one on every stored write.
    """

    id: UUID = Field(default_factory=uuid4)
    owner_id: str
    brand: str
    model: str
    side: Side
    condition: Condition
    price: Price = Field(ge=0)
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    location: str
    status: ListingStatus = ListingStatus.AVAILABLE
    matched_with: Optional[UUID] = None
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_available(self) -> bool:
        return self.status is ListingStatus.AVAILABLE


class ListingCreate(BaseModel):
    """Fields an owner supplies when listing an earbud."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    brand: str = Field(min_length=1)
    model: str = Field(min_length=1)
    side: Side
    condition: Condition
    price: Decimal = Field(ge=0)
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    location: str = Field(min_length=1)


# Fields an owner edit may leave out but never clear.
_REQUIRED_CONTENT_FIELDS = ("brand", "model", "side", "condition", "price", "images", "location")

# Fields that decide which listings can pair up.
MATCHING_FIELDS = ("brand", "model", "side")


class ListingUpdate(BaseModel):
    """Owner edit of content fields. Status and match link are not editable here."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    brand: Optional[str] = Field(default=None, min_length=1)
    model: Optional[str] = Field(default=None, min_length=1)
    side: Optional[Side] = None
    condition: Optional[Condition] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    description: Optional[str] = None
    images: Optional[List[str]] = None
    location: Optional[str] = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def _no_cleared_required_fields(self) -> "ListingUpdate":
        for name in _REQUIRED_CONTENT_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class Message(BaseModel):
    """A chat message. Immutable apart from the read flag."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    conversation_id: UUID
    sender_id: str
    content: str
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Conversation(BaseModel):
    """A two-party chat, optionally about a listing.

    Participants are stored sorted so the pair is unordered.
    """

    id: UUID = Field(default_factory=uuid4)
    participants: Tuple[str, str]
    listing_id: Optional[UUID] = None
    last_message_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("participants")
    @classmethod
    def _sorted_pair(cls, value: Tuple[str, str]) -> Tuple[str, str]:
        if value[0] == value[1]:
            raise ValueError("a conversation needs two distinct participants")
        return tuple(sorted(value))

    @property
    def key(self) -> Tuple[Tuple[str, str], Optional[UUID]]:
        return self.participants, self.listing_id

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def other_participant(self, user_id: str) -> str:
        first, second = self.participants
        return second if user_id == first else first


class ConversationSummary(Conversation):
    """Conversation as seen by one participant."""

    last_message: Optional[Message] = None
    unread_count: int = 0
