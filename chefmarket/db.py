"""
Database abstraction for the marketplace and an in-memory implementation.

`DbClient` is the storage interface used by the routes. `InMemoryDbClient`
mirrors the uniqueness and foreign-key rules of the SQL schema so it can be
swapped in for development and tests; the SQLAlchemy-backed client lives in
`chefmarket.db_postgres`.
"""

from __future__ import annotations

import itertools
import secrets
import threading
import time
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Iterable, Optional, Protocol

from chefmarket.types import (
    BookingStatus,
    ProviderSort,
    UserRole,
    VerificationStatus,
)


class StorageError(RuntimeError):
    """Raised when the underlying store fails."""


class IntegrityViolationError(StorageError):
    """Raised on uniqueness or foreign-key violations."""


class StatusConflictError(StorageError):
    """Raised when a conditional status update finds a different status."""


def _now() -> float:
    return time.time()


class _Record:
    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserRecord(_Record):
    id: int
    username: str
    password: str
    email: str
    fullname: str
    phone: Optional[str] = None
    role: UserRole = UserRole.CLIENT
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    is_verified: bool = False
    last_login: Optional[float] = None
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)

    def public_dict(self) -> dict:
        data = self.as_dict()
        data.pop("password", None)
        return data


@dataclass
class ClientProfileRecord(_Record):
    id: int
    user_id: int
    preferences: Optional[str] = None
    payment_methods: Optional[str] = None
    referral_code: Optional[str] = None
    total_spent: float = 0.0


@dataclass
class ProviderProfileRecord(_Record):
    id: int
    user_id: int
    cuisine_specialty: Optional[str] = None
    years_experience: Optional[int] = None
    hourly_rate: Optional[float] = None
    availability: Optional[str] = None
    emergency_support: bool = False
    dual_expertise: bool = False
    availability_24_7: bool = False
    total_bookings: int = 0
    verification_status: VerificationStatus = VerificationStatus.PENDING
    documents_submitted: bool = False
    document_links: list[str] = field(default_factory=list)
    commission_rate: float = 26.0


@dataclass
class ServiceRecord(_Record):
    id: int
    provider_id: int
    name: str
    price: float
    description: Optional[str] = None
    duration: Optional[int] = None
    is_video_consultation: bool = False
    is_face_to_face: bool = True


@dataclass
class ChefRecord(_Record):
    id: int
    name: str
    profile_image: str
    cuisine: str
    price: int
    description: str
    rating: str
    review_count: int
    provider_id: Optional[int] = None


@dataclass
class MenuRecord(_Record):
    id: int
    name: str
    image: str
    description: str
    courses: str
    guest_range: str
    price: int
    items: list[str] = field(default_factory=list)
    chef_id: Optional[int] = None


@dataclass
class BookingRecord(_Record):
    id: int
    event_type: str
    date: str
    time: str
    location: str
    client_id: Optional[int] = None
    provider_id: Optional[int] = None
    service_id: Optional[int] = None
    end_time: Optional[str] = None
    guests: Optional[int] = None
    cuisine: Optional[str] = None
    special_requests: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    total_amount: Optional[float] = None
    client_fee: Optional[float] = None
    provider_commission: Optional[float] = None
    payment_status: str = "pending"
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)


@dataclass
class ReviewRecord(_Record):
    id: int
    client_id: int
    provider_id: int
    rating: int
    booking_id: Optional[int] = None
    comment: Optional[str] = None
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)


@dataclass
class MessageRecord(_Record):
    id: int
    sender_id: int
    recipient_id: int
    content: str
    booking_id: Optional[int] = None
    attachments: list[str] = field(default_factory=list)
    is_read: bool = False
    sent_at: float = field(default_factory=_now)
    read_at: Optional[float] = None


@dataclass
class GiftCardRecord(_Record):
    id: int
    code: str
    amount: float
    is_redeemed: bool = False
    redeemer_id: Optional[int] = None
    purchaser_id: Optional[int] = None
    expiry_date: Optional[float] = None
    occasion: Optional[str] = None
    message: Optional[str] = None
    created_at: float = field(default_factory=_now)
    redeemed_at: Optional[float] = None


@dataclass
class ProviderFilters:
    cuisine: Optional[str] = None
    location: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    rating: Optional[float] = None
    emergency_support: bool = False
    dual_expertise: bool = False
    availability_24_7: bool = False
    search_term: Optional[str] = None
    sort_by: Optional[ProviderSort] = None


@dataclass
class ProviderMatch:
    profile: ProviderProfileRecord
    user: UserRecord
    average_rating: Optional[float] = None


def generate_gift_card_code() -> str:
    return secrets.token_hex(8)


class DbClient(Protocol):
    """Interface for database access."""

    def create_schema(self) -> None:
        ...

    # Users
    def get_user(self, user_id: int) -> Optional[UserRecord]:
        ...

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        ...

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    def create_user(self, **fields: Any) -> UserRecord:
        ...

    def update_user(self, user_id: int, **fields: Any) -> Optional[UserRecord]:
        ...

    def list_users(self) -> list[UserRecord]:
        ...

    # Client profiles
    def get_client_profile(self, user_id: int) -> Optional[ClientProfileRecord]:
        ...

    def create_client_profile(
        self, user_id: int, **fields: Any
    ) -> ClientProfileRecord:
        ...

    def update_client_profile(
        self, user_id: int, **fields: Any
    ) -> Optional[ClientProfileRecord]:
        ...

    # Provider profiles
    def get_provider_profile(
        self, user_id: int
    ) -> Optional[ProviderProfileRecord]:
        ...

    def get_provider_profile_by_id(
        self, profile_id: int
    ) -> Optional[ProviderProfileRecord]:
        ...

    def create_provider_profile(
        self, user_id: int, **fields: Any
    ) -> ProviderProfileRecord:
        ...

    def update_provider_profile(
        self, user_id: int, **fields: Any
    ) -> Optional[ProviderProfileRecord]:
        ...

    def list_provider_profiles(self) -> list[ProviderProfileRecord]:
        ...

    def search_providers(self, filters: ProviderFilters) -> list[ProviderMatch]:
        ...

    # Services
    def list_services_by_provider(self, provider_id: int) -> list[ServiceRecord]:
        ...

    def get_service(self, service_id: int) -> Optional[ServiceRecord]:
        ...

    def create_service(self, **fields: Any) -> ServiceRecord:
        ...

    def update_service(
        self, service_id: int, **fields: Any
    ) -> Optional[ServiceRecord]:
        ...

    def delete_service(self, service_id: int) -> bool:
        ...

    # Legacy catalog
    def list_chefs(self) -> list[ChefRecord]:
        ...

    def get_chef(self, chef_id: int) -> Optional[ChefRecord]:
        ...

    def list_chefs_by_cuisine(self, cuisine: str) -> list[ChefRecord]:
        ...

    def create_chef(self, **fields: Any) -> ChefRecord:
        ...

    def list_menus(self) -> list[MenuRecord]:
        ...

    def get_menu(self, menu_id: int) -> Optional[MenuRecord]:
        ...

    def list_menus_by_chef(self, chef_id: int) -> list[MenuRecord]:
        ...

    def create_menu(self, **fields: Any) -> MenuRecord:
        ...

    # Bookings
    def create_booking(self, **fields: Any) -> BookingRecord:
        ...

    def get_booking(self, booking_id: int) -> Optional[BookingRecord]:
        ...

    def list_bookings_by_client(self, client_id: int) -> list[BookingRecord]:
        ...

    def list_bookings_by_provider(self, provider_id: int) -> list[BookingRecord]:
        ...

    def list_bookings(self) -> list[BookingRecord]:
        ...

    def update_booking_status(
        self,
        booking_id: int,
        status: BookingStatus,
        expected: Optional[BookingStatus] = None,
    ) -> Optional[BookingRecord]:
        """
        Set the status. With `expected`, only update while the stored status
        still equals it, otherwise raise `StatusConflictError`.
        """
        ...

    # Reviews
    def create_review(self, **fields: Any) -> ReviewRecord:
        ...

    def list_reviews_by_provider(self, provider_id: int) -> list[ReviewRecord]:
        ...

    def list_reviews_by_client(self, client_id: int) -> list[ReviewRecord]:
        ...

    def average_rating(self, provider_id: int) -> Optional[float]:
        ...

    # Saved providers
    def save_provider(self, client_profile_id: int, provider_id: int) -> bool:
        ...

    def unsave_provider(self, client_profile_id: int, provider_id: int) -> bool:
        ...

    def list_saved_providers(self, client_profile_id: int) -> list[UserRecord]:
        ...

    # Messaging
    def send_message(self, **fields: Any) -> MessageRecord:
        ...

    def get_message(self, message_id: int) -> Optional[MessageRecord]:
        ...

    def get_conversation(self, user_a: int, user_b: int) -> list[MessageRecord]:
        ...

    def count_unread_messages(self, user_id: int) -> int:
        ...

    def mark_message_read(self, message_id: int) -> bool:
        ...

    # Gift cards
    def create_gift_card(self, **fields: Any) -> GiftCardRecord:
        ...

    def get_gift_card_by_code(self, code: str) -> Optional[GiftCardRecord]:
        ...

    def redeem_gift_card(self, code: str, user_id: int) -> bool:
        ...


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


def sort_provider_matches(
    matches: Iterable[ProviderMatch], sort_by: Optional[ProviderSort]
) -> list[ProviderMatch]:
    """Order matches the same way the SQL client does; missing values go last."""
    items = sorted(matches, key=lambda m: m.profile.id)
    if sort_by in (ProviderSort.POPULAR, ProviderSort.BOOKINGS):
        key, reverse = (lambda m: m.profile.total_bookings), True
    elif sort_by == ProviderSort.PRICE_LOW:
        key, reverse = (lambda m: m.profile.hourly_rate), False
    elif sort_by == ProviderSort.PRICE_HIGH:
        key, reverse = (lambda m: m.profile.hourly_rate), True
    elif sort_by == ProviderSort.EXPERIENCE:
        key, reverse = (lambda m: m.profile.years_experience), True
    elif sort_by == ProviderSort.RATING:
        key, reverse = (lambda m: m.average_rating), True
    else:
        return items
    present = [m for m in items if key(m) is not None]
    missing = [m for m in items if key(m) is None]
    # sorted() is stable, so ties keep id order.
    return sorted(present, key=key, reverse=reverse) + missing


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[int, UserRecord] = {}
        self.client_profiles: Dict[int, ClientProfileRecord] = {}
        self.provider_profiles: Dict[int, ProviderProfileRecord] = {}
        self.services: Dict[int, ServiceRecord] = {}
        self.chefs: Dict[int, ChefRecord] = {}
        self.menus: Dict[int, MenuRecord] = {}
        self.bookings: Dict[int, BookingRecord] = {}
        self.reviews: Dict[int, ReviewRecord] = {}
        self.saved_providers: Dict[tuple[int, int], float] = {}
        self.messages: Dict[int, MessageRecord] = {}
        self.gift_cards: Dict[int, GiftCardRecord] = {}
        self._lock = threading.Lock()
        self._ids: Dict[str, itertools.count] = {}

    def _next_id(self, table: str) -> int:
        counter = self._ids.setdefault(table, itertools.count(1))
        return next(counter)

    def _require(self, table: Dict[int, Any], key: Optional[int], name: str) -> None:
        if key is not None and key not in table:
            raise IntegrityViolationError(f"{name} {key} does not exist")

    def create_schema(self) -> None:
        return None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.__init__()

    # Users
    def get_user(self, user_id: int) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.username == username:
                return user
        return None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email == email:
                return user
        return None

    def _check_user_unique(self, user: UserRecord) -> None:
        for other in self.users.values():
            if other.id == user.id:
                continue
            if other.username == user.username:
                raise IntegrityViolationError("username already exists")
            if other.email == user.email:
                raise IntegrityViolationError("email already exists")

    def create_user(self, **fields: Any) -> UserRecord:
        user = UserRecord(id=self._next_id("users"), **fields)
        self._check_user_unique(user)
        self.users[user.id] = user
        return user

    def update_user(self, user_id: int, **fields: Any) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        if not user:
            return None
        updated = replace(user, **fields, updated_at=_now())
        self._check_user_unique(updated)
        self.users[user_id] = updated
        return updated

    def list_users(self) -> list[UserRecord]:
        return list(self.users.values())

    # Client profiles
    def get_client_profile(self, user_id: int) -> Optional[ClientProfileRecord]:
        for profile in self.client_profiles.values():
            if profile.user_id == user_id:
                return profile
        return None

    def _check_referral_code(self, profile: ClientProfileRecord) -> None:
        if profile.referral_code is None:
            return
        for other in self.client_profiles.values():
            if other.id != profile.id and other.referral_code == profile.referral_code:
                raise IntegrityViolationError("referral code already exists")

    def create_client_profile(
        self, user_id: int, **fields: Any
    ) -> ClientProfileRecord:
        self._require(self.users, user_id, "user")
        if self.get_client_profile(user_id):
            raise IntegrityViolationError(f"user {user_id} already has a client profile")
        profile = ClientProfileRecord(
            id=self._next_id("client_profiles"), user_id=user_id, **fields
        )
        self._check_referral_code(profile)
        self.client_profiles[profile.id] = profile
        return profile

    def update_client_profile(
        self, user_id: int, **fields: Any
    ) -> Optional[ClientProfileRecord]:
        profile = self.get_client_profile(user_id)
        if not profile:
            return None
        updated = replace(profile, **fields)
        self._check_referral_code(updated)
        self.client_profiles[profile.id] = updated
        return updated

    # Provider profiles
    def get_provider_profile(
        self, user_id: int
    ) -> Optional[ProviderProfileRecord]:
        for profile in self.provider_profiles.values():
            if profile.user_id == user_id:
                return profile
        return None

    def get_provider_profile_by_id(
        self, profile_id: int
    ) -> Optional[ProviderProfileRecord]:
        return self.provider_profiles.get(profile_id)

    def create_provider_profile(
        self, user_id: int, **fields: Any
    ) -> ProviderProfileRecord:
        self._require(self.users, user_id, "user")
        if self.get_provider_profile(user_id):
            raise IntegrityViolationError(f"user {user_id} already has a provider profile")
        profile = ProviderProfileRecord(
            id=self._next_id("provider_profiles"), user_id=user_id, **fields
        )
        self.provider_profiles[profile.id] = profile
        return profile

    def update_provider_profile(
        self, user_id: int, **fields: Any
    ) -> Optional[ProviderProfileRecord]:
        profile = self.get_provider_profile(user_id)
        if not profile:
            return None
        updated = replace(profile, **fields)
        self.provider_profiles[profile.id] = updated
        return updated

    def list_provider_profiles(self) -> list[ProviderProfileRecord]:
        return list(self.provider_profiles.values())

    def search_providers(self, filters: ProviderFilters) -> list[ProviderMatch]:
        matches: list[ProviderMatch] = []
        for profile in self.provider_profiles.values():
            user = self.users[profile.user_id]
            rating = self.average_rating(user.id)
            if filters.cuisine and not _contains(
                profile.cuisine_specialty, filters.cuisine
            ):
                continue
            if filters.location and not _contains(user.location, filters.location):
                continue
            if filters.min_price and filters.min_price > 0:
                if profile.hourly_rate is None or profile.hourly_rate < filters.min_price:
                    continue
            if filters.max_price and filters.max_price > 0:
                if profile.hourly_rate is None or profile.hourly_rate > filters.max_price:
                    continue
            if filters.rating and (rating is None or rating < filters.rating):
                continue
            if filters.emergency_support and not profile.emergency_support:
                continue
            if filters.dual_expertise and not profile.dual_expertise:
                continue
            if filters.availability_24_7 and not profile.availability_24_7:
                continue
            if filters.search_term and not (
                _contains(user.fullname, filters.search_term)
                or _contains(user.bio, filters.search_term)
                or _contains(profile.cuisine_specialty, filters.search_term)
            ):
                continue
            matches.append(ProviderMatch(profile=profile, user=user, average_rating=rating))
        return sort_provider_matches(matches, filters.sort_by)

    # Services
    def list_services_by_provider(self, provider_id: int) -> list[ServiceRecord]:
        return [s for s in self.services.values() if s.provider_id == provider_id]

    def get_service(self, service_id: int) -> Optional[ServiceRecord]:
        return self.services.get(service_id)

    def create_service(self, **fields: Any) -> ServiceRecord:
        service = ServiceRecord(id=self._next_id("services"), **fields)
        self._require(self.provider_profiles, service.provider_id, "provider profile")
        self.services[service.id] = service
        return service

    def update_service(
        self, service_id: int, **fields: Any
    ) -> Optional[ServiceRecord]:
        service = self.services.get(service_id)
        if not service:
            return None
        updated = replace(service, **fields)
        self._require(self.provider_profiles, updated.provider_id, "provider profile")
        self.services[service_id] = updated
        return updated

    def delete_service(self, service_id: int) -> bool:
        if service_id not in self.services:
            return False
        if any(b.service_id == service_id for b in self.bookings.values()):
            raise IntegrityViolationError(f"service {service_id} has bookings")
        del self.services[service_id]
        return True

    # Legacy catalog
    def list_chefs(self) -> list[ChefRecord]:
        return list(self.chefs.values())

    def get_chef(self, chef_id: int) -> Optional[ChefRecord]:
        return self.chefs.get(chef_id)

    def list_chefs_by_cuisine(self, cuisine: str) -> list[ChefRecord]:
        if not cuisine or cuisine == "all":
            return self.list_chefs()
        return [c for c in self.chefs.values() if _contains(c.cuisine, cuisine)]

    def create_chef(self, **fields: Any) -> ChefRecord:
        chef = ChefRecord(id=self._next_id("chefs"), **fields)
        self._require(self.provider_profiles, chef.provider_id, "provider profile")
        self.chefs[chef.id] = chef
        return chef

    def list_menus(self) -> list[MenuRecord]:
        return list(self.menus.values())

    def get_menu(self, menu_id: int) -> Optional[MenuRecord]:
        return self.menus.get(menu_id)

    def list_menus_by_chef(self, chef_id: int) -> list[MenuRecord]:
        return [m for m in self.menus.values() if m.chef_id == chef_id]

    def create_menu(self, **fields: Any) -> MenuRecord:
        menu = MenuRecord(id=self._next_id("menus"), **fields)
        self._require(self.chefs, menu.chef_id, "chef")
        self.menus[menu.id] = menu
        return menu

    # Bookings
    def create_booking(self, **fields: Any) -> BookingRecord:
        booking = BookingRecord(id=self._next_id("bookings"), **fields)
        self._require(self.users, booking.client_id, "user")
        self._require(self.users, booking.provider_id, "user")
        self._require(self.services, booking.service_id, "service")
        self.bookings[booking.id] = booking
        if booking.provider_id is not None:
            profile = self.get_provider_profile(booking.provider_id)
            if profile:
                profile.total_bookings += 1
        return booking

    def get_booking(self, booking_id: int) -> Optional[BookingRecord]:
        return self.bookings.get(booking_id)

    def list_bookings_by_client(self, client_id: int) -> list[BookingRecord]:
        return [b for b in self.bookings.values() if b.client_id == client_id]

    def list_bookings_by_provider(self, provider_id: int) -> list[BookingRecord]:
        return [b for b in self.bookings.values() if b.provider_id == provider_id]

    def list_bookings(self) -> list[BookingRecord]:
        return list(self.bookings.values())

    def update_booking_status(
        self,
        booking_id: int,
        status: BookingStatus,
        expected: Optional[BookingStatus] = None,
    ) -> Optional[BookingRecord]:
        with self._lock:
            booking = self.bookings.get(booking_id)
            if not booking:
                return None
            if expected is not None and booking.status != expected:
                raise StatusConflictError(
                    f"booking {booking_id} is {booking.status.value}, not {expected}"
                )
            updated = replace(booking, status=BookingStatus(status), updated_at=_now())
            self.bookings[booking_id] = updated
            return updated

    # Reviews
    def create_review(self, **fields: Any) -> ReviewRecord:
        review = ReviewRecord(id=self._next_id("reviews"), **fields)
        self._require(self.users, review.client_id, "user")
        self._require(self.users, review.provider_id, "user")
        self._require(self.bookings, review.booking_id, "booking")
        self.reviews[review.id] = review
        return review

    def list_reviews_by_provider(self, provider_id: int) -> list[ReviewRecord]:
        return [r for r in self.reviews.values() if r.provider_id == provider_id]

    def list_reviews_by_client(self, client_id: int) -> list[ReviewRecord]:
        return [r for r in self.reviews.values() if r.client_id == client_id]

    def average_rating(self, provider_id: int) -> Optional[float]:
        ratings = [r.rating for r in self.list_reviews_by_provider(provider_id)]
        if not ratings:
            return None
        return sum(ratings) / len(ratings)

    # Saved providers
    def save_provider(self, client_profile_id: int, provider_id: int) -> bool:
        self._require(self.client_profiles, client_profile_id, "client profile")
        self._require(self.users, provider_id, "user")
        self.saved_providers.setdefault((client_profile_id, provider_id), _now())
        return True

    def unsave_provider(self, client_profile_id: int, provider_id: int) -> bool:
        return self.saved_providers.pop((client_profile_id, provider_id), None) is not None

    def list_saved_providers(self, client_profile_id: int) -> list[UserRecord]:
        provider_ids = [
            provider_id
            for (client_id, provider_id) in self.saved_providers
            if client_id == client_profile_id
        ]
        return [self.users[pid] for pid in sorted(provider_ids) if pid in self.users]

    # Messaging
    def send_message(self, **fields: Any) -> MessageRecord:
        message = MessageRecord(id=self._next_id("messages"), **fields)
        self._require(self.users, message.sender_id, "user")
        self._require(self.users, message.recipient_id, "user")
        self._require(self.bookings, message.booking_id, "booking")
        self.messages[message.id] = message
        return message

    def get_message(self, message_id: int) -> Optional[MessageRecord]:
        return self.messages.get(message_id)

    def get_conversation(self, user_a: int, user_b: int) -> list[MessageRecord]:
        pair = {(user_a, user_b), (user_b, user_a)}
        thread = [
            m for m in self.messages.values() if (m.sender_id, m.recipient_id) in pair
        ]
        return sorted(thread, key=lambda m: (m.sent_at, m.id))

    def count_unread_messages(self, user_id: int) -> int:
        return sum(
            1
            for m in self.messages.values()
            if m.recipient_id == user_id and not m.is_read
        )

    def mark_message_read(self, message_id: int) -> bool:
        message = self.messages.get(message_id)
        if not message:
            return False
        message.is_read = True
        message.read_at = _now()
        return True

    # Gift cards
    def create_gift_card(self, **fields: Any) -> GiftCardRecord:
        card = GiftCardRecord(
            id=self._next_id("gift_cards"), code=generate_gift_card_code(), **fields
        )
        self._require(self.users, card.purchaser_id, "user")
        if self.get_gift_card_by_code(card.code):
            raise IntegrityViolationError("gift card code already exists")
        self.gift_cards[card.id] = card
        return card

    def get_gift_card_by_code(self, code: str) -> Optional[GiftCardRecord]:
        for card in self.gift_cards.values():
            if card.code == code:
                return card
        return None

    def redeem_gift_card(self, code: str, user_id: int) -> bool:
        card = self.get_gift_card_by_code(code)
        if not card or card.is_redeemed:
            return False
        self._require(self.users, user_id, "user")
        card.is_redeemed = True
        card.redeemer_id = user_id
        card.redeemed_at = _now()
        return True
