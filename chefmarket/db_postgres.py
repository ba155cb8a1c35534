"""
SQLAlchemy-backed implementation of `DbClient` and the relational schema.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import fields as dataclass_fields
from typing import Any, Iterator, Optional, Type, TypeVar

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    and_,
    create_engine,
    event,
    func,
    or_,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from chefmarket.db import (
    BookingRecord,
    ChefRecord,
    ClientProfileRecord,
    GiftCardRecord,
    IntegrityViolationError,
    MenuRecord,
    MessageRecord,
    ProviderFilters,
    ProviderMatch,
    ProviderProfileRecord,
    ReviewRecord,
    ServiceRecord,
    StatusConflictError,
    StorageError,
    UserRecord,
    generate_gift_card_code,
)
from chefmarket.types import (
    BookingStatus,
    ProviderSort,
    UserRole,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

R = TypeVar("R")


def _timestamp() -> float:
    return time.time()


def _enum(enum_cls, name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, nullable=False, unique=True)
    password = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    fullname = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    role = Column(_enum(UserRole, "user_role"), nullable=False, default=UserRole.CLIENT)
    profile_image = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    last_login = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False, default=_timestamp)
    updated_at = Column(Float, nullable=False, default=_timestamp)


class ClientProfileRow(Base):
    __tablename__ = "client_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    preferences = Column(Text, nullable=True)
    payment_methods = Column(Text, nullable=True)
    referral_code = Column(String, nullable=True, unique=True)
    total_spent = Column(Float, nullable=False, default=0.0)


class ProviderProfileRow(Base):
    __tablename__ = "provider_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    cuisine_specialty = Column(String, nullable=True)
    years_experience = Column(Integer, nullable=True)
    hourly_rate = Column(Float, nullable=True)
    availability = Column(Text, nullable=True)
    emergency_support = Column(Boolean, nullable=False, default=False)
    dual_expertise = Column(Boolean, nullable=False, default=False)
    availability_24_7 = Column(Boolean, nullable=False, default=False)
    total_bookings = Column(Integer, nullable=False, default=0)
    verification_status = Column(
        _enum(VerificationStatus, "verification_status"),
        nullable=False,
        default=VerificationStatus.PENDING,
    )
    documents_submitted = Column(Boolean, nullable=False, default=False)
    document_links = Column(JSON, nullable=False, default=list)
    commission_rate = Column(Float, nullable=False, default=26.0)


class ServiceRow(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(
        Integer,
        ForeignKey("provider_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    duration = Column(Integer, nullable=True)
    is_video_consultation = Column(Boolean, nullable=False, default=False)
    is_face_to_face = Column(Boolean, nullable=False, default=True)


class ChefRow(Base):
    __tablename__ = "chefs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    profile_image = Column(String, nullable=False)
    cuisine = Column(String, nullable=False)
    price = Column(Integer, nullable=False)
    description = Column(Text, nullable=False)
    rating = Column(String, nullable=False)
    review_count = Column(Integer, nullable=False)
    provider_id = Column(Integer, ForeignKey("provider_profiles.id"), nullable=True)


class MenuRow(Base):
    __tablename__ = "menus"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chef_id = Column(Integer, ForeignKey("chefs.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    image = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    courses = Column(String, nullable=False)
    guest_range = Column(String, nullable=False)
    price = Column(Integer, nullable=False)
    items = Column(JSON, nullable=False, default=list)


class BookingRow(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    event_type = Column(String, nullable=False)
    date = Column(String, nullable=False)
    time = Column(String, nullable=False)
    end_time = Column(String, nullable=True)
    guests = Column(Integer, nullable=True)
    cuisine = Column(String, nullable=True)
    location = Column(String, nullable=False)
    special_requests = Column(Text, nullable=True)
    status = Column(
        _enum(BookingStatus, "booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    total_amount = Column(Float, nullable=True)
    client_fee = Column(Float, nullable=True)
    provider_commission = Column(Float, nullable=True)
    payment_status = Column(String, nullable=False, default="pending")
    created_at = Column(Float, nullable=False, default=_timestamp)
    updated_at = Column(Float, nullable=False, default=_timestamp)


class ReviewRow(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(
        Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True
    )
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(Float, nullable=False, default=_timestamp)
    updated_at = Column(Float, nullable=False, default=_timestamp)


class SavedProviderRow(Base):
    __tablename__ = "saved_providers"
    __table_args__ = (
        UniqueConstraint("client_id", "provider_id", name="client_provider_unique"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(
        Integer, ForeignKey("client_profiles.id", ondelete="CASCADE"), nullable=False
    )
    provider_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    saved_at = Column(Float, nullable=False, default=_timestamp)


class MessageRow(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    content = Column(Text, nullable=False)
    attachments = Column(JSON, nullable=False, default=list)
    is_read = Column(Boolean, nullable=False, default=False)
    sent_at = Column(Float, nullable=False, default=_timestamp)
    read_at = Column(Float, nullable=True)


class GiftCardRow(Base):
    __tablename__ = "gift_cards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String, nullable=False, unique=True)
    amount = Column(Float, nullable=False)
    is_redeemed = Column(Boolean, nullable=False, default=False)
    redeemer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    purchaser_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    expiry_date = Column(Float, nullable=True)
    occasion = Column(String, nullable=True)
    message = Column(Text, nullable=True)
    created_at = Column(Float, nullable=False, default=_timestamp)
    redeemed_at = Column(Float, nullable=True)


def _to_record(row: Any, record_cls: Type[R]) -> R:
    values = {f.name: getattr(row, f.name) for f in dataclass_fields(record_cls)}
    return record_cls(**values)


def _apply(row: Any, values: dict) -> None:
    columns = row.__table__.columns.keys()
    for key, value in values.items():
        if key not in columns or key == "id":
            raise TypeError(f"{type(row).__name__} has no updatable field {key!r}")
        setattr(row, key, value)


class PostgresDbClient:
    """
    Relational `DbClient`. Production runs on Postgres; the test suite points
    it at an in-memory SQLite URL.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        if database_url.startswith("sqlite"):
            engine_kwargs: dict = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite:"):
                # One shared connection, otherwise each checkout sees an empty DB.
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs = {"pool_pre_ping": True, "pool_recycle": 1800}
        self.engine = create_engine(database_url, future=True, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        logger.info("Using %s database", self.engine.dialect.name)
        self.create_schema()

    def create_schema(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to create schema: {exc}") from exc

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.Session()
        try:
            yield session
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise IntegrityViolationError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(str(exc)) from exc
        finally:
            session.close()

    def _insert(self, row: Any, record_cls: Type[R]) -> R:
        with self._session() as session:
            session.add(row)
            session.flush()
            return _to_record(row, record_cls)

    def _first(self, stmt, record_cls: Type[R]) -> Optional[R]:
        with self._session() as session:
            row = session.execute(stmt).scalars().first()
            return _to_record(row, record_cls) if row else None

    def _all(self, stmt, record_cls: Type[R]) -> list[R]:
        with self._session() as session:
            rows = session.execute(stmt).scalars().all()
            return [_to_record(row, record_cls) for row in rows]

    # Users
    def get_user(self, user_id: int) -> Optional[UserRecord]:
        return self._first(select(UserRow).where(UserRow.id == user_id), UserRecord)

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        return self._first(
            select(UserRow).where(UserRow.username == username), UserRecord
        )

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        return self._first(select(UserRow).where(UserRow.email == email), UserRecord)

    def create_user(self, **fields: Any) -> UserRecord:
        now = time.time()
        fields.setdefault("created_at", now)
        fields.setdefault("updated_at", now)
        return self._insert(UserRow(**fields), UserRecord)

    def update_user(self, user_id: int, **fields: Any) -> Optional[UserRecord]:
        with self._session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            _apply(row, {**fields, "updated_at": time.time()})
            session.flush()
            return _to_record(row, UserRecord)

    def list_users(self) -> list[UserRecord]:
        return self._all(select(UserRow).order_by(UserRow.id), UserRecord)

    # Client profiles
    def get_client_profile(self, user_id: int) -> Optional[ClientProfileRecord]:
        return self._first(
            select(ClientProfileRow).where(ClientProfileRow.user_id == user_id),
            ClientProfileRecord,
        )

    def create_client_profile(
        self, user_id: int, **fields: Any
    ) -> ClientProfileRecord:
        return self._insert(
            ClientProfileRow(user_id=user_id, **fields), ClientProfileRecord
        )

    def update_client_profile(
        self, user_id: int, **fields: Any
    ) -> Optional[ClientProfileRecord]:
        with self._session() as session:
            row = session.execute(
                select(ClientProfileRow).where(ClientProfileRow.user_id == user_id)
            ).scalar_one_or_none()
            if not row:
                return None
            _apply(row, fields)
            session.flush()
            return _to_record(row, ClientProfileRecord)

    # Provider profiles
    def get_provider_profile(
        self, user_id: int
    ) -> Optional[ProviderProfileRecord]:
        return self._first(
            select(ProviderProfileRow).where(ProviderProfileRow.user_id == user_id),
            ProviderProfileRecord,
        )

    def get_provider_profile_by_id(
        self, profile_id: int
    ) -> Optional[ProviderProfileRecord]:
        return self._first(
            select(ProviderProfileRow).where(ProviderProfileRow.id == profile_id),
            ProviderProfileRecord,
        )

    def create_provider_profile(
        self, user_id: int, **fields: Any
    ) -> ProviderProfileRecord:
        fields.setdefault("document_links", [])
        return self._insert(
            ProviderProfileRow(user_id=user_id, **fields), ProviderProfileRecord
        )

    def update_provider_profile(
        self, user_id: int, **fields: Any
    ) -> Optional[ProviderProfileRecord]:
        with self._session() as session:
            row = session.execute(
                select(ProviderProfileRow).where(ProviderProfileRow.user_id == user_id)
            ).scalar_one_or_none()
            if not row:
                return None
            _apply(row, fields)
            session.flush()
            return _to_record(row, ProviderProfileRecord)

    def list_provider_profiles(self) -> list[ProviderProfileRecord]:
        return self._all(
            select(ProviderProfileRow).order_by(ProviderProfileRow.id),
            ProviderProfileRecord,
        )

    def search_providers(self, filters: ProviderFilters) -> list[ProviderMatch]:
        ratings = (
            select(
                ReviewRow.provider_id.label("provider_id"),
                func.avg(ReviewRow.rating).label("avg_rating"),
            )
            .group_by(ReviewRow.provider_id)
            .subquery()
        )
        stmt = (
            select(ProviderProfileRow, UserRow, ratings.c.avg_rating)
            .join(UserRow, ProviderProfileRow.user_id == UserRow.id)
            .outerjoin(ratings, ratings.c.provider_id == UserRow.id)
        )

        conditions = []
        if filters.cuisine:
            conditions.append(
                ProviderProfileRow.cuisine_specialty.icontains(
                    filters.cuisine, autoescape=True
                )
            )
        if filters.location:
            conditions.append(
                UserRow.location.icontains(filters.location, autoescape=True)
            )
        if filters.min_price and filters.min_price > 0:
            conditions.append(ProviderProfileRow.hourly_rate >= filters.min_price)
        if filters.max_price and filters.max_price > 0:
            conditions.append(ProviderProfileRow.hourly_rate <= filters.max_price)
        if filters.rating:
            conditions.append(ratings.c.avg_rating >= filters.rating)
        if filters.emergency_support:
            conditions.append(ProviderProfileRow.emergency_support.is_(True))
        if filters.dual_expertise:
            conditions.append(ProviderProfileRow.dual_expertise.is_(True))
        if filters.availability_24_7:
            conditions.append(ProviderProfileRow.availability_24_7.is_(True))
        if filters.search_term:
            term = filters.search_term
            conditions.append(
                or_(
                    UserRow.fullname.icontains(term, autoescape=True),
                    UserRow.bio.icontains(term, autoescape=True),
                    ProviderProfileRow.cuisine_specialty.icontains(
                        term, autoescape=True
                    ),
                )
            )
        if conditions:
            stmt = stmt.where(and_(*conditions))

        sort_by = filters.sort_by
        if sort_by in (ProviderSort.POPULAR, ProviderSort.BOOKINGS):
            stmt = stmt.order_by(ProviderProfileRow.total_bookings.desc().nulls_last())
        elif sort_by == ProviderSort.PRICE_LOW:
            stmt = stmt.order_by(ProviderProfileRow.hourly_rate.asc().nulls_last())
        elif sort_by == ProviderSort.PRICE_HIGH:
            stmt = stmt.order_by(ProviderProfileRow.hourly_rate.desc().nulls_last())
        elif sort_by == ProviderSort.EXPERIENCE:
            stmt = stmt.order_by(
                ProviderProfileRow.years_experience.desc().nulls_last()
            )
        elif sort_by == ProviderSort.RATING:
            stmt = stmt.order_by(ratings.c.avg_rating.desc().nulls_last())
        stmt = stmt.order_by(ProviderProfileRow.id)

        with self._session() as session:
            results: list[ProviderMatch] = []
            for profile, user, avg_rating in session.execute(stmt).all():
                results.append(
                    ProviderMatch(
                        profile=_to_record(profile, ProviderProfileRecord),
                        user=_to_record(user, UserRecord),
                        average_rating=float(avg_rating)
                        if avg_rating is not None
                        else None,
                    )
                )
            return results

    # Services
    def list_services_by_provider(self, provider_id: int) -> list[ServiceRecord]:
        return self._all(
            select(ServiceRow)
            .where(ServiceRow.provider_id == provider_id)
            .order_by(ServiceRow.id),
            ServiceRecord,
        )

    def get_service(self, service_id: int) -> Optional[ServiceRecord]:
        return self._first(
            select(ServiceRow).where(ServiceRow.id == service_id), ServiceRecord
        )

    def create_service(self, **fields: Any) -> ServiceRecord:
        return self._insert(ServiceRow(**fields), ServiceRecord)

    def update_service(
        self, service_id: int, **fields: Any
    ) -> Optional[ServiceRecord]:
        with self._session() as session:
            row = session.get(ServiceRow, service_id)
            if not row:
                return None
            _apply(row, fields)
            session.flush()
            return _to_record(row, ServiceRecord)

    def delete_service(self, service_id: int) -> bool:
        with self._session() as session:
            row = session.get(ServiceRow, service_id)
            if not row:
                return False
            session.delete(row)
            session.flush()
            return True

    # Legacy catalog
    def list_chefs(self) -> list[ChefRecord]:
        return self._all(select(ChefRow).order_by(ChefRow.id), ChefRecord)

    def get_chef(self, chef_id: int) -> Optional[ChefRecord]:
        return self._first(select(ChefRow).where(ChefRow.id == chef_id), ChefRecord)

    def list_chefs_by_cuisine(self, cuisine: str) -> list[ChefRecord]:
        if not cuisine or cuisine == "all":
            return self.list_chefs()
        return self._all(
            select(ChefRow)
            .where(ChefRow.cuisine.icontains(cuisine, autoescape=True))
            .order_by(ChefRow.id),
            ChefRecord,
        )

    def create_chef(self, **fields: Any) -> ChefRecord:
        return self._insert(ChefRow(**fields), ChefRecord)

    def list_menus(self) -> list[MenuRecord]:
        return self._all(select(MenuRow).order_by(MenuRow.id), MenuRecord)

    def get_menu(self, menu_id: int) -> Optional[MenuRecord]:
        return self._first(select(MenuRow).where(MenuRow.id == menu_id), MenuRecord)

    def list_menus_by_chef(self, chef_id: int) -> list[MenuRecord]:
        return self._all(
            select(MenuRow).where(MenuRow.chef_id == chef_id).order_by(MenuRow.id),
            MenuRecord,
        )

    def create_menu(self, **fields: Any) -> MenuRecord:
        return self._insert(MenuRow(**fields), MenuRecord)

    # Bookings
    def create_booking(self, **fields: Any) -> BookingRecord:
        now = time.time()
        fields.setdefault("created_at", now)
        fields.setdefault("updated_at", now)
        with self._session() as session:
            row = BookingRow(**fields)
            session.add(row)
            session.flush()
            if row.provider_id is not None:
                session.execute(
                    update(ProviderProfileRow)
                    .where(ProviderProfileRow.user_id == row.provider_id)
                    .values(total_bookings=ProviderProfileRow.total_bookings + 1)
                )
            return _to_record(row, BookingRecord)

    def get_booking(self, booking_id: int) -> Optional[BookingRecord]:
        return self._first(
            select(BookingRow).where(BookingRow.id == booking_id), BookingRecord
        )

    def list_bookings_by_client(self, client_id: int) -> list[BookingRecord]:
        return self._all(
            select(BookingRow)
            .where(BookingRow.client_id == client_id)
            .order_by(BookingRow.id),
            BookingRecord,
        )

    def list_bookings_by_provider(self, provider_id: int) -> list[BookingRecord]:
        return self._all(
            select(BookingRow)
            .where(BookingRow.provider_id == provider_id)
            .order_by(BookingRow.id),
            BookingRecord,
        )

    def list_bookings(self) -> list[BookingRecord]:
        return self._all(select(BookingRow).order_by(BookingRow.id), BookingRecord)

    def update_booking_status(
        self,
        booking_id: int,
        status: BookingStatus,
        expected: Optional[BookingStatus] = None,
    ) -> Optional[BookingRecord]:
        stmt = (
            update(BookingRow)
            .where(BookingRow.id == booking_id)
            .values(status=BookingStatus(status), updated_at=time.time())
        )
        if expected is not None:
            stmt = stmt.where(BookingRow.status == BookingStatus(expected))
        with self._session() as session:
            result = session.execute(stmt)
            row = session.get(BookingRow, booking_id, populate_existing=True)
            if not row:
                return None
            if not result.rowcount:
                raise StatusConflictError(
                    f"booking {booking_id} is {row.status.value}, not {expected}"
                )
            return _to_record(row, BookingRecord)

    # Reviews
    def create_review(self, **fields: Any) -> ReviewRecord:
        now = time.time()
        fields.setdefault("created_at", now)
        fields.setdefault("updated_at", now)
        return self._insert(ReviewRow(**fields), ReviewRecord)

    def list_reviews_by_provider(self, provider_id: int) -> list[ReviewRecord]:
        return self._all(
            select(ReviewRow)
            .where(ReviewRow.provider_id == provider_id)
            .order_by(ReviewRow.id),
            ReviewRecord,
        )

    def list_reviews_by_client(self, client_id: int) -> list[ReviewRecord]:
        return self._all(
            select(ReviewRow)
            .where(ReviewRow.client_id == client_id)
            .order_by(ReviewRow.id),
            ReviewRecord,
        )

    def average_rating(self, provider_id: int) -> Optional[float]:
        with self._session() as session:
            value = session.execute(
                select(func.avg(ReviewRow.rating)).where(
                    ReviewRow.provider_id == provider_id
                )
            ).scalar_one()
            return float(value) if value is not None else None

    # Saved providers
    def save_provider(self, client_profile_id: int, provider_id: int) -> bool:
        with self._session() as session:
            existing = session.execute(
                select(SavedProviderRow).where(
                    SavedProviderRow.client_id == client_profile_id,
                    SavedProviderRow.provider_id == provider_id,
                )
            ).scalar_one_or_none()
            if not existing:
                session.add(
                    SavedProviderRow(
                        client_id=client_profile_id,
                        provider_id=provider_id,
                        saved_at=time.time(),
                    )
                )
                session.flush()
            return True

    def unsave_provider(self, client_profile_id: int, provider_id: int) -> bool:
        with self._session() as session:
            row = session.execute(
                select(SavedProviderRow).where(
                    SavedProviderRow.client_id == client_profile_id,
                    SavedProviderRow.provider_id == provider_id,
                )
            ).scalar_one_or_none()
            if not row:
                return False
            session.delete(row)
            return True

    def list_saved_providers(self, client_profile_id: int) -> list[UserRecord]:
        return self._all(
            select(UserRow)
            .join(SavedProviderRow, SavedProviderRow.provider_id == UserRow.id)
            .where(SavedProviderRow.client_id == client_profile_id)
            .order_by(UserRow.id),
            UserRecord,
        )

    # Messaging
    def send_message(self, **fields: Any) -> MessageRecord:
        fields.setdefault("sent_at", time.time())
        fields.setdefault("attachments", [])
        return self._insert(MessageRow(**fields), MessageRecord)

    def get_message(self, message_id: int) -> Optional[MessageRecord]:
        return self._first(
            select(MessageRow).where(MessageRow.id == message_id), MessageRecord
        )

    def get_conversation(self, user_a: int, user_b: int) -> list[MessageRecord]:
        return self._all(
            select(MessageRow)
            .where(
                or_(
                    and_(
                        MessageRow.sender_id == user_a,
                        MessageRow.recipient_id == user_b,
                    ),
                    and_(
                        MessageRow.sender_id == user_b,
                        MessageRow.recipient_id == user_a,
                    ),
                )
            )
            .order_by(MessageRow.sent_at, MessageRow.id),
            MessageRecord,
        )

    def count_unread_messages(self, user_id: int) -> int:
        with self._session() as session:
            return session.execute(
                select(func.count())
                .select_from(MessageRow)
                .where(
                    MessageRow.recipient_id == user_id,
                    MessageRow.is_read.is_(False),
                )
            ).scalar_one()

    def mark_message_read(self, message_id: int) -> bool:
        with self._session() as session:
            result = session.execute(
                update(MessageRow)
                .where(MessageRow.id == message_id)
                .values(is_read=True, read_at=time.time())
            )
            return (result.rowcount or 0) > 0

    # Gift cards
    def create_gift_card(self, **fields: Any) -> GiftCardRecord:
        fields.setdefault("created_at", time.time())
        return self._insert(
            GiftCardRow(code=generate_gift_card_code(), **fields), GiftCardRecord
        )

    def get_gift_card_by_code(self, code: str) -> Optional[GiftCardRecord]:
        return self._first(
            select(GiftCardRow).where(GiftCardRow.code == code), GiftCardRecord
        )

    def redeem_gift_card(self, code: str, user_id: int) -> bool:
        with self._session() as session:
            card = session.execute(
                select(GiftCardRow)
                .where(GiftCardRow.code == code, GiftCardRow.is_redeemed.is_(False))
                .with_for_update()
            ).scalar_one_or_none()
            if not card:
                return False
            card.is_redeemed = True
            card.redeemer_id = user_id
            card.redeemed_at = time.time()
            session.flush()
            return True


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
