"""
Behaviour shared by every `DbClient` implementation.

Concrete test cases mix `DbClientContract` into a `unittest.TestCase` and
implement `make_db()`.
"""

from __future__ import annotations

from chefmarket.db import (
    IntegrityViolationError,
    ProviderFilters,
    StatusConflictError,
)
from chefmarket.types import BookingStatus, ProviderSort, UserRole, VerificationStatus


class DbClientContract:
    def make_db(self):
        raise NotImplementedError

    def setUp(self):
        self.db = self.make_db()

    def _user(self, username, role=UserRole.CLIENT, **fields):
        fields.setdefault("email", f"{username}@example.com")
        fields.setdefault("fullname", username.title())
        return self.db.create_user(
            username=username, password="hash.salt", role=role, **fields
        )

    def _provider(self, username, user_fields=None, **profile_fields):
        user = self._user(username, role=UserRole.PROVIDER, **(user_fields or {}))
        profile = self.db.create_provider_profile(user.id, **profile_fields)
        return user, profile

    def _booking(self, client, provider, **fields):
        fields.setdefault("event_type", "Dinner party")
        fields.setdefault("date", "2030-01-01")
        fields.setdefault("time", "18:00")
        fields.setdefault("location", "12 Harbour Road")
        return self.db.create_booking(
            client_id=client.id, provider_id=provider.id, **fields
        )

    # Users

    def test_create_and_lookup_user(self):
        user = self._user("alice", phone="555-0100")
        self.assertEqual(user.role, UserRole.CLIENT)
        self.assertFalse(user.is_verified)
        self.assertIsNone(user.last_login)

        self.assertEqual(self.db.get_user(user.id).username, "alice")
        self.assertEqual(self.db.get_user_by_username("alice").id, user.id)
        self.assertEqual(self.db.get_user_by_email("alice@example.com").id, user.id)
        self.assertIsNone(self.db.get_user_by_username("nobody"))
        self.assertIsNone(self.db.get_user(9999))

    def test_duplicate_username_or_email_is_rejected(self):
        self._user("alice")
        with self.assertRaises(IntegrityViolationError):
            self._user("alice", email="other@example.com")
        with self.assertRaises(IntegrityViolationError):
            self._user("alicia", email="alice@example.com")

    def test_update_user_bumps_updated_at(self):
        user = self._user("alice")
        updated = self.db.update_user(user.id, bio="Loves pasta", last_login=123.0)
        self.assertEqual(updated.bio, "Loves pasta")
        self.assertEqual(updated.last_login, 123.0)
        self.assertGreaterEqual(updated.updated_at, user.updated_at)
        self.assertEqual(self.db.get_user(user.id).bio, "Loves pasta")
        self.assertIsNone(self.db.update_user(9999, bio="x"))

    def test_update_user_to_taken_email_is_rejected(self):
        self._user("alice")
        bob = self._user("bob")
        with self.assertRaises(IntegrityViolationError):
            self.db.update_user(bob.id, email="alice@example.com")

    def test_list_users(self):
        self._user("alice")
        self._user("bob")
        self.assertEqual(
            sorted(u.username for u in self.db.list_users()), ["alice", "bob"]
        )

    # Profiles

    def test_client_profile_lifecycle(self):
        user = self._user("alice")
        profile = self.db.create_client_profile(user.id, referral_code="ALICE1")
        self.assertEqual(profile.total_spent, 0.0)
        self.assertEqual(self.db.get_client_profile(user.id).id, profile.id)

        updated = self.db.update_client_profile(user.id, preferences="vegetarian")
        self.assertEqual(updated.preferences, "vegetarian")
        self.assertEqual(updated.referral_code, "ALICE1")
        self.assertIsNone(self.db.update_client_profile(9999, preferences="x"))

    def test_referral_codes_are_unique(self):
        alice = self._user("alice")
        bob = self._user("bob")
        self.db.create_client_profile(alice.id, referral_code="SHARED")
        with self.assertRaises(IntegrityViolationError):
            self.db.create_client_profile(bob.id, referral_code="SHARED")

    def test_profile_requires_existing_user(self):
        with self.assertRaises(IntegrityViolationError):
            self.db.create_client_profile(9999)

    def test_provider_profile_defaults(self):
        user, profile = self._provider("chef")
        self.assertEqual(profile.user_id, user.id)
        self.assertFalse(profile.emergency_support)
        self.assertFalse(profile.availability_24_7)
        self.assertEqual(profile.total_bookings, 0)
        self.assertEqual(profile.verification_status, VerificationStatus.PENDING)
        self.assertEqual(profile.document_links, [])
        self.assertEqual(profile.commission_rate, 26.0)
        self.assertEqual(self.db.get_provider_profile_by_id(profile.id).user_id, user.id)

        updated = self.db.update_provider_profile(
            user.id, cuisine_specialty="Thai", document_links=["https://x/doc.pdf"]
        )
        self.assertEqual(updated.cuisine_specialty, "Thai")
        self.assertEqual(updated.document_links, ["https://x/doc.pdf"])
        self.assertEqual(len(self.db.list_provider_profiles()), 1)

    # Provider search

    def _search_fixture(self):
        italian, _ = self._provider(
            "marco",
            user_fields={"location": "Boston", "bio": "Handmade pasta"},
            cuisine_specialty="Italian",
            hourly_rate=50.0,
            years_experience=10,
            emergency_support=True,
        )
        thai, _ = self._provider(
            "ploy",
            user_fields={"location": "New York"},
            cuisine_specialty="Thai Street Food",
            hourly_rate=None,
            years_experience=4,
            availability_24_7=True,
        )
        french, _ = self._provider(
            "sophie",
            user_fields={"location": "Boston"},
            cuisine_specialty="French",
            hourly_rate=30.0,
            years_experience=None,
            dual_expertise=True,
        )
        return italian, thai, french

    def _names(self, **filters):
        matches = self.db.search_providers(ProviderFilters(**filters))
        return [m.user.username for m in matches]

    def test_search_providers_filters(self):
        self._search_fixture()
        self.assertEqual(self._names(), ["marco", "ploy", "sophie"])
        self.assertEqual(self._names(cuisine="thai"), ["ploy"])
        self.assertEqual(self._names(location="boston"), ["marco", "sophie"])
        self.assertEqual(self._names(min_price=40), ["marco"])
        self.assertEqual(self._names(max_price=40), ["sophie"])
        self.assertEqual(self._names(min_price=0, max_price=0), ["marco", "ploy", "sophie"])
        self.assertEqual(self._names(emergency_support=True), ["marco"])
        self.assertEqual(self._names(dual_expertise=True), ["sophie"])
        self.assertEqual(self._names(availability_24_7=True), ["ploy"])
        self.assertEqual(self._names(search_term="PASTA"), ["marco"])
        self.assertEqual(self._names(search_term="street"), ["ploy"])

    def test_search_providers_sorting_puts_missing_values_last(self):
        self._search_fixture()
        self.assertEqual(
            self._names(sort_by=ProviderSort.PRICE_LOW), ["sophie", "marco", "ploy"]
        )
        self.assertEqual(
            self._names(sort_by=ProviderSort.PRICE_HIGH), ["marco", "sophie", "ploy"]
        )
        self.assertEqual(
            self._names(sort_by=ProviderSort.EXPERIENCE), ["marco", "ploy", "sophie"]
        )

    def test_search_providers_by_rating(self):
        italian, thai, french = self._search_fixture()
        client = self._user("client")
        self.db.create_review(client_id=client.id, provider_id=italian.id, rating=3)
        self.db.create_review(client_id=client.id, provider_id=french.id, rating=5)
        self.db.create_review(client_id=client.id, provider_id=french.id, rating=4)

        self.assertEqual(
            self._names(sort_by=ProviderSort.RATING), ["sophie", "marco", "ploy"]
        )
        self.assertEqual(self._names(rating=4), ["sophie"])

        matches = self.db.search_providers(ProviderFilters(cuisine="french"))
        self.assertAlmostEqual(matches[0].average_rating, 4.5)

    def test_search_providers_by_popularity(self):
        italian, thai, _ = self._search_fixture()
        client = self._user("client")
        self._booking(client, thai)
        self._booking(client, thai)
        self._booking(client, italian)
        self.assertEqual(
            self._names(sort_by=ProviderSort.POPULAR), ["ploy", "marco", "sophie"]
        )

    # Services

    def test_service_crud(self):
        _, profile = self._provider("chef")
        service = self.db.create_service(
            provider_id=profile.id, name="Tasting menu", price=120.0, duration=180
        )
        self.assertTrue(service.is_face_to_face)
        self.assertFalse(service.is_video_consultation)
        self.assertEqual(
            [s.id for s in self.db.list_services_by_provider(profile.id)], [service.id]
        )

        updated = self.db.update_service(service.id, price=150.0)
        self.assertEqual(updated.price, 150.0)
        self.assertEqual(self.db.get_service(service.id).price, 150.0)
        self.assertIsNone(self.db.update_service(9999, price=1.0))

        self.assertTrue(self.db.delete_service(service.id))
        self.assertIsNone(self.db.get_service(service.id))
        self.assertFalse(self.db.delete_service(service.id))

    def test_service_requires_provider_profile(self):
        with self.assertRaises(IntegrityViolationError):
            self.db.create_service(provider_id=9999, name="Ghost", price=1.0)

    def test_service_with_bookings_cannot_be_deleted(self):
        provider, profile = self._provider("chef")
        client = self._user("client")
        service = self.db.create_service(provider_id=profile.id, name="BBQ", price=80.0)
        self._booking(client, provider, service_id=service.id)
        with self.assertRaises(IntegrityViolationError):
            self.db.delete_service(service.id)
        self.assertIsNotNone(self.db.get_service(service.id))

    # Legacy catalog

    def test_chefs_and_menus(self):
        common = {
            "profile_image": "https://img/chef.jpg",
            "description": "Cooks",
            "rating": "4.9",
            "review_count": 3,
        }
        marco = self.db.create_chef(
            name="Chef Marco", cuisine="Italian Cuisine", price=60, **common
        )
        self.db.create_chef(name="Chef Yuki", cuisine="Japanese Cuisine", price=80, **common)

        self.assertEqual(len(self.db.list_chefs()), 2)
        self.assertEqual(len(self.db.list_chefs_by_cuisine("all")), 2)
        self.assertEqual(len(self.db.list_chefs_by_cuisine("")), 2)
        self.assertEqual(
            [c.name for c in self.db.list_chefs_by_cuisine("ITALIAN")], ["Chef Marco"]
        )
        self.assertEqual(self.db.get_chef(marco.id).rating, "4.9")

        menu = self.db.create_menu(
            chef_id=marco.id,
            name="Italian Feast",
            image="https://img/menu.jpg",
            description="Pasta night",
            courses="3 courses",
            guest_range="4-12 guests",
            price=55,
            items=["Antipasti", "Pasta", "Tiramisu"],
        )
        self.assertEqual(self.db.get_menu(menu.id).items, ["Antipasti", "Pasta", "Tiramisu"])
        self.assertEqual([m.id for m in self.db.list_menus_by_chef(marco.id)], [menu.id])
        self.assertEqual(len(self.db.list_menus()), 1)
        self.assertIsNone(self.db.get_menu(9999))

    def test_menu_requires_existing_chef(self):
        with self.assertRaises(IntegrityViolationError):
            self.db.create_menu(
                chef_id=9999,
                name="Orphan",
                image="x",
                description="x",
                courses="1",
                guest_range="1-2",
                price=1,
            )

    # Bookings

    def test_booking_lifecycle(self):
        provider, profile = self._provider("chef")
        client = self._user("client")
        booking = self._booking(client, provider, guests=8)
        self.assertEqual(booking.status, BookingStatus.PENDING)
        self.assertEqual(booking.payment_status, "pending")
        self.assertEqual(self.db.get_provider_profile(provider.id).total_bookings, 1)

        self.assertEqual([b.id for b in self.db.list_bookings_by_client(client.id)], [booking.id])
        self.assertEqual(
            [b.id for b in self.db.list_bookings_by_provider(provider.id)], [booking.id]
        )
        self.assertEqual(len(self.db.list_bookings()), 1)

        updated = self.db.update_booking_status(booking.id, BookingStatus.CONFIRMED)
        self.assertEqual(updated.status, BookingStatus.CONFIRMED)
        self.assertGreaterEqual(updated.updated_at, booking.updated_at)
        self.assertEqual(self.db.get_booking(booking.id).status, BookingStatus.CONFIRMED)
        self.assertIsNone(self.db.update_booking_status(9999, BookingStatus.CONFIRMED))

    def test_conditional_status_update(self):
        provider, _ = self._provider("chef")
        client = self._user("client")
        booking = self._booking(client, provider)

        confirmed = self.db.update_booking_status(
            booking.id, BookingStatus.CONFIRMED, expected=BookingStatus.PENDING
        )
        self.assertEqual(confirmed.status, BookingStatus.CONFIRMED)

        with self.assertRaises(StatusConflictError):
            self.db.update_booking_status(
                booking.id, BookingStatus.CANCELLED, expected=BookingStatus.PENDING
            )
        self.assertEqual(self.db.get_booking(booking.id).status, BookingStatus.CONFIRMED)
        self.assertIsNone(
            self.db.update_booking_status(
                9999, BookingStatus.CONFIRMED, expected=BookingStatus.PENDING
            )
        )

    def test_each_booking_counts_towards_total(self):
        provider, _ = self._provider("chef")
        client = self._user("client")
        for _ in range(3):
            self._booking(client, provider)
        self.assertEqual(self.db.get_provider_profile(provider.id).total_bookings, 3)

    def test_booking_requires_existing_users(self):
        client = self._user("client")
        with self.assertRaises(IntegrityViolationError):
            self.db.create_booking(
                client_id=client.id,
                provider_id=9999,
                event_type="Dinner",
                date="2030-01-01",
                time="18:00",
                location="Home",
            )

    # Reviews

    def test_reviews_and_average_rating(self):
        provider, _ = self._provider("chef")
        client = self._user("client")
        booking = self._booking(client, provider)
        self.assertIsNone(self.db.average_rating(provider.id))

        self.db.create_review(
            client_id=client.id, provider_id=provider.id, rating=4, booking_id=booking.id
        )
        self.db.create_review(
            client_id=client.id, provider_id=provider.id, rating=5, comment="Superb"
        )
        self.assertAlmostEqual(self.db.average_rating(provider.id), 4.5)
        self.assertEqual(len(self.db.list_reviews_by_provider(provider.id)), 2)
        self.assertEqual(len(self.db.list_reviews_by_client(client.id)), 2)

    # Saved providers

    def test_saved_providers(self):
        provider, _ = self._provider("chef")
        client = self._user("client")
        client_profile = self.db.create_client_profile(client.id)

        self.assertTrue(self.db.save_provider(client_profile.id, provider.id))
        self.assertTrue(self.db.save_provider(client_profile.id, provider.id))
        saved = self.db.list_saved_providers(client_profile.id)
        self.assertEqual([u.id for u in saved], [provider.id])

        self.assertTrue(self.db.unsave_provider(client_profile.id, provider.id))
        self.assertFalse(self.db.unsave_provider(client_profile.id, provider.id))
        self.assertEqual(self.db.list_saved_providers(client_profile.id), [])

    def test_save_unknown_provider_is_rejected(self):
        client = self._user("client")
        client_profile = self.db.create_client_profile(client.id)
        with self.assertRaises(IntegrityViolationError):
            self.db.save_provider(client_profile.id, 9999)

    # Messaging

    def test_conversation_and_read_state(self):
        alice = self._user("alice")
        bob = self._user("bob")
        carol = self._user("carol")
        first = self.db.send_message(sender_id=alice.id, recipient_id=bob.id, content="Hi")
        second = self.db.send_message(
            sender_id=bob.id, recipient_id=alice.id, content="Hello", attachments=["a.png"]
        )
        self.db.send_message(sender_id=carol.id, recipient_id=bob.id, content="Psst")

        thread = self.db.get_conversation(bob.id, alice.id)
        self.assertEqual([m.id for m in thread], [first.id, second.id])
        self.assertEqual(thread[1].attachments, ["a.png"])
        self.assertEqual(self.db.count_unread_messages(bob.id), 2)

        self.assertTrue(self.db.mark_message_read(first.id))
        message = self.db.get_message(first.id)
        self.assertTrue(message.is_read)
        self.assertIsNotNone(message.read_at)
        self.assertEqual(self.db.count_unread_messages(bob.id), 1)
        self.assertFalse(self.db.mark_message_read(9999))

    # Gift cards

    def test_gift_card_redeems_once(self):
        buyer = self._user("buyer")
        friend = self._user("friend")
        card = self.db.create_gift_card(amount=100.0, purchaser_id=buyer.id, occasion="Birthday")
        self.assertEqual(len(card.code), 16)
        self.assertFalse(card.is_redeemed)

        self.assertTrue(self.db.redeem_gift_card(card.code, friend.id))
        self.assertFalse(self.db.redeem_gift_card(card.code, friend.id))
        redeemed = self.db.get_gift_card_by_code(card.code)
        self.assertTrue(redeemed.is_redeemed)
        self.assertEqual(redeemed.redeemer_id, friend.id)
        self.assertIsNotNone(redeemed.redeemed_at)
        self.assertFalse(self.db.redeem_gift_card("0" * 16, friend.id))
