import unittest

from chefmarket.config import get_settings
from chefmarket.tests.api_helpers import PASSWORD, ApiTestCase


class AuthApiTests(ApiTestCase):
    def test_register_logs_in_and_hides_password(self):
        user = self.register(self.client, "alice", phone="555-0100")
        self.assertEqual(user["username"], "alice")
        self.assertEqual(user["role"], "client")
        self.assertEqual(user["phone"], "555-0100")
        self.assertFalse(user["isVerified"])
        self.assertIn("profileImage", user)
        self.assertNotIn("password", user)
        self.assertIn(get_settings().session_cookie_name, self.client.cookies)

        me = self.client.get("/api/user")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["id"], user["id"])

        stored = self.db.get_user(user["id"])
        self.assertNotEqual(stored.password, PASSWORD)
        self.assertIn(".", stored.password)

    def test_register_rejects_duplicates(self):
        self.register(self.client, "alice")
        response = self.new_client().post(
            "/api/register",
            json={
                "username": "alice",
                "password": PASSWORD,
                "email": "other@example.com",
                "fullname": "Other Alice",
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Username already exists")

        response = self.new_client().post(
            "/api/register",
            json={
                "username": "alicia",
                "password": PASSWORD,
                "email": "alice@example.com",
                "fullname": "Alicia",
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Email already exists")

    def test_register_validates_payload(self):
        response = self.client.post(
            "/api/register",
            json={
                "username": "al",
                "password": "123",
                "email": "not-an-email",
                "fullname": "A",
                "role": "admin",
            },
        )
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["detail"], "Invalid request data")
        fields = {tuple(error["loc"])[-1] for error in body["errors"]}
        self.assertTrue({"username", "password", "email", "fullname", "role"} <= fields)

    def test_register_creates_profile_for_role(self):
        client_user = self.register(self.client, "alice")
        provider_client, provider = self.login_as_new("chef", role="provider")

        profile = self.client.get("/api/user/profile").json()
        self.assertEqual(profile["user"]["id"], client_user["id"])
        self.assertEqual(profile["profile"]["totalSpent"], 0.0)

        profile = provider_client.get("/api/user/profile").json()
        self.assertEqual(profile["user"]["role"], "provider")
        self.assertEqual(profile["profile"]["userId"], provider["id"])
        self.assertEqual(profile["profile"]["commissionRate"], 26.0)
        self.assertEqual(profile["profile"]["documentLinks"], [])
        self.assertFalse(profile["profile"]["documentsSubmitted"])
        self.assertEqual(profile["profile"]["verificationStatus"], "pending")

    def test_admin_profile_is_null(self):
        admin_client, _ = self.login_as_admin()
        profile = admin_client.get("/api/user/profile").json()
        self.assertIsNone(profile["profile"])

    def test_login_and_logout(self):
        self.register(self.new_client(), "alice")

        bad = self.client.post(
            "/api/login", json={"username": "alice", "password": "wrong-password"}
        )
        self.assertEqual(bad.status_code, 401)
        unknown = self.client.post(
            "/api/login", json={"username": "nobody", "password": PASSWORD}
        )
        self.assertEqual(unknown.status_code, 401)

        response = self.client.post(
            "/api/login", json={"username": "alice", "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.json()["lastLogin"])
        self.assertNotIn("password", response.json())
        self.assertEqual(self.client.get("/api/user").status_code, 200)

        logout = self.client.post("/api/logout")
        self.assertEqual(logout.status_code, 200)
        self.assertTrue(logout.json()["success"])
        self.assertEqual(self.client.get("/api/user").status_code, 401)

    def test_login_revokes_previous_session(self):
        self.register(self.client, "alice")
        cookie_name = get_settings().session_cookie_name
        old_token = self.client.cookies.get(cookie_name)

        response = self.client.post(
            "/api/login", json={"username": "alice", "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 200)
        self.assertNotEqual(self.client.cookies.get(cookie_name), old_token)
        self.assertEqual(self.client.get("/api/user").status_code, 200)

        replay = self.new_client()
        replay.cookies.set(cookie_name, old_token)
        self.assertEqual(replay.get("/api/user").status_code, 401)

    def test_session_cookie_attributes(self):
        response = self.client.post(
            "/api/register",
            json={
                "username": "alice",
                "password": PASSWORD,
                "email": "alice@example.com",
                "fullname": "Alice Tester",
            },
        )
        cookie = response.headers["set-cookie"].lower()
        self.assertIn("httponly", cookie)
        self.assertIn("samesite=lax", cookie)
        self.assertIn(f"max-age={get_settings().session_max_age_seconds}", cookie)

    def test_forged_session_is_rejected(self):
        self.client.cookies.set(get_settings().session_cookie_name, "forged")
        response = self.client.get("/api/user")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Not authenticated")

    def test_update_user_ignores_protected_fields(self):
        user = self.register(self.client, "alice")
        response = self.client.patch(
            "/api/user",
            json={
                "bio": "Home cook",
                "location": "Boston",
                "role": "admin",
                "password": "hijacked",
                "id": 999,
            },
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["bio"], "Home cook")
        self.assertEqual(body["location"], "Boston")
        self.assertEqual(body["role"], "client")
        self.assertEqual(body["id"], user["id"])

        login = self.new_client().post(
            "/api/login", json={"username": "alice", "password": PASSWORD}
        )
        self.assertEqual(login.status_code, 200)

    def test_update_user_duplicate_username_conflicts(self):
        self.register(self.new_client(), "bob")
        self.register(self.client, "alice")
        response = self.client.patch("/api/user", json={"username": "bob"})
        self.assertEqual(response.status_code, 409)

        # Keeping your own username is fine.
        response = self.client.patch("/api/user", json={"username": "alice"})
        self.assertEqual(response.status_code, 200)

    def test_update_requires_login(self):
        response = self.client.patch("/api/user", json={"bio": "x"})
        self.assertEqual(response.status_code, 401)

    def test_client_profile_update(self):
        self.register(self.client, "alice")
        response = self.client.patch(
            "/api/user/client-profile",
            json={"preferences": "vegetarian", "totalSpent": 1000},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["preferences"], "vegetarian")
        self.assertEqual(response.json()["totalSpent"], 0.0)

        provider_client, _ = self.login_as_new("chef", role="provider")
        response = provider_client.patch(
            "/api/user/client-profile", json={"preferences": "x"}
        )
        self.assertEqual(response.status_code, 403)

    def test_duplicate_referral_code_conflicts(self):
        other, _ = self.login_as_new("bob")
        other.patch("/api/user/client-profile", json={"referralCode": "BOB10"})
        self.register(self.client, "alice")
        response = self.client.patch(
            "/api/user/client-profile", json={"referralCode": "BOB10"}
        )
        self.assertEqual(response.status_code, 409)

    def test_provider_profile_update(self):
        provider_client, _ = self.login_as_new("chef", role="provider")
        response = provider_client.patch(
            "/api/user/provider-profile",
            json={
                "cuisineSpecialty": "Italian",
                "hourlyRate": 75,
                "availability24_7": True,
                "documentLinks": ["https://files.test/doc.pdf"],
                "commissionRate": 1,
                "verificationStatus": "approved",
                "totalBookings": 50,
            },
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["cuisineSpecialty"], "Italian")
        self.assertEqual(body["hourlyRate"], 75.0)
        self.assertTrue(body["availability24_7"])
        self.assertEqual(body["documentLinks"], ["https://files.test/doc.pdf"])
        self.assertEqual(body["commissionRate"], 26.0)
        self.assertEqual(body["verificationStatus"], "pending")
        self.assertEqual(body["totalBookings"], 0)

        self.register(self.client, "alice")
        response = self.client.patch(
            "/api/user/provider-profile", json={"cuisineSpecialty": "x"}
        )
        self.assertEqual(response.status_code, 403)


if __name__ == "__main__":
    unittest.main()
