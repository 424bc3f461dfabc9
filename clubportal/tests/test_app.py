import unittest

from fastapi.testclient import TestClient

from clubportal.app import create_app
from clubportal.permissions import PERMISSION_DENIED
from clubportal.types import Capability
from portal_testing_utils import TEST_PASSWORD, blog_payload, override_backends, seed_events, seed_user


class PortalApiTests(unittest.TestCase):
    def setUp(self):
        app = create_app()
        self.db, self.cache, self.storage = override_backends(app)
        self.client = TestClient(app)
        self.admin = seed_user(
            self.db,
            "admin@diu.edu.bd",
            "Admin",
            permissions=[c.value for c in Capability],
        )

    def login(self, email="admin@diu.edu.bd", password=TEST_PASSWORD):
        return self.client.post("/api/auth/login", json={"email": email, "password": password})

    def test_anonymous_gets_permission_error(self):
        response = self.client.get("/api/blogs")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            "success": False,
            "data": None,
            "error": PERMISSION_DENIED,
            "message": None,
        })

    def test_wrong_password(self):
        body = self.login(password="not-the-password").json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"], "Invalid email or password")
        self.assertFalse(self.client.get("/api/auth/me").json()["success"])

    def test_login_me_logout(self):
        body = self.login(email=" Admin@DIU.edu.bd ").json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["user_id"], self.admin.id)

        me = self.client.get("/api/auth/me").json()
        self.assertTrue(me["success"])
        self.assertEqual(me["data"]["email"], "admin@diu.edu.bd")
        self.assertEqual(
            me["data"]["capabilities"], ["manage_blog_posts", "manage_trackers"]
        )

        self.assertTrue(self.client.post("/api/auth/logout").json()["success"])
        self.assertEqual(self.client.get("/api/auth/me").json()["error"], "Not authenticated")

    def test_blog_crud_flow(self):
        self.login()
        created = self.client.post("/api/blogs", json=blog_payload()).json()
        self.assertTrue(created["success"])
        self.assertEqual(created["message"], "Blog post created successfully")
        post_id = created["data"]["id"]

        duplicate = self.client.post("/api/blogs", json=blog_payload(title="Other")).json()
        self.assertEqual(duplicate["error"], "A blog with this title or slug already exists")

        listing = self.client.get("/api/blogs", params={"page": 1, "page_size": 10}).json()
        self.assertEqual(listing["data"]["pagination"]["total_count"], 1)
        self.assertEqual(listing["data"]["blogs"][0]["slug"], "hello")

        updated = self.client.put(
            f"/api/blogs/{post_id}", json=blog_payload(status="published", content="Edited")
        ).json()
        self.assertTrue(updated["success"])
        self.assertEqual(updated["data"]["status"], "published")

        fetched = self.client.get(f"/api/blogs/{post_id}").json()
        self.assertEqual(fetched["data"]["content"], "Edited")

        public = self.client.get("/api/public/blogs").json()
        self.assertEqual(public["data"]["pagination"]["total_count"], 1)

        deleted = self.client.delete(f"/api/blogs/{post_id}").json()
        self.assertEqual(deleted["message"], 'Blog post "Hello" deleted successfully')
        missing = self.client.delete("/api/blogs/999").json()
        self.assertEqual(missing["error"], "Blog post not found")
        self.assertIn("/admin/blogs", self.cache.revalidated)

    def test_invalid_blog_payload(self):
        self.login()
        body = self.client.post("/api/blogs", json=blog_payload(slug="Bad Slug")).json()
        self.assertFalse(body["success"])
        self.assertEqual(
            body["error"], "Slug can only contain lowercase letters, numbers, and hyphens"
        )

    def test_upload_url(self):
        self.login()
        body = self.client.post(
            "/api/blogs/upload-url", json={"file_type": "image/png", "file_size": 1024}
        ).json()
        self.assertTrue(body["success"])
        self.assertTrue(body["data"]["public_url"].startswith("https://cdn.example.test/blog-images/"))
        self.assertTrue(body["data"]["public_url"].endswith(".png"))
        self.assertEqual(len(self.storage.issued), 1)

        rejected = self.client.post(
            "/api/blogs/upload-url", json={"file_type": "application/pdf", "file_size": 1024}
        ).json()
        self.assertEqual(rejected["error"], "Only image files are allowed")

    def test_ranklist_routes(self):
        self.login()
        events = seed_events(self.db)
        ranklist = self.db.insert_ranklist(keyword="weekly")
        member = seed_user(self.db, "rafi@s.diu.edu.bd", "Rafi", student_id="221-15-0042")

        available = self.client.get(f"/api/ranklists/{ranklist.id}/available-events").json()
        self.assertEqual(len(available["data"]), 3)

        attached = self.client.post(
            f"/api/ranklists/{ranklist.id}/events",
            json={"event_id": events["contest"].id, "weight": 0.5},
        ).json()
        self.assertTrue(attached["success"])
        self.assertEqual(attached["data"]["weight"], 0.5)

        again = self.client.post(
            f"/api/ranklists/{ranklist.id}/events",
            json={"event_id": events["contest"].id, "weight": 0.5},
        ).json()
        self.assertEqual(again["error"], "Event is already attached to this ranklist")

        bad_weight = self.client.post(
            f"/api/ranklists/{ranklist.id}/events",
            json={"event_id": events["class"].id, "weight": 1.5},
        ).json()
        self.assertEqual(bad_weight["error"], "Weight must be between 0.0 and 1.0")

        found = self.client.get(
            f"/api/ranklists/{ranklist.id}/users/search", params={"query": "rafi"}
        ).json()
        self.assertEqual([u["id"] for u in found["data"]], [member.id])
        self.assertNotIn("password_hash", found["data"][0])

        added = self.client.post(
            f"/api/ranklists/{ranklist.id}/users", json={"user_id": member.id}
        ).json()
        self.assertEqual(added["message"], "User added successfully")

        short = self.client.get(
            f"/api/ranklists/{ranklist.id}/users/search", params={"query": "r"}
        ).json()
        self.assertEqual(short["error"], "Search query must be at least 2 characters")

    def test_change_password_then_login(self):
        self.login()
        body = self.client.post(
            "/api/account/change-password",
            json={"new_password": "brand-new-pass", "confirm_password": "brand-new-pass"},
        ).json()
        self.assertEqual(body["message"], "Password changed successfully")
        self.client.post("/api/auth/logout")

        self.assertFalse(self.login().json()["success"])
        self.assertTrue(self.login(password="brand-new-pass").json()["success"])


if __name__ == "__main__":
    unittest.main()
