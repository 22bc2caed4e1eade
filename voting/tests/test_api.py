from __future__ import annotations

import datetime
import shutil
import tempfile

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from voting.models import BLANK_VOTE_NAME, AuditLog, Candidate, Election, Profile, Slate, Vote
from voting.tests.factories import make_election, make_point, make_profile, make_voter, start_election


class ApiTestCase(TestCase):
    def login_as(self, role: str = Profile.Role.ADMIN, **kwargs) -> Profile:
        profile = make_profile(role, **kwargs)
        self.client.force_login(profile.user)
        return profile

    def post_json(self, name: str, data: dict | None = None, **url_kwargs):
        return self.client.post(reverse(f"api:{name}", kwargs=url_kwargs or None),
                                data or {}, content_type="application/json")

    def put_json(self, name: str, data: dict, **url_kwargs):
        return self.client.put(reverse(f"api:{name}", kwargs=url_kwargs),
                               data, content_type="application/json")


class AuthEndpointTests(ApiTestCase):
    def test_login_by_document_and_email(self) -> None:
        profile = make_profile(Profile.Role.ADMIN, document="11223344", email="ada@example.org",
                               password="admin-pass")

        response = self.post_json("auth_login", {"document": "11223344", "password": "admin-pass"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["profile"]["id"], str(profile.id))

        role = self.client.get(reverse("api:auth_role")).json()
        self.assertEqual(role["data"]["role"], "admin")

        self.post_json("auth_logout")
        response = self.post_json("auth_login", {"identifier": "ADA@example.org", "password": "admin-pass"})
        self.assertEqual(response.status_code, 200)

    def test_bad_credentials(self) -> None:
        make_profile(document="55", password="right-pass")

        response = self.post_json("auth_login", {"document": "55", "password": "wrong-pass"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"success": False, "error": "Invalid credentials"})

    def test_missing_fields_and_bad_json(self) -> None:
        self.assertEqual(self.post_json("auth_login", {"document": "55"}).status_code, 400)
        response = self.client.post(reverse("api:auth_login"), "[1, 2]", content_type="application/json")
        self.assertEqual(response.status_code, 400)

    def test_account_without_profile_is_forbidden(self) -> None:
        get_user_model().objects.create_user(username="bare@example.org", email="bare@example.org",
                                             password="bare-pass")

        response = self.post_json("auth_login", {"email": "bare@example.org", "password": "bare-pass"})

        self.assertEqual(response.status_code, 403)

    def test_csrf_endpoint_sets_cookie(self) -> None:
        response = self.client.get(reverse("api:auth_csrf"))
        self.assertIn("csrftoken", response.cookies)
        self.assertTrue(response.json()["data"]["csrf_token"])


class PermissionTests(ApiTestCase):
    def test_anonymous_gets_401(self) -> None:
        for name in ("elections", "admin_stats", "voter_voting_info", "delegate_stats"):
            response = self.client.get(reverse(f"api:{name}"))
            self.assertEqual(response.status_code, 401, name)
            self.assertFalse(response.json()["success"])

    def test_wrong_role_gets_403(self) -> None:
        self.login_as(Profile.Role.VOTER)

        self.assertEqual(self.client.get(reverse("api:elections")).status_code, 403)
        self.assertEqual(self.client.get(reverse("api:delegate_stats")).status_code, 403)
        election = make_election()
        response = self.client.delete(reverse("api:election_detail", kwargs={"election_id": election.id}))
        self.assertEqual(response.status_code, 403)
        self.assertTrue(Election.objects.filter(pk=election.pk).exists())

    def test_delegate_reads_only_own_point_of_election(self) -> None:
        delegate = self.login_as(Profile.Role.DELEGATE)
        election = make_election()
        make_point(election, name="North", delegate=delegate)
        make_point(election, name="South")

        response = self.client.get(reverse("api:election_detail", kwargs={"election_id": election.id}))

        self.assertEqual(response.status_code, 200)
        points = response.json()["data"]["voting_points"]
        self.assertEqual([p["name"] for p in points], ["North"])
        self.assertEqual(points[0]["total_voters"], 0)

    def test_voter_cannot_read_another_points_roster(self) -> None:
        election = make_election()
        mine = make_point(election, name="Mine")
        other = make_point(election, name="Other")
        make_voter(other, make_profile(document="SECRET-1", email="neighbour@example.org"))
        self.client.force_login(make_voter(mine).profile.user)

        for name, kwargs in (
            ("voting_point_voters", {"point_id": other.id}),
            ("voting_point_voters", {"point_id": mine.id}),
            ("voting_point_detail", {"point_id": other.id}),
            ("voting_point_slates", {"point_id": other.id}),
        ):
            response = self.client.get(reverse(f"api:{name}", kwargs=kwargs))
            self.assertEqual(response.status_code, 403, name)
            self.assertNotIn("SECRET-1", response.content.decode())

        response = self.client.get(reverse("api:voting_point_detail", kwargs={"point_id": mine.id}))
        self.assertEqual(response.status_code, 200)

    def test_delegate_roster_is_brief(self) -> None:
        delegate = self.login_as(Profile.Role.DELEGATE)
        point = make_point(make_election(), delegate=delegate)
        make_voter(point, make_profile(document="V-9", email="v9@example.org"))

        response = self.client.get(reverse("api:voting_point_voters", kwargs={"point_id": point.id}))

        self.assertEqual(response.status_code, 200)
        profile = response.json()["data"][0]["profile"]
        self.assertEqual(set(profile), {"id", "full_name", "document"})
        self.assertEqual(profile["document"], "V-9")

    def test_candidate_and_slate_of_foreign_point(self) -> None:
        election = make_election()
        other = make_point(election, name="Other")
        candidate = Candidate.objects.get(voting_point=other)
        slate = Slate.objects.get(voting_point=other)
        self.client.force_login(make_voter(make_point(election, name="Mine")).profile.user)

        response = self.client.get(reverse("api:candidate_detail", kwargs={"candidate_id": candidate.id}))
        self.assertEqual(response.status_code, 403)
        response = self.client.get(reverse("api:slate_detail", kwargs={"slate_id": slate.id}))
        self.assertEqual(response.status_code, 403)

    def test_method_not_allowed(self) -> None:
        self.login_as()
        self.assertEqual(self.client.patch(reverse("api:elections")).status_code, 405)

    def test_api_responses_are_not_cached(self) -> None:
        response = self.client.get(reverse("api:elections"))
        self.assertEqual(response["Cache-Control"], "no-store")
        self.assertEqual(response["X-Frame-Options"], "DENY")


class ElectionLifecycleTests(ApiTestCase):
    """A full election run through the API, from setup to results."""

    def test_full_run(self) -> None:
        admin = self.login_as(Profile.Role.ADMIN)
        now = timezone.now()

        response = self.post_json("elections", {
            "title": "Student council",
            "start_date": (now + datetime.timedelta(days=1)).isoformat(),
            "end_date": (now + datetime.timedelta(days=2)).isoformat(),
        })
        self.assertEqual(response.status_code, 201)
        election_id = response.json()["data"]["id"]
        self.assertTrue(response.json()["data"]["is_active"])

        response = self.post_json("delegates", {
            "full_name": "Dana Delegate", "document": "D-100",
            "email": "dana@example.org", "password": "delegate-pass",
        })
        self.assertEqual(response.status_code, 201)
        delegate_id = response.json()["data"]["id"]

        available = self.client.get(reverse("api:delegates"), {"available": "1"}).json()["data"]
        self.assertEqual([d["id"] for d in available], [delegate_id])

        response = self.post_json("election_voting_points",
                                  {"name": "North", "delegate_id": delegate_id},
                                  election_id=election_id)
        self.assertEqual(response.status_code, 201)
        point = response.json()["data"]
        self.assertEqual([s["name"] for s in point["slates"]], [BLANK_VOTE_NAME])
        point_id = point["id"]

        self.assertEqual(self.client.get(reverse("api:delegates"), {"available": "1"}).json()["data"], [])
        still_eligible = self.client.get(reverse("api:delegates"),
                                         {"available": "1", "voting_point": point_id}).json()["data"]
        self.assertEqual(len(still_eligible), 1)

        response = self.post_json("voting_point_slates", {
            "name": "Lista A", "members": [{"full_name": "Ana", "role": "President"}],
        }, point_id=point_id)
        self.assertEqual(response.status_code, 201)
        slate_id = response.json()["data"]["id"]
        self.assertEqual(response.json()["data"]["members"][0]["full_name"], "Ana")

        response = self.post_json("voting_point_candidates", {"full_name": "Ana"}, point_id=point_id)
        self.assertEqual(response.status_code, 201)

        response = self.post_json("voters_bulk", {
            "voting_point_id": point_id,
            "csv": "nombre,documento,correo\nVera Voter,V-200,vera@example.org\n",
        })
        self.assertEqual(response.status_code, 200)
        created = response.json()["data"]["created_voters"]
        self.assertEqual(len(created), 1)
        pin = created[0]["password"]

        response = self.put_json("election_detail", {"title": "Student council 2026"}, election_id=election_id)
        self.assertEqual(response.status_code, 200)

        start_election(Election.objects.get(pk=election_id))

        response = self.put_json("election_detail", {"title": "Too late"}, election_id=election_id)
        self.assertEqual(response.status_code, 400)
        response = self.post_json("voting_point_slates", {"name": "Lista B"}, point_id=point_id)
        self.assertEqual(response.status_code, 400)

        # Voter signs in with the generated PIN
        self.client.logout()
        response = self.post_json("auth_login", {"document": "V-200", "password": pin})
        self.assertEqual(response.status_code, 200)

        info = self.client.get(reverse("api:voter_voting_info")).json()["data"]
        self.assertTrue(info["can_vote"])
        self.assertEqual({s["name"] for s in info["slates"]}, {BLANK_VOTE_NAME, "Lista A"})

        response = self.post_json("voter_vote", {"slate_id": slate_id})
        self.assertEqual(response.status_code, 200)
        self.assertIn("vote_id", response.json()["data"])

        response = self.post_json("voter_vote", {"slate_id": slate_id})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(Vote.objects.count(), 1)
        self.assertEqual(Slate.objects.get(pk=slate_id).vote_count, 1)

        history = self.client.get(reverse("api:voter_history")).json()["data"]
        self.assertEqual(history[0]["slate"]["name"], "Lista A")

        # Delegate follows the turnout
        self.client.logout()
        self.post_json("auth_login", {"email": "dana@example.org", "password": "delegate-pass"})
        stats = self.client.get(reverse("api:delegate_stats")).json()["data"]
        self.assertEqual(stats["total_votes"], 1)
        self.assertEqual(stats["participation"], 100.0)
        voters = self.client.get(reverse("api:delegate_voters")).json()["data"]
        self.assertTrue(voters[0]["has_voted"])

        # Admin results
        self.client.force_login(admin.user)
        totals = self.client.get(reverse("api:admin_stats")).json()["data"]["totals"]
        self.assertEqual(totals["votes"], 1)
        self.assertEqual(totals["participation"], 100.0)

        response = self.client.get(reverse("api:admin_stats"), {"format": "csv"})
        self.assertEqual(response["Content-Type"], "text/csv; charset=utf-8")
        self.assertIn('filename="voxpopuly-stats.csv"', response["Content-Disposition"])
        lines = response.content.decode().splitlines()
        self.assertTrue(lines[0].startswith("election_title,voting_point"))
        self.assertIn("Student council 2026,North,,Dana Delegate,1,1,100.00,Lista A,1", lines)

        activity = self.client.get(reverse("api:admin_activity")).json()["data"]
        self.assertIn("vote_cast", [item["type"] for item in activity])

        entry = AuditLog.objects.get(action="vote_cast")
        self.assertEqual(entry.ip_address, "127.0.0.0")


class AccountAdminTests(ApiTestCase):
    def setUp(self) -> None:
        self.admin = self.login_as(Profile.Role.ADMIN)

    def test_users_counts(self) -> None:
        make_profile(Profile.Role.DELEGATE)
        make_profile()
        make_profile()

        counts = self.client.get(reverse("api:users")).json()["data"]["counts"]

        self.assertEqual(counts, {"total": 4, "admins": 1, "delegates": 1, "voters": 2})

    def test_voter_listing_shows_assignment(self) -> None:
        point = make_point(make_election(), name="North")
        voter = make_voter(point)
        make_profile()

        data = self.client.get(reverse("api:voters")).json()["data"]

        by_id = {item["id"]: item for item in data}
        self.assertEqual(by_id[str(voter.profile_id)]["voter"]["voting_point_name"], "North")
        self.assertEqual(sum(1 for item in data if item["voter"] is None), 1)

    def test_create_voter_with_short_pin(self) -> None:
        response = self.post_json("voters", {
            "full_name": "Vera", "document": "V-1", "email": "vera@example.org", "password": "123",
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn("password", response.json()["error"])

    def test_delegates_available_with_bad_point_id(self) -> None:
        response = self.client.get(reverse("api:delegates"), {"available": "1", "voting_point": "nope"})
        self.assertEqual(response.status_code, 400)

    def test_clean_duplicates(self) -> None:
        make_profile(document="12.345.678")
        make_profile(document="12345678")

        response = self.post_json("admin_clean_duplicates")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["deleted"], 1)
        self.assertEqual(Profile.objects.filter(role=Profile.Role.VOTER).count(), 1)

    def test_orphaned_users(self) -> None:
        orphan = get_user_model().objects.create_user(username="ghost@example.org", email="ghost@example.org")

        listed = self.client.get(reverse("api:admin_orphaned_users")).json()["data"]
        self.assertEqual(listed["count"], 1)
        self.assertEqual(listed["users"][0]["id"], orphan.pk)

        response = self.client.delete(reverse("api:admin_orphaned_users"))
        self.assertEqual(response.json()["data"]["count"], 1)
        self.assertFalse(get_user_model().objects.filter(pk=orphan.pk).exists())

    def test_unknown_ids_are_404(self) -> None:
        missing = "0f0f0f0f-0000-0000-0000-000000000000"
        for name, kwargs in (
            ("election_detail", {"election_id": missing}),
            ("voting_point_detail", {"point_id": missing}),
            ("candidate_detail", {"candidate_id": missing}),
            ("slate_detail", {"slate_id": missing}),
        ):
            self.assertEqual(self.client.get(reverse(f"api:{name}", kwargs=kwargs)).status_code, 404, name)

    def test_remove_voter_from_point(self) -> None:
        point = make_point(make_election())
        voter = make_voter(point)

        response = self.client.delete(reverse("api:voting_point_voter_detail",
                                              kwargs={"point_id": point.id, "voter_id": voter.id}))

        self.assertEqual(response.status_code, 200)
        self.assertFalse(point.voters.exists())


class CandidatePhotoUploadTests(ApiTestCase):
    def setUp(self) -> None:
        self.media_root = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.media_root, ignore_errors=True)
        self.login_as(Profile.Role.ADMIN)

    def upload(self, upload: SimpleUploadedFile | None):
        data = {"file": upload} if upload is not None else {}
        with override_settings(MEDIA_ROOT=self.media_root):
            return self.client.post(reverse("api:upload_candidate_photo"), data)

    def test_png_is_stored(self) -> None:
        response = self.upload(SimpleUploadedFile("face.png", b"\x89PNG\r\n\x1a\n" + b"0" * 64,
                                                  content_type="image/png"))

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertRegex(data["path"], r"^candidates/[0-9a-f-]{36}\.png$")
        self.assertTrue(data["url"].startswith("/media/candidates/"))

    def test_wrong_type_and_missing_file(self) -> None:
        response = self.upload(SimpleUploadedFile("notes.txt", b"hello", content_type="text/plain"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.upload(None).status_code, 400)

    @override_settings(MAX_CANDIDATE_PHOTO_BYTES=1024)
    def test_too_large(self) -> None:
        response = self.upload(SimpleUploadedFile("big.jpg", b"0" * 2048, content_type="image/jpeg"))
        self.assertEqual(response.status_code, 400)
        self.assertIn("too large", response.json()["error"])
