from __future__ import annotations

import datetime

from django.test import TestCase
from django.utils import timezone

from voting import services
from voting.exceptions import Conflict, Forbidden, InvalidState, NotFound, ValidationFailed
from voting.models import BLANK_VOTE_NAME, Candidate, Election, Profile, Slate, SlateMember, Voter
from voting.tests.factories import (
    make_election, make_point, make_profile, make_voter, start_election,
)


def _iso(delta: datetime.timedelta) -> str:
    return (timezone.now() + delta).isoformat()


class ElectionServiceTests(TestCase):
    def setUp(self) -> None:
        self.admin = make_profile(Profile.Role.ADMIN)

    def test_create_defaults_to_active(self) -> None:
        election = services.create_election(self.admin, {
            "title": "Board 2026",
            "start_date": _iso(datetime.timedelta(days=1)),
            "end_date": _iso(datetime.timedelta(days=2)),
        })
        self.assertTrue(election.is_active)
        self.assertEqual(election.created_by, self.admin)

    def test_create_rejects_end_before_start(self) -> None:
        with self.assertRaises(ValidationFailed):
            services.create_election(self.admin, {
                "title": "Board 2026",
                "start_date": _iso(datetime.timedelta(days=2)),
                "end_date": _iso(datetime.timedelta(days=1)),
            })
        self.assertFalse(Election.objects.exists())

    def test_partial_update_before_start(self) -> None:
        election = make_election()
        updated = services.update_election(election.id, {"title": "Renamed"})
        self.assertEqual(updated.title, "Renamed")
        self.assertEqual(updated.start_date, election.start_date)

    def test_started_election_only_toggles_is_active(self) -> None:
        election = make_election()
        start_election(election)

        with self.assertRaises(InvalidState):
            services.update_election(election.id, {"title": "Renamed", "is_active": False})

        updated = services.update_election(election.id, {"is_active": False})
        self.assertFalse(updated.is_active)
        self.assertEqual(updated.title, election.title)

    def test_started_election_needs_a_real_boolean(self) -> None:
        election = make_election(started=True)

        for value in ("false", 0, "no"):
            with self.assertRaises(ValidationFailed):
                services.update_election(election.id, {"is_active": value})

        election.refresh_from_db()
        self.assertTrue(election.is_active)

    def test_started_election_cannot_be_deleted(self) -> None:
        election = make_election(started=True)
        with self.assertRaises(InvalidState):
            services.delete_election(election.id)
        self.assertTrue(Election.objects.filter(pk=election.pk).exists())

    def test_unknown_election(self) -> None:
        with self.assertRaises(NotFound):
            services.get_election_detail("5b0c8c58-0000-0000-0000-000000000000", self.admin)


class VotingPointServiceTests(TestCase):
    def setUp(self) -> None:
        self.election = make_election()

    def test_new_point_gets_blank_vote_candidate_and_slate(self) -> None:
        point = services.create_voting_point(self.election.id, {"name": "North"})

        self.assertEqual(list(point.candidates.values_list("full_name", flat=True)), [BLANK_VOTE_NAME])
        self.assertEqual(list(point.slates.values_list("name", flat=True)), [BLANK_VOTE_NAME])

    def test_delegate_cannot_run_two_points(self) -> None:
        delegate = make_profile(Profile.Role.DELEGATE)
        services.create_voting_point(self.election.id, {"name": "North", "delegate_id": str(delegate.id)})

        with self.assertRaises(ValidationFailed):
            services.create_voting_point(self.election.id, {"name": "South", "delegate_id": str(delegate.id)})

    def test_delegate_must_have_delegate_role(self) -> None:
        voter = make_profile(Profile.Role.VOTER)
        with self.assertRaises(ValidationFailed):
            services.create_voting_point(self.election.id, {"name": "North", "delegate_id": str(voter.id)})

    def test_update_keeps_own_delegate(self) -> None:
        delegate = make_profile(Profile.Role.DELEGATE)
        point = make_point(self.election, delegate=delegate)

        updated = services.update_voting_point(point.id, {"name": "Renamed"})

        self.assertEqual(updated.name, "Renamed")
        self.assertEqual(updated.delegate, delegate)

    def test_started_election_freezes_points(self) -> None:
        point = make_point(self.election)
        start_election(self.election)

        with self.assertRaises(InvalidState):
            services.create_voting_point(self.election.id, {"name": "Late"})
        with self.assertRaises(InvalidState):
            services.update_voting_point(point.id, {"name": "Renamed"})
        with self.assertRaises(InvalidState):
            services.delete_voting_point(point.id)


class BallotContentServiceTests(TestCase):
    def setUp(self) -> None:
        self.election = make_election()
        self.point = make_point(self.election)

    def test_blank_vote_candidate_is_protected(self) -> None:
        blank = Candidate.objects.get(voting_point=self.point, full_name=BLANK_VOTE_NAME)

        with self.assertRaises(InvalidState):
            services.update_candidate(blank.id, {"full_name": "Someone"})
        with self.assertRaises(InvalidState):
            services.delete_candidate(blank.id)

        # Other fields may still change
        services.update_candidate(blank.id, {"role": "System"})
        blank.refresh_from_db()
        self.assertEqual(blank.role, "System")

    def test_blank_vote_slate_is_protected(self) -> None:
        blank = Slate.objects.get(voting_point=self.point, name=BLANK_VOTE_NAME)

        with self.assertRaises(InvalidState):
            services.update_slate(blank.id, {"name": "Lista Z"})
        with self.assertRaises(InvalidState):
            services.delete_slate(blank.id)

    def test_slate_members_are_replaced_when_given(self) -> None:
        slate = services.create_slate(self.point.id, {
            "name": "Lista A",
            "members": [{"full_name": "Ana", "role": "President"}, {"full_name": "Luis"}],
        })
        self.assertEqual(slate.members.count(), 2)

        services.update_slate(slate.id, {"description": "Updated"})
        self.assertEqual(slate.members.count(), 2)

        services.update_slate(slate.id, {"members": [{"full_name": "Marta"}]})
        self.assertEqual(
            list(SlateMember.objects.filter(slate=slate).values_list("full_name", flat=True)),
            ["Marta"],
        )

    def test_invalid_member_creates_nothing(self) -> None:
        with self.assertRaises(ValidationFailed):
            services.create_slate(self.point.id, {"name": "Lista A", "members": [{"role": "No name"}]})
        self.assertFalse(Slate.objects.filter(name="Lista A").exists())

    def test_started_election_freezes_candidates_and_slates(self) -> None:
        candidate = services.create_candidate(self.point.id, {"full_name": "Ana"})
        slate = services.create_slate(self.point.id, {"name": "Lista A"})
        start_election(self.election)

        for call in (
            lambda: services.create_candidate(self.point.id, {"full_name": "Luis"}),
            lambda: services.update_candidate(candidate.id, {"full_name": "Ana B"}),
            lambda: services.delete_candidate(candidate.id),
            lambda: services.create_slate(self.point.id, {"name": "Lista B"}),
            lambda: services.update_slate(slate.id, {"name": "Lista C"}),
            lambda: services.delete_slate(slate.id),
        ):
            with self.assertRaises(InvalidState):
                call()


class VoterAssignmentTests(TestCase):
    def setUp(self) -> None:
        self.election = make_election()
        self.point = make_point(self.election)

    def test_assign_is_idempotent_for_same_point(self) -> None:
        profile = make_profile()

        first = services.assign_voters(self.point.id, [str(profile.id)])
        second = services.assign_voters(self.point.id, [str(profile.id)])

        self.assertEqual(len(first), 1)
        self.assertEqual(second, [])
        self.assertEqual(Voter.objects.filter(profile=profile).count(), 1)

    def test_assign_rejects_non_voters_and_unknown_ids(self) -> None:
        delegate = make_profile(Profile.Role.DELEGATE)
        with self.assertRaises(ValidationFailed):
            services.assign_voters(self.point.id, [str(delegate.id)])
        with self.assertRaises(ValidationFailed):
            services.assign_voters(self.point.id, ["8a3c4d1e-0000-0000-0000-000000000000"])

    def test_assign_rejects_non_string_ids(self) -> None:
        for ids in ([{"id": "x"}], [["a"]], [7]):
            with self.assertRaises(ValidationFailed):
                services.assign_voters(self.point.id, ids)
        self.assertFalse(Voter.objects.exists())

    def test_assign_rejects_voter_of_another_point(self) -> None:
        voter = make_voter(make_point(self.election, name="Annex"))
        with self.assertRaises(Conflict):
            services.assign_voters(self.point.id, [str(voter.profile_id)])

    def test_remove_voter_who_voted_is_rejected(self) -> None:
        voter = make_voter(self.point)
        Voter.objects.filter(pk=voter.pk).update(has_voted=True, voted_at=timezone.now())

        with self.assertRaises(InvalidState):
            services.remove_voter(self.point.id, voter.id)

    def test_started_election_freezes_assignments(self) -> None:
        voter = make_voter(self.point)
        start_election(self.election)

        with self.assertRaises(InvalidState):
            services.assign_voters(self.point.id, [str(make_profile().id)])
        with self.assertRaises(InvalidState):
            services.remove_voter(self.point.id, voter.id)


class ReadAccessTests(TestCase):
    def setUp(self) -> None:
        self.election = make_election()
        self.delegate = make_profile(Profile.Role.DELEGATE)
        self.mine = make_point(self.election, name="Mine", delegate=self.delegate)
        self.other = make_point(self.election, name="Other")
        self.voter = make_voter(self.mine)

    def test_admin_sees_every_point(self) -> None:
        admin = make_profile(Profile.Role.ADMIN)

        _, points = services.get_election_detail(self.election.id, admin)

        self.assertEqual({p.name for p in points}, {"Mine", "Other"})
        self.assertEqual(services.list_point_voters(self.other.id, admin).count(), 0)

    def test_voter_only_sees_own_point(self) -> None:
        profile = self.voter.profile

        _, points = services.get_election_detail(self.election.id, profile)
        self.assertEqual([p.name for p in points], ["Mine"])
        self.assertEqual([p.name for p in services.list_voting_points(self.election.id, profile)], ["Mine"])
        services.list_slates(self.mine.id, profile)

        with self.assertRaises(Forbidden):
            services.get_voting_point(self.other.id, profile)
        with self.assertRaises(Forbidden):
            services.list_candidates(self.other.id, profile)

    def test_roster_is_for_admins_and_the_point_delegate(self) -> None:
        self.assertEqual(list(services.list_point_voters(self.mine.id, self.delegate)), [self.voter])

        for viewer in (self.voter.profile, make_profile(Profile.Role.DELEGATE), None):
            with self.assertRaises(Forbidden):
                services.list_point_voters(self.mine.id, viewer)
        with self.assertRaises(Forbidden):
            services.list_point_voters(self.other.id, self.delegate)

    def test_election_without_own_point_is_forbidden(self) -> None:
        with self.assertRaises(Forbidden):
            services.get_election_detail(make_election(title="Elsewhere").id, self.voter.profile)
