"""
Election administration workflows
=================================

Elections, voting points, candidates, slates and voter assignment.

Lock rule: once an election's ``start_date`` has passed, only its
``is_active`` flag may change. Its voting points, candidates, slates and
voter assignments are frozen.

Every new voting point receives a "Voto en Blanco" candidate and slate.
Neither can be renamed or deleted.
"""

import logging

from django.core.exceptions import ValidationError # pyright: ignore[reportMissingModuleSource]
from django.db.models import Count # pyright: ignore[reportMissingModuleSource]
from django.forms.models import model_to_dict # pyright: ignore[reportMissingModuleSource]

from .audit import audit_request
from .exceptions import Conflict, Forbidden, InvalidState, NotFound, ValidationFailed
from .forms import (
    CandidateForm, ElectionForm, SlateForm, SlateMemberForm, VotingPointForm,
    form_error_message,
)
from .models import (
    BLANK_VOTE_NAME, Candidate, Election, Profile, Slate, SlateMember, Voter,
    VotingPoint,
)

logger = logging.getLogger(__name__)


def get_object(queryset, pk, label):
    """Fetch ``pk`` from ``queryset`` or raise NotFound (malformed ids included)."""
    try:
        return queryset.get(pk=pk)
    except (queryset.model.DoesNotExist, ValidationError, ValueError, TypeError):
        raise NotFound(f"{label} not found")


def ensure_not_started(election, message):
    if election.has_started():
        raise InvalidState(message)


def bind_form(form_class, body, instance=None, aliases=None, **form_kwargs):
    """
    Build a bound form from a JSON body.

    On update, fields missing from ``body`` keep their current value so a
    PUT may carry only the keys it changes. ``aliases`` maps JSON keys to
    form field names (``delegate_id`` -> ``delegate``).
    """
    fields = form_class._meta.fields
    data = model_to_dict(instance, fields=fields) if instance is not None else {}
    for key, value in body.items():
        name = (aliases or {}).get(key, key)
        if name in fields:
            data[name] = value
    form = form_class(data=data, instance=instance, **form_kwargs)
    if not form.is_valid():
        raise ValidationFailed(form_error_message(form))
    return form


def visible_point_ids(viewer):
    """
    Ids of the voting points ``viewer`` may read, or None for every point.

    Admins see everything, a delegate sees the point they run and a voter
    the point they are assigned to. A signed-in user without a profile
    sees nothing.
    """
    if viewer is None:
        return set()
    if viewer.role == Profile.Role.ADMIN:
        return None
    if viewer.role == Profile.Role.DELEGATE:
        points = VotingPoint.objects.filter(delegate=viewer)
        return set(points.values_list('id', flat=True))
    return set(Voter.objects.filter(profile=viewer).values_list('voting_point_id', flat=True))


def ensure_point_access(viewer, point_id):
    visible = visible_point_ids(viewer)
    if visible is not None and point_id not in visible:
        raise Forbidden('You do not have access to this voting point')


def _visible_points(viewer, points):
    """Narrow an election's ``points`` to what ``viewer`` may read."""
    visible = visible_point_ids(viewer)
    if visible is None:
        return points
    points = points.filter(pk__in=visible)
    if not points.exists():
        raise Forbidden('You do not have access to this election')
    return points


# ----------------------------------------------------------------------------
# Elections
# ----------------------------------------------------------------------------

def list_elections():
    return Election.objects.annotate(
        voting_point_count=Count('voting_points', distinct=True),
    )


def create_election(profile, body, request=None):
    body = dict(body)
    body.setdefault('is_active', True)
    form = bind_form(ElectionForm, body)
    election = form.save(commit=False)
    election.created_by = profile
    election.save()

    logger.info(f"Election created: {election.id} ({election.title})")
    audit_request(request, 'election_created', 'election', election.id, {'title': election.title})
    return election


def get_election_detail(election_id, viewer):
    """
    Election with its voting points, their delegates, candidates and voter
    counts. Non-admins only get the points they belong to.
    """
    election = get_object(Election.objects.all(), election_id, 'Election')
    points = (
        _visible_points(viewer, election.voting_points.all())
        .select_related('delegate')
        .prefetch_related('candidates')
        .annotate(voter_count=Count('voters'))
    )
    return election, list(points)


def update_election(election_id, body, request=None):
    """
    Update an election.

    After start only ``is_active`` may be sent; any other key with a
    non-null value is rejected.
    """
    election = get_object(Election.objects.all(), election_id, 'Election')

    if election.has_started():
        invalid_keys = [k for k, v in body.items() if v is not None and k != 'is_active']
        if invalid_keys:
            raise InvalidState('An election that has started can only be activated or deactivated')
        is_active = body.get('is_active')
        if is_active is not None:
            if not isinstance(is_active, bool):
                raise ValidationFailed('is_active must be true or false')
            election.is_active = is_active
            election.save(update_fields=['is_active', 'updated_at'])
    else:
        election = bind_form(ElectionForm, body, instance=election).save()

    logger.info(f"Election updated: {election.id}")
    audit_request(request, 'election_updated', 'election', election.id, {'fields': sorted(body.keys())})
    return election


def delete_election(election_id, request=None):
    election = get_object(Election.objects.all(), election_id, 'Election')
    ensure_not_started(election, 'An election that has started cannot be deleted')

    title = election.title
    election.delete()
    logger.info(f"Election deleted: {election_id} ({title})")
    audit_request(request, 'election_deleted', 'election', election_id, {'title': title})


# ----------------------------------------------------------------------------
# Voting points
# ----------------------------------------------------------------------------

def voting_points_queryset():
    return VotingPoint.objects.select_related('election', 'delegate')


def get_voting_point(point_id, viewer):
    point = get_object(voting_points_queryset(), point_id, 'Voting point')
    ensure_point_access(viewer, point.id)
    return point


def list_voting_points(election_id, viewer):
    election = get_object(Election.objects.all(), election_id, 'Election')
    return (
        _visible_points(viewer, election.voting_points.all())
        .select_related('delegate')
        .prefetch_related('slates__members')
    )


def create_voting_point(election_id, body, request=None):
    election = get_object(Election.objects.all(), election_id, 'Election')
    ensure_not_started(election, 'Cannot add voting points to an election that has started')

    form = bind_form(VotingPointForm, body, aliases={'delegate_id': 'delegate'})
    point = form.save(commit=False)
    point.election = election
    point.save()

    Candidate.objects.create(voting_point=point, full_name=BLANK_VOTE_NAME)
    Slate.objects.create(voting_point=point, name=BLANK_VOTE_NAME)

    logger.info(f"Voting point created: {point.id} in election {election.id}")
    audit_request(request, 'voting_point_created', 'voting_point', point.id, {
        'election_id': str(election.id),
        'name': point.name,
        'delegate_id': str(point.delegate_id) if point.delegate_id else None,
    })
    return point


def update_voting_point(point_id, body, request=None):
    point = get_object(voting_points_queryset(), point_id, 'Voting point')
    ensure_not_started(point.election, 'Cannot modify a voting point of an election that has started')

    point = bind_form(VotingPointForm, body, instance=point, aliases={'delegate_id': 'delegate'}).save()

    audit_request(request, 'voting_point_updated', 'voting_point', point.id, {'fields': sorted(body.keys())})
    return point


def delete_voting_point(point_id, request=None):
    point = get_object(voting_points_queryset(), point_id, 'Voting point')
    ensure_not_started(point.election, 'Cannot delete a voting point of an election that has started')

    name = point.name
    point.delete()
    logger.info(f"Voting point deleted: {point_id} ({name})")
    audit_request(request, 'voting_point_deleted', 'voting_point', point_id, {'name': name})


# ----------------------------------------------------------------------------
# Candidates
# ----------------------------------------------------------------------------

def list_candidates(point_id, viewer):
    point = get_object(VotingPoint.objects.all(), point_id, 'Voting point')
    ensure_point_access(viewer, point.id)
    return point.candidates.all()


def create_candidate(point_id, body, request=None):
    point = get_object(voting_points_queryset(), point_id, 'Voting point')
    ensure_not_started(point.election, 'Cannot add candidates to an election that has started')

    candidate = bind_form(CandidateForm, body).save(commit=False)
    candidate.voting_point = point
    candidate.save()

    audit_request(request, 'candidate_created', 'candidate', candidate.id, {
        'voting_point_id': str(point.id),
        'full_name': candidate.full_name,
    })
    return candidate


def get_candidate(candidate_id):
    return get_object(
        Candidate.objects.select_related('voting_point__election'), candidate_id, 'Candidate',
    )


def update_candidate(candidate_id, body, request=None):
    candidate = get_candidate(candidate_id)
    ensure_not_started(candidate.voting_point.election, 'Cannot modify candidates of an election that has started')
    if candidate.is_blank_vote and 'full_name' in body and body['full_name'] != BLANK_VOTE_NAME:
        raise InvalidState(f'The "{BLANK_VOTE_NAME}" candidate cannot be renamed')

    candidate = bind_form(CandidateForm, body, instance=candidate).save()

    audit_request(request, 'candidate_updated', 'candidate', candidate.id, {'fields': sorted(body.keys())})
    return candidate


def delete_candidate(candidate_id, request=None):
    candidate = get_candidate(candidate_id)
    ensure_not_started(candidate.voting_point.election, 'Cannot delete candidates of an election that has started')
    if candidate.is_blank_vote:
        raise InvalidState(f'The "{BLANK_VOTE_NAME}" candidate cannot be deleted')

    full_name = candidate.full_name
    candidate.delete()
    audit_request(request, 'candidate_deleted', 'candidate', candidate_id, {'full_name': full_name})


# ----------------------------------------------------------------------------
# Slates
# ----------------------------------------------------------------------------

def _validate_members(members):
    if members is None:
        return []
    if not isinstance(members, list):
        raise ValidationFailed('members must be a list')
    forms_ = []
    for index, member in enumerate(members, start=1):
        if not isinstance(member, dict):
            raise ValidationFailed(f'Member {index} must be an object')
        form = SlateMemberForm(data=member)
        if not form.is_valid():
            raise ValidationFailed(f'Member {index}: {form_error_message(form)}')
        forms_.append(form)
    return forms_


def _create_members(slate, member_forms):
    for form in member_forms:
        member = form.save(commit=False)
        member.slate = slate
        member.save()


def list_slates(point_id, viewer):
    point = get_object(VotingPoint.objects.all(), point_id, 'Voting point')
    ensure_point_access(viewer, point.id)
    return point.slates.prefetch_related('members')


def create_slate(point_id, body, request=None):
    point = get_object(voting_points_queryset(), point_id, 'Voting point')
    ensure_not_started(point.election, 'Cannot add slates to an election that has started')

    form = bind_form(SlateForm, body)
    member_forms = _validate_members(body.get('members'))

    slate = form.save(commit=False)
    slate.voting_point = point
    slate.save()
    _create_members(slate, member_forms)

    audit_request(request, 'slate_created', 'slate', slate.id, {
        'voting_point_id': str(point.id),
        'name': slate.name,
        'member_count': len(member_forms),
    })
    return slate


def get_slate(slate_id):
    return get_object(
        Slate.objects.select_related('voting_point__election').prefetch_related('members'),
        slate_id,
        'Slate',
    )


def update_slate(slate_id, body, request=None):
    """
    Update a slate. When ``members`` is present the member list is
    replaced: existing members are deleted, then the new ones inserted.
    """
    slate = get_slate(slate_id)
    ensure_not_started(slate.voting_point.election, 'Cannot modify slates of an election that has started')
    if slate.is_blank_vote and 'name' in body and body['name'] != BLANK_VOTE_NAME:
        raise InvalidState(f'The "{BLANK_VOTE_NAME}" slate cannot be renamed')

    form = bind_form(SlateForm, body, instance=slate)
    replace_members = 'members' in body and body['members'] is not None
    member_forms = _validate_members(body['members']) if replace_members else []

    slate = form.save()
    if replace_members:
        SlateMember.objects.filter(slate=slate).delete()
        _create_members(slate, member_forms)

    audit_request(request, 'slate_updated', 'slate', slate.id, {'fields': sorted(body.keys())})
    return get_slate(slate.id)


def delete_slate(slate_id, request=None):
    slate = get_slate(slate_id)
    ensure_not_started(slate.voting_point.election, 'Cannot delete slates of an election that has started')
    if slate.is_blank_vote:
        raise InvalidState(f'The "{BLANK_VOTE_NAME}" slate cannot be deleted')

    name = slate.name
    slate.delete()
    audit_request(request, 'slate_deleted', 'slate', slate_id, {'name': name})


# ----------------------------------------------------------------------------
# Voter assignment
# ----------------------------------------------------------------------------

def list_point_voters(point_id, viewer):
    """
    Voter roster of a point. Only admins and the point's own delegate may
    read it; voters never see other voters.
    """
    point = get_object(VotingPoint.objects.all(), point_id, 'Voting point')
    is_admin = viewer is not None and viewer.role == Profile.Role.ADMIN
    runs_point = viewer is not None and point.delegate_id == viewer.id
    if not (is_admin or runs_point):
        raise Forbidden('Only an administrator or the point delegate can list its voters')
    return point.voters.select_related('profile__user')


def assign_voters(point_id, profile_ids, request=None):
    """
    Assign voter profiles to a voting point.

    Profiles already assigned to this point are ignored. A profile assigned
    to a different point is a Conflict. Returns the newly created Voter rows.
    """
    point = get_object(voting_points_queryset(), point_id, 'Voting point')
    ensure_not_started(point.election, 'Cannot assign voters to an election that has started')

    if not profile_ids or not isinstance(profile_ids, list):
        raise ValidationFailed('profile_id or profile_ids is required')
    if not all(isinstance(pid, str) for pid in profile_ids):
        raise ValidationFailed('profile_ids must be a list of ids')
    profile_ids = list(dict.fromkeys(profile_ids))

    try:
        profiles = list(Profile.objects.filter(pk__in=profile_ids))
    except ValidationError:
        raise ValidationFailed('One or more voters do not exist')
    if len(profiles) != len(profile_ids):
        raise ValidationFailed('One or more voters do not exist')
    if any(p.role != Profile.Role.VOTER for p in profiles):
        raise ValidationFailed('All profiles must have the voter role')

    existing = {
        v.profile_id: v.voting_point_id
        for v in Voter.objects.filter(profile__in=profiles)
    }
    elsewhere = [p for p in profiles if p.id in existing and existing[p.id] != point.id]
    if elsewhere:
        names = ', '.join(p.full_name for p in elsewhere)
        raise Conflict(f'Already assigned to another voting point: {names}')

    created = []
    for profile in profiles:
        if profile.id in existing:
            continue
        created.append(Voter.objects.create(profile=profile, voting_point=point))

    logger.info(f"{len(created)} voter(s) assigned to voting point {point.id}")
    audit_request(request, 'voters_assigned', 'voting_point', point.id, {
        'voter_count': len(created),
        'profile_ids': profile_ids,
    })
    return created


def remove_voter(point_id, voter_id, request=None):
    point = get_object(voting_points_queryset(), point_id, 'Voting point')
    ensure_not_started(point.election, 'Cannot remove voters from an election that has started')

    voter = get_object(point.voters.select_related('profile'), voter_id, 'Voter')
    if voter.has_voted:
        raise InvalidState('Cannot remove a voter who has already voted')

    profile_id = voter.profile_id
    voter.delete()
    audit_request(request, 'voter_removed', 'voting_point', point.id, {
        'voter_id': str(voter_id),
        'profile_id': str(profile_id),
    })
