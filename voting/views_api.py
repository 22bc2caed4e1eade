"""
JSON API views for VoxPopuly
============================

REST endpoints used by the admin, delegate and voter dashboards. All of
them answer with the ``{success, data|error, message?}`` envelope built in
``voting.api``.

Permissions:
- Reads of elections, voting points, candidates and slates: admins see
  everything, delegates and voters only their own voting point
- A point's voter roster: admins and that point's delegate only
- Writes and account management need the admin role
- ``delegate/*`` and ``voter/*`` endpoints need that role
"""

import logging
import os
import uuid

from django.conf import settings # pyright: ignore[reportMissingModuleSource]
from django.contrib.auth import authenticate, login, logout # pyright: ignore[reportMissingModuleSource]
from django.core.files.storage import default_storage # pyright: ignore[reportMissingModuleSource]
from django.core.exceptions import ValidationError # pyright: ignore[reportMissingModuleSource]
from django.db.models import Count, Q # pyright: ignore[reportMissingModuleSource]
from django.http import HttpResponse # pyright: ignore[reportMissingModuleSource]
from django.middleware.csrf import get_token # pyright: ignore[reportMissingModuleSource]
from django.views.decorators.csrf import ensure_csrf_cookie # pyright: ignore[reportMissingModuleSource]

from . import accounts, ballots, reports, services
from .api import api_view, parse_json_body, require_role, success
from .audit import audit_request
from .exceptions import Forbidden, NotAuthenticated, ValidationFailed
from .models import Profile, Voter
from .serializers import (
    serialize_candidate, serialize_election, serialize_profile, serialize_slate,
    serialize_voter, serialize_voting_point,
)
from .voter_import import import_voters

logger = logging.getLogger(__name__)

ADMIN = Profile.Role.ADMIN
DELEGATE = Profile.Role.DELEGATE
VOTER = Profile.Role.VOTER

PHOTO_EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/png': 'png',
    'image/webp': 'webp',
    'image/gif': 'gif',
}


# ============================================================================
# Authentication
# ============================================================================

@ensure_csrf_cookie
@api_view(["GET"], public=True)
def auth_csrf(request):
    """Set the CSRF cookie for the dashboards and return the token."""
    return success({'csrf_token': get_token(request)})


@api_view(["POST"], public=True)
def auth_login(request):
    """
    Sign in with an email or a document number plus password (or PIN).
    """
    body = parse_json_body(request)
    identifier = body.get('identifier') or body.get('email') or body.get('document')
    password = body.get('password')
    if not identifier or not password:
        raise ValidationFailed('identifier and password are required')

    username = accounts.resolve_identifier(identifier)
    user = authenticate(request, username=username, password=password) if username else None
    if user is None:
        logger.warning(f"Failed login for identifier {identifier!r} | IP: {getattr(request, 'client_ip', None)}")
        raise NotAuthenticated('Invalid credentials')

    profile = Profile.objects.filter(user=user).first()
    if profile is None:
        raise Forbidden('This account has no profile')

    login(request, user)
    logger.info(f"Login: {profile.id} ({profile.role})")
    return success({'profile': serialize_profile(profile)}, message='Signed in')


@api_view(["POST"])
def auth_logout(request):
    logout(request)
    return success(message='Signed out')


@api_view(["GET"])
def auth_role(request):
    profile = request.profile
    return success({
        'role': profile.role if profile else None,
        'profile': serialize_profile(profile),
    })


# ============================================================================
# Elections
# ============================================================================

@api_view(["GET", "POST"], roles=[ADMIN])
def elections(request):
    if request.method == 'POST':
        election = services.create_election(request.profile, parse_json_body(request), request)
        return success(serialize_election(election), message='Election created', status=201)

    data = []
    for election in services.list_elections():
        item = serialize_election(election)
        item['voting_point_count'] = election.voting_point_count
        data.append(item)
    return success(data)


@api_view(["GET", "PUT", "DELETE"])
def election_detail(request, election_id):
    if request.method == 'GET':
        election, points = services.get_election_detail(election_id, request.profile)
        data = serialize_election(election)
        data['voting_points'] = [
            serialize_voting_point(p, candidates=True, voter_count=p.voter_count)
            for p in points
        ]
        return success(data)

    require_role(request.profile, ADMIN)
    if request.method == 'PUT':
        election = services.update_election(election_id, parse_json_body(request), request)
        return success(serialize_election(election), message='Election updated')

    services.delete_election(election_id, request)
    return success(message='Election deleted')


@api_view(["GET", "POST"])
def election_voting_points(request, election_id):
    if request.method == 'POST':
        require_role(request.profile, ADMIN)
        point = services.create_voting_point(election_id, parse_json_body(request), request)
        return success(serialize_voting_point(point, slates=True, candidates=True),
                       message='Voting point created', status=201)

    points = services.list_voting_points(election_id, request.profile)
    return success([serialize_voting_point(p, slates=True) for p in points])


# ============================================================================
# Voting points
# ============================================================================

@api_view(["GET", "PUT", "DELETE"])
def voting_point_detail(request, point_id):
    if request.method == 'GET':
        point = services.get_voting_point(point_id, request.profile)
        data = serialize_voting_point(point, slates=True, candidates=True,
                                      voter_count=point.voters.count())
        data['election'] = serialize_election(point.election)
        return success(data)

    require_role(request.profile, ADMIN)
    if request.method == 'PUT':
        point = services.update_voting_point(point_id, parse_json_body(request), request)
        return success(serialize_voting_point(point), message='Voting point updated')

    services.delete_voting_point(point_id, request)
    return success(message='Voting point deleted')


@api_view(["GET", "POST"])
def voting_point_candidates(request, point_id):
    if request.method == 'POST':
        require_role(request.profile, ADMIN)
        candidate = services.create_candidate(point_id, parse_json_body(request), request)
        return success(serialize_candidate(candidate), message='Candidate created', status=201)

    candidates = services.list_candidates(point_id, request.profile)
    return success([serialize_candidate(c) for c in candidates])


@api_view(["GET", "POST"])
def voting_point_slates(request, point_id):
    if request.method == 'POST':
        require_role(request.profile, ADMIN)
        slate = services.create_slate(point_id, parse_json_body(request), request)
        return success(serialize_slate(slate), message='Slate created', status=201)

    slates = services.list_slates(point_id, request.profile)
    return success([serialize_slate(s) for s in slates])


@api_view(["GET", "POST"])
def voting_point_voters(request, point_id):
    if request.method == 'POST':
        require_role(request.profile, ADMIN)
        body = parse_json_body(request)
        profile_ids = body.get('profile_ids')
        if profile_ids is None and body.get('profile_id'):
            profile_ids = [body['profile_id']]
        created = services.assign_voters(point_id, profile_ids, request)
        return success([serialize_voter(v) for v in created],
                       message=f'{len(created)} voter(s) assigned', status=201)

    voters = services.list_point_voters(point_id, request.profile)
    return success([serialize_voter(v, brief=True) for v in voters])


@api_view(["DELETE"], roles=[ADMIN])
def voting_point_voter_detail(request, point_id, voter_id):
    services.remove_voter(point_id, voter_id, request)
    return success(message='Voter removed from voting point')


# ============================================================================
# Candidates and slates
# ============================================================================

@api_view(["GET", "PUT", "DELETE"])
def candidate_detail(request, candidate_id):
    if request.method == 'GET':
        candidate = services.get_candidate(candidate_id)
        services.ensure_point_access(request.profile, candidate.voting_point_id)
        return success(serialize_candidate(candidate))

    require_role(request.profile, ADMIN)
    if request.method == 'PUT':
        candidate = services.update_candidate(candidate_id, parse_json_body(request), request)
        return success(serialize_candidate(candidate), message='Candidate updated')

    services.delete_candidate(candidate_id, request)
    return success(message='Candidate deleted')


@api_view(["GET", "PUT", "DELETE"])
def slate_detail(request, slate_id):
    if request.method == 'GET':
        slate = services.get_slate(slate_id)
        services.ensure_point_access(request.profile, slate.voting_point_id)
        return success(serialize_slate(slate))

    require_role(request.profile, ADMIN)
    if request.method == 'PUT':
        slate = services.update_slate(slate_id, parse_json_body(request), request)
        return success(serialize_slate(slate), message='Slate updated')

    services.delete_slate(slate_id, request)
    return success(message='Slate deleted')


# ============================================================================
# Accounts
# ============================================================================

@api_view(["GET", "POST"], roles=[ADMIN])
def delegates(request):
    """
    GET: delegate profiles with their assigned voting point.
         ``?available=1`` lists only delegates free to be assigned; with
         ``&voting_point=<id>`` the delegate of that point stays eligible.
    POST: create a delegate account (password of 8+ characters).
    """
    if request.method == 'POST':
        profile, credentials = accounts.create_account(DELEGATE, parse_json_body(request), request)
        data = serialize_profile(profile)
        data['credentials'] = credentials
        return success(data, message='Delegate created', status=201)

    queryset = (
        Profile.objects
        .filter(role=DELEGATE)
        .select_related('user', 'assigned_voting_point__election')
        .order_by('full_name')
    )
    if request.GET.get('available') in ('1', 'true'):
        keep = request.GET.get('voting_point')
        eligible = Q(assigned_voting_point__isnull=True)
        if keep:
            eligible |= Q(assigned_voting_point__pk=keep)
        try:
            queryset = queryset.filter(eligible)
        except (ValidationError, ValueError):
            raise ValidationFailed('voting_point must be a valid id')

    data = []
    for profile in queryset:
        item = serialize_profile(profile)
        point = getattr(profile, 'assigned_voting_point', None)
        item['voting_point'] = {
            'id': point.id,
            'name': point.name,
            'election_id': point.election_id,
            'election_title': point.election.title,
        } if point else None
        data.append(item)
    return success(data)


@api_view(["GET", "POST"], roles=[ADMIN])
def voters(request):
    """
    GET: voter profiles with their voting point assignment, if any.
    POST: create a voter account (password or PIN of 6+ characters).
    """
    if request.method == 'POST':
        profile, credentials = accounts.create_account(VOTER, parse_json_body(request), request)
        data = serialize_profile(profile)
        data['credentials'] = credentials
        return success(data, message='Voter created', status=201)

    assignments = {
        v.profile_id: v
        for v in Voter.objects.select_related('voting_point')
    }
    data = []
    for profile in Profile.objects.filter(role=VOTER).select_related('user'):
        item = serialize_profile(profile)
        record = assignments.get(profile.id)
        item['voter'] = {
            'id': record.id,
            'voting_point_id': record.voting_point_id,
            'voting_point_name': record.voting_point.name,
            'has_voted': record.has_voted,
            'voted_at': record.voted_at,
        } if record else None
        data.append(item)
    return success(data)


@api_view(["POST"], roles=[ADMIN])
def voters_bulk(request):
    body = parse_json_body(request)
    point_id = body.get('voting_point_id')
    if not point_id:
        raise ValidationFailed('voting_point_id is required')

    result = import_voters(point_id, voters=body.get('voters'), csv_text=body.get('csv'), request=request)
    message = (
        f"{result['created']} created, {result['skipped']} already registered, "
        f"{len(result['errors'])} error(s)"
    )
    return success(result, message=message)


@api_view(["GET"], roles=[ADMIN])
def users(request):
    profiles = Profile.objects.select_related('user')
    counts = {
        row['role']: row['n']
        for row in Profile.objects.order_by().values('role').annotate(n=Count('id'))
    }
    return success({
        'users': [serialize_profile(p) for p in profiles],
        'counts': {
            'total': sum(counts.values()),
            'admins': counts.get(ADMIN, 0),
            'delegates': counts.get(DELEGATE, 0),
            'voters': counts.get(VOTER, 0),
        },
    })


# ============================================================================
# Admin tools
# ============================================================================

@api_view(["GET"], roles=[ADMIN])
def admin_stats(request):
    stats = reports.admin_stats()
    if request.GET.get('format') == 'csv':
        response = HttpResponse(reports.admin_stats_csv(stats), content_type='text/csv; charset=utf-8')
        response['Content-Disposition'] = f'attachment; filename="{reports.CSV_FILENAME}"'
        return response
    return success(stats)


@api_view(["GET"], roles=[ADMIN])
def admin_activity(request):
    return success(reports.activity_feed())


@api_view(["POST"], roles=[ADMIN])
def admin_clean_duplicates(request):
    result = accounts.clean_duplicate_profiles(request)
    if not result['duplicates_found']:
        return success(result, message='No duplicate documents found')
    return success(result, message=(
        f"Found {result['duplicates_found']} duplicated document(s), "
        f"deleted {result['deleted']} profile(s)"
    ))


@api_view(["GET", "DELETE"], roles=[ADMIN])
def admin_orphaned_users(request):
    if request.method == 'DELETE':
        deleted = accounts.delete_orphaned_users(request)
        return success({'deleted': deleted, 'count': len(deleted)},
                       message=f'{len(deleted)} orphaned user(s) deleted')

    orphans = [
        {'id': u.pk, 'email': u.email, 'username': u.get_username(), 'date_joined': u.date_joined}
        for u in accounts.orphaned_users()
    ]
    return success({'users': orphans, 'count': len(orphans)})


@api_view(["POST"], roles=[ADMIN])
def upload_candidate_photo(request):
    """
    Store a candidate photo and return its public URL.

    Accepts JPEG, PNG, WebP or GIF up to MAX_CANDIDATE_PHOTO_BYTES.
    """
    upload = request.FILES.get('file')
    if upload is None:
        raise ValidationFailed('No file was provided')

    content_type = (upload.content_type or '').lower()
    if content_type not in settings.CANDIDATE_PHOTO_CONTENT_TYPES:
        raise ValidationFailed('File type not allowed. Use JPEG, PNG, WebP or GIF')
    if upload.size > settings.MAX_CANDIDATE_PHOTO_BYTES:
        limit_mb = settings.MAX_CANDIDATE_PHOTO_BYTES // (1024 * 1024)
        raise ValidationFailed(f'File is too large. Maximum size is {limit_mb} MB')

    ext = PHOTO_EXTENSIONS.get(content_type) or os.path.splitext(upload.name)[1].lstrip('.').lower()
    path = default_storage.save(f'candidates/{uuid.uuid4()}.{ext}', upload)
    url = default_storage.url(path)

    logger.info(f"Candidate photo stored: {path} ({upload.size} bytes)")
    audit_request(request, 'candidate_photo_uploaded', 'candidate_photo', path, {'size': upload.size})
    return success({'url': url, 'path': path}, message='Photo uploaded')


# ============================================================================
# Delegate
# ============================================================================

@api_view(["GET"], roles=[DELEGATE])
def delegate_stats(request):
    return success(reports.delegate_stats(request.profile))


@api_view(["GET"], roles=[DELEGATE])
def delegate_voters(request):
    return success(reports.delegate_voters(request.profile))


# ============================================================================
# Voter
# ============================================================================

@api_view(["GET"], roles=[VOTER])
def voter_voting_info(request):
    return success(ballots.voting_info(request.profile))


@api_view(["GET"], roles=[VOTER])
def voter_history(request):
    return success(ballots.vote_history(request.profile))


@api_view(["POST"], roles=[VOTER])
def voter_vote(request):
    body = parse_json_body(request)
    vote, voted_at = ballots.cast_vote(
        profile=request.profile,
        slate_id=body.get('slate_id'),
        request=request,
    )
    return success({'vote_id': vote.id, 'voted_at': voted_at}, message='Vote recorded successfully')
