"""
Statistics and activity reports
===============================

- Admin statistics: per voting point voter participation and slate totals,
  as JSON or as a CSV download
- Delegate statistics and voter list for the delegate's own voting point
- Admin activity feed built from the audit log
"""

import csv
import io

from django.conf import settings # pyright: ignore[reportMissingModuleSource]
from django.db.models import Count, Q # pyright: ignore[reportMissingModuleSource]
from django.utils import timezone # pyright: ignore[reportMissingModuleSource]
from django.utils.translation import gettext_lazy as _ # pyright: ignore[reportMissingModuleSource]

from .exceptions import NotFound
from .models import AuditLog, Election, VotingPoint
from .serializers import serialize_member, serialize_voter

CSV_HEADER = [
    'election_title', 'voting_point', 'location', 'delegate',
    'total_voters', 'voters_voted', 'participation_pct', 'slate', 'slate_votes',
]
CSV_FILENAME = 'voxpopuly-stats.csv'

ACTIVITY_LABELS = {
    'election_created': _('Election created'),
    'election_updated': _('Election updated'),
    'election_deleted': _('Election deleted'),
    'voting_point_created': _('Voting point created'),
    'voting_point_updated': _('Voting point updated'),
    'voting_point_deleted': _('Voting point deleted'),
    'candidate_created': _('Candidate created'),
    'candidate_updated': _('Candidate updated'),
    'candidate_deleted': _('Candidate deleted'),
    'slate_created': _('Slate created'),
    'slate_updated': _('Slate updated'),
    'slate_deleted': _('Slate deleted'),
    'delegate_created': _('Delegate created'),
    'voter_created': _('Voter created'),
    'voters_assigned': _('Voters assigned'),
    'voter_removed': _('Voter removed'),
    'bulk_voters_upload': _('Voters imported'),
    'vote_cast': _('Vote cast'),
    'duplicates_cleaned': _('Duplicate profiles removed'),
    'orphaned_users_cleaned': _('Orphaned users removed'),
}


def participation(voted, total):
    """Percentage of ``total`` that voted, rounded to 2 decimals (0 when empty)."""
    if not total:
        return 0
    return round(voted / total * 100, 2)


def _point_stats(point):
    slates = [
        {
            'id': slate.id,
            'name': slate.name,
            'description': slate.description,
            'vote_count': slate.vote_count,
        }
        for slate in point.slates.all()
    ]
    election = point.election
    delegate = point.delegate
    return {
        'id': point.id,
        'name': point.name,
        'location': point.location,
        'election': {
            'id': election.id,
            'title': election.title,
            'is_active': election.is_active,
            'start_date': election.start_date,
            'end_date': election.end_date,
        },
        'delegate': {
            'id': delegate.id,
            'full_name': delegate.full_name,
            'document': delegate.document,
        } if delegate else None,
        'slates': slates,
        'total_voters': point.total_voters,
        'voted_count': point.voted_count,
        'total_votes': sum(s['vote_count'] for s in slates),
    }


def admin_stats():
    points = (
        VotingPoint.objects
        .select_related('election', 'delegate')
        .prefetch_related('slates')
        .annotate(
            total_voters=Count('voters', distinct=True),
            voted_count=Count('voters', filter=Q(voters__has_voted=True), distinct=True),
        )
        .order_by('name')
    )
    voting_points = [_point_stats(p) for p in points]

    total_voters = sum(p['total_voters'] for p in voting_points)
    total_voted = sum(p['voted_count'] for p in voting_points)
    return {
        'totals': {
            'elections': Election.objects.count(),
            'active_elections': Election.objects.filter(is_active=True).count(),
            'voting_points': len(voting_points),
            'voters': total_voters,
            'votes': sum(p['total_votes'] for p in voting_points),
            'participation': participation(total_voted, total_voters),
        },
        'voting_points': voting_points,
        'generated_at': timezone.now(),
    }


def admin_stats_csv(stats):
    """
    Render ``admin_stats()`` as CSV: one line per slate, or a single
    "Sin planchas" line for a point without slates.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(CSV_HEADER)

    for point in stats['voting_points']:
        pct = f"{participation(point['voted_count'], point['total_voters']):.2f}"
        prefix = [
            point['election']['title'],
            point['name'],
            point['location'] or '',
            point['delegate']['full_name'] if point['delegate'] else 'Sin delegado',
            point['total_voters'],
            point['voted_count'],
            pct,
        ]
        if not point['slates']:
            writer.writerow(prefix + ['Sin planchas', 0])
            continue
        for slate in point['slates']:
            writer.writerow(prefix + [slate['name'], slate['vote_count']])

    return buffer.getvalue()


def delegate_stats(profile):
    """Slate totals and turnout for the voting point run by ``profile``."""
    point = (
        VotingPoint.objects
        .select_related('election')
        .annotate(
            total_voters=Count('voters', distinct=True),
            voted_count=Count('voters', filter=Q(voters__has_voted=True), distinct=True),
        )
        .filter(delegate=profile)
        .first()
    )
    if point is None:
        raise NotFound('You do not have a voting point assigned')

    slates = point.slates.prefetch_related('members').order_by('name')
    slate_data = [
        {
            'id': s.id,
            'name': s.name,
            'description': s.description,
            'vote_count': s.vote_count,
            'members': [serialize_member(m) for m in s.members.all()],
        }
        for s in slates
    ]
    election = point.election
    return {
        'voting_point': {
            'id': point.id,
            'name': point.name,
            'location': point.location,
            'election': {
                'id': election.id,
                'title': election.title,
                'is_active': election.is_active,
                'start_date': election.start_date,
                'end_date': election.end_date,
            },
        },
        'slates': slate_data,
        'total_votes': sum(s['vote_count'] for s in slate_data),
        'total_voters': point.total_voters,
        'voted_count': point.voted_count,
        'participation': participation(point.voted_count, point.total_voters),
    }


def activity_feed(limit=None):
    """Most recent audit entries with a human readable title."""
    limit = limit or settings.ACTIVITY_FEED_SIZE
    items = []
    for log in AuditLog.objects.order_by('-created_at')[:limit]:
        metadata = log.metadata if isinstance(log.metadata, dict) else {}
        subject = metadata.get('title') or metadata.get('name') or log.entity_id or ''
        items.append({
            'id': log.id,
            'title': ACTIVITY_LABELS.get(log.action, log.action),
            'message': f"{log.entity_type}: {subject}",
            'timestamp': log.created_at,
            'type': log.action,
        })
    return items


def delegate_voters(profile):
    """Voters of the delegate's point: pending first, then most recent voters."""
    point = VotingPoint.objects.filter(delegate=profile).first()
    if point is None:
        raise NotFound('You do not have a voting point assigned')
    voters = (
        point.voters
        .select_related('profile__user')
        .order_by('has_voted', '-voted_at')
    )
    return [serialize_voter(v, brief=True) for v in voters]
