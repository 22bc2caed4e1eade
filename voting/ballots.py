"""
Vote casting
============

The cast runs as separate autocommit statements, in this order:

1. Load the caller's voter record (404 if the caller is not assigned)
2. Reject if already voted (409) or the election is inactive (400)
3. Load the slate (404) and check it belongs to the voter's point (403)
4. Insert the Vote row (unique per voter)
5. Flip ``has_voted`` with a conditional update. On failure the vote
   inserted in step 4 is deleted again
6. Increment the slate's ``vote_count`` (failure is logged, the vote stands)
7. Write the ``vote_cast`` audit entry (failure is logged)

Also the voter-facing reads: ballot information and vote history.
"""

import logging

from django.core.exceptions import ValidationError # pyright: ignore[reportMissingModuleSource]
from django.db import DatabaseError, IntegrityError, transaction # pyright: ignore[reportMissingModuleSource]
from django.db.models import F # pyright: ignore[reportMissingModuleSource]
from django.utils import timezone # pyright: ignore[reportMissingModuleSource]

from .audit import audit_request
from .exceptions import Conflict, Forbidden, InvalidState, NotFound, ServerError, ValidationFailed
from .models import Slate, Vote, Voter
from .serializers import (
    serialize_candidate, serialize_election, serialize_slate, serialize_vote_history,
    serialize_voting_point,
)

logger = logging.getLogger(__name__)


def _mark_voted(voter, when):
    """Flip the voter to has_voted. Returns the number of rows updated (0 or 1)."""
    return Voter.objects.filter(pk=voter.pk, has_voted=False).update(
        has_voted=True,
        voted_at=when,
    )


def _increment_slate_votes(slate):
    Slate.objects.filter(pk=slate.pk).update(vote_count=F('vote_count') + 1)


def _discard_vote(vote):
    try:
        vote.delete()
    except DatabaseError as e:
        logger.error(f"Could not delete vote {vote.id} after failed voter update: {e}")


def cast_vote(*, profile, slate_id, request=None):
    """
    Record ``profile``'s ballot for ``slate_id``.

    Returns:
        Tuple (vote, voted_at)
    """
    if not slate_id:
        raise ValidationFailed('slate_id is required')

    try:
        voter = Voter.objects.select_related('voting_point__election').get(profile=profile)
    except Voter.DoesNotExist:
        raise NotFound('You are not assigned to any voting point')

    if voter.has_voted:
        raise Conflict('You have already voted in this election')

    election = voter.voting_point.election
    if not election.is_active:
        raise InvalidState('The election is not active')

    try:
        slate = Slate.objects.get(pk=slate_id)
    except (Slate.DoesNotExist, ValidationError, ValueError):
        raise NotFound('Slate not found')

    if slate.voting_point_id != voter.voting_point_id:
        raise Forbidden('This slate does not belong to your voting point')

    try:
        with transaction.atomic():
            vote = Vote.objects.create(voter=voter, slate=slate)
    except IntegrityError:
        logger.warning(f"Duplicate vote rejected for voter {voter.id}")
        raise Conflict('You have already voted in this election')

    voted_at = timezone.now()
    try:
        updated = _mark_voted(voter, voted_at)
    except DatabaseError as e:
        logger.error(f"Voter update failed for {voter.id}, removing vote {vote.id}: {e}")
        _discard_vote(vote)
        raise ServerError('Error updating the voter record')

    if not updated:
        logger.warning(f"Voter {voter.id} was marked as voted concurrently, removing vote {vote.id}")
        _discard_vote(vote)
        raise Conflict('You have already voted in this election')

    try:
        _increment_slate_votes(slate)
    except DatabaseError as e:
        logger.error(f"Vote count increment failed for slate {slate.id} (vote {vote.id}): {e}")

    logger.info(f"Vote recorded: {vote.id} at voting point {voter.voting_point_id}")
    audit_request(request, 'vote_cast', 'vote', vote.id, {
        'voting_point_id': str(voter.voting_point_id),
        'election_id': str(election.id),
        'slate_id': str(slate.id),
    })
    return vote, voted_at


def voting_info(profile):
    """
    What the voter dashboard needs: assignment, election state, and the
    ballot (slates and candidates) when the voter can still vote.
    """
    voter = (
        Voter.objects
        .select_related('voting_point__election')
        .filter(profile=profile)
        .first()
    )
    if voter is None:
        return {
            'is_assigned': False,
            'can_vote': False,
            'has_voted': False,
            'message': 'You are not assigned to any voting point.',
        }

    point = voter.voting_point
    election = point.election
    info = {
        'is_assigned': True,
        'voting_point': serialize_voting_point(point),
        'election': serialize_election(election),
        'has_voted': voter.has_voted,
    }
    if voter.has_voted:
        info.update({
            'can_vote': False,
            'voted_at': voter.voted_at,
            'message': 'You have already voted in this election.',
        })
        return info

    slates = list(point.slates.prefetch_related('members'))
    if not election.is_active:
        message = 'The election is not active right now. You can vote once it is activated.'
    elif not slates:
        message = 'There are no slates available at your voting point.'
    else:
        message = 'You can vote now.'

    info.update({
        'can_vote': election.is_active,
        'slates': [serialize_slate(s) for s in slates],
        'candidates': [serialize_candidate(c) for c in point.candidates.all()],
        'message': message,
    })
    return info


def vote_history(profile):
    votes = (
        Vote.objects
        .select_related('slate__voting_point__election')
        .filter(voter__profile=profile)
        .order_by('-created_at')
    )
    return [serialize_vote_history(v) for v in votes]
