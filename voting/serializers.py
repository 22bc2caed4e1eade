"""
Model to dict conversion for JSON responses.

Values are left as UUID/datetime objects; DjangoJSONEncoder renders them.
"""


def serialize_profile(profile, brief=False):
    if profile is None:
        return None
    data = {
        'id': profile.id,
        'full_name': profile.full_name,
        'document': profile.document,
    }
    if brief:
        return data
    data.update({
        'email': profile.user.email,
        'role': profile.role,
        'created_at': profile.created_at,
    })
    return data


def serialize_election(election):
    return {
        'id': election.id,
        'title': election.title,
        'description': election.description,
        'start_date': election.start_date,
        'end_date': election.end_date,
        'is_active': election.is_active,
        'has_started': election.has_started(),
        'created_by': election.created_by_id,
        'created_at': election.created_at,
        'updated_at': election.updated_at,
    }


def serialize_voting_point(point, slates=False, candidates=False, voter_count=None):
    data = {
        'id': point.id,
        'election_id': point.election_id,
        'name': point.name,
        'location': point.location,
        'delegate_id': point.delegate_id,
        'delegate': serialize_profile(point.delegate, brief=True),
        'created_at': point.created_at,
        'updated_at': point.updated_at,
    }
    if slates:
        data['slates'] = [serialize_slate(s) for s in point.slates.all()]
    if candidates:
        data['candidates'] = [serialize_candidate(c) for c in point.candidates.all()]
    if voter_count is not None:
        data['total_voters'] = voter_count
    return data


def serialize_candidate(candidate):
    return {
        'id': candidate.id,
        'voting_point_id': candidate.voting_point_id,
        'full_name': candidate.full_name,
        'role': candidate.role,
        'photo_url': candidate.photo_url,
        'is_blank_vote': candidate.is_blank_vote,
        'created_at': candidate.created_at,
        'updated_at': candidate.updated_at,
    }


def serialize_member(member):
    return {
        'id': member.id,
        'full_name': member.full_name,
        'role': member.role,
        'photo_url': member.photo_url,
    }


def serialize_slate(slate, members=True):
    data = {
        'id': slate.id,
        'voting_point_id': slate.voting_point_id,
        'name': slate.name,
        'description': slate.description,
        'vote_count': slate.vote_count,
        'is_blank_vote': slate.is_blank_vote,
        'created_at': slate.created_at,
        'updated_at': slate.updated_at,
    }
    if members:
        data['members'] = [serialize_member(m) for m in slate.members.all()]
    return data


def serialize_voter(voter, brief=False):
    """``brief`` limits the profile to id, name and document."""
    return {
        'id': voter.id,
        'voting_point_id': voter.voting_point_id,
        'has_voted': voter.has_voted,
        'voted_at': voter.voted_at,
        'created_at': voter.created_at,
        'profile': serialize_profile(voter.profile, brief=brief),
    }


def serialize_vote_history(vote):
    """A voter's own ballot, with the election context it was cast in."""
    point = vote.slate.voting_point
    election = point.election
    return {
        'id': vote.id,
        'created_at': vote.created_at,
        'slate': {'id': vote.slate.id, 'name': vote.slate.name},
        'voting_point': {'id': point.id, 'name': point.name, 'location': point.location},
        'election': {
            'id': election.id,
            'title': election.title,
            'start_date': election.start_date,
            'end_date': election.end_date,
        },
    }
