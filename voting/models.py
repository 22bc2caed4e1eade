"""
Database models for VoxPopuly
=============================

Defines the data structure for:
- Profile: a person (admin, delegate or voter) bound to an auth user
- Election: a voting event with a start/end window
- VotingPoint: a polling location inside an election, run by one delegate
- Candidate / Slate / SlateMember: ballot content of a voting point
- Voter: assignment of a profile to a voting point
- Vote: the ballot cast by a voter for a slate (append-only)
- AuditLog: append-only trail of administrative actions and vote casting

Integrity:
- Profile documents are unique
- A delegate runs at most one voting point system-wide
- A profile is a voter at one voting point and casts at most one vote
"""

from django.conf import settings # pyright: ignore[reportMissingModuleSource]
from django.core.validators import MinValueValidator # pyright: ignore[reportMissingModuleSource]
from django.db import models # pyright: ignore[reportMissingModuleSource]
from django.utils import timezone # pyright: ignore[reportMissingModuleSource]
import uuid


# Name of the system candidate/slate created with every voting point
BLANK_VOTE_NAME = 'Voto en Blanco'


class Profile(models.Model):
    """
    A person known to the system.

    Attributes:
        id: UUID primary key
        user: Auth user holding the credentials (email + password/PIN)
        full_name: Display name
        document: National identity document number (unique)
        role: admin, delegate or voter
    """

    class Role(models.TextChoices):
        ADMIN = 'admin', 'Admin'
        DELEGATE = 'delegate', 'Delegate'
        VOTER = 'voter', 'Voter'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='profile',
    )
    full_name = models.CharField(max_length=200)
    document = models.CharField(
        max_length=50,
        unique=True,
        help_text="Identity document number",
    )
    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.VOTER,
        db_index=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['full_name']

    def __str__(self):
        return f"{self.full_name} ({self.document})"

    @property
    def email(self):
        return self.user.email

    @property
    def is_admin(self):
        return self.role == self.Role.ADMIN


class Election(models.Model):
    """
    A voting event.

    Once ``start_date`` has passed the election is locked: only
    ``is_active`` may still be toggled, and its voting points, candidates,
    slates and voter assignments can no longer change.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    is_active = models.BooleanField(
        default=True,
        help_text="Whether voters may currently cast votes",
    )
    created_by = models.ForeignKey(
        Profile,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_elections',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title

    def has_started(self, now=None):
        return self.start_date <= (now or timezone.now())


class VotingPoint(models.Model):
    """A polling location of an election, optionally run by a delegate."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    election = models.ForeignKey(
        Election,
        on_delete=models.CASCADE,
        related_name='voting_points',
    )
    name = models.CharField(max_length=200)
    location = models.CharField(max_length=255, blank=True, null=True)
    delegate = models.OneToOneField(
        Profile,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_voting_point',
        help_text="A delegate runs at most one voting point",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.name} ({self.election.title})"


class Candidate(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    voting_point = models.ForeignKey(
        VotingPoint,
        on_delete=models.CASCADE,
        related_name='candidates',
    )
    full_name = models.CharField(max_length=200)
    role = models.CharField(max_length=100, blank=True, null=True)
    photo_url = models.CharField(max_length=500, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['full_name']

    def __str__(self):
        return self.full_name

    @property
    def is_blank_vote(self):
        return self.full_name == BLANK_VOTE_NAME


class Slate(models.Model):
    """
    A ballot option of a voting point.

    ``vote_count`` is maintained with an ``F()`` increment after each vote
    and must equal the number of Vote rows pointing at the slate.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    voting_point = models.ForeignKey(
        VotingPoint,
        on_delete=models.CASCADE,
        related_name='slates',
    )
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    vote_count = models.PositiveIntegerField(
        default=0,
        validators=[MinValueValidator(0)],
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.name

    @property
    def is_blank_vote(self):
        return self.name == BLANK_VOTE_NAME


class SlateMember(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    slate = models.ForeignKey(
        Slate,
        on_delete=models.CASCADE,
        related_name='members',
    )
    full_name = models.CharField(max_length=200)
    role = models.CharField(max_length=100, blank=True, null=True)
    photo_url = models.CharField(max_length=500, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']

    def __str__(self):
        return f"{self.full_name} ({self.slate.name})"


class Voter(models.Model):
    """
    Assignment of a profile to the voting point where it votes.

    ``has_voted`` only ever flips to True, through the vote-cast flow.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    profile = models.OneToOneField(
        Profile,
        on_delete=models.CASCADE,
        related_name='voter_record',
    )
    voting_point = models.ForeignKey(
        VotingPoint,
        on_delete=models.CASCADE,
        related_name='voters',
    )
    has_voted = models.BooleanField(default=False)
    voted_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.profile.full_name} @ {self.voting_point.name}"


class Vote(models.Model):
    """
    A cast ballot. Append-only.

    The unique voter column is what finally rejects a second concurrent
    submission that slipped past the ``has_voted`` check.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    voter = models.OneToOneField(
        Voter,
        on_delete=models.CASCADE,
        related_name='vote',
    )
    slate = models.ForeignKey(
        Slate,
        on_delete=models.CASCADE,
        related_name='votes',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Vote for {self.slate.name} at {self.created_at}"


class AuditLog(models.Model):
    """
    Append-only audit trail entry.

    ``ip_address`` is stored anonymised (last IPv4 octet zeroed, IPv6
    truncated to its first four hextets).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
    )
    action = models.CharField(max_length=100, db_index=True)
    entity_type = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=64, blank=True, null=True)
    metadata = models.JSONField(blank=True, null=True)
    ip_address = models.CharField(max_length=64, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.action} {self.entity_type}:{self.entity_id}"
