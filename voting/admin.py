"""
Django Admin Configuration for VoxPopuly
========================================

Operator tooling for:
- Profiles (people and their roles)
- Elections, voting points, candidates and slates
- Voter assignments and votes (read-only)
- Audit log (read-only)

Votes and audit entries are append-only: the admin can list them but never
add, change or delete them.
"""

from django.contrib import admin # pyright: ignore[reportMissingModuleSource, reportMissingImports]
from .models import (
    AuditLog, Candidate, Election, Profile, Slate, SlateMember, Vote, Voter,
    VotingPoint,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ('full_name', 'document', 'get_email', 'role', 'created_at')
    list_filter = ('role', 'created_at')
    search_fields = ('full_name', 'document', 'user__email')
    readonly_fields = ('id', 'created_at', 'updated_at')
    raw_id_fields = ('user',)

    def get_email(self, obj):
        return obj.user.email
    get_email.short_description = 'Email'


class VotingPointInline(admin.TabularInline):
    model = VotingPoint
    extra = 0
    fields = ('name', 'location', 'delegate')
    raw_id_fields = ('delegate',)
    show_change_link = True


@admin.register(Election)
class ElectionAdmin(admin.ModelAdmin):
    """
    Admin interface for Election model.

    Displays:
    - Title and voting window
    - Active status and number of voting points
    """

    list_display = ('title', 'start_date', 'end_date', 'is_active',
                    'get_voting_point_count', 'created_at')
    list_filter = ('is_active', 'start_date')
    search_fields = ('title', 'description')
    readonly_fields = ('id', 'created_by', 'created_at', 'updated_at')
    inlines = [VotingPointInline]
    fieldsets = (
        ('Election', {
            'fields': ('id', 'title', 'description', 'is_active')
        }),
        ('Voting window', {
            'fields': ('start_date', 'end_date'),
            'description': 'The election is locked once the start date has passed',
        }),
        ('Metadata', {
            'fields': ('created_by', 'created_at', 'updated_at'),
        }),
    )

    def get_voting_point_count(self, obj):
        return obj.voting_points.count()
    get_voting_point_count.short_description = 'Voting points'


class CandidateInline(admin.TabularInline):
    model = Candidate
    extra = 0
    fields = ('full_name', 'role', 'photo_url')


@admin.register(VotingPoint)
class VotingPointAdmin(admin.ModelAdmin):
    list_display = ('name', 'election', 'location', 'delegate', 'get_voter_count')
    list_filter = ('election',)
    search_fields = ('name', 'location', 'delegate__full_name')
    readonly_fields = ('id', 'created_at', 'updated_at')
    raw_id_fields = ('delegate',)
    inlines = [CandidateInline]

    def get_voter_count(self, obj):
        return obj.voters.count()
    get_voter_count.short_description = 'Voters'


@admin.register(Candidate)
class CandidateAdmin(admin.ModelAdmin):
    list_display = ('full_name', 'role', 'voting_point', 'created_at')
    list_filter = ('voting_point__election',)
    search_fields = ('full_name', 'role')
    readonly_fields = ('id', 'created_at', 'updated_at')


class SlateMemberInline(admin.TabularInline):
    model = SlateMember
    extra = 0
    fields = ('full_name', 'role', 'photo_url')


@admin.register(Slate)
class SlateAdmin(admin.ModelAdmin):
    """vote_count is maintained by the vote-cast flow and is read-only here."""

    list_display = ('name', 'voting_point', 'vote_count', 'created_at')
    list_filter = ('voting_point__election',)
    search_fields = ('name', 'description')
    readonly_fields = ('id', 'vote_count', 'created_at', 'updated_at')
    inlines = [SlateMemberInline]


@admin.register(Voter)
class VoterAdmin(admin.ModelAdmin):
    list_display = ('profile', 'voting_point', 'has_voted', 'voted_at')
    list_filter = ('has_voted', 'voting_point__election')
    search_fields = ('profile__full_name', 'profile__document')
    readonly_fields = ('id', 'has_voted', 'voted_at', 'created_at')
    raw_id_fields = ('profile', 'voting_point')


@admin.register(Vote)
class VoteAdmin(ReadOnlyAdmin):
    list_display = ('id', 'slate', 'created_at')
    list_filter = ('slate__voting_point__election', 'created_at')
    readonly_fields = ('id', 'voter', 'slate', 'created_at')


@admin.register(AuditLog)
class AuditLogAdmin(ReadOnlyAdmin):
    list_display = ('action', 'entity_type', 'entity_id', 'user', 'ip_address', 'created_at')
    list_filter = ('action', 'entity_type', 'created_at')
    search_fields = ('action', 'entity_id', 'user__email')
    readonly_fields = ('id', 'user', 'action', 'entity_type', 'entity_id',
                       'metadata', 'ip_address', 'created_at')
