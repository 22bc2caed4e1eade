"""
Accounts
========

- Account creation: auth user (username = email) + Profile
- Login identifier resolution (email or document number)
- Operator cleanup tools for partial states left by failed creations:
  duplicate profiles and auth users without a profile
"""

import logging
import re
import secrets

from django.contrib.auth import get_user_model # pyright: ignore[reportMissingModuleSource]
from django.db import DatabaseError, transaction # pyright: ignore[reportMissingModuleSource]
from django.db.models import Q # pyright: ignore[reportMissingModuleSource]

from .audit import audit_request
from .exceptions import Conflict, ServerError, ValidationFailed
from .forms import AccountForm, form_error_message
from .models import Profile, Voter

logger = logging.getLogger(__name__)

User = get_user_model()

PASSWORD_MIN_LENGTH = {
    Profile.Role.DELEGATE: 8,
    Profile.Role.VOTER: 6,
}


def generate_pin():
    """Random 6-digit numeric PIN (leading zeros kept)."""
    return f"{secrets.randbelow(10 ** 6):06d}"


def canonical_document(document):
    """Alphanumeric characters only, upper-cased: ``12.345-k`` -> ``12345K``."""
    return re.sub(r'[^0-9A-Za-z]', '', document or '').upper()


def email_taken(email):
    return User.objects.filter(Q(username__iexact=email) | Q(email__iexact=email)).exists()


def create_user_with_profile(*, role, full_name, document, email, password):
    """
    Create the auth user then its profile.

    If the profile insert fails the auth user is deleted again. No other
    rollback is attempted.
    """
    if Profile.objects.filter(document=document).exists():
        raise Conflict('A user with this document number already exists')
    if email_taken(email):
        raise Conflict('A user with this email already exists')

    user = User(username=email, email=email)
    user.set_password(password)
    user.save()

    try:
        with transaction.atomic():
            profile = Profile.objects.create(
                user=user,
                full_name=full_name,
                document=document,
                role=role,
            )
    except DatabaseError as e:
        logger.error(f"Profile creation failed for {email}, removing auth user {user.pk}: {e}")
        user.delete()
        raise ServerError('Error creating the user profile')

    return profile


def create_account(role, body, request=None):
    """
    Create a delegate or voter account from an API payload.

    Returns:
        Tuple (profile, credentials) where credentials holds the email and
        the plaintext password. They are only ever returned at creation.
    """
    form = AccountForm(data=body, min_password_length=PASSWORD_MIN_LENGTH[role])
    if not form.is_valid():
        raise ValidationFailed(form_error_message(form))
    data = form.cleaned_data

    profile = create_user_with_profile(role=role, **data)

    logger.info(f"{role.capitalize()} account created: {profile.id} ({profile.document})")
    audit_request(request, f'{role}_created', 'profile', profile.id, {
        'document': profile.document,
        'email': data['email'],
    })
    return profile, {'email': data['email'], 'password': data['password']}


def resolve_identifier(identifier):
    """
    Map a login identifier to the auth username.

    Identifiers containing ``@`` are emails; anything else is looked up as
    a document number. Returns None when nothing matches.
    """
    identifier = (identifier or '').strip()
    if not identifier:
        return None
    if '@' in identifier:
        user = User.objects.filter(email__iexact=identifier).first()
        return user.get_username() if user else identifier
    profile = Profile.objects.select_related('user').filter(document=identifier).first()
    return profile.user.get_username() if profile else None


# ----------------------------------------------------------------------------
# Cleanup tooling
# ----------------------------------------------------------------------------

def clean_duplicate_profiles(request=None):
    """
    Delete duplicate voter profiles.

    Documents are grouped by canonical form; in each group the most
    recently created profile is kept. Admin and delegate profiles are never
    deleted. Voter links go first, then the auth user (cascading to the
    profile).
    """
    groups = {}
    for profile in Profile.objects.order_by('-created_at'):
        groups.setdefault(canonical_document(profile.document), []).append(profile)

    duplicates = {doc: profiles for doc, profiles in groups.items() if len(profiles) > 1}
    details = []
    deleted = 0

    for document, profiles in duplicates.items():
        kept, rest = profiles[0], profiles[1:]
        deleted_ids = []
        for dup in rest:
            if dup.role in (Profile.Role.ADMIN, Profile.Role.DELEGATE):
                continue
            try:
                Voter.objects.filter(profile=dup).delete()
                User.objects.filter(pk=dup.user_id).delete()
            except DatabaseError as e:
                logger.error(f"Could not delete duplicate profile {dup.id}: {e}")
                continue
            deleted_ids.append(str(dup.id))
        deleted += len(deleted_ids)
        details.append({'document': document, 'kept': str(kept.id), 'deleted': deleted_ids})

    logger.info(f"Duplicate cleanup: {len(duplicates)} document(s), {deleted} profile(s) deleted")
    if deleted:
        audit_request(request, 'duplicates_cleaned', 'profile', None, {
            'duplicates_found': len(duplicates),
            'deleted': deleted,
        })
    return {'duplicates_found': len(duplicates), 'deleted': deleted, 'details': details}


def orphaned_users():
    """Auth users without a profile. Superusers are never reported."""
    return User.objects.filter(profile__isnull=True, is_superuser=False).order_by('date_joined')


def delete_orphaned_users(request=None):
    users = list(orphaned_users())
    deleted = []
    for user in users:
        entry = {"id": user.pk, "email": user.email}
        try:
            user.delete()
        except DatabaseError as e:
            logger.error(f"Could not delete orphaned user {entry['id']}: {e}")
            continue
        deleted.append(entry)

    logger.info(f"Orphaned user cleanup: {len(deleted)} of {len(users)} deleted")
    if deleted:
        audit_request(request, 'orphaned_users_cleaned', 'user', None, {'deleted': len(deleted)})
    return deleted
