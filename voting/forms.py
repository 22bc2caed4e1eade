"""
Django Forms for VoxPopuly
==========================

Validate every write payload of the JSON API (the decoded body is bound
as form data) and render the login page.

- ElectionForm, VotingPointForm, CandidateForm, SlateForm, SlateMemberForm
- AccountForm: delegate / voter account creation
- VoterRowForm: one row of a bulk voter import
- LoginForm: email or document number + password
"""

from django import forms # pyright: ignore[reportMissingModuleSource]
from django.core.exceptions import ValidationError # pyright: ignore[reportMissingModuleSource]
from django.core.validators import RegexValidator # pyright: ignore[reportMissingModuleSource]
from django.utils.translation import gettext_lazy as _ # pyright: ignore[reportMissingModuleSource]

from .models import Candidate, Election, Profile, Slate, SlateMember, VotingPoint

EMAIL_PATTERN = r'^[^\s@]+@[^\s@]+\.[^\s@]+$'

email_validator = RegexValidator(EMAIL_PATTERN, _('Enter a valid email address.'))


def form_error_message(form):
    """Flatten form errors into a single ``field: message`` string."""
    parts = []
    for field, errors in form.errors.items():
        for error in errors:
            parts.append(error if field == '__all__' else f"{field}: {error}")
    return '; '.join(parts)


class ElectionForm(forms.ModelForm):
    """
    Election create/update form.

    Validates:
    - Title (required, max 200 chars)
    - Start date strictly before end date
    """

    class Meta:
        model = Election
        fields = ['title', 'description', 'start_date', 'end_date', 'is_active']

    def clean(self):
        cleaned_data = super().clean()
        start = cleaned_data.get('start_date')
        end = cleaned_data.get('end_date')
        if start and end and start >= end:
            raise ValidationError(_('End date must be after start date.'))
        return cleaned_data


class VotingPointForm(forms.ModelForm):
    """
    Voting point form.

    The delegate must hold the delegate role and must not already run a
    different voting point.
    """

    delegate = forms.ModelChoiceField(
        queryset=Profile.objects.filter(role=Profile.Role.DELEGATE),
        required=False,
        error_messages={'invalid_choice': _('Delegate not found or not a delegate.')},
    )

    class Meta:
        model = VotingPoint
        fields = ['name', 'location', 'delegate']

    def clean_delegate(self):
        delegate = self.cleaned_data.get('delegate')
        if delegate is None:
            return None
        taken = VotingPoint.objects.filter(delegate=delegate)
        if self.instance.pk:
            taken = taken.exclude(pk=self.instance.pk)
        if taken.exists():
            raise ValidationError(_('This delegate is already assigned to another voting point.'))
        return delegate


class CandidateForm(forms.ModelForm):
    class Meta:
        model = Candidate
        fields = ['full_name', 'role', 'photo_url']


class SlateForm(forms.ModelForm):
    class Meta:
        model = Slate
        fields = ['name', 'description']


class SlateMemberForm(forms.ModelForm):
    class Meta:
        model = SlateMember
        fields = ['full_name', 'role', 'photo_url']


class AccountForm(forms.Form):
    """
    Account creation (auth user + profile).

    ``min_password_length`` is 8 for delegates and 6 for voters.
    """

    full_name = forms.CharField(max_length=200)
    document = forms.CharField(max_length=50)
    email = forms.CharField(max_length=254, validators=[email_validator])
    password = forms.CharField(strip=False)

    def __init__(self, *args, min_password_length=6, **kwargs):
        super().__init__(*args, **kwargs)
        self.min_password_length = min_password_length

    def clean_email(self):
        return self.cleaned_data['email'].strip().lower()

    def clean_document(self):
        return self.cleaned_data['document'].strip()

    def clean_password(self):
        password = self.cleaned_data['password']
        if len(password) < self.min_password_length:
            raise ValidationError(
                _('Password must be at least %(n)d characters.') % {'n': self.min_password_length}
            )
        return password


class VoterRowForm(forms.Form):
    """One row of a bulk voter import."""

    full_name = forms.CharField(max_length=200, error_messages={'required': _('Full name is required.')})
    document = forms.CharField(max_length=50, error_messages={'required': _('Document is required.')})
    email = forms.CharField(
        max_length=254,
        validators=[email_validator],
        error_messages={'required': _('Email is required.')},
    )

    def clean_email(self):
        return self.cleaned_data['email'].strip().lower()


class LoginForm(forms.Form):
    identifier = forms.CharField(
        label=_('Email or document number'),
        max_length=254,
        widget=forms.TextInput(attrs={'autofocus': True, 'autocomplete': 'username'}),
    )
    password = forms.CharField(
        label=_('Password or PIN'),
        strip=False,
        widget=forms.PasswordInput(attrs={'autocomplete': 'current-password'}),
    )
