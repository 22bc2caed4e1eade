"""
Page views for VoxPopuly
========================

Server-rendered pages:
- Login (email or document number + password/PIN) and logout
- One landing dashboard per role; ``dashboard/`` sends each user to
  their own, and a dashboard for another role redirects back to it

Everything else the dashboards do goes through the JSON API
(``voting.views_api``).
"""

from functools import wraps
import logging

from django.contrib import messages # pyright: ignore[reportMissingModuleSource]
from django.contrib.auth import authenticate, login, logout # pyright: ignore[reportMissingModuleSource]
from django.contrib.auth.decorators import login_required # pyright: ignore[reportMissingModuleSource]
from django.shortcuts import redirect, render # pyright: ignore[reportMissingModuleSource]
from django.views.decorators.csrf import csrf_protect # pyright: ignore[reportMissingModuleSource]
from django.views.decorators.http import require_http_methods # pyright: ignore[reportMissingModuleSource]

from .accounts import resolve_identifier
from .api import get_profile
from .ballots import voting_info
from .exceptions import NotFound
from .forms import LoginForm
from .models import Profile
from .reports import activity_feed, admin_stats, delegate_stats

logger = logging.getLogger(__name__)

DASHBOARD_BY_ROLE = {
    Profile.Role.ADMIN: 'voting:admin_dashboard',
    Profile.Role.DELEGATE: 'voting:delegate_dashboard',
    Profile.Role.VOTER: 'voting:voter_dashboard',
}


def role_of(user):
    """Role of the signed-in user; accounts without a profile count as voters."""
    profile = get_profile(user)
    return profile.role if profile else Profile.Role.VOTER


def role_required(role):
    """Send users of any other role to their own dashboard."""
    def decorator(view_func):
        @login_required
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            actual = role_of(request.user)
            if actual != role:
                return redirect(DASHBOARD_BY_ROLE[actual])
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator


@require_http_methods(["GET"])
def index(request):
    if request.user.is_authenticated:
        return redirect('voting:dashboard')
    return redirect('voting:login')


@require_http_methods(["GET", "POST"])
@csrf_protect
def login_view(request):
    """
    Sign-in page.

    GET: Display the login form
    POST: Authenticate and redirect to the role dashboard
    """
    if request.user.is_authenticated:
        return redirect('voting:dashboard')

    if request.method == 'POST':
        form = LoginForm(request.POST)
        if form.is_valid():
            username = resolve_identifier(form.cleaned_data['identifier'])
            user = authenticate(
                request,
                username=username,
                password=form.cleaned_data['password'],
            ) if username else None

            if user is not None:
                login(request, user)
                logger.info(f"Page login: user {user.pk}")
                return redirect('voting:dashboard')

            logger.warning(f"Failed page login | IP: {getattr(request, 'client_ip', None)}")
            messages.error(request, 'Invalid credentials.')
    else:
        form = LoginForm()

    return render(request, 'voting/login.html', {'form': form})


@require_http_methods(["POST"])
def logout_view(request):
    """POST only; a plain link cannot sign the user out."""
    logout(request)
    messages.info(request, 'You have been signed out.')
    return redirect('voting:login')


@login_required
@require_http_methods(["GET"])
def dashboard(request):
    return redirect(DASHBOARD_BY_ROLE[role_of(request.user)])


@role_required(Profile.Role.ADMIN)
@require_http_methods(["GET"])
def admin_dashboard(request):
    stats = admin_stats()
    context = {
        'profile': get_profile(request.user),
        'totals': stats['totals'],
        'voting_points': stats['voting_points'],
        'activity': activity_feed(),
    }
    return render(request, 'voting/dashboard_admin.html', context)


@role_required(Profile.Role.DELEGATE)
@require_http_methods(["GET"])
def delegate_dashboard(request):
    profile = get_profile(request.user)
    try:
        stats = delegate_stats(profile)
    except NotFound:
        stats = None
    context = {
        'profile': profile,
        'stats': stats,
    }
    return render(request, 'voting/dashboard_delegate.html', context)


@role_required(Profile.Role.VOTER)
@require_http_methods(["GET"])
def voter_dashboard(request):
    profile = get_profile(request.user)
    context = {
        'profile': profile,
        'info': voting_info(profile),
    }
    return render(request, 'voting/dashboard_voter.html', context)
