"""
URL routing for the JSON API
============================

Mounted under /api/ without a language prefix.
"""

from django.urls import path
from . import views_api

app_name = 'api'

urlpatterns = [
    # Authentication
    path('auth/csrf/', views_api.auth_csrf, name='auth_csrf'),
    path('auth/login/', views_api.auth_login, name='auth_login'),
    path('auth/logout/', views_api.auth_logout, name='auth_logout'),
    path('auth/role/', views_api.auth_role, name='auth_role'),

    # Elections
    path('elections/', views_api.elections, name='elections'),
    path('elections/<uuid:election_id>/', views_api.election_detail, name='election_detail'),
    path('elections/<uuid:election_id>/voting-points/', views_api.election_voting_points, name='election_voting_points'),

    # Voting points
    path('voting-points/<uuid:point_id>/', views_api.voting_point_detail, name='voting_point_detail'),
    path('voting-points/<uuid:point_id>/candidates/', views_api.voting_point_candidates, name='voting_point_candidates'),
    path('voting-points/<uuid:point_id>/slates/', views_api.voting_point_slates, name='voting_point_slates'),
    path('voting-points/<uuid:point_id>/voters/', views_api.voting_point_voters, name='voting_point_voters'),
    path('voting-points/<uuid:point_id>/voters/<uuid:voter_id>/', views_api.voting_point_voter_detail, name='voting_point_voter_detail'),

    # Candidates and slates
    path('candidates/<uuid:candidate_id>/', views_api.candidate_detail, name='candidate_detail'),
    path('slates/<uuid:slate_id>/', views_api.slate_detail, name='slate_detail'),

    # Accounts
    path('delegates/', views_api.delegates, name='delegates'),
    path('voters/', views_api.voters, name='voters'),
    path('voters/bulk/', views_api.voters_bulk, name='voters_bulk'),
    path('users/', views_api.users, name='users'),

    # Admin tools
    path('admin/stats/', views_api.admin_stats, name='admin_stats'),
    path('admin/activity/', views_api.admin_activity, name='admin_activity'),
    path('admin/clean-duplicates/', views_api.admin_clean_duplicates, name='admin_clean_duplicates'),
    path('admin/orphaned-users/', views_api.admin_orphaned_users, name='admin_orphaned_users'),
    path('upload/candidate-photo/', views_api.upload_candidate_photo, name='upload_candidate_photo'),

    # Delegate
    path('delegate/stats/', views_api.delegate_stats, name='delegate_stats'),
    path('delegate/voters/', views_api.delegate_voters, name='delegate_voters'),

    # Voter
    path('voter/voting-info/', views_api.voter_voting_info, name='voter_voting_info'),
    path('voter/history/', views_api.voter_history, name='voter_history'),
    path('voter/vote/', views_api.voter_vote, name='voter_vote'),
]
