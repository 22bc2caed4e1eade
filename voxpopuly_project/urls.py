"""
Main URL Router for VoxPopuly
=============================

Routes incoming HTTP requests to the voting app:
- /api/...  JSON endpoints used by the dashboards (no language prefix)
- /<lang>/  server-rendered pages (login, role dashboards)
"""

from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from django.conf.urls.i18n import i18n_patterns
from django.views.i18n import set_language

urlpatterns = [
    # Django admin panel (operator tooling)
    path('admin/', admin.site.urls),

    path('i18n/setlang/', set_language, name='set_language'),

    # JSON API
    path('api/', include('voting.urls_api')),
]

urlpatterns += i18n_patterns(
    path('', include('voting.urls')),
)

# Serve uploaded candidate photos in development
if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
