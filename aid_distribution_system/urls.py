from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include("aid_system.urls")),
]

# Serve static files during development
if settings.DEBUG:
    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)


# Custom error handlers
handler400 = 'aid_system.views.custom_bad_request'
handler403 = 'aid_system.views.custom_permission_denied'
handler404 = 'aid_system.views.custom_page_not_found'
handler500 = 'aid_system.views.custom_server_error'
