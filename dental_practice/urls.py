# dental_practice/urls.py
from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static

from appointments import views as appointment_views

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('core.urls', namespace='core')),
    path('users/', include('users.urls', namespace='users')),
    path('patients/', include('patients.urls', namespace='patients')),
    path('appointments/', include('appointments.urls', namespace='appointments')),
    path('treatments/', include('treatments.urls', namespace='treatments')),
    path('reports/', include('reports.urls', namespace='reports')),

    # Public online booking endpoint
    path('api/bookings/webhook/', appointment_views.booking_webhook, name='booking_webhook'),
]

if settings.DEBUG:
    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)
