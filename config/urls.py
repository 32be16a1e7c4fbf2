# config/urls.py
from django.urls import path, include


urlpatterns = [
    # Ficha clínica del paciente
    path('api/patients/', include('api.patients.urls', namespace="patients")),

    # Sesión contra la API externa
    path('api/auth/', include('authentication.urls')),
]
