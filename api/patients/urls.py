from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import PatientScreenViewSet

router = DefaultRouter()
router.register(r'', PatientScreenViewSet, basename='patient-screen')

app_name = 'patients'
urlpatterns = [
    path('', include(router.urls)),
]
