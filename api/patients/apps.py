from django.apps import AppConfig

class PatientsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'api.patients'
    verbose_name = 'Ficha clínica del paciente'
