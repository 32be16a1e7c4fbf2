# api/patients/repositories/patient_repository.py
from concurrent.futures import ThreadPoolExecutor

from common.services.api_client import ClinicApiClient


class PatientRepository:
    """
    Acceso al paciente a través de la API externa.
    PATCH reemplaza completos los campos enviados (no hace merge por clave).
    """

    def __init__(self, auth, client=None):
        self.client = client or ClinicApiClient(auth)

    def get_by_id(self, patient_id):
        return self.client.fetch_patient(patient_id)

    def get_appointments(self, patient_id):
        return self.client.fetch_patient_appointments(patient_id)

    def get_with_appointments(self, patient_id):
        """Paciente y turnos en paralelo; si cualquiera falla, falla la carga"""
        with ThreadPoolExecutor(max_workers=2) as executor:
            patient = executor.submit(self.get_by_id, patient_id)
            appointments = executor.submit(self.get_appointments, patient_id)
            return patient.result(), appointments.result()

    def update(self, patient_id, **fields):
        return self.client.update_patient(patient_id, fields)
