# backend/clinic_core/patients/apps.py
from __future__ import annotations

from django.apps import AppConfig


class PatientsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "clinic_core.patients"

    def ready(self) -> None:
        from clinic_core.audit.resources import register_resource

        register_resource("Patient", label="Patient", data_type="patient_personal_data")
        register_resource("PatientHistory", label="Patient History", data_type="medical_history_data")
        # Scheduling is a separate service; only the label is owned here.
        register_resource("Appointment", label="Appointment", data_type="appointment_data")
