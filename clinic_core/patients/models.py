# backend/clinic_core/patients/models.py
import uuid

from django.db import models

from clinic_core.common.models import TimeStampedModel


class Patient(TimeStampedModel):
    """
    Patient directory entry. Patient CRUD lives in the clinic operations
    service; this copy only exists so audit sessions can be resolved to a
    patient identity.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    full_name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    date_of_birth = models.DateField(null=True, blank=True)

    # clinic-local medical record number
    mrn = models.CharField(max_length=64, unique=True)

    class Meta:
        db_table = "patients_patient"
        indexes = [
            models.Index(fields=["full_name"], name="patients_full_name_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.full_name} ({self.mrn})"


class PatientHistory(TimeStampedModel):
    """
    Medical history entry. Accesses to it count as accesses to its patient.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name="history")
    condition = models.CharField(max_length=255)
    notes = models.TextField(blank=True)
    recorded_on = models.DateField(null=True, blank=True)

    class Meta:
        db_table = "patients_patient_history"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.condition} ({self.patient_id})"
