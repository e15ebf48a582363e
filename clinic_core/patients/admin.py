# backend/clinic_core/patients/admin.py
from django.contrib import admin

from clinic_core.patients.models import Patient, PatientHistory


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ("full_name", "mrn", "email", "created_at")
    search_fields = ("full_name", "mrn", "email")
    readonly_fields = ("created_at", "updated_at")
    ordering = ("full_name",)


@admin.register(PatientHistory)
class PatientHistoryAdmin(admin.ModelAdmin):
    list_display = ("condition", "patient", "recorded_on", "created_at")
    search_fields = ("condition", "patient__full_name", "patient__mrn")
    readonly_fields = ("created_at", "updated_at")
