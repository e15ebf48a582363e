# Import submodules so receivers register on app ready
from clinic_core.audit.signals import auth  # noqa: F401
