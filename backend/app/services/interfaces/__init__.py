"""
Admission strategies sitting in front of capacity_service.reserve().
"""

from .admission import AdmissionStrategy
from .optimistic_admission import OptimisticAdmission

__all__ = ["AdmissionStrategy", "OptimisticAdmission"]
