# Database models package
from espelho.models.asset import Asset
from espelho.models.job import Job
from espelho.models.profile import Profile
from espelho.models.auth_session import AuthSession

__all__ = [
    "Asset",
    "Job",
    "Profile",
    "AuthSession",
]
