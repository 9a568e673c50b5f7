"""
Database models for ClubSync.
Tenants, club tiers, customers, enrollments and URL-addressed sessions.
"""
from .client import Client
from .club import ClubProgram, ClubStage, ClubEnrollment, EnrollmentHistory
from .customer import Customer, CustomerOrder
from .session import AppSession

__all__ = [
    'Client',
    'ClubProgram',
    'ClubStage',
    'ClubEnrollment',
    'EnrollmentHistory',
    'Customer',
    'CustomerOrder',
    'AppSession',
]
