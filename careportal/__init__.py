"""
CarePortal

A FastAPI portal for patients, doctors and administrators in front of the
clinic's REST backend: appointment booking and scheduling, medical records
with emergency access, messaging, notifications and invoicing.
"""

__version__ = "1.0.0"
