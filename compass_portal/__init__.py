"""Compass Portal.

Client-side console for the Compass multi-tenant cloud governance
platform: client and Azure environment onboarding (including OAuth
delegation), assessment creation and result viewing, and account MFA
settings. All authoritative state lives in the Compass backend API.
"""

__version__ = "0.1.0"
__author__ = "Cloud Governance Team"
