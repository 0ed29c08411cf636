"""
KYC Onboarding

This package contains the verification steps for opening a bank account:
- PAN card OCR and PAN number extraction
- Face match between a live capture and the PAN card photo
- Phone verification by one-time code
- The onboarding state machine and its chat assistant
"""

__version__ = "1.0.0"
