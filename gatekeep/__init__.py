"""gatekeep: resumable onboarding for the gatekeep governance scanner."""

__version__ = "0.1.0"
