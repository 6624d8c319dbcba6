"""
Registration Module - Black Box Interface

Purpose: Resolve this installation's identity with the control plane
Interface: RegistrationManager.resolve_identity()
Hidden: Lookup by secret key, registration update payload
"""

from .registration import RegistrationError, RegistrationManager

__all__ = ["RegistrationError", "RegistrationManager"]
