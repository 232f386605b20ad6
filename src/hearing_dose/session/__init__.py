"""
Session Module
==============

Listening-session lifecycle.

Components:
    - SessionCoordinator: {Idle, Active} state machine with inactivity timer
"""

from hearing_dose.session.coordinator import SessionCoordinator


__all__ = ["SessionCoordinator"]
