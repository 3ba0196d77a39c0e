"""
Appointment Pass Service

Builds signed Apple Wallet passes for appointments and relays PassKit
device registrations and update pushes.
"""

__version__ = "1.0.0"
