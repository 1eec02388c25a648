"""Primary User Reconciliation Module.

This module keeps each Intune-managed device's primary user in line with
the person who actually signs in on it:
- Collect devices from a directory group or an input file
- Fetch one window of sign-in telemetry for the whole run
- Pick the most frequent signer per device
- Write the primary user only where it differs
- Record one report row per device

Architecture: Clean Architecture with Hexagonal (Ports & Adapters)
"""
