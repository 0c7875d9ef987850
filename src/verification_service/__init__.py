"""
Verification Service - Policy Verification and Insurer Synchronization Core

Issues collision-free policy numbers, verifies claimed policies against the
records submitted by approved insurers, and keeps locally held policies in
step with each insurer's external system of record.
"""

__version__ = "0.1.0"
