"""CampusCare services.

- safety_service: emergency keyword detection, sentiment and the risk classifier
- crisis_engine: escalation orchestration, case store and the triage API

All services use hash_pii() for student identifiers in logs.
"""
