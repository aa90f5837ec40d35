"""caseflow - compliance case lifecycle and SLA engine.

Owns the state machines, deadlines, fan-out and roll-up rules for
Data-Subject Requests and Breach Incidents.
"""

__version__ = "0.1.0"
