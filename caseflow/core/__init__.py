"""Core building blocks shared by every case type: clock, errors, locks, audit."""
