"""Assistant request domain: models, state machine and detectors."""
