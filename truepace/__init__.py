"""TruePace training plan mutation engine."""
