"""HTTP surface for the plan mutation engine."""
