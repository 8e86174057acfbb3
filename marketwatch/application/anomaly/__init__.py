"""Use cases for the anomaly bounded context."""
