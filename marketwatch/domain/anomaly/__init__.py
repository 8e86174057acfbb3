"""
Anomaly bounded context: domain layer.

- Feature extraction from raw candles and order books
- Layer 1: mechanical filter
- Layer 2: risk scoring engine
- Deterministic fallback assessment
- Alert decision
"""
