"""
MarketWatch: anomaly detection and analysis pipeline for crypto spot markets.

Application package root. This is a modular monolith using
hexagonal architecture (ports & adapters).

Bounded contexts:
    - anomaly: market scanning, mechanical filter, risk scoring,
      qualitative analysis, alert dispatch.

Layers:
    - domain: Pure business logic, entities, ports (ABCs), errors.
    - application: Use cases, DTOs, orchestration.
    - infrastructure: Adapters (DB, exchange, LLM, webhooks) implementing domain ports.
    - interfaces: FastAPI routers, Pydantic schemas.
    - realtime: Background loops (watcher, workers, reaper).
    - shared: Cross-cutting concerns (errors, security, logging).
"""
