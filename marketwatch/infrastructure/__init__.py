"""
Infrastructure layer package.

Contains concrete implementations (adapters) of the ports
defined in the domain layer. This is where the database,
exchange APIs, the LLM service and webhooks live.
"""
