"""
Infrastructure adapters for the anomaly bounded context.

Each adapter implements a domain port (ABC) and connects
to external systems: the job database, Binance, CoinGecko,
the qualitative analysis service, alert webhooks.
"""
