"""Source adapters: each maps one external data source onto identity fragments."""
