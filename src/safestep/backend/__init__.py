"""SafeStep device service: configuration, dispatching, alerts and the HTTP API."""
