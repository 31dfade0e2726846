"""SafeStep session core.

Coordinates two wearable IMU sensors, detects walking, records sensor
streams during walking sessions and uploads hazard reports.

Subpackages:
- sensors: slot state machines, connection coordinator, sensor links
- detection: walking/stationary hysteresis and walking detection
- data_manager: sample protocol, batching, record stores, upload queue
- session: session recorder
- backend: configuration, dispatcher, notifications, HTTP service
"""

__version__ = "1.0.0"
