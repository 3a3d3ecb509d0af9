from __future__ import annotations

from loadharness.loadgen.client import TransportError, create_client, send_request
from loadharness.loadgen.dispatcher import Dispatcher, MeasurementSink, run_worker

__all__ = [
    "Dispatcher",
    "MeasurementSink",
    "TransportError",
    "create_client",
    "run_worker",
    "send_request",
]
