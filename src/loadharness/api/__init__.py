from __future__ import annotations

from loadharness.api.app import TriggerBody, create_app

__all__ = ["TriggerBody", "create_app"]
