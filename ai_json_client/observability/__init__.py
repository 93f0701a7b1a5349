"""Observability: Prometheus metrics for the AI JSON client."""

from ai_json_client.observability.metrics import metrics

__all__ = ["metrics"]
