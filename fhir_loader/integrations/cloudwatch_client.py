# integrations/cloudwatch_client.py
from typing import Any, Dict, List

from fhir_loader.core.logger import logger
from fhir_loader.services.metrics import CountMetric, Metrics


class CloudWatchMetricsSink:
    """Publishes a job's metrics to CloudWatch, one datum per metric."""

    def __init__(self, cloudwatch_client, namespace: str, service_name: str) -> None:
        if not namespace:
            raise ValueError("METRICS_NAMESPACE is not configured")
        self.client = cloudwatch_client
        self.namespace = namespace
        self.service_name = service_name

    def build_metric_data(self, metrics: Metrics) -> List[Dict[str, Any]]:
        data = []
        for name, metric in metrics.items():
            if isinstance(metric, CountMetric):
                value, unit = metric.count, "Count"
            else:
                value, unit = metric.duration, "Milliseconds"
            data.append({
                "MetricName": name,
                "Value": value,
                "Unit": unit,
                "Timestamp": metric.timestamp,
                "Dimensions": [{"Name": "Service", "Value": self.service_name}],
            })
        return data

    def report_metrics(self, metrics: Metrics) -> None:
        if not metrics:
            return
        metric_data = self.build_metric_data(metrics)
        self.client.put_metric_data(Namespace=self.namespace, MetricData=metric_data)
        logger.debug(f"Reported {len(metric_data)} metrics to {self.namespace}")
