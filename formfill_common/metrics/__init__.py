# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import logging
import os
from typing import Dict, List, Optional

import boto3

logger = logging.getLogger(__name__)

# Initialize clients
_cloudwatch_client = None


def metrics_enabled() -> bool:
    """Metrics are opt-in through FORMFILL_METRICS_ENABLED."""
    return os.environ.get("FORMFILL_METRICS_ENABLED", "false").lower() in ("1", "true", "yes")


def get_cloudwatch_client():
    """
    Get or initialize the CloudWatch client

    Returns:
        boto3 CloudWatch client
    """
    global _cloudwatch_client
    if _cloudwatch_client is None:
        _cloudwatch_client = boto3.client('cloudwatch')
    return _cloudwatch_client


def put_metric(name: str, value: float, unit: str = 'Count',
              dimensions: Optional[List[Dict[str, str]]] = None,
              namespace: Optional[str] = None) -> None:
    """
    Publish a metric to CloudWatch when metrics are enabled

    Args:
        name: The name of the metric
        value: The value of the metric
        unit: The unit of the metric
        dimensions: Optional list of dimensions
        namespace: Optional metric namespace, defaults to environment variable
    """
    if not metrics_enabled():
        logger.debug(f"Metrics disabled, skipping {name}: {value}")
        return

    dimensions = dimensions or []
    if namespace is None:
        namespace = os.environ.get('METRIC_NAMESPACE', 'FORMFILL')

    logger.info(f"Publishing metric {name}: {value}")
    try:
        get_cloudwatch_client().put_metric_data(
            Namespace=namespace,
            MetricData=[{
                'MetricName': name,
                'Value': value,
                'Unit': unit,
                'Dimensions': dimensions
            }]
        )
    except Exception as e:
        # Metrics never fail a document
        logger.error(f"Error publishing metric {name}: {e}")


def record_stage(stage: str, duration_ms: float, is_success: bool = True,
                 error_kind: Optional[str] = None) -> None:
    """
    Publish latency and outcome metrics for one pipeline stage

    Args:
        stage: Stage name, e.g. "Extract" or "Classify"
        duration_ms: Duration in milliseconds
        is_success: Whether the stage succeeded
        error_kind: Optional error kind for failures
    """
    put_metric(f"{stage}Latency", duration_ms, 'Milliseconds')
    if is_success:
        put_metric(f"{stage}Success", 1)
    else:
        put_metric(f"{stage}Failure", 1)
        if error_kind:
            put_metric(f"{stage}Error.{error_kind}", 1)
