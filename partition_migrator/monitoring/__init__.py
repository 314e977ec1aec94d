"""
Monitoring and metrics
"""
from .metrics import Counter, MetricsCollector, OperationMetrics, OperationType
