"""AWS API mock for integration testing.

This module provides an in-memory implementation of the CloudFormation and
CloudFront operations the operator uses, so reconciliation can be tested
without AWS connectivity.

Usage:
    from aws_mock import MockEdgeBackend, make_distribution_config

    backend = MockEdgeBackend()
    backend.add_stack("site-dev", outputs={...}, resources={...})
    backend.add_distribution("E123", make_distribution_config())

    reconciler = EdgeAssociationReconciler(backend, naming)
    await reconciler.reconcile()

    assert backend.count("update_distribution") == 1
"""

from .backend import (
    IN_PROGRESS_STATUS,
    MockDistribution,
    MockEdgeBackend,
    MockStack,
    make_behavior,
    make_distribution_config,
)

__all__ = [
    "IN_PROGRESS_STATUS",
    "MockDistribution",
    "MockEdgeBackend",
    "MockStack",
    "make_behavior",
    "make_distribution_config",
]
