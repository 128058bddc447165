"""Compiled CloudFormation template adjustments for Lambda@Edge.

Lambda@Edge replicas run under a different service principal and write
their logs to region-prefixed log groups, and they may not carry
environment variables. These helpers patch the template accordingly
before it is deployed.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

EXECUTION_ROLE_LOGICAL_ID = "IamRoleLambdaExecution"
LAMBDA_SERVICE_PRINCIPAL = "lambda.amazonaws.com"
EDGE_LAMBDA_SERVICE_PRINCIPAL = "edgelambda.amazonaws.com"

# Replicated functions log to groups named after the edge region, so the
# role may create and use log groups of any name.
EDGE_LOGS_STATEMENT: dict[str, Any] = {
    "Effect": "Allow",
    "Action": [
        "logs:CreateLogGroup",
        "logs:CreateLogStream",
        "logs:PutLogEvents",
        "logs:DescribeLogStreams",
    ],
    "Resource": "arn:aws:logs:*:*:*",
}


def patch_execution_role(template: dict[str, Any]) -> bool:
    """Allow Lambda@Edge to assume the shared Lambda execution role.

    Adds edgelambda.amazonaws.com next to every lambda.amazonaws.com
    principal of the assume-role policy and grants wildcard CloudWatch
    Logs access through the role's first inline policy.

    Args:
        template: Compiled CloudFormation template, modified in place.

    Returns:
        True if the assume-role policy was updated.
    """
    role = template.get("Resources", {}).get(EXECUTION_ROLE_LOGICAL_ID)
    if not role:
        logger.warning(
            "WARNING: no IAM role for Lambda execution found - can not modify assume role policy"
        )
        return False

    properties = role.setdefault("Properties", {})
    statements = properties.get("AssumeRolePolicyDocument", {}).get("Statement", [])

    assume_role_updated = False
    for statement in statements:
        principal = statement.get("Principal") or {}
        services = principal.get("Service")
        if isinstance(services, str):
            services = [services]
            principal["Service"] = services
        if not services:
            continue

        if LAMBDA_SERVICE_PRINCIPAL in services and EDGE_LAMBDA_SERVICE_PRINCIPAL not in services:
            services.append(EDGE_LAMBDA_SERVICE_PRINCIPAL)
            assume_role_updated = True
            logger.info(
                "Updated Lambda assume role policy to allow Lambda@Edge to assume the role"
            )

    policies = properties.get("Policies") or []
    if policies:
        log_statements = policies[0].setdefault("PolicyDocument", {}).setdefault("Statement", [])
        if EDGE_LOGS_STATEMENT not in log_statements:
            log_statements.append(dict(EDGE_LOGS_STATEMENT))

    if not assume_role_updated:
        logger.warning(
            "WARNING: was unable to update the Lambda assume role policy to allow "
            "Lambda@Edge to assume the role"
        )

    return assume_role_updated


def strip_environment(template: dict[str, Any], function_logical_id: str) -> int:
    """Remove environment variables from a function resource.

    Args:
        template: Compiled CloudFormation template, modified in place.
        function_logical_id: Logical id of the AWS::Lambda::Function resource.

    Returns:
        Number of variables removed.
    """
    resource = template.get("Resources", {}).get(function_logical_id) or {}
    properties = resource.get("Properties") or {}
    environment = properties.get("Environment")
    if not environment or "Variables" not in environment:
        return 0

    count = len(environment["Variables"] or {})
    logger.info(
        f'Removing {count} environment variables from function "{function_logical_id}" '
        "because Lambda@Edge does not support environment variables",
        extra={"function": function_logical_id, "variables_removed": count},
    )

    del environment["Variables"]
    if not environment:
        del properties["Environment"]

    return count
