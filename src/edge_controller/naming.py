"""CloudFormation naming conventions for declared functions.

Mirrors the names the Serverless Framework gives the resources and outputs
it compiles, so declarations can be matched against a deployed stack.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import ServiceDeclaration


def normalize_name(name: str) -> str:
    """Upper-case the first character, leaving the rest untouched."""
    return name[:1].upper() + name[1:]


def normalize_function_name(function_name: str) -> str:
    """Normalize a function name into a CloudFormation-safe identifier.

    Dashes and underscores are not valid in logical ids, so they are
    spelled out ("my-fn" -> "MyDashfn").
    """
    return normalize_name(function_name.replace("-", "Dash").replace("_", "Underscore"))


@dataclass(frozen=True)
class ServiceNaming:
    """Names derived from one service declaration and stage."""

    service: str
    stage: str
    stack_name_override: str | None = None

    @classmethod
    def from_declaration(
        cls,
        declaration: ServiceDeclaration,
        stage: str | None = None,
        stack_name: str | None = None,
    ) -> ServiceNaming:
        return cls(
            service=declaration.service,
            stage=stage or declaration.provider.stage,
            stack_name_override=stack_name or declaration.provider.stack_name,
        )

    @property
    def stack_name(self) -> str:
        if self.stack_name_override:
            return self.stack_name_override
        return f"{self.service}-{self.stage}"

    def lambda_logical_id(self, function_name: str) -> str:
        return f"{normalize_function_name(function_name)}LambdaFunction"

    def lambda_version_output_logical_id(self, function_name: str) -> str:
        return f"{self.lambda_logical_id(function_name)}QualifiedArn"
