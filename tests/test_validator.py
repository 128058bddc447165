"""Tests for association validation."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from edge_controller.models import (
    VALID_EVENT_TYPES,
    ById,
    ByName,
    EventType,
    FunctionDeclaration,
    PendingAssociation,
)
from edge_controller.naming import ServiceNaming
from edge_controller.validator import (
    AssociationValidationError,
    DuplicateEventType,
    IncompleteDistributionReference,
    InvalidEventType,
    MissingDistributionReference,
    WrongResourceType,
    validate_associations,
)


def functions_from(raw: dict[str, Any]) -> dict[str, FunctionDeclaration]:
    return {name: FunctionDeclaration.model_validate(fn) for name, fn in raw.items()}


@pytest.fixture
def naming() -> ServiceNaming:
    return ServiceNaming(service="site", stage="dev")


@pytest.fixture
def raw_functions() -> dict[str, Any]:
    return {
        "someFn": {
            "handler": "handler.handler",
            "lambdaAtEdge": {
                "distribution": "WebDist",
                "distributionID": "123ABC",
                "eventType": "viewer-request",
            },
        }
    }


@pytest.fixture
def template() -> dict[str, Any]:
    return {"Resources": {"SomeFnLambdaFunction": {"Properties": {}}}}


class TestValidateAssociations:
    """Tests for validate_associations()."""

    def test_no_annex_yields_nothing(self, naming: ServiceNaming, template: dict) -> None:
        """Functions without lambdaAtEdge are ignored."""
        functions = functions_from({"someFn": {"handler": "handler.handler"}})

        assert validate_associations(functions, template, naming) == []

    def test_requires_valid_event_type(
        self, naming: ServiceNaming, raw_functions: dict, template: dict
    ) -> None:
        """An unknown event type is rejected with the offending value."""
        raw_functions["someFn"]["lambdaAtEdge"]["eventType"] = "wrong-event"

        with pytest.raises(InvalidEventType) as exc_info:
            validate_associations(functions_from(raw_functions), template, naming)

        assert exc_info.value.event_type == "wrong-event"
        assert str(exc_info.value).startswith(
            '"wrong-event" is not a valid event type, must be one of'
        )

    @pytest.mark.parametrize("event_type", VALID_EVENT_TYPES)
    def test_accepts_every_event_type(
        self,
        naming: ServiceNaming,
        raw_functions: dict,
        template: dict,
        event_type: str,
    ) -> None:
        """All four CloudFront events validate."""
        raw_functions["someFn"]["lambdaAtEdge"]["eventType"] = event_type

        pending = validate_associations(functions_from(raw_functions), template, naming)

        assert pending[0].event_type == EventType(event_type)

    def test_missing_event_type_rejected(
        self, naming: ServiceNaming, raw_functions: dict, template: dict
    ) -> None:
        """An annex without eventType is invalid."""
        del raw_functions["someFn"]["lambdaAtEdge"]["eventType"]

        with pytest.raises(InvalidEventType):
            validate_associations(functions_from(raw_functions), template, naming)

    def test_requires_valid_distribution(
        self, naming: ServiceNaming, raw_functions: dict, template: dict
    ) -> None:
        """A name missing from the template and no id is rejected."""
        raw_functions["someFn"]["lambdaAtEdge"]["distributionID"] = None
        raw_functions["someFn"]["lambdaAtEdge"]["distribution"] = "not-existing"

        with pytest.raises(MissingDistributionReference) as exc_info:
            validate_associations(functions_from(raw_functions), template, naming)

        assert str(exc_info.value) == (
            'Could not find resource with logical name "not-existing" '
            "or there is no distributionID set"
        )

    def test_requires_distribution_even_with_id(
        self, naming: ServiceNaming, raw_functions: dict, template: dict
    ) -> None:
        """A distribution id alone is incomplete."""
        raw_functions["someFn"]["lambdaAtEdge"]["distribution"] = None

        with pytest.raises(IncompleteDistributionReference) as exc_info:
            validate_associations(functions_from(raw_functions), template, naming)

        assert str(exc_info.value) == 'Distribution ID "123ABC" requires a distribution to be set'

    def test_requires_distribution_resource_type(
        self, naming: ServiceNaming, raw_functions: dict, template: dict
    ) -> None:
        """A named resource must be a CloudFront distribution."""
        raw_functions["someFn"]["lambdaAtEdge"]["distributionID"] = None
        raw_functions["someFn"]["lambdaAtEdge"]["distribution"] = "SomeRes"
        template["Resources"]["SomeRes"] = {"Type": "wrongtype"}

        with pytest.raises(WrongResourceType) as exc_info:
            validate_associations(functions_from(raw_functions), template, naming)

        assert str(exc_info.value) == (
            'Resource with logical name "SomeRes" is not type AWS::CloudFront::Distribution'
        )

    def test_all_errors_are_validation_errors(self) -> None:
        """Every validation failure shares one base class."""
        for error_type in (
            InvalidEventType,
            MissingDistributionReference,
            IncompleteDistributionReference,
            WrongResourceType,
            DuplicateEventType,
        ):
            assert issubclass(error_type, AssociationValidationError)

    def test_rejects_two_functions_on_one_event_type(
        self, naming: ServiceNaming, template: dict
    ) -> None:
        """Only one function may own an event type on a distribution."""
        binding = {"distribution": "Web", "distributionID": "E1", "eventType": "viewer-request"}
        functions = functions_from(
            {
                "fn1": {"lambdaAtEdge": dict(binding)},
                "fn2": {"lambdaAtEdge": dict(binding)},
            }
        )

        with pytest.raises(DuplicateEventType) as exc_info:
            validate_associations(functions, template, naming)

        assert exc_info.value.first_function == "fn1"
        assert exc_info.value.second_function == "fn2"
        assert str(exc_info.value) == (
            'Functions "fn1" and "fn2" are both associated to viewer-request '
            'on distribution "Web"'
        )

    def test_same_event_type_on_different_distributions(
        self, naming: ServiceNaming, template: dict
    ) -> None:
        """One event type may be bound on several distributions."""
        functions = functions_from(
            {
                "fn1": {
                    "lambdaAtEdge": {
                        "distribution": "Web",
                        "distributionID": "E1",
                        "eventType": "viewer-request",
                    }
                },
                "fn2": {
                    "lambdaAtEdge": {
                        "distribution": "Assets",
                        "distributionID": "E2",
                        "eventType": "viewer-request",
                    }
                },
            }
        )

        assert len(validate_associations(functions, template, naming)) == 2

    def test_adds_valid_pending_association(
        self, naming: ServiceNaming, raw_functions: dict, template: dict
    ) -> None:
        """A template distribution yields a by-name reference."""
        raw_functions["someFn"]["lambdaAtEdge"]["distributionID"] = None
        template["Resources"]["WebDist"] = {"Type": "AWS::CloudFront::Distribution"}

        pending = validate_associations(functions_from(raw_functions), template, naming)

        assert pending == [
            PendingAssociation(
                function_logical_id="SomeFnLambdaFunction",
                distribution=ByName(logical_name="WebDist"),
                event_type=EventType.VIEWER_REQUEST,
                version_output_name="SomeFnLambdaFunctionQualifiedArn",
            )
        ]

    def test_accepts_distribution_id_in_place_of_resource(
        self, naming: ServiceNaming, raw_functions: dict, template: dict
    ) -> None:
        """An existing distribution may be referenced by id plus a name."""
        raw_functions["someFn"]["lambdaAtEdge"]["distribution"] = "ExistingWebDist"

        pending = validate_associations(functions_from(raw_functions), template, naming)

        assert pending[0].distribution == ById(
            distribution_id="123ABC", logical_name="ExistingWebDist"
        )
        assert pending[0].distribution_logical_name == "ExistingWebDist"

    def test_preserves_declaration_order(self, naming: ServiceNaming) -> None:
        """Pending associations follow the declaration order."""
        functions = functions_from(
            {
                "second": {
                    "lambdaAtEdge": {
                        "distribution": "A",
                        "distributionID": "E1",
                        "eventType": "origin-request",
                    }
                },
                "plain": {"handler": "h.h"},
                "first": {
                    "lambdaAtEdge": {
                        "distribution": "A",
                        "distributionID": "E1",
                        "eventType": "viewer-request",
                    }
                },
            }
        )

        pending = validate_associations(functions, {"Resources": {}}, naming)

        assert [p.function_logical_id for p in pending] == [
            "SecondLambdaFunction",
            "FirstLambdaFunction",
        ]

    def test_pending_association_is_immutable(
        self, naming: ServiceNaming, raw_functions: dict, template: dict
    ) -> None:
        """Pending associations cannot be mutated once built."""
        pending = validate_associations(functions_from(raw_functions), template, naming)

        with pytest.raises(AttributeError):
            pending[0].event_type = EventType.ORIGIN_RESPONSE  # type: ignore[misc]


class TestEnvironmentStripping:
    """Edge-bound functions lose their environment variables."""

    def test_strips_variables_and_empty_environment(
        self,
        naming: ServiceNaming,
        raw_functions: dict,
        template: dict,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Variables are removed and the empty Environment block dropped."""
        caplog.set_level(logging.INFO)
        template["Resources"]["SomeFnLambdaFunction"]["Properties"]["Environment"] = {
            "Variables": {"A": "1", "B": "2"}
        }

        validate_associations(functions_from(raw_functions), template, naming)

        assert "Environment" not in template["Resources"]["SomeFnLambdaFunction"]["Properties"]
        assert (
            'Removing 2 environment variables from function "SomeFnLambdaFunction" '
            "because Lambda@Edge does not support environment variables"
        ) in caplog.messages

    def test_non_edge_functions_keep_variables(self, naming: ServiceNaming) -> None:
        """Regular functions are left alone."""
        template = {
            "Resources": {
                "PlainLambdaFunction": {
                    "Properties": {"Environment": {"Variables": {"A": "1"}}}
                }
            }
        }

        validate_associations(functions_from({"plain": {"handler": "h.h"}}), template, naming)

        assert template["Resources"]["PlainLambdaFunction"]["Properties"]["Environment"] == {
            "Variables": {"A": "1"}
        }

    def test_no_stripping_when_validation_fails(self, naming: ServiceNaming) -> None:
        """A failed validation leaves the template unchanged."""
        template = {
            "Resources": {
                "GoodLambdaFunction": {
                    "Properties": {"Environment": {"Variables": {"A": "1"}}}
                }
            }
        }
        functions = functions_from(
            {
                "good": {
                    "lambdaAtEdge": {
                        "distribution": "D",
                        "distributionID": "E1",
                        "eventType": "viewer-request",
                    }
                },
                "bad": {"lambdaAtEdge": {"distribution": "D", "eventType": "nope"}},
            }
        )

        with pytest.raises(InvalidEventType):
            validate_associations(functions, template, naming)

        assert "Environment" in template["Resources"]["GoodLambdaFunction"]["Properties"]
