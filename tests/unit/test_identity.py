"""
Unit tests for distinguished name and slug derivation.

The DN is the store's primary key: its field order and separators must be
stable across runs, and an empty DN must never be produced.
"""

from __future__ import annotations

from cau.domain.identity import derive_identity, slugify
from cau.domain.models import SubjectAttributes
from cau.result import ErrorCode
from tests.assertions import ResultAssertions


class TestSlugify:
    def test_runs_of_punctuation_become_one_hyphen(self) -> None:
        assert slugify("Example Trust, Inc.") == "Example-Trust-Inc-"

    def test_alphanumerics_are_kept(self) -> None:
        assert slugify("GlobalSign2") == "GlobalSign2"


class TestDeriveIdentity:
    def test_fields_in_fixed_order(self) -> None:
        """
        GIVEN a subject with all five fields
        WHEN the identity is derived
        THEN the DN lists CN, OU, O, L, C in that order, joined with ", ".
        """
        subject = SubjectAttributes(
            common_name="Root CA",
            organizational_unit="Trust Services",
            organization="Example",
            locality="Berlin",
            country="DE",
        )

        identity = ResultAssertions.assert_success(derive_identity(subject))

        assert identity.dn == "CN=Root CA, OU=Trust Services, O=Example, L=Berlin, C=DE"
        assert identity.slug == "Root-CA-Trust-Services-Example-Berlin-DE"

    def test_missing_fields_are_skipped(self) -> None:
        subject = SubjectAttributes(organization="Example Trust", country="DE")

        identity = ResultAssertions.assert_success(derive_identity(subject))

        assert identity.dn == "O=Example Trust, C=DE"
        assert identity.slug == "Example-Trust-DE"

    def test_empty_strings_count_as_missing(self) -> None:
        subject = SubjectAttributes(common_name="Root CA", organizational_unit="", country="DE")

        identity = ResultAssertions.assert_success(derive_identity(subject))

        assert identity.dn == "CN=Root CA, C=DE"

    def test_slug_has_no_leading_trailing_or_double_hyphens(self) -> None:
        """
        GIVEN field values starting and ending with punctuation
        WHEN the identity is derived
        THEN the slug has single hyphens only and none at either end.
        """
        subject = SubjectAttributes(common_name="(Root CA)", organization="Example, Inc.")

        identity = ResultAssertions.assert_success(derive_identity(subject))

        assert identity.slug == "Root-CA-Example-Inc"

    def test_derivation_is_deterministic(self) -> None:
        subject = SubjectAttributes(common_name="Root CA", country="DE")

        assert derive_identity(subject) == derive_identity(subject)

    def test_subject_without_dn_fields_is_rejected(self) -> None:
        """
        GIVEN a subject with none of CN, OU, O, L, C
        WHEN the identity is derived
        THEN VALIDATION_ERROR is returned instead of an empty DN.
        """
        result = derive_identity(SubjectAttributes())

        ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "empty distinguished name")

    def test_punctuation_only_subject_is_rejected(self) -> None:
        result = derive_identity(SubjectAttributes(common_name="***"))

        ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "empty slug")
