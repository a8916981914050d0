"""
Unit tests for bundle rendering and per-certificate filenames.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from cau.domain.export import (
    filename_strategy,
    format_timestamp,
    render_bundle,
    render_certificate,
    uuid_filename,
)
from cau.result import ErrorCode
from tests.assertions import ResultAssertions
from tests.conftest import FIXED_NOW, make_record

PEM = "-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"


class TestRenderCertificate:
    def test_comment_block_then_pem(self) -> None:
        record = make_record(dn="CN=Root CA, C=DE", pem=PEM)

        assert render_certificate(record) == (
            "#   DN:      CN=Root CA, C=DE\n"
            "#   Issued:  2020-01-01T00:00:00\n"
            "#   Expires: 2040-01-01T00:00:00\n"
            "\n"
            f"{PEM}\n"
        )

    def test_timestamp_has_second_precision(self) -> None:
        assert format_timestamp(datetime(2024, 5, 1, 10, 0, 7, 999)) == "2024-05-01T10:00:07"


class TestRenderBundle:
    def test_header_counts_certificates(self) -> None:
        bundle = render_bundle([make_record()], FIXED_NOW)

        assert bundle.startswith(
            "##\n"
            "##  Certificate Authority Certificate Bundle\n"
            "##  (certificates: 1, generated: 2024-05-01T10:00:00)\n"
            "##\n"
            "\n"
        )

    def test_certificates_are_ordered_by_dn(self) -> None:
        """
        GIVEN records passed in reverse DN order
        WHEN the bundle is rendered
        THEN they appear in ascending DN order.
        """
        zulu = make_record(dn="CN=Zulu CA", slug="Zulu-CA")
        alpha = make_record(dn="CN=Alpha CA", slug="Alpha-CA")

        bundle = render_bundle([zulu, alpha], FIXED_NOW)

        assert bundle.index("CN=Alpha CA") < bundle.index("CN=Zulu CA")

    def test_empty_store_renders_header_only(self) -> None:
        bundle = render_bundle([], FIXED_NOW)

        assert "(certificates: 0," in bundle
        assert "BEGIN CERTIFICATE" not in bundle


class TestFilenames:
    def test_uuid_filename_is_namespace_v5_of_dn(self) -> None:
        dn = "CN=Root CA, C=DE"

        assert uuid_filename(dn) == str(uuid.uuid5(uuid.NAMESPACE_URL, dn))
        assert uuid.UUID(uuid_filename(dn)).version == 5

    def test_uuid_filename_is_stable(self) -> None:
        assert uuid_filename("CN=Root CA") == uuid_filename("CN=Root CA")
        assert uuid_filename("CN=Root CA") != uuid_filename("CN=Other CA")

    def test_dn_strategy_uses_dn_verbatim(self) -> None:
        naming = ResultAssertions.assert_success(filename_strategy("dn"))

        assert naming("CN=Root CA, C=DE") == "CN=Root CA, C=DE"

    def test_uuid_strategy(self) -> None:
        naming = ResultAssertions.assert_success(filename_strategy("uuid"))

        assert naming is uuid_filename

    def test_unknown_mode_is_rejected(self) -> None:
        result = filename_strategy("sha1")

        ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "sha1")
