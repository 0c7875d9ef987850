"""Unit tests for structured policy numbering."""

import threading

import pytest

from verification_service.errors import NotFoundError, RetryExhaustedError, ValidationError
from verification_service.models.records import Company
from verification_service.persistence import session_scope
from verification_service.services.numbering import (
    NumberingService,
    company_prefix,
    format_policy_number,
    parse_policy_number,
    type_code,
)
from verification_service.utils.error_codes import ErrorCode


@pytest.fixture
def numbering(session_factory, today):
    return NumberingService(session_factory, today=lambda: today)


class TestPrefix:
    def test_license_number_first_segment(self):
        assert company_prefix(Company(name="Atlantic Life", license_number="ATL-001-2023")) == "ATL"

    def test_license_without_dash_uses_whole_value(self):
        assert company_prefix(Company(name="Atlantic Life", license_number="lic42")) == "LIC42"

    def test_multi_word_name_initials(self):
        assert company_prefix(Company(name="Star Insurance Company")) == "SIC"

    def test_single_word_name_truncated(self):
        assert company_prefix(Company(name="Sanlam")) == "SAN"

    def test_symbols_are_stripped(self):
        assert company_prefix(Company(name="Acme", license_number="#-9")) == "ACM"

    def test_empty_derivation_falls_back(self):
        assert company_prefix(Company(name="&&")) == "POL"


class TestTypeCode:
    def test_simple_type(self):
        assert type_code("auto") == "AUTO"

    def test_underscores_removed(self):
        assert type_code("motor_third_party") == "MOTORTHIRDPARTY"


class TestParse:
    def test_round_trip(self):
        number = format_policy_number("ATL", "AUTO", 2025, 7)
        assert number == "ATL-AUTO-2025-007"

        parsed = parse_policy_number(number, current_year=2025)
        assert parsed.company_prefix == "ATL"
        assert parsed.policy_type == "AUTO"
        assert parsed.year == 2025
        assert parsed.sequence_number == 7

    def test_long_sequence(self):
        assert parse_policy_number("ATL-AUTO-2025-1000", current_year=2025).sequence_number == 1000

    @pytest.mark.parametrize(
        "number",
        [
            "ATL-AUTO-2025",
            "ATL-AUTO-2025-001-X",
            "ATL--2025-001",
            "ATL-AUTO-20X5-001",
            "ATL-AUTO-2025-abc",
            "ATL-AUTO-1999-001",
            "ATL-AUTO-2036-001",
            "ATL-AUTO-2025-000",
            "",
        ],
    )
    def test_rejects_malformed(self, number):
        with pytest.raises(ValidationError) as exc_info:
            parse_policy_number(number, current_year=2025)
        assert exc_info.value.code == ErrorCode.INVALID_POLICY_NUMBER

    def test_upper_year_bound_is_inclusive(self):
        assert parse_policy_number("ATL-AUTO-2035-001", current_year=2025).year == 2035

    def test_validate_wrapper(self, numbering):
        assert numbering.validate("ATL-AUTO-2025-001") is True
        assert numbering.validate("not-a-number") is False


class TestAllocate:
    def test_sequential_numbers(self, numbering, companies, today):
        first = numbering.allocate(companies["approved"], "auto")
        second = numbering.allocate(companies["approved"], "auto")

        assert first.policy_number == "ATL-AUTO-2025-001"
        assert second.policy_number == "ATL-AUTO-2025-002"
        assert second.year == today.year

    def test_sequences_are_independent_per_type_and_year(self, numbering, companies):
        numbering.allocate(companies["approved"], "auto")

        health = numbering.allocate(companies["approved"], "health")
        next_year = numbering.allocate(companies["approved"], "auto", 2026)

        assert health.policy_number == "ATL-HEALTH-2025-001"
        assert next_year.policy_number == "ATL-AUTO-2026-001"

    def test_seeded_from_existing_counter(self, numbering, companies, add_policy):
        add_policy(
            companies["approved"], "ATL-AUTO-2025-007", policy_year=2025, policy_counter=7
        )

        allocated = numbering.allocate(companies["approved"], "auto")

        assert allocated.sequence_number == 8

    def test_existing_number_is_skipped(self, numbering, companies, add_policy):
        # Feed-imported number without a counter occupies the next slot.
        add_policy(companies["approved"], "ATL-AUTO-2025-001")

        allocated = numbering.allocate(companies["approved"], "auto")

        assert allocated.policy_number == "ATL-AUTO-2025-002"

    @pytest.mark.parametrize(
        "role, prefix",
        [("approved", "ATL"), ("manual", "MM"), ("single_word", "SAN")],
    )
    def test_allocated_number_parses_back(self, numbering, session_factory, companies, role, prefix):
        if role == "single_word":
            with session_scope(session_factory) as session:
                company = Company(name="Sanlam", status="approved")
                session.add(company)
                session.flush()
                company_id = company.id
        else:
            company_id = companies[role]

        allocated = numbering.allocate(company_id, "motor_third_party", 2027)
        parsed = numbering.parse(allocated.policy_number)

        assert allocated.company_prefix == prefix
        assert allocated.policy_type == "MOTORTHIRDPARTY"
        assert allocated.sequence_number >= 1
        assert (parsed.company_prefix, parsed.policy_type, parsed.year, parsed.sequence_number) == (
            allocated.company_prefix,
            allocated.policy_type,
            allocated.year,
            allocated.sequence_number,
        )

    def test_unknown_company(self, numbering, companies):
        with pytest.raises(NotFoundError):
            numbering.allocate(9999, "auto")

    def test_unknown_type(self, numbering, companies):
        with pytest.raises(ValidationError):
            numbering.allocate(companies["approved"], "spaceship")

    def test_year_out_of_range(self, numbering, companies):
        with pytest.raises(ValidationError):
            numbering.allocate(companies["approved"], "auto", 1999)

    def test_exhaustion(self, session_factory, companies, today, monkeypatch):
        service = NumberingService(session_factory, max_attempts=3, today=lambda: today)
        monkeypatch.setattr(service, "_number_taken", lambda number: True)

        with pytest.raises(RetryExhaustedError):
            service.allocate(companies["approved"], "auto")

        # Consumed values are not reused.
        monkeypatch.undo()
        assert service.allocate(companies["approved"], "auto").sequence_number == 4

    def test_concurrent_allocations_are_distinct(self, numbering, companies):
        results = []
        errors = []
        lock = threading.Lock()

        def worker():
            try:
                for _ in range(5):
                    allocated = numbering.allocate(companies["approved"], "auto")
                    with lock:
                        results.append(allocated.policy_number)
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert not errors
        assert len(results) == 30
        assert len(set(results)) == 30


class TestStatsAndPreview:
    def test_stats_by_type(self, numbering, companies, add_policy):
        company_id = companies["approved"]
        add_policy(company_id, "ATL-AUTO-2025-002", policy_year=2025, policy_counter=2)
        add_policy(
            company_id, "ATL-AUTO-2025-005", holder_name="Mary Roe", policy_year=2025, policy_counter=5
        )
        add_policy(
            company_id,
            "ATL-LIFE-2025-001",
            policy_type="life",
            policy_year=2025,
            policy_counter=1,
        )
        add_policy(company_id, "ATL-AUTO-2024-009", policy_year=2024, policy_counter=9)

        stats = numbering.stats(company_id, 2025)

        assert stats.total_policies == 3
        assert stats.by_type["auto"].count == 2
        assert stats.by_type["auto"].last_sequence_number == 5
        assert stats.by_type["auto"].next_sequence_number == 6
        assert stats.by_type["life"].next_sequence_number == 2

    def test_preview_does_not_reserve(self, numbering, companies):
        company_id = companies["approved"]
        numbering.allocate(company_id, "auto")

        preview = numbering.next_for_all_types(company_id)
        again = numbering.next_for_all_types(company_id)

        assert preview.next_numbers["auto"].policy_number == "ATL-AUTO-2025-002"
        assert preview.next_numbers["health"].policy_number == "ATL-HEALTH-2025-001"
        assert set(preview.next_numbers) == {"auto", "health", "property", "life", "travel"}
        assert again == preview
        assert numbering.allocate(company_id, "auto").sequence_number == 2

    def test_preview_unknown_company(self, numbering, companies):
        with pytest.raises(NotFoundError):
            numbering.next_for_all_types(9999)
