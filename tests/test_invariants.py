"""
Tests for the status taxonomy and the transition validator.

missing_fields() is the one gate every write goes through, so most of the
rules about which status a record may hold are proven here.
"""
import pytest

from integration_board.models.enums import RecordStatus
from integration_board.models.records import RecordDraft, to_variant
from integration_board.services.taxonomy import allowed_statuses, default_status, is_rcv, is_status_allowed
from integration_board.services.validation import (
    AGIDESK_TICKET,
    CADASTRO_DATE,
    COMMERCIAL,
    DEVOLUCAO_DATE,
    END_DATE,
    INTEGRATION_TYPE,
    STATUS_NOT_PERMITTED,
    describe_violations,
    is_status_block,
    missing_fields,
)


class TestStatusTaxonomy:
    """Which statuses each service may use."""

    def test_rcv_gets_all_six_statuses_in_order(self):
        assert allowed_statuses("RC-V") == [
            RecordStatus.NOVO,
            RecordStatus.REUNIAO,
            RecordStatus.ANDAMENTO,
            RecordStatus.FINALIZADO,
            RecordStatus.CANCELADO,
            RecordStatus.DEVOLVIDO,
        ]

    def test_other_services_never_see_novo_or_reuniao(self):
        for service in ("SMP", "Frota", "rc", ""):
            statuses = allowed_statuses(service)
            assert RecordStatus.NOVO not in statuses
            assert RecordStatus.REUNIAO not in statuses
            assert len(statuses) == 4

    @pytest.mark.parametrize("name", ["rc-v", " RC-V ", "Rc-V", "RCV"])
    def test_only_the_exact_rcv_name_matches(self, name):
        """Look-alike names are distinct services without NOVO/REUNIAO."""
        assert is_rcv("RC-V")
        assert not is_rcv(name)
        assert RecordStatus.NOVO not in allowed_statuses(name)
        assert missing_fields({}, RecordStatus.REUNIAO, name) == [STATUS_NOT_PERMITTED]

    def test_default_status_is_first_allowed(self):
        assert default_status("RC-V") == RecordStatus.NOVO
        assert default_status("SMP") == RecordStatus.ANDAMENTO

    def test_is_status_allowed(self):
        assert is_status_allowed(RecordStatus.REUNIAO, "RC-V")
        assert not is_status_allowed(RecordStatus.REUNIAO, "SMP")
        assert is_status_allowed("DEVOLVIDO", "SMP")


class TestServiceScopeBlock:
    """NOVO and REUNIAO outside RC-V are blocked whatever the fields hold."""

    @pytest.mark.parametrize("status", [RecordStatus.NOVO, RecordStatus.REUNIAO])
    @pytest.mark.parametrize("record", [
        {},
        {"agidesk_ticket": "AG-1", "cadastro_date": "2024-01-01", "meeting_datetime": "2024-01-02T10:00"},
    ])
    def test_block_regardless_of_fields(self, status, record):
        """The result is the scope block alone, never a field list."""
        result = missing_fields(record, status, "SMP")
        assert result == [STATUS_NOT_PERMITTED]
        assert is_status_block(result)

    def test_block_message_names_the_rule(self):
        message = describe_violations([STATUS_NOT_PERMITTED], RecordStatus.NOVO)
        assert "RC-V" in message


class TestRequiredFields:
    """Required fields per status."""

    def test_novo_with_blank_ticket_reports_only_the_ticket(self):
        """A NOVO record on RC-V with an empty Agidesk ticket is blocked on that field."""
        record = {"status": "NOVO", "agidesk_ticket": "", "cadastro_date": "2024-01-01"}
        result = missing_fields(record, RecordStatus.NOVO, "RC-V")

        assert [d.label for d in result] == ["Chamado Agidesk"]

    @pytest.mark.parametrize("ticket,cadastro,expected", [
        ("AG-1", "2024-01-01", []),
        ("   ", "2024-01-01", [AGIDESK_TICKET]),
        ("AG-1", None, [CADASTRO_DATE]),
        (None, "", [AGIDESK_TICKET, CADASTRO_DATE]),
    ])
    def test_novo_empty_iff_ticket_and_cadastro_filled(self, ticket, cadastro, expected):
        record = {"agidesk_ticket": ticket, "cadastro_date": cadastro}
        assert missing_fields(record, RecordStatus.NOVO, "RC-V") == expected

    @pytest.mark.parametrize("service", ["RC-V", "SMP"])
    @pytest.mark.parametrize("devolucao,commercial,expected", [
        ("2024-02-01", "Carlos", []),
        ("2024-02-01", " ", [COMMERCIAL]),
        ("", "Carlos", [DEVOLUCAO_DATE]),
        (None, None, [DEVOLUCAO_DATE, COMMERCIAL]),
    ])
    def test_devolvido_empty_iff_date_and_commercial_filled(self, service, devolucao, commercial, expected):
        record = {"devolucao_date": devolucao, "commercial": commercial}
        assert missing_fields(record, RecordStatus.DEVOLVIDO, service) == expected

    def test_integration_type_required_only_in_rcv(self):
        record = {"end_date": "2024-02-01"}

        assert missing_fields(record, RecordStatus.FINALIZADO, "RC-V") == [INTEGRATION_TYPE]
        assert missing_fields(record, RecordStatus.FINALIZADO, "SMP") == []

    def test_integration_type_comes_first(self):
        result = missing_fields({}, RecordStatus.CANCELADO, "RC-V")
        assert result == [INTEGRATION_TYPE, END_DATE]

    def test_andamento_outside_rcv_needs_nothing(self):
        assert missing_fields({}, RecordStatus.ANDAMENTO, "SMP") == []

    def test_works_on_objects_as_well_as_mappings(self):
        draft = RecordDraft(end_date="2024-02-01")
        assert missing_fields(draft, RecordStatus.FINALIZADO, "SMP") == []

    def test_message_names_missing_labels(self):
        message = describe_violations([END_DATE], RecordStatus.FINALIZADO)
        assert message == "Para Finalizado: informe Data de Fim."


class TestRecordVariants:
    """A complete draft validates into exactly one status variant."""

    def test_variant_matches_status(self):
        draft = RecordDraft(
            client_name="Acme",
            status=RecordStatus.DEVOLVIDO,
            start_date="2024-01-01",
            devolucao_date="2024-01-10",
            commercial="Carlos",
        )
        variant = to_variant(draft)

        assert type(variant).__name__ == "DevolvidoRecord"
        assert variant.commercial == "Carlos"

    def test_unset_owner_becomes_empty(self):
        """owner may be left empty on any status."""
        draft = RecordDraft(client_name="Acme", status=RecordStatus.ANDAMENTO, start_date="2024-01-01")
        assert draft.owner is None

        assert to_variant(draft).owner == ""

    @pytest.mark.parametrize("bad_date", ["2024-02-30", "2023-02-29", "2024-13-01", "0000-00-00"])
    def test_variant_rejects_impossible_dates(self, bad_date):
        from pydantic import ValidationError

        draft = RecordDraft(
            client_name="Acme", status=RecordStatus.FINALIZADO, start_date="2024-01-01", end_date=bad_date
        )
        with pytest.raises(ValidationError) as exc_info:
            to_variant(draft)
        assert exc_info.value.errors()[0]["loc"][-1] == "end_date"

    def test_variant_accepts_leap_day(self):
        draft = RecordDraft(
            client_name="Acme", status=RecordStatus.FINALIZADO, start_date="2024-01-01", end_date="2024-02-29"
        )
        assert to_variant(draft).end_date == "2024-02-29"

    def test_variant_rejects_missing_required_field(self):
        from pydantic import ValidationError

        draft = RecordDraft(client_name="Acme", status=RecordStatus.FINALIZADO, start_date="2024-01-01")
        with pytest.raises(ValidationError):
            to_variant(draft)

    def test_draft_merge_keeps_only_fields_sent(self):
        base = RecordDraft(client_name="Acme", owner="Ana", status=RecordStatus.ANDAMENTO)
        merged = base.merged(RecordDraft(owner="Bruno"))

        assert merged.owner == "Bruno"
        assert merged.client_name == "Acme"
        assert merged.status == RecordStatus.ANDAMENTO
