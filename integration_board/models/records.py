"""
Typed views of a record's field bag.

RecordDraft is what a form holds while the user is still typing: every field
may be missing. At save time the draft is validated into exactly one
RecordVariant, where each status statically requires its mandatory fields.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, Field, StringConstraints, TypeAdapter

from integration_board.dates import parse_date_only
from integration_board.models.enums import RecordStatus


def _calendar_date(value: str) -> str:
    if parse_date_only(value) is None:
        raise ValueError("not a calendar date")
    return value


NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
DateOnly = Annotated[
    str,
    StringConstraints(strip_whitespace=True, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    AfterValidator(_calendar_date),
]
MeetingTime = Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2})?$")]

RECORD_FIELDS = (
    "client_name",
    "status",
    "owner",
    "notes",
    "agidesk_ticket",
    "cadastro_date",
    "meeting_datetime",
    "integration_type",
    "start_date",
    "end_date",
    "devolucao_date",
    "commercial",
)


class RecordDraft(BaseModel):
    """In-progress form state. Nothing is required until it is saved."""
    client_name: Optional[str] = None
    status: Optional[RecordStatus] = None
    owner: Optional[str] = None
    notes: Optional[str] = None
    agidesk_ticket: Optional[str] = None
    cadastro_date: Optional[str] = None
    meeting_datetime: Optional[str] = None
    integration_type: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    devolucao_date: Optional[str] = None
    commercial: Optional[str] = None

    @classmethod
    def from_record(cls, record) -> "RecordDraft":
        """Seed a draft with the stored values of a record."""
        return cls(**{name: getattr(record, name) for name in RECORD_FIELDS})

    def merged(self, patch: "RecordDraft") -> "RecordDraft":
        """Fields explicitly set on patch win over this draft."""
        data = self.model_dump()
        data.update(patch.model_dump(exclude_unset=True))
        return RecordDraft(**data)


class _VariantBase(BaseModel):
    client_name: NonBlank
    owner: str = ""
    notes: Optional[str] = None
    start_date: DateOnly
    agidesk_ticket: Optional[str] = None
    cadastro_date: Optional[str] = None
    meeting_datetime: Optional[str] = None
    integration_type: Optional[str] = None
    end_date: Optional[str] = None
    devolucao_date: Optional[str] = None
    commercial: Optional[str] = None


class NovoRecord(_VariantBase):
    status: Literal[RecordStatus.NOVO]
    agidesk_ticket: NonBlank
    cadastro_date: DateOnly


class ReuniaoRecord(_VariantBase):
    status: Literal[RecordStatus.REUNIAO]
    meeting_datetime: MeetingTime


class AndamentoRecord(_VariantBase):
    status: Literal[RecordStatus.ANDAMENTO]


class FinalizadoRecord(_VariantBase):
    status: Literal[RecordStatus.FINALIZADO]
    end_date: DateOnly


class CanceladoRecord(_VariantBase):
    status: Literal[RecordStatus.CANCELADO]
    end_date: DateOnly


class DevolvidoRecord(_VariantBase):
    status: Literal[RecordStatus.DEVOLVIDO]
    devolucao_date: DateOnly
    commercial: NonBlank


RecordVariant = Annotated[
    Union[NovoRecord, ReuniaoRecord, AndamentoRecord, FinalizadoRecord, CanceladoRecord, DevolvidoRecord],
    Field(discriminator="status"),
]

_variant_adapter = TypeAdapter(RecordVariant)


def to_variant(draft: RecordDraft):
    """Validate a complete draft into its status variant. Raises pydantic.ValidationError."""
    # Unset fields take the variant's defaults (owner becomes "")
    return _variant_adapter.validate_python(draft.model_dump(exclude_none=True))
