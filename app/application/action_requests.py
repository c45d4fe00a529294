"""
Typed request bodies for the action channel (POST /api/v1/actions)

The raw JSON body is validated into exactly one of these models by its
"type" field. Loose value checks (amount > 0, due day range, ...) stay in
the use cases so the REST routes and the action channel share one rule set.
"""
from decimal import Decimal
from typing import Annotated, Literal, Union, get_args
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from app.application.errors import LedgerValidationError


class ActionValidationError(LedgerValidationError):
    pass


Month = Annotated[int, Field(ge=1, le=12)]


class ActionBase(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    action_id: str


# === Instances ===

class MarkPaidAction(ActionBase):
    type: Literal["MARK_PAID"]
    instance_id: str
    paid_date: str | None = None


class MarkPendingAction(ActionBase):
    type: Literal["MARK_PENDING"]
    instance_id: str


class SkipInstanceAction(ActionBase):
    type: Literal["SKIP_INSTANCE"]
    instance_id: str


class AddPaymentAction(ActionBase):
    type: Literal["ADD_PAYMENT"]
    instance_id: str
    amount: Decimal | None = None
    paid_date: str | None = None


class UndoPaymentAction(ActionBase):
    type: Literal["UNDO_PAYMENT"]
    payment_id: str


class UpdateInstanceFieldsAction(ActionBase):
    """Only the fields actually sent are applied (model_fields_set)"""
    type: Literal["UPDATE_INSTANCE_FIELDS"]
    instance_id: str
    amount: Decimal | None = None
    name: str | None = None
    name_snapshot: str | None = None
    category: str | None = None
    category_snapshot: str | None = None
    due_date: str | None = None
    status: str | None = None
    paid_date: str | None = None
    note: str | None = None

    def changed_fields(self) -> dict:
        skip = {"action_id", "type", "instance_id"}
        return {k: getattr(self, k) for k in self.model_fields_set if k not in skip}


class SetCashStartAction(ActionBase):
    type: Literal["SET_CASH_START"]
    year: int
    month: Month
    cash_start: Decimal | None = None


# === Templates ===

class TemplateFields(ActionBase):
    name: str | None = None
    category: str | None = None
    amount_default: Decimal | None = None
    due_day: int | None = None
    autopay: bool | None = None
    essential: bool | None = None
    active: bool | None = None
    default_note: str | None = None
    match_payee_key: str | None = None
    match_amount_tolerance: Decimal | None = None
    year: int | None = None
    month: Month | None = None

    def template_fields(self) -> dict:
        return self.model_dump(include={
            "name", "category", "amount_default", "due_day", "autopay", "essential",
            "active", "default_note", "match_payee_key", "match_amount_tolerance",
        })


class CreateTemplateAction(TemplateFields):
    type: Literal["CREATE_TEMPLATE"]


class UpdateTemplateAction(TemplateFields):
    type: Literal["UPDATE_TEMPLATE"]
    template_id: str = Field(validation_alias=AliasChoices("template_id", "id"))


class DeleteTemplateAction(ActionBase):
    type: Literal["DELETE_TEMPLATE"]
    template_id: str = Field(validation_alias=AliasChoices("template_id", "id"))
    year: int | None = None
    month: Month | None = None


class ArchiveTemplateAction(ActionBase):
    type: Literal["ARCHIVE_TEMPLATE"]
    template_id: str = Field(validation_alias=AliasChoices("template_id", "id"))


class ApplyTemplatesAction(ActionBase):
    type: Literal["APPLY_TEMPLATES"]
    year: int
    month: Month


class GenerateMonthAction(ActionBase):
    type: Literal["GENERATE_MONTH"]
    year: int
    month: Month


# === Sinking funds ===

class FundFields(ActionBase):
    name: str | None = None
    category: str | None = None
    target_amount: Decimal | None = None
    due_date: str | None = None
    cadence: str | None = None
    months_per_cycle: int | None = None
    essential: bool | None = None
    active: bool | None = None
    auto_contribute: bool | None = None

    def fund_fields(self) -> dict:
        return self.model_dump(include={
            "name", "category", "target_amount", "due_date", "cadence",
            "months_per_cycle", "essential", "active", "auto_contribute",
        })


class CreateFundAction(FundFields):
    type: Literal["CREATE_FUND"]


class UpdateFundAction(FundFields):
    type: Literal["UPDATE_FUND"]
    fund_id: str = Field(validation_alias=AliasChoices("fund_id", "id"))


class ArchiveFundAction(ActionBase):
    type: Literal["ARCHIVE_FUND"]
    fund_id: str = Field(validation_alias=AliasChoices("fund_id", "id"))


class DeleteFundAction(ActionBase):
    type: Literal["DELETE_FUND"]
    fund_id: str = Field(validation_alias=AliasChoices("fund_id", "id"))


class AddSinkingEventAction(ActionBase):
    type: Literal["ADD_SINKING_EVENT"]
    fund_id: str
    event_type: str | None = None
    amount: Decimal | None = None
    event_date: str | None = None
    note: str | None = None


class MarkFundPaidAction(ActionBase):
    type: Literal["MARK_FUND_PAID"]
    fund_id: str
    amount: Decimal | None = None
    event_date: str | None = None


ACTION_MODELS = (
    MarkPaidAction, MarkPendingAction, SkipInstanceAction, AddPaymentAction,
    UndoPaymentAction, SetCashStartAction, UpdateInstanceFieldsAction,
    CreateTemplateAction, UpdateTemplateAction, DeleteTemplateAction,
    ArchiveTemplateAction, ApplyTemplatesAction,
    CreateFundAction, UpdateFundAction, ArchiveFundAction, DeleteFundAction,
    AddSinkingEventAction, MarkFundPaidAction, GenerateMonthAction,
)

ActionRequest = Annotated[Union[ACTION_MODELS], Field(discriminator="type")]

_adapter = TypeAdapter(ActionRequest)

ACTION_TYPES = frozenset(
    get_args(model.model_fields["type"].annotation)[0] for model in ACTION_MODELS
)


def _format_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error["loc"][1:]) or "body"
    if error["type"] == "missing":
        return f"{field} is required"
    return f"{field}: {error['msg']}"


def parse_action(raw: dict):
    """
    Validate a raw action body into its typed request.

    Raises:
        ActionValidationError: unknown type or malformed fields
    """
    if raw.get("type") not in ACTION_TYPES:
        raise ActionValidationError("Unknown action type")
    try:
        return _adapter.validate_python(raw)
    except ValidationError as e:
        raise ActionValidationError(_format_error(e))
