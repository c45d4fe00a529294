"""
Action dispatcher - idempotent mutation channel for external clients

Every request carries a client-generated action_id. The first time an id is
seen the action runs and its result is stored next to it in one
transaction; every later request with the same id gets the stored result
back without re-running anything.
"""
import logging
from dataclasses import dataclass
from datetime import date
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.application import action_requests as req
from app.application.errors import LedgerValidationError, NotFoundError
from app.application.instances import (
    MarkPaidUseCase, MarkPendingUseCase, SkipInstanceUseCase, AddPaymentUseCase,
    UndoPaymentUseCase, UpdateInstanceUseCase, serialize_payment,
)
from app.application.month_generator import MonthGenerator
from app.application.settings import SetCashStartUseCase
from app.application.sinking_funds import (
    CreateSinkingFundUseCase, UpdateSinkingFundUseCase, ArchiveSinkingFundUseCase,
    DeleteSinkingFundUseCase, AddSinkingEventUseCase, MarkFundPaidUseCase,
    serialize_fund, serialize_sinking_event,
)
from app.application.templates import (
    CreateTemplateUseCase, UpdateTemplateUseCase, ArchiveTemplateUseCase,
    DeleteTemplateUseCase, serialize_template,
)
from app.infrastructure.db.models import ActionModel

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_ERROR = "error"


class ActionRequestError(LedgerValidationError):
    """Body is missing action_id or type; nothing is recorded"""
    pass


@dataclass(frozen=True)
class ActionOutcome:
    status: str
    result: dict
    replayed: bool = False

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


class ActionDispatcher:
    """
    Usage:
        >>> outcome = ActionDispatcher(db).dispatch({"action_id": "a1", "type": "MARK_PAID", "instance_id": iid})
        >>> outcome.result
        {"ok": True, "instance": {...}}
    """

    def __init__(self, db: Session, today: date | None = None):
        self.db = db
        self.today = today

    def dispatch(self, raw: dict) -> ActionOutcome:
        if not isinstance(raw, dict):
            raise ActionRequestError("Invalid body")
        action_id = str(raw.get("action_id") or "").strip()
        action_type = str(raw.get("type") or "").strip()
        if not action_id:
            raise ActionRequestError("action_id is required")
        if not action_type:
            raise ActionRequestError("type is required")

        stored = self._replay(action_id)
        if stored:
            return stored

        status = STATUS_OK
        try:
            request = req.parse_action({**raw, "action_id": action_id, "type": action_type})
            result = self._execute(request)
        except (LedgerValidationError, NotFoundError) as e:
            self.db.rollback()
            status = STATUS_ERROR
            result = {"ok": False, "error": str(e)}
        except Exception:
            self.db.rollback()
            logger.exception("Action %s (%s) failed", action_id, action_type)
            raise

        self.db.add(ActionModel(
            id=action_id,
            type=action_type,
            payload=raw,
            status=status,
            result=result,
        ))
        try:
            self.db.commit()
        except IntegrityError:
            # Same action_id committed concurrently: the stored one wins
            self.db.rollback()
            stored = self._replay(action_id)
            if stored:
                return stored
            raise

        if status == STATUS_ERROR:
            logger.info("Action %s (%s) rejected: %s", action_id, action_type, result["error"])
        return ActionOutcome(status=status, result=result)

    def _replay(self, action_id: str) -> ActionOutcome | None:
        existing = self.db.get(ActionModel, action_id)
        if not existing:
            return None
        return ActionOutcome(
            status=existing.status,
            result=existing.result or {"ok": existing.status == STATUS_OK},
            replayed=True,
        )

    def _month_or_current(self, year: int | None, month: int | None) -> tuple[int, int]:
        if year and month:
            return year, month
        today = self.today or date.today()
        return today.year, today.month

    def _execute(self, request) -> dict:
        db = self.db

        # Instances
        if isinstance(request, req.MarkPaidAction):
            view = MarkPaidUseCase(db).execute(request.instance_id, request.paid_date)
            return {"ok": True, "instance": view.to_dict()}

        if isinstance(request, req.MarkPendingAction):
            view = MarkPendingUseCase(db).execute(request.instance_id)
            return {"ok": True, "instance": view.to_dict()}

        if isinstance(request, req.SkipInstanceAction):
            view = SkipInstanceUseCase(db).execute(request.instance_id)
            return {"ok": True, "instance": view.to_dict()}

        if isinstance(request, req.AddPaymentAction):
            payment, view = AddPaymentUseCase(db).execute(
                request.instance_id, request.amount, request.paid_date
            )
            return {"ok": True, "payment": serialize_payment(payment), "instance": view.to_dict()}

        if isinstance(request, req.UndoPaymentAction):
            instance_id, view = UndoPaymentUseCase(db).execute(request.payment_id)
            return {
                "ok": True,
                "instance_id": instance_id,
                "instance": view.to_dict() if view else None,
            }

        if isinstance(request, req.UpdateInstanceFieldsAction):
            view = UpdateInstanceUseCase(db).execute(request.instance_id, request.changed_fields())
            return {"ok": True, "instance": view.to_dict()}

        if isinstance(request, req.SetCashStartAction):
            SetCashStartUseCase(db).execute(request.year, request.month, request.cash_start)
            return {"ok": True}

        # Templates
        if isinstance(request, req.CreateTemplateAction):
            year, month = self._month_or_current(request.year, request.month)
            template = CreateTemplateUseCase(db).execute(year, month, **request.template_fields())
            return {"ok": True, "template": serialize_template(template)}

        if isinstance(request, req.UpdateTemplateAction):
            year, month = self._month_or_current(request.year, request.month)
            template = UpdateTemplateUseCase(db).execute(
                request.template_id, year, month, **request.template_fields()
            )
            return {"ok": True, "template": serialize_template(template)}

        if isinstance(request, req.DeleteTemplateAction):
            year, month = self._month_or_current(request.year, request.month)
            DeleteTemplateUseCase(db).execute(request.template_id, year, month)
            return {"ok": True}

        if isinstance(request, req.ArchiveTemplateAction):
            ArchiveTemplateUseCase(db).execute(request.template_id)
            return {"ok": True}

        if isinstance(request, req.ApplyTemplatesAction):
            updated = MonthGenerator(db).apply_templates(request.year, request.month)
            return {"ok": True, "updated": updated}

        if isinstance(request, req.GenerateMonthAction):
            created = MonthGenerator(db).ensure_month(request.year, request.month)
            return {"ok": True, "created": created}

        # Sinking funds
        if isinstance(request, req.CreateFundAction):
            fund = CreateSinkingFundUseCase(db).execute(**request.fund_fields())
            return {"ok": True, "fund": serialize_fund(fund)}

        if isinstance(request, req.UpdateFundAction):
            fund = UpdateSinkingFundUseCase(db).execute(request.fund_id, **request.fund_fields())
            return {"ok": True, "fund": serialize_fund(fund)}

        if isinstance(request, req.ArchiveFundAction):
            ArchiveSinkingFundUseCase(db).execute(request.fund_id)
            return {"ok": True}

        if isinstance(request, req.DeleteFundAction):
            DeleteSinkingFundUseCase(db).execute(request.fund_id)
            return {"ok": True}

        if isinstance(request, req.AddSinkingEventAction):
            event = AddSinkingEventUseCase(db).execute(
                request.fund_id, request.event_type, request.amount, request.event_date, request.note
            )
            return {"ok": True, "event": serialize_sinking_event(event)}

        if isinstance(request, req.MarkFundPaidAction):
            event, fund = MarkFundPaidUseCase(db).execute(request.fund_id, request.amount, request.event_date)
            return {"ok": True, "event": serialize_sinking_event(event), "fund": serialize_fund(fund)}

        raise req.ActionValidationError("Unknown action type")
