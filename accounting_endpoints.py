import logging
from typing import Any, List, Optional

import azure.functions as func

from function_app import app
from repository.accounting_repo import (
    add_tax_report,
    list_tax_rates,
    list_tax_reports,
    load_brackets,
    replace_tax_rates,
    tax_rate_to_dict,
    tax_report_to_dict,
)
from schemas.fields import NUMBER, FieldSpec, Schema, to_finite_float
from services.crm_rbac import can_manage_tax_brackets, require
from services.tax_service import TaxBracket, calculate_tax, taxable_income
from shared.config import AppSettings
from shared.db import SessionProvider
from shared.errors import InvalidRequest
from shared.http import RequestContext, run_pipeline

logger = logging.getLogger(__name__)

INVALID_ACTION_MESSAGE = "Invalid route or method"

CALCULATE = Schema(
    fields=(
        FieldSpec("taxableIncome", NUMBER, required=True, column="taxable_income", minimum=0),
        FieldSpec("deductions", NUMBER, minimum=0, nullable=False, default=0.0),
    )
)
SUBMIT_REPORT = Schema(
    fields=(
        FieldSpec("period", required=True, min_length=1, max_length=50),
        FieldSpec("taxableIncome", NUMBER, required=True, column="taxable_income", minimum=0),
        FieldSpec("deductions", NUMBER, minimum=0, nullable=False, default=0.0),
    )
)


def _round_money(value: float) -> float:
    return round(value, 2)


def _parse_brackets(raw: Any) -> List[TaxBracket]:
    if not isinstance(raw, list) or not raw:
        raise InvalidRequest("brackets must be a non-empty array")
    errors = []
    brackets: List[TaxBracket] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            errors.append(f"brackets[{index}] must be an object")
            continue
        raw_cap = item.get("bracketCap", item.get("cap"))
        cap = None if raw_cap is None else to_finite_float(raw_cap)
        rate = to_finite_float(item.get("rate"))
        if raw_cap is not None and (cap is None or cap <= 0):
            errors.append(f"brackets[{index}].bracketCap must be a positive number or null")
            continue
        if rate is None or not 0 <= rate <= 1:
            errors.append(f"brackets[{index}].rate must be a number between 0 and 1")
            continue
        brackets.append(TaxBracket(cap=cap, rate=rate))
    if sum(1 for bracket in brackets if bracket.cap is None) > 1:
        errors.append("Only one bracket may be unbounded")
    caps = [bracket.cap for bracket in brackets if bracket.cap is not None]
    if len(caps) != len(set(caps)):
        errors.append("Bracket caps must be unique")
    if errors:
        raise InvalidRequest("; ".join(errors))
    return brackets


def _get_tax_info(ctx: RequestContext) -> func.HttpResponse:
    with ctx.provider.session() as db:
        rates = list_tax_rates(db, ctx.company_id)
        return ctx.json({"taxRates": [tax_rate_to_dict(rate) for rate in rates]})


def _get_tax_reports(ctx: RequestContext) -> func.HttpResponse:
    with ctx.provider.session() as db:
        reports = list_tax_reports(db, ctx.company_id)
        return ctx.json({"taxReports": [tax_report_to_dict(report) for report in reports]})


def _calculate_taxes(ctx: RequestContext) -> func.HttpResponse:
    values = CALCULATE.clean(ctx.body())
    income = taxable_income(values["taxable_income"], values["deductions"])
    with ctx.provider.session() as db:
        brackets = load_brackets(db, ctx.company_id)
    return ctx.json(
        {
            "taxableIncome": values["taxable_income"],
            "deductions": values["deductions"],
            "taxOwed": _round_money(calculate_tax(income, brackets)),
        }
    )


def _submit_tax_report(ctx: RequestContext) -> func.HttpResponse:
    values = SUBMIT_REPORT.clean(ctx.body())
    income = taxable_income(values["taxable_income"], values["deductions"])
    with ctx.provider.transaction() as db:
        # The owed amount is always computed from the tenant's stored brackets.
        tax_owed = _round_money(calculate_tax(income, load_brackets(db, ctx.company_id)))
        report = add_tax_report(
            db,
            company_id=ctx.company_id,
            user_id=ctx.user_id,
            period=values["period"],
            taxable_income=values["taxable_income"],
            deductions=values["deductions"],
            tax_owed=tax_owed,
        )
        payload = tax_report_to_dict(report)
    logger.info("Tax report %s submitted for company %s", payload["id"], ctx.company_id)
    return ctx.json({"reportId": payload["id"], "report": payload}, status_code=201)


def _set_tax_brackets(ctx: RequestContext) -> func.HttpResponse:
    require(can_manage_tax_brackets(ctx.role))
    brackets = _parse_brackets(ctx.body().get("brackets"))
    with ctx.provider.transaction() as db:
        rates = replace_tax_rates(db, ctx.company_id, brackets)
        payload = {"taxRates": [tax_rate_to_dict(rate) for rate in rates]}
    logger.info("Replaced %s tax brackets for company %s", len(brackets), ctx.company_id)
    return ctx.json(payload)


GET_ACTIONS = {"getTaxInfo": _get_tax_info, "getTaxReports": _get_tax_reports}
POST_ACTIONS = {"calculateTaxes": _calculate_taxes, "submitTaxReport": _submit_tax_report}
PUT_ACTIONS = {"setTaxBrackets": _set_tax_brackets}


def _dispatch(actions):
    def _handler(ctx: RequestContext) -> func.HttpResponse:
        action = str(ctx.req.params.get("action") or "").strip()
        handler = actions.get(action)
        if handler is None:
            raise InvalidRequest(INVALID_ACTION_MESSAGE)
        return handler(ctx)

    return _handler


def handle_accounting(
    req: func.HttpRequest,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(
        req,
        handlers={"GET": _dispatch(GET_ACTIONS), "POST": _dispatch(POST_ACTIONS), "PUT": _dispatch(PUT_ACTIONS)},
        provider=provider,
        settings=settings,
        operation="accounting",
    )


@app.function_name(name="Accounting")
@app.route(route="accounting", methods=["GET", "POST", "PUT", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def accounting(req: func.HttpRequest) -> func.HttpResponse:
    return handle_accounting(req)
