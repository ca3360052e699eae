from __future__ import annotations

from typing import List, Sequence

from sqlalchemy.orm import Session

from services.tax_service import TaxBracket, sort_brackets
from shared.db import TaxRate, TaxReport


def tax_rate_to_dict(rate: TaxRate) -> dict:
    return {"id": rate.id, "bracketCap": rate.bracket_cap, "rate": rate.rate}


def tax_report_to_dict(report: TaxReport) -> dict:
    return {
        "id": report.id,
        "companyId": report.company_id,
        "userId": report.user_id,
        "period": report.period,
        "taxableIncome": report.taxable_income,
        "deductions": report.deductions,
        "taxOwed": report.tax_owed,
        "submittedAt": report.submitted_at.isoformat() if report.submitted_at else None,
    }


def list_tax_rates(db: Session, company_id: int) -> List[TaxRate]:
    rates = db.query(TaxRate).filter(TaxRate.company_id == company_id).all()
    # Unbounded (NULL) caps sort last.
    return sorted(rates, key=lambda rate: (rate.bracket_cap is None, rate.bracket_cap or 0, rate.id))


def load_brackets(db: Session, company_id: int) -> List[TaxBracket]:
    return sort_brackets(TaxBracket(cap=rate.bracket_cap, rate=rate.rate) for rate in list_tax_rates(db, company_id))


def replace_tax_rates(db: Session, company_id: int, brackets: Sequence[TaxBracket]) -> List[TaxRate]:
    db.query(TaxRate).filter(TaxRate.company_id == company_id).delete(synchronize_session=False)
    rows = [TaxRate(company_id=company_id, bracket_cap=bracket.cap, rate=bracket.rate) for bracket in brackets]
    db.add_all(rows)
    db.flush()
    return list_tax_rates(db, company_id)


def list_tax_reports(db: Session, company_id: int, *, limit: int = 100) -> List[TaxReport]:
    return (
        db.query(TaxReport)
        .filter(TaxReport.company_id == company_id)
        .order_by(TaxReport.submitted_at.desc(), TaxReport.id.desc())
        .limit(limit)
        .all()
    )


def add_tax_report(
    db: Session,
    *,
    company_id: int,
    user_id: int,
    period: str,
    taxable_income: float,
    deductions: float,
    tax_owed: float,
) -> TaxReport:
    report = TaxReport(
        company_id=company_id,
        user_id=user_id,
        period=period,
        taxable_income=taxable_income,
        deductions=deductions,
        tax_owed=tax_owed,
    )
    db.add(report)
    db.flush()
    return report
