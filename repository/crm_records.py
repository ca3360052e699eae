from __future__ import annotations

from datetime import datetime
from typing import Optional

from shared.db import (
    Company,
    Connection,
    Contact,
    Contract,
    Customer,
    Event,
    Form,
    Invoice,
    Project,
    Proposal,
    StoredFile,
    Task,
    TimeEntry,
    User,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _iso_utc(value: Optional[datetime]) -> Optional[str]:
    if not value:
        return None
    return value.replace(microsecond=0).isoformat() + "Z"


def company_to_dict(company: Company) -> dict:
    return {
        "id": company.id,
        "name": company.name,
        "domain": company.domain,
        "address": company.address,
        "createdBy": company.created_by,
        "createdAt": _iso(company.created_at),
    }


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "companyId": user.company_id,
        "role": user.role,
    }


def contact_to_dict(contact: Contact) -> dict:
    return {
        "id": contact.id,
        "companyId": contact.company_id,
        "name": contact.name,
        "email": contact.email,
        "phone": contact.phone,
        "createdBy": contact.created_by,
        "createdAt": _iso(contact.created_at),
        "updatedAt": _iso(contact.updated_at),
    }


def customer_to_dict(customer: Customer) -> dict:
    return {
        "id": customer.id,
        "companyId": customer.company_id,
        "name": customer.name,
        "domain": customer.domain,
        "industry": customer.industry,
        "address": customer.address,
        "phone": customer.phone,
        "createdBy": customer.created_by,
        "createdAt": _iso(customer.created_at),
        "updatedAt": _iso(customer.updated_at),
    }


def invoice_to_dict(invoice: Invoice) -> dict:
    return {
        "id": invoice.id,
        "companyId": invoice.company_id,
        "customerId": invoice.customer_id,
        "amount": invoice.amount,
        "dueDate": _iso(invoice.due_date),
        "status": invoice.status,
        "description": invoice.description,
        "createdAt": _iso(invoice.created_at),
        "updatedAt": _iso(invoice.updated_at),
    }


def contract_to_dict(contract: Contract) -> dict:
    return {
        "id": contract.id,
        "companyId": contract.company_id,
        "name": contract.name,
        "details": contract.details,
        "startDate": _iso_utc(contract.start_date),
        "endDate": _iso_utc(contract.end_date),
        "value": contract.value,
        "createdBy": contract.created_by,
        "updatedBy": contract.updated_by,
        "createdAt": _iso(contract.created_at),
        "updatedAt": _iso(contract.updated_at),
    }


def proposal_to_dict(proposal: Proposal) -> dict:
    return {
        "id": proposal.id,
        "companyId": proposal.company_id,
        "title": proposal.title,
        "description": proposal.description,
        "amount": proposal.amount,
        "status": proposal.status,
        "createdBy": proposal.created_by,
        "createdAt": _iso(proposal.created_at),
        "updatedAt": _iso(proposal.updated_at),
    }


def project_to_dict(project: Project) -> dict:
    return {
        "id": project.id,
        "companyId": project.company_id,
        "name": project.name,
        "description": project.description,
        "createdBy": project.created_by,
        "createdAt": _iso(project.created_at),
        "updatedAt": _iso(project.updated_at),
    }


def task_to_dict(task: Task) -> dict:
    return {
        "id": task.id,
        "companyId": task.company_id,
        "projectId": task.project_id,
        "title": task.title,
        "description": task.description,
        "dueDate": _iso(task.due_date),
        "status": task.status,
        "assignedTo": task.assigned_to,
        "createdBy": task.created_by,
        "createdAt": _iso(task.created_at),
        "updatedAt": _iso(task.updated_at),
    }


def form_to_dict(form: Form) -> dict:
    return {
        "id": form.id,
        "companyId": form.company_id,
        "name": form.name,
        "data": form.data or {},
        "createdBy": form.created_by,
        "createdAt": _iso(form.created_at),
    }


def connection_to_dict(connection: Connection) -> dict:
    return {
        "id": connection.id,
        "companyId": connection.company_id,
        "name": connection.name,
        "email": connection.email,
        "phone": connection.phone,
        "createdAt": _iso(connection.created_at),
    }


def event_to_dict(event: Event) -> dict:
    return {
        "id": event.id,
        "companyId": event.company_id,
        "title": event.title,
        "description": event.description,
        "start": _iso(event.start),
        "end": _iso(event.end),
        "allDay": bool(event.all_day),
        "createdBy": event.created_by,
        "createdAt": _iso(event.created_at),
        "updatedAt": _iso(event.updated_at),
    }


def file_to_dict(stored: StoredFile) -> dict:
    # Metadata only; content is served by the download route.
    return {
        "id": stored.id,
        "companyId": stored.company_id,
        "userId": stored.user_id,
        "fileName": stored.file_name,
        "fileType": stored.file_type,
        "fileSize": stored.file_size,
        "createdAt": _iso(stored.created_at),
    }


def time_entry_to_dict(entry: TimeEntry) -> dict:
    return {
        "id": entry.id,
        "companyId": entry.company_id,
        "userId": entry.user_id,
        "projectId": entry.project_id,
        "description": entry.description,
        "startTime": _iso_utc(entry.start_time),
        "endTime": _iso_utc(entry.end_time),
        "durationSeconds": entry.duration_seconds,
        "running": entry.end_time is None,
        "createdAt": _iso(entry.created_at),
    }
