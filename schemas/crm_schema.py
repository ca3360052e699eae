from dataclasses import replace

from schemas.fields import (
    BOOLEAN,
    DATE,
    EMAIL,
    INTEGER,
    NUMBER,
    OBJECT,
    UTC_DATETIME,
    FieldSpec,
    Schema,
    end_not_before_start,
)

INVOICE_STATUSES = ("draft", "sent", "paid", "overdue", "cancelled")
PROPOSAL_STATUSES = ("draft", "sent", "accepted", "rejected")
TASK_STATUSES = ("pending", "todo", "inprogress", "done")


def _partial(schema: Schema) -> Schema:
    """Same fields with nothing required; used for PUT/PATCH bodies."""
    fields = tuple(
        replace(spec, required=False, default=None, nullable=spec.nullable and not spec.required)
        for spec in schema.fields
    )
    return Schema(fields=fields, checks=schema.checks)


CONTACT_CREATE = Schema(
    fields=(
        FieldSpec("name", required=True, min_length=1, max_length=255),
        FieldSpec("email", EMAIL, required=True, max_length=255),
        FieldSpec("phone", max_length=50),
    )
)
CONTACT_UPDATE = _partial(CONTACT_CREATE)

CUSTOMER_CREATE = Schema(
    fields=(
        FieldSpec("name", required=True, min_length=1, max_length=255),
        FieldSpec("domain", max_length=255),
        FieldSpec("industry", max_length=100),
        FieldSpec("address", max_length=500),
        FieldSpec("phone", max_length=50),
    )
)
CUSTOMER_UPDATE = _partial(CUSTOMER_CREATE)

INVOICE_CREATE = Schema(
    fields=(
        FieldSpec("customerId", required=True, column="customer_id", min_length=1, max_length=255),
        FieldSpec("amount", NUMBER, required=True, minimum=0),
        FieldSpec("dueDate", DATE, required=True, column="due_date"),
        FieldSpec("status", required=True, choices=INVOICE_STATUSES),
        FieldSpec("description", max_length=2000),
    )
)
INVOICE_UPDATE = _partial(INVOICE_CREATE)

CONTRACT_CREATE = Schema(
    fields=(
        FieldSpec("name", required=True, min_length=1, max_length=255),
        FieldSpec("details", max_length=10000),
        FieldSpec("startDate", UTC_DATETIME, required=True, column="start_date"),
        FieldSpec("endDate", UTC_DATETIME, required=True, column="end_date"),
        FieldSpec("value", NUMBER, minimum=0),
    ),
    checks=(end_not_before_start("start_date", "end_date", "endDate must not be before startDate"),),
)
CONTRACT_UPDATE = _partial(CONTRACT_CREATE)

PROPOSAL_CREATE = Schema(
    fields=(
        FieldSpec("title", required=True, min_length=1, max_length=255),
        FieldSpec("description", max_length=10000),
        FieldSpec("amount", NUMBER, required=True, minimum=0),
        FieldSpec("status", choices=PROPOSAL_STATUSES, nullable=False, default="draft"),
    )
)
PROPOSAL_UPDATE = _partial(PROPOSAL_CREATE)

PROJECT_CREATE = Schema(
    fields=(
        FieldSpec("name", required=True, min_length=1, max_length=255),
        FieldSpec("description", max_length=5000),
    )
)
PROJECT_UPDATE = _partial(PROJECT_CREATE)

TASK_CREATE = Schema(
    fields=(
        FieldSpec("title", required=True, min_length=1, max_length=255),
        FieldSpec("description", max_length=5000),
        FieldSpec("dueDate", DATE, column="due_date"),
        FieldSpec("status", choices=TASK_STATUSES, nullable=False, default="todo"),
        FieldSpec("assignedTo", INTEGER, column="assigned_to", minimum=1),
        FieldSpec("projectId", INTEGER, column="project_id", minimum=1),
    )
)
TASK_UPDATE = _partial(TASK_CREATE)

FORM_CREATE = Schema(
    fields=(
        FieldSpec("name", required=True, min_length=1, max_length=255),
        FieldSpec("data", OBJECT, required=True),
    )
)

CONNECTION_CREATE = Schema(
    fields=(
        FieldSpec("name", required=True, min_length=1, max_length=255),
        FieldSpec("email", EMAIL, required=True, max_length=255),
        FieldSpec("phone", min_length=7, max_length=20),
    )
)

EVENT_CREATE = Schema(
    fields=(
        FieldSpec("title", required=True, min_length=1, max_length=255),
        FieldSpec("description", max_length=1000),
        FieldSpec("start", DATE, required=True),
        FieldSpec("end", DATE, required=True),
        FieldSpec("allDay", BOOLEAN, column="all_day", nullable=False, default=False),
    ),
    checks=(end_not_before_start("start", "end", "end must not be before start"),),
)
EVENT_UPDATE = _partial(EVENT_CREATE)

TIME_ENTRY_START = Schema(
    fields=(
        FieldSpec("projectId", INTEGER, column="project_id", minimum=1),
        FieldSpec("description", max_length=500),
        FieldSpec("startTime", UTC_DATETIME, column="start_time"),
    )
)
