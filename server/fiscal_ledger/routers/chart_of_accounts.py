from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from fiscal_ledger.account_defaults import ACCOUNT_ROLES, get_account_defaults, set_account_default
from fiscal_ledger.auth import get_current_user
from fiscal_ledger.chart_of_accounts import schemas
from fiscal_ledger.chart_of_accounts import service
from fiscal_ledger.db import get_db
from fiscal_ledger.models import Account, User

router = APIRouter(prefix="/api", tags=["chart-of-accounts"])


def _serialize_account(account: Account) -> schemas.ChartAccountResponse:
    parent_summary = None
    if account.parent:
        parent_summary = schemas.AccountParentSummary(id=account.parent.id, name=account.parent.name, code=account.parent.code)
    return schemas.ChartAccountResponse(
        id=account.id,
        code=account.code,
        name=account.name,
        type=account.type,
        is_group=account.is_group,
        description=account.description,
        is_active=account.is_active,
        parent_id=account.parent_id,
        parent=parent_summary,
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


@router.get("/chart-of-accounts", response_model=List[schemas.ChartAccountResponse])
def list_chart_of_accounts(
    type: Optional[schemas.AccountType] = None,
    active: Optional[bool] = None,
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    accounts = service.list_accounts(db, current_user.company_id, account_type=type, active=active, q=q)
    return [_serialize_account(account) for account in accounts]


@router.post("/chart-of-accounts", response_model=schemas.ChartAccountResponse, status_code=status.HTTP_201_CREATED)
def create_chart_account(
    payload: schemas.ChartAccountCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    account = service.create_account(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        code=payload.code,
        name=payload.name,
        account_type=payload.type,
        is_group=payload.is_group,
        parent_id=payload.parent_id,
        description=payload.description,
        is_active=payload.is_active,
    )
    db.commit()
    return _serialize_account(service.get_account(db, current_user.company_id, account.id))


@router.get("/chart-of-accounts/{account_id}", response_model=schemas.ChartAccountResponse)
def get_chart_account(account_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _serialize_account(service.get_account(db, current_user.company_id, account_id))


@router.patch("/chart-of-accounts/{account_id}", response_model=schemas.ChartAccountResponse)
def update_chart_account(
    account_id: int,
    payload: schemas.ChartAccountUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service.update_account(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        account_id=account_id,
        data=payload.model_dump(exclude_unset=True),
    )
    db.commit()
    return _serialize_account(service.get_account(db, current_user.company_id, account_id))


@router.delete("/chart-of-accounts/{account_id}", response_model=dict)
def delete_chart_account(account_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    service.delete_account(db, company_id=current_user.company_id, actor_id=current_user.id, account_id=account_id)
    db.commit()
    return {"status": "ok"}


@router.post(
    "/chart-of-accounts/bulk-import",
    response_model=schemas.ChartAccountBulkImportResponse,
    status_code=status.HTTP_201_CREATED,
)
def bulk_import_chart_of_accounts(
    payload: schemas.ChartAccountBulkImportRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    created = service.bulk_import(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        rows=service.parse_import_csv(payload.csv_data),
    )
    db.commit()
    return schemas.ChartAccountBulkImportResponse(
        created_count=len(created),
        accounts=[schemas.ChartAccountBulkImportResult.model_validate(account) for account in created],
    )


@router.post(
    "/chart-of-accounts/import-standard",
    response_model=schemas.ChartAccountBulkImportResponse,
    status_code=status.HTTP_201_CREATED,
)
def import_standard_chart(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    created = service.import_standard_chart(db, company_id=current_user.company_id, actor_id=current_user.id)
    db.commit()
    return schemas.ChartAccountBulkImportResponse(
        created_count=len(created),
        accounts=[schemas.ChartAccountBulkImportResult.model_validate(account) for account in created],
    )


@router.get("/account-defaults", response_model=List[schemas.AccountDefaultResponse])
def list_account_defaults(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    defaults = get_account_defaults(db, current_user.company_id)
    return [schemas.AccountDefaultResponse(role=role, account_id=defaults[role]) for role in ACCOUNT_ROLES]


@router.put("/account-defaults/{role}", response_model=schemas.AccountDefaultResponse)
def update_account_default(
    role: schemas.AccountRole,
    payload: schemas.AccountDefaultUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    default = set_account_default(db, current_user.company_id, role, payload.account_id)
    db.commit()
    return schemas.AccountDefaultResponse(role=default.role, account_id=default.account_id)
