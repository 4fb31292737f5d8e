from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from mmstock.apps.accounts import models as account_models
from mmstock.apps.products.models import ProductFormEnum
from mmstock.database import get_db
from mmstock.security import get_current_active_user, require_superadmin

from . import schemas, services, template

router = APIRouter(
    prefix="/imports",
    tags=["imports"],
    dependencies=[Depends(get_current_active_user)],
)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.post("/preview", response_model=schemas.ImportPreview)
async def preview_import(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    """Parse and validate an inventory sheet without writing anything."""
    content = await file.read()
    return services.build_preview(
        db,
        company_id=current_user.company_id,
        content=content,
        filename=file.filename,
    )


@router.post("/execute", response_model=schemas.ImportResult)
async def execute_import(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_superadmin),
):
    content = await file.read()
    result = services.execute_import(
        db,
        company_id=current_user.company_id,
        content=content,
        filename=file.filename,
        actor=current_user,
    )
    db.commit()
    return result


@router.get("/template")
def download_template(
    form: ProductFormEnum = ProductFormEnum.BLOCK,
    include_examples: bool = True,
):
    content = template.build_template(form, include_examples=include_examples)
    filename = template.template_filename(form)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
