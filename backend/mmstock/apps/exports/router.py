from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from mmstock.apps.accounts import models as account_models
from mmstock.apps.inventory.models import MovementTypeEnum
from mmstock.apps.products.models import ProductFormEnum
from mmstock.database import get_read_db
from mmstock.security import get_current_active_user

from . import services

router = APIRouter(
    prefix="/exports",
    tags=["exports"],
    dependencies=[Depends(get_current_active_user)],
)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _filters_for(kind: services.ExportKind, params: dict) -> dict:
    allowed = {
        services.ExportKind.STOCK: ("stone_type", "commercial_name", "idmm", "form", "location_id"),
        services.ExportKind.MOVEMENTS: (
            "date_from",
            "date_to",
            "movement_type",
            "location_id",
            "product_id",
            "include_cancelled",
        ),
        services.ExportKind.PRODUCTS: ("stone_type", "idmm", "form"),
    }[kind]
    return {key: params[key] for key in allowed if params.get(key) is not None}


@router.get("/{kind}")
def export_sheet(
    kind: services.ExportKind,
    stone_type: Optional[str] = None,
    commercial_name: Optional[str] = None,
    idmm: Optional[str] = None,
    form: Optional[ProductFormEnum] = None,
    location_id: Optional[str] = None,
    product_id: Optional[str] = None,
    movement_type: Optional[MovementTypeEnum] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    include_cancelled: bool = False,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    filters = _filters_for(
        kind,
        {
            "stone_type": stone_type,
            "commercial_name": commercial_name,
            "idmm": idmm,
            "form": form,
            "location_id": location_id,
            "product_id": product_id,
            "movement_type": movement_type,
            "date_from": date_from,
            "date_to": date_to,
            "include_cancelled": include_cancelled,
        },
    )
    filename, content = services.build_export(
        db,
        company=current_user.company,
        kind=kind,
        filters=filters,
    )
    return StreamingResponse(
        BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
