from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from mmstock.apps.accounts import models as account_models
from mmstock.database import get_db
from mmstock.security import get_current_active_user, require_admin

from . import models, schemas, services

router = APIRouter(
    prefix="/products",
    tags=["products"],
    dependencies=[Depends(get_current_active_user)],
)


@router.get("/", response_model=List[schemas.ProductRead])
def list_products(
    stone_type: Optional[str] = None,
    idmm: Optional[str] = None,
    form: Optional[models.ProductFormEnum] = None,
    active: bool = True,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_products(
        db,
        company_id=current_user.company_id,
        stone_type=stone_type,
        idmm=idmm,
        form=form,
        active=active,
    )


@router.get("/stone-types", response_model=List[str])
def list_stone_types(
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_stone_types(db, company_id=current_user.company_id)


@router.get("/by-idmm/{idmm}", response_model=schemas.ProductRead)
def get_product_by_idmm(
    idmm: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    product = services.get_product_by_idmm(db, company_id=current_user.company_id, idmm=idmm)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Produto não encontrado")
    return product


@router.get("/{product_id}", response_model=schemas.ProductRead)
def get_product(
    product_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.get_product(db, company_id=current_user.company_id, product_id=product_id)


@router.get("/{product_id}/public-link", response_model=schemas.ProductPublicLink)
def get_product_public_link(
    product_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    product = services.get_product(db, company_id=current_user.company_id, product_id=product_id)
    return schemas.ProductPublicLink(idmm=product.idmm, url=services.product_public_url(product.idmm))


@router.get(
    "/{product_id}/qr-code",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}},
)
def get_product_qr_code(
    product_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    product = services.get_product(db, company_id=current_user.company_id, product_id=product_id)
    filename = services.product_qr_filename(product.idmm)
    return Response(
        content=services.product_qr_png(product),
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/", response_model=schemas.ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: schemas.ProductCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    product = services.create_product(
        db,
        company_id=current_user.company_id,
        payload=payload,
        actor=current_user,
    )
    db.commit()
    db.refresh(product)
    return product


@router.patch("/{product_id}", response_model=schemas.ProductRead)
def update_product(
    product_id: str,
    payload: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    product = services.get_product(db, company_id=current_user.company_id, product_id=product_id)
    product = services.update_product(
        db,
        company_id=current_user.company_id,
        product=product,
        payload=payload,
        actor=current_user,
    )
    db.commit()
    db.refresh(product)
    return product


@router.delete("/{product_id}", response_model=schemas.ProductRead)
def deactivate_product(
    product_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    product = services.get_product(db, company_id=current_user.company_id, product_id=product_id)
    product = services.deactivate_product(
        db,
        company_id=current_user.company_id,
        product=product,
        actor=current_user,
    )
    db.commit()
    db.refresh(product)
    return product


@router.post("/{product_id}/reactivate", response_model=schemas.ProductRead)
def reactivate_product(
    product_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    product = services.get_product(db, company_id=current_user.company_id, product_id=product_id)
    product = services.reactivate_product(
        db,
        company_id=current_user.company_id,
        product=product,
        actor=current_user,
    )
    db.commit()
    db.refresh(product)
    return product
