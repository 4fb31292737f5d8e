from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Path as PathParam, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from mmstock.apps.accounts import models as account_models
from mmstock.apps.accounts import schemas as account_schemas
from mmstock.apps.audit import services as audit_services
from mmstock.apps.products import models as product_models
from mmstock.apps.products import schemas as product_schemas
from mmstock.apps.products import services as product_services
from mmstock.database import get_db
from mmstock.security import get_current_active_user

from . import services

router = APIRouter(
    prefix="/storage",
    tags=["storage"],
    dependencies=[Depends(get_current_active_user)],
)


def _store_product_photo(
    db: Session,
    *,
    current_user: account_models.User,
    product_id: str,
    slot: int,
    file: UploadFile,
    hd: bool,
) -> product_models.Product:
    """Store the photo, record it on the product and commit; the file is removed if the commit fails."""
    product = product_services.get_product(db, company_id=current_user.company_id, product_id=product_id)
    if hd:
        labels = product_models.HD_SLOT_LABELS[product.form]
        if slot > len(labels):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Produtos do tipo {product.form.value} têm apenas {len(labels)} fotos HD.",
            )
    ext = services.normalise_extension(file.filename)
    content = services.read_upload(file)
    bucket = services.Bucket.PRODUCTS_HD if hd else services.Bucket.PRODUCTS
    name, url = services.store_object(
        company_id=current_user.company_id,
        bucket=bucket,
        name_for=lambda ts: services.product_photo_name(product.idmm, slot, ts, ext, hd=hd),
        content=content,
    )

    field = f"photo{slot}_hd_url" if hd else f"photo{slot}_url"
    with services.discard_on_failure(current_user.company_id, bucket, name):
        before = getattr(product, field)
        setattr(product, field, url)
        db.add(product)
        db.flush()
        audit_services.log_event(
            db,
            company_id=current_user.company_id,
            actor=current_user,
            entity_type="produto",
            entity_id=product.id,
            action="editar",
            description=f"Foto {'HD ' if hd else ''}{slot} do produto {product.idmm} atualizada",
            before={field: before},
            after={field: url},
        )
        db.commit()
    return product


@router.post("/products/{product_id}/photos/{slot}", response_model=product_schemas.ProductRead)
def upload_product_photo(
    product_id: str,
    slot: int = PathParam(..., ge=1, le=product_models.MAX_PHOTO_SLOTS),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    product = _store_product_photo(
        db, current_user=current_user, product_id=product_id, slot=slot, file=file, hd=False
    )
    db.refresh(product)
    return product


@router.post("/products/{product_id}/hd-photos/{slot}", response_model=product_schemas.ProductRead)
def upload_product_hd_photo(
    product_id: str,
    slot: int = PathParam(..., ge=1, le=product_models.MAX_PHOTO_SLOTS),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    product = _store_product_photo(
        db, current_user=current_user, product_id=product_id, slot=slot, file=file, hd=True
    )
    db.refresh(product)
    return product


@router.post("/avatar", response_model=account_schemas.UserRead)
def upload_avatar(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    ext = services.normalise_extension(file.filename)
    content = services.read_upload(file)
    name, url = services.store_object(
        company_id=current_user.company_id,
        bucket=services.Bucket.AVATARS,
        name_for=lambda ts: services.avatar_name(current_user.id, ts, ext),
        content=content,
    )
    with services.discard_on_failure(current_user.company_id, services.Bucket.AVATARS, name):
        current_user.avatar_url = url
        db.add(current_user)
        db.commit()
    db.refresh(current_user)
    return current_user


@router.get("/{bucket}/{name}", response_class=FileResponse)
def download_object(
    bucket: services.Bucket,
    name: str,
    current_user: account_models.User = Depends(get_current_active_user),
):
    path = services.resolve_object(current_user.company_id, bucket, name)
    return FileResponse(path)
