import datetime
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import schemas, crud, models, commission_report
from ..auth import get_current_admin
from ..database import get_db
from ..exceptions import FatalFetchError

router = APIRouter(tags=["Reports"])


@router.get("/reports/commissions", response_model=schemas.CommissionReport)
def read_commission_report(
        start_date: datetime.date,
        end_date: datetime.date,
        db: Session = Depends(get_db),
        admin: models.Profile = Depends(get_current_admin)
):
    """
    Commission owed per booking and per PIC for bookings created between
    start_date and end_date (both inclusive).
    """
    try:
        return commission_report.compute_commissions(db, start_date, end_date)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except FatalFetchError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Commission report is unavailable: {e}"
        )


@router.get("/packages/{package_id}/commissions", response_model=schemas.PackageCommissionRates)
def read_package_commissions(
        package_id: int,
        db: Session = Depends(get_db),
        admin: models.Profile = Depends(get_current_admin)
):
    if crud.get_package(db, package_id=package_id) is None:
        raise HTTPException(status_code=404, detail="Package not found")
    rates = crud.get_package_commissions(db, package_id=package_id)
    return schemas.PackageCommissionRates(**{pic_type.value: amount for pic_type, amount in rates.items()})


@router.put("/packages/{package_id}/commissions", response_model=schemas.PackageCommissionRates)
def update_package_commissions(
        package_id: int,
        rates: schemas.PackageCommissionRates,
        db: Session = Depends(get_db),
        admin: models.Profile = Depends(get_current_admin)
):
    """
    Saves the per-pilgrim commission of all three PIC types for a package.
    """
    if crud.get_package(db, package_id=package_id) is None:
        raise HTTPException(status_code=404, detail="Package not found")
    crud.upsert_package_commissions(
        db,
        package_id=package_id,
        rates={models.PicType(key): amount for key, amount in rates.model_dump().items()},
    )
    return rates
