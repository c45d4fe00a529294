"""
Backup export / import endpoints
"""
from datetime import date
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_db, raise_http
from app.application.backup import ImportBackupUseCase, export_backup
from app.application.errors import LedgerValidationError


router = APIRouter(prefix="/api", tags=["backup"])


@router.get("/export/backup.json")
def download_backup(db: Session = Depends(get_db)):
    filename = f"au-jour-le-jour-backup-{date.today().isoformat()}.json"
    return JSONResponse(
        content=export_backup(db),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import/backup")
def upload_backup(payload=Body(default=None), db: Session = Depends(get_db)):
    """Merge a backup into the database (all-or-nothing)"""
    try:
        counts = ImportBackupUseCase(db).execute(payload)
    except LedgerValidationError as e:
        db.rollback()
        raise_http(e)
    db.commit()
    return {"ok": True, "imported": counts}
