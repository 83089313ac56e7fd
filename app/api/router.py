from fastapi import APIRouter
from app.api import attachments

router = APIRouter()
router.include_router(attachments.router, tags=["Attachments"])
