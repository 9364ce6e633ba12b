from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import audit
from ..db import get_db
from ..questions import QuestionBank, QuestionError
from .auth import SessionUser, get_current_user, require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/questions", tags=["questions"])

MAX_PAGE = 200


class SearchRequest(BaseModel):
	filters: Dict[str, Any] = {}
	search_query: Optional[str] = None
	sort_by: str = "year"
	sort_order: str = "desc"
	limit: int = 50
	offset: int = 0


class ImportRequest(BaseModel):
	questions: List[Dict[str, Any]] = []


def _years(value: Optional[str]) -> List[int]:
	if not value:
		return []
	try:
		return [int(part) for part in value.split(",") if part.strip()]
	except ValueError:
		raise HTTPException(status_code=400, detail=f"Invalid year: {value}") from None


@router.post("/search")
def search_questions(req: SearchRequest, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	if req.limit < 1 or req.limit > MAX_PAGE or req.offset < 0:
		raise HTTPException(status_code=400, detail=f"limit must be 1-{MAX_PAGE} and offset non-negative")
	try:
		result = QuestionBank(db, user.tenant_id).search(req.filters, req.search_query, req.sort_by, req.sort_order,
			req.limit, req.offset)
	except (QuestionError, ValueError, TypeError) as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from None
	return {"success": True, "data": result}


@router.get("/search")
def browse_questions(random: bool = False, year: Optional[str] = None, subject: Optional[str] = None,
		paper_type: Optional[str] = None, exam_type: Optional[str] = None, q: Optional[str] = None,
		count: Optional[int] = None, limit: int = 50, offset: int = 0,
		user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	filters: Dict[str, Any] = {}
	if year:
		filters["year"] = _years(year)
	if subject:
		filters["subject"] = subject
	if paper_type:
		filters["paper_type"] = paper_type
	if exam_type:
		filters["exam_type"] = exam_type
	size = count or limit
	if size < 1 or size > MAX_PAGE:
		raise HTTPException(status_code=400, detail=f"limit must be 1-{MAX_PAGE}")
	bank = QuestionBank(db, user.tenant_id)
	if random:
		picked = bank.random_questions(size, filters)
		return {"success": True, "data": {"questions": [x.to_dict() for x in picked], "total": len(picked)}}
	return {"success": True, "data": bank.search(filters, q, "relevance" if q else "year", "desc", size, offset)}


async def _parse_payload(request: Request) -> tuple[List[str], List[Dict[str, Any]]]:
	content_type = request.headers.get("content-type", "")
	if content_type.startswith("multipart/form-data"):
		form = await request.form()
		names = [f.filename for f in form.getlist("files") if getattr(f, "filename", None)]
		return names, []
	try:
		body = await request.json()
	except ValueError:
		raise HTTPException(status_code=400, detail="Invalid request body") from None
	if not isinstance(body, dict):
		raise HTTPException(status_code=400, detail="Invalid request body")
	names = [f.get("name", "") for f in body.get("files") or [] if isinstance(f, dict)]
	records = [r for r in body.get("questions") or [] if isinstance(r, dict)]
	return names, records


@router.post("/parse")
async def parse_papers(request: Request, user: SessionUser = Depends(require_permission("content", "create")),
		db: Session = Depends(get_db)):
	names, records = await _parse_payload(request)
	if not names:
		raise HTTPException(status_code=400, detail="No files provided")
	bank = QuestionBank(db, user.tenant_id)
	registered = bank.register_papers(names)
	imported = bank.import_questions(records, registered["papers"])
	audit.log_admin_event(db, audit.AuditActions.DATA_IMPORT, audit.AuditResources.CONTENT, actor=user, request=request,
		details={"files": len(names), "questions": len(imported["questions"])})
	return {
		"success": True,
		"data": {
			"papers": [p.to_dict() for p in registered["papers"]],
			"questions_imported": len(imported["questions"]),
			"parse_log": registered["parse_log"] + imported["parse_log"],
			"stats": bank.stats(),
		},
		"message": f"Processed {len(names)} files",
	}


@router.get("/parse")
def list_papers(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
	bank = QuestionBank(db, user.tenant_id)
	return {"success": True, "data": {"papers": [p.to_dict() for p in bank.papers()], "stats": bank.stats()}}


@router.post("", status_code=201)
def import_questions(req: ImportRequest, request: Request,
		user: SessionUser = Depends(require_permission("content", "create")), db: Session = Depends(get_db)):
	if not req.questions:
		raise HTTPException(status_code=400, detail="Questions array is required")
	result = QuestionBank(db, user.tenant_id).import_questions(req.questions)
	audit.log_admin_event(db, audit.AuditActions.DATA_IMPORT, audit.AuditResources.CONTENT, actor=user, request=request,
		details={"questions": len(result["questions"])})
	return {
		"success": True,
		"data": {
			"imported": len(result["questions"]),
			"questions": [q.to_dict() for q in result["questions"]],
			"parse_log": result["parse_log"],
		},
		"message": f"Imported {len(result['questions'])} questions",
	}
