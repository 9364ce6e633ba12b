"""Previous year question bank: paper registration, import and search.

Question papers are registered from their file names (the UPSC naming scheme
carries year, exam and paper). Questions arrive as structured records, either
alongside a parse request or through the bulk import endpoint.
"""
from __future__ import annotations
import logging
import random
import re
import time
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from .models import Question, QuestionPaper, make_id, utcnow
from .tenancy import DEFAULT_TENANT_ID

logger = logging.getLogger(__name__)

EXAM_TYPES = ("Prelims", "Mains")
PAPER_TYPES = ("Essay", "GS-I", "GS-II", "GS-III", "GS-IV", "CSAT")
DIFFICULTIES = ("Easy", "Medium", "Hard")
QUESTION_TYPES = ("MCQ", "Descriptive")
SORT_FIELDS = ("year", "difficulty", "marks", "relevance")
DIFFICULTY_ORDER = {"Easy": 1, "Medium": 2, "Hard": 3}

_YEAR_RE = re.compile(r"(20\d{2})")
_SHORT_YEAR_RE = re.compile(r"[^0-9](\d{2})[^0-9]")
# Alternation order matters: IV and III must win over I and II
_PAPER_RE = re.compile(r"(?:PAPER[-_ ]|GenStud_)(IV|III|II|I)(?![IV])", re.IGNORECASE)

MAINS_INSTRUCTIONS = [
	"Answer ALL questions.",
	"All questions carry equal marks.",
	"Word limit should be strictly adhered to.",
	"Any page or portion of the page left blank in the Question-cum-Answer Booklet must be clearly struck off.",
]
PRELIMS_INSTRUCTIONS = [
	"Mark your answers on the OMR sheet.",
	"Each question has four alternatives.",
	"Choose the most appropriate answer.",
	"There is negative marking for wrong answers.",
]


class QuestionError(ValueError):
	pass


def parse_paper_info(file_name: str) -> Dict[str, Any]:
	info: Dict[str, Any] = {"year": utcnow().year, "exam_type": "Mains", "paper_type": "GS-I"}
	match = _YEAR_RE.search(file_name)
	if match:
		info["year"] = int(match.group(1))
	else:
		short = _SHORT_YEAR_RE.search(file_name)
		if short:
			value = int(short.group(1))
			info["year"] = 1900 + value if value > 50 else 2000 + value

	if "CSM" in file_name or "Mains" in file_name:
		info["exam_type"] = "Mains"
	elif "CSP" in file_name or "Pre" in file_name:
		info["exam_type"] = "Prelims"

	if "ESSAY" in file_name.upper():
		info["paper_type"] = "Essay"
	elif "CSAT" in file_name.upper():
		info["paper_type"] = "CSAT"
	else:
		paper = _PAPER_RE.search(file_name)
		if paper:
			info["paper_type"] = f"GS-{paper.group(1).upper()}"
	return info


def _as_list(value: Any) -> List[Any]:
	if value is None or value == "" or value == []:
		return []
	if isinstance(value, (list, tuple, set)):
		return list(value)
	return [value]


def _lower_all(values: Iterable[Any]) -> List[str]:
	return [str(v).lower() for v in values]


def _count_by(questions: Sequence[Question], attr: str) -> Dict[str, int]:
	return dict(Counter(str(getattr(q, attr)) for q in questions))


def question_stats(questions: Sequence[Question]) -> Dict[str, Any]:
	return {
		"total_questions": len(questions),
		"by_year": _count_by(questions, "year"),
		"by_subject": _count_by(questions, "subject"),
		"by_topic": _count_by(questions, "topic"),
		"by_difficulty": _count_by(questions, "difficulty"),
		"by_exam_type": _count_by(questions, "exam_type"),
		"by_paper_type": _count_by(questions, "paper_type"),
		"by_question_type": _count_by(questions, "question_type"),
	}


def apply_filters(questions: Iterable[Question], filters: Dict[str, Any]) -> List[Question]:
	years = {int(y) for y in _as_list(filters.get("year"))}
	exam_types = set(_as_list(filters.get("exam_type")))
	paper_types = set(_as_list(filters.get("paper_type")))
	subjects = _lower_all(_as_list(filters.get("subject")))
	topics = _lower_all(_as_list(filters.get("topic")))
	difficulties = set(_as_list(filters.get("difficulty")))
	question_types = set(_as_list(filters.get("question_type")))
	keywords = _lower_all(_as_list(filters.get("keywords")))
	tags = _lower_all(_as_list(filters.get("tags")))
	marks_range = filters.get("marks_range") or {}

	out = []
	for q in questions:
		if years and q.year not in years:
			continue
		if exam_types and q.exam_type not in exam_types:
			continue
		if paper_types and q.paper_type not in paper_types:
			continue
		if subjects and not any(s in q.subject.lower() for s in subjects):
			continue
		if topics and not any(t in (q.topic or "").lower() for t in topics):
			continue
		if difficulties and q.difficulty not in difficulties:
			continue
		if question_types and q.question_type not in question_types:
			continue
		if keywords and not any(k in qk.lower() for k in keywords for qk in (q.keywords or [])):
			continue
		if tags and not any(t in qt.lower() for t in tags for qt in (q.tags or [])):
			continue
		if marks_range.get("min") is not None and q.marks < marks_range["min"]:
			continue
		if marks_range.get("max") is not None and q.marks > marks_range["max"]:
			continue
		out.append(q)
	return out


def _text_score(q: Question, query: str) -> int:
	score = 0
	if query in q.question_text.lower():
		score += 3
	if query in q.subject.lower():
		score += 2
	if query in (q.topic or "").lower():
		score += 2
	if any(query in k.lower() for k in (q.keywords or [])):
		score += 1
	if any(query in t.lower() for t in (q.tags or [])):
		score += 1
	return score


def sort_questions(questions: List[Question], sort_by: str, sort_order: str,
		scores: Optional[Dict[str, int]] = None) -> List[Question]:
	if sort_by == "marks":
		key = lambda q: q.marks
	elif sort_by == "difficulty":
		key = lambda q: DIFFICULTY_ORDER.get(q.difficulty, 2)
	elif sort_by == "relevance" and scores:
		key = lambda q: (scores.get(q.id, 0), q.year)
	else:
		key = lambda q: q.year
	return sorted(questions, key=key, reverse=sort_order != "asc")


class QuestionBank:
	def __init__(self, db: Session, tenant_id: str) -> None:
		self.db = db
		self.tenant_id = tenant_id or DEFAULT_TENANT_ID

	def _visible(self):
		tenants = {self.tenant_id, DEFAULT_TENANT_ID}
		return self.db.query(Question).filter(Question.tenant_id.in_(tenants))

	def all_questions(self) -> List[Question]:
		return self._visible().all()

	def papers(self) -> List[QuestionPaper]:
		return (
			self.db.query(QuestionPaper)
			.filter(QuestionPaper.tenant_id.in_({self.tenant_id, DEFAULT_TENANT_ID}))
			.order_by(QuestionPaper.year.desc(), QuestionPaper.paper_type)
			.all()
		)

	def search(self, filters: Optional[Dict[str, Any]] = None, search_query: Optional[str] = None,
			sort_by: str = "year", sort_order: str = "desc", limit: int = 50, offset: int = 0) -> Dict[str, Any]:
		if sort_by not in SORT_FIELDS:
			raise QuestionError(f"sort_by must be one of: {', '.join(SORT_FIELDS)}")
		filters = filters or {}
		matched = apply_filters(self.all_questions(), filters)
		scores: Dict[str, int] = {}
		query = (search_query or "").strip().lower()
		if query:
			scores = {q.id: _text_score(q, query) for q in matched}
			matched = [q for q in matched if scores[q.id] > 0]
		matched = sort_questions(matched, sort_by, sort_order, scores)
		total = len(matched)
		page = matched[offset:offset + limit]
		return {
			"questions": [q.to_dict() for q in page],
			"total": total,
			"has_more": offset + limit < total,
			"facets": {
				"years": _count_by(matched, "year"),
				"subjects": _count_by(matched, "subject"),
				"difficulties": _count_by(matched, "difficulty"),
				"exam_types": _count_by(matched, "exam_type"),
				"paper_types": _count_by(matched, "paper_type"),
			},
			"filters": filters,
			"search_query": search_query,
			"sort_by": sort_by,
			"sort_order": sort_order,
		}

	def random_questions(self, count: int = 10, filters: Optional[Dict[str, Any]] = None) -> List[Question]:
		pool = apply_filters(self.all_questions(), filters or {})
		return random.sample(pool, min(count, len(pool)))

	def stats(self) -> Dict[str, Any]:
		return question_stats(self.all_questions())

	def _paper_id(self, year: int, paper_type: str, taken: set) -> str:
		stamp = int(time.time() * 1000)
		while True:
			candidate = f"qp_{year}_{paper_type}_{stamp}"
			if candidate not in taken and self.db.get(QuestionPaper, candidate) is None:
				taken.add(candidate)
				return candidate
			stamp += 1

	def register_papers(self, file_names: Sequence[str]) -> Dict[str, Any]:
		papers: List[QuestionPaper] = []
		parse_log: List[Dict[str, Any]] = []
		taken: set = set()
		for name in file_names:
			if not name or not name.strip():
				parse_log.append(self._log(name or "", "error", "Missing file name"))
				continue
			info = parse_paper_info(name)
			mains = info["exam_type"] == "Mains"
			paper = QuestionPaper(
				id=self._paper_id(info["year"], info["paper_type"], taken),
				tenant_id=self.tenant_id,
				title=f"{info['exam_type']} {info['paper_type']} {info['year']}",
				year=info["year"],
				exam_type=info["exam_type"],
				paper_type=info["paper_type"],
				date=utcnow().date().isoformat(),
				duration=180 if mains else 120,
				total_marks=250 if mains else 200,
				total_questions=0,
				instructions=list(MAINS_INSTRUCTIONS if mains else PRELIMS_INSTRUCTIONS),
				file_name=name,
				parse_status="completed",
			)
			self.db.add(paper)
			papers.append(paper)
			parse_log.append(self._log(name, "success", f"Registered {paper.title}"))
		self.db.commit()
		return {"papers": papers, "parse_log": parse_log}

	def import_questions(self, records: Sequence[Dict[str, Any]], papers: Sequence[QuestionPaper] = ()) -> Dict[str, Any]:
		by_file = {p.file_name: p for p in papers}
		by_id = {p.id: p for p in papers}
		imported: List[Question] = []
		parse_log: List[Dict[str, Any]] = []
		seen: set = set()
		for index, record in enumerate(records, start=1):
			try:
				paper = by_id.get(record.get("paper_id")) or by_file.get(record.get("file_name"))
				question = self._build_question(record, paper)
				if question.id in seen or self.db.get(Question, question.id) is not None:
					raise QuestionError(f"Question {question.id} already exists")
				seen.add(question.id)
			except (ValueError, TypeError) as exc:
				parse_log.append(self._log(record.get("file_name") or f"question {index}", "warning", str(exc)))
				continue
			self.db.add(question)
			imported.append(question)
			if paper is not None:
				paper.total_questions = (paper.total_questions or 0) + 1
		self.db.commit()
		if imported:
			logger.info("imported %d questions into %s", len(imported), self.tenant_id)
		return {"questions": imported, "parse_log": parse_log}

	def _build_question(self, record: Dict[str, Any], paper: Optional[QuestionPaper]) -> Question:
		text = (record.get("question_text") or "").strip()
		subject = (record.get("subject") or "").strip()
		if not text:
			raise QuestionError("Question text is required")
		if not subject:
			raise QuestionError("Subject is required")
		exam_type = record.get("exam_type") or (paper.exam_type if paper else "Mains")
		if exam_type not in EXAM_TYPES:
			raise QuestionError(f"Unknown exam type: {exam_type}")
		difficulty = record.get("difficulty") or "Medium"
		if difficulty not in DIFFICULTIES:
			raise QuestionError(f"Unknown difficulty: {difficulty}")
		question_type = record.get("question_type") or ("MCQ" if exam_type == "Prelims" else "Descriptive")
		if question_type not in QUESTION_TYPES:
			raise QuestionError(f"Unknown question type: {question_type}")
		topic = (record.get("topic") or "").strip()
		keywords = list(record.get("keywords") or [k for k in (subject.lower(), topic.lower()) if k])
		return Question(
			id=record.get("id") or make_id("q"),
			tenant_id=self.tenant_id,
			paper_id=paper.id if paper else record.get("paper_id"),
			question_text=text,
			question_number=record.get("question_number"),
			marks=int(record.get("marks") or (2 if exam_type == "Prelims" else 10)),
			difficulty=difficulty,
			subject=subject,
			topic=topic,
			keywords=keywords,
			year=int(record.get("year") or (paper.year if paper else utcnow().year)),
			exam_type=exam_type,
			paper_type=record.get("paper_type") or (paper.paper_type if paper else "GS-I"),
			question_type=question_type,
			options=record.get("options"),
			correct_answer=record.get("correct_answer"),
			explanation=record.get("explanation"),
			tags=list(record.get("tags") or []),
		)

	@staticmethod
	def _log(file_name: str, status: str, message: str) -> Dict[str, Any]:
		return {
			"id": make_id("log"),
			"file_name": file_name,
			"status": status,
			"message": message,
			"timestamp": utcnow().isoformat(),
		}
