import unittest

from support import ApiTestCase, add_user, reset_db

from upsc_dashboard.db import SessionLocal
from upsc_dashboard.models import utcnow
from upsc_dashboard.questions import QuestionBank, QuestionError, parse_paper_info


SAMPLE = [
	{
		"id": "q_polity_1",
		"question_text": "Discuss the significance of the basic structure doctrine.",
		"subject": "Polity",
		"topic": "Constitution",
		"year": 2023,
		"exam_type": "Mains",
		"paper_type": "GS-II",
		"difficulty": "Hard",
		"marks": 15,
		"tags": ["judiciary"],
	},
	{
		"id": "q_geo_1",
		"question_text": "Which of the following rivers flows through a rift valley?",
		"subject": "Geography",
		"topic": "Rivers",
		"year": 2021,
		"exam_type": "Prelims",
		"paper_type": "GS-I",
		"difficulty": "Easy",
		"options": ["Narmada", "Godavari", "Krishna", "Kaveri"],
		"correct_answer": "A",
	},
	{
		"id": "q_eco_1",
		"question_text": "Examine the role of monetary policy in controlling inflation.",
		"subject": "Economy",
		"topic": "Monetary Policy",
		"year": 2022,
		"exam_type": "Mains",
		"paper_type": "GS-III",
		"marks": 10,
	},
]


class PaperNameTests(unittest.TestCase):
	def test_mains_paper(self):
		self.assertEqual(parse_paper_info("UPSC-CSM-2023-GS-Paper-II.pdf"),
			{"year": 2023, "exam_type": "Mains", "paper_type": "GS-II"})

	def test_roman_numerals_prefer_longest(self):
		self.assertEqual(parse_paper_info("CSM_2020_Paper IV.pdf")["paper_type"], "GS-IV")
		self.assertEqual(parse_paper_info("CSM_2020_Paper-III.pdf")["paper_type"], "GS-III")

	def test_short_year_and_prelims(self):
		info = parse_paper_info("CSP_19_GenStud_I.pdf")
		self.assertEqual(info, {"year": 2019, "exam_type": "Prelims", "paper_type": "GS-I"})
		self.assertEqual(parse_paper_info("old_98_Pre.pdf")["year"], 1998)

	def test_special_papers(self):
		self.assertEqual(parse_paper_info("Essay-2021-Mains.pdf")["paper_type"], "Essay")
		info = parse_paper_info("csat_2022_Pre.pdf")
		self.assertEqual(info["paper_type"], "CSAT")
		self.assertEqual(info["exam_type"], "Prelims")

	def test_defaults(self):
		self.assertEqual(parse_paper_info("scan.pdf"), {"year": utcnow().year, "exam_type": "Mains", "paper_type": "GS-I"})


class QuestionBankTests(unittest.TestCase):
	def setUp(self):
		reset_db()
		self.db = SessionLocal()
		self.bank = QuestionBank(self.db, "default")
		self.bank.import_questions(SAMPLE)

	def tearDown(self):
		self.db.close()

	def test_filters(self):
		result = self.bank.search({"exam_type": "Mains"})
		self.assertEqual(result["total"], 2)
		self.assertEqual([q["id"] for q in result["questions"]], ["q_polity_1", "q_eco_1"])
		self.assertEqual(self.bank.search({"subject": "geo"})["total"], 1)
		self.assertEqual(self.bank.search({"marks_range": {"min": 12}})["total"], 1)
		self.assertEqual(self.bank.search({"year": [2021, 2022]})["total"], 2)
		self.assertEqual(self.bank.search({"tags": ["judic"]})["total"], 1)

	def test_text_search_ranks_by_relevance(self):
		result = self.bank.search(search_query="policy", sort_by="relevance")
		self.assertEqual([q["id"] for q in result["questions"]], ["q_eco_1"])
		self.assertEqual(result["facets"]["subjects"], {"Economy": 1})

	def test_sorting_and_paging(self):
		result = self.bank.search(sort_by="difficulty", sort_order="asc", limit=1)
		self.assertEqual(result["questions"][0]["id"], "q_geo_1")
		self.assertTrue(result["has_more"])
		with self.assertRaises(QuestionError):
			self.bank.search(sort_by="colour")

	def test_defaults_filled_from_exam_type(self):
		geo = self.bank.search({"subject": "Geography"})["questions"][0]
		self.assertEqual(geo["question_type"], "MCQ")
		self.assertEqual(geo["marks"], 2)
		self.assertEqual(geo["keywords"], ["geography", "rivers"])

	def test_bad_records_are_logged_not_raised(self):
		result = self.bank.import_questions([
			{"question_text": "", "subject": "Polity"},
			{"question_text": "Valid text", "subject": "Polity", "difficulty": "Impossible"},
			{"question_text": "Valid text", "subject": "Polity", "marks": "many"},
			dict(SAMPLE[0]),
		])
		self.assertEqual(result["questions"], [])
		self.assertEqual([entry["status"] for entry in result["parse_log"]], ["warning"] * 4)
		self.assertEqual(self.bank.stats()["total_questions"], 3)

	def test_other_tenants_see_default_bank(self):
		other = QuestionBank(self.db, "tenant_x")
		other.import_questions([{"question_text": "Private question", "subject": "Ethics", "year": 2020}])
		self.assertEqual(other.stats()["total_questions"], 4)
		self.assertEqual(self.bank.stats()["total_questions"], 3)


class QuestionApiTests(ApiTestCase):
	def test_import_and_search(self):
		admin = self.admin()
		resp = admin.post("/api/questions", json={"questions": SAMPLE})
		self.assertEqual(resp.status_code, 201, resp.text)
		self.assertEqual(resp.json()["data"]["imported"], 3)
		self.assertEqual(admin.post("/api/questions", json={"questions": []}).status_code, 400)

		student = self.student()
		resp = student.post("/api/questions/search", json={"filters": {"paper_type": "GS-III"}})
		self.assertEqual(resp.json()["data"]["total"], 1)
		self.assertEqual(student.post("/api/questions/search", json={"limit": 0}).status_code, 400)
		self.assertEqual(student.post("/api/questions/search", json={"sort_by": "colour"}).status_code, 400)

		resp = student.get("/api/questions/search?year=2021,2023")
		self.assertEqual(resp.json()["data"]["total"], 2)
		resp = student.get("/api/questions/search?random=true&count=2")
		self.assertEqual(resp.json()["data"]["total"], 2)
		self.assertEqual(student.get("/api/questions/search?year=abc").status_code, 400)

	def test_students_cannot_import(self):
		self.assertEqual(self.student().post("/api/questions", json={"questions": SAMPLE}).status_code, 403)

	def test_parse_json_files(self):
		add_user("teacher@example.com", role="teacher")
		teacher = self.login("teacher@example.com")
		resp = teacher.post("/api/questions/parse", json={
			"files": [{"name": "UPSC-CSM-2023-GS-Paper-II.pdf"}],
			"questions": [{
				"question_text": "Critically evaluate the anti-defection law.",
				"subject": "Polity",
				"file_name": "UPSC-CSM-2023-GS-Paper-II.pdf",
			}],
		})
		self.assertEqual(resp.status_code, 200, resp.text)
		data = resp.json()["data"]
		self.assertEqual(data["questions_imported"], 1)
		paper = data["papers"][0]
		self.assertEqual(paper["title"], "Mains GS-II 2023")
		self.assertEqual(paper["total_marks"], 250)
		self.assertEqual(data["stats"]["by_paper_type"], {"GS-II": 1})

		listing = teacher.get("/api/questions/parse").json()["data"]
		self.assertEqual(len(listing["papers"]), 1)
		self.assertEqual(listing["papers"][0]["total_questions"], 1)

	def test_parse_multipart_upload(self):
		admin = self.admin()
		resp = admin.post("/api/questions/parse", files=[
			("files", ("CSP_2022_GenStud_I.pdf", b"%PDF-1.4", "application/pdf")),
			("files", ("Essay-2021-Mains.pdf", b"%PDF-1.4", "application/pdf")),
		])
		self.assertEqual(resp.status_code, 200, resp.text)
		types = sorted(p["paper_type"] for p in resp.json()["data"]["papers"])
		self.assertEqual(types, ["Essay", "GS-I"])

	def test_parse_requires_files(self):
		resp = self.admin().post("/api/questions/parse", json={"files": []})
		self.assertEqual(resp.status_code, 400)
		self.assertEqual(resp.json()["error"], "No files provided")


if __name__ == "__main__":
	unittest.main()
