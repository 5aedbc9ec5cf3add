from talentsift.db.repositories import Repository
from talentsift.db.session import SessionLocal


def test_resolve_job_by_internal_or_external_id() -> None:
    with SessionLocal() as db:
        repo = Repository(db)
        job = repo.create_job(title="Backend Engineer", external_id="ext-77", job_code="BE-1")

        assert repo.resolve_job(job.id).id == job.id
        assert repo.resolve_job(str(job.id)).id == job.id
        assert repo.resolve_job("ext-77").id == job.id
        assert repo.resolve_job("missing") is None


def test_upsert_applicant_never_blanks_contact_or_regresses_status() -> None:
    with SessionLocal() as db:
        repo = Repository(db)
        job = repo.create_job(title="Backend Engineer", external_id="ext-1")
        applicant = repo.upsert_applicant(
            job_id=job.id, external_id="A1", name="Jane Doe", email="jane@example.com", phone="555"
        )
        assert applicant.status == "imported"
        repo.set_applicant_status(applicant.id, "ranked")

        updated = repo.upsert_applicant(job_id=job.id, external_id="A1", name="Jane Q. Doe", email="", phone="")

        assert updated.id == applicant.id
        assert updated.name == "Jane Q. Doe"
        assert updated.email == "jane@example.com"
        assert updated.phone == "555"
        assert updated.status == "ranked"
        assert repo.set_applicant_status(applicant.id, "parsed").status == "ranked"


def test_submission_is_rekeyed_for_the_same_applicant() -> None:
    with SessionLocal() as db:
        repo = Repository(db)
        job = repo.create_job(title="Backend Engineer", external_id="ext-1")
        applicant = repo.upsert_applicant(job_id=job.id, external_id="A1", name="Jane Doe")

        first = repo.upsert_submission(
            external_id="S1", applicant_id=applicant.id, job_id=job.id, values={"modified": "2026-01-01 10:00:00"}
        )
        second = repo.upsert_submission(
            external_id="S2", applicant_id=applicant.id, job_id=job.id, values={"modified": "2026-02-01 10:00:00"}
        )

        assert second.id == first.id
        assert second.external_id == "S2"
        assert repo.get_submission_by_external_id("S1") is None
        assert repo.latest_submission_modified(job.id) == "2026-02-01 10:00:00"


def test_backlog_lists_submissions_without_parsed_profile() -> None:
    with SessionLocal() as db:
        repo = Repository(db)
        job = repo.create_job(title="Backend Engineer", external_id="ext-1")
        parsed = repo.upsert_applicant(job_id=job.id, external_id="A1", name="Parsed")
        pending = repo.upsert_applicant(job_id=job.id, external_id="A2", name="Pending")
        for index, applicant in enumerate((parsed, pending), start=1):
            repo.upsert_submission(external_id=f"S{index}", applicant_id=applicant.id, job_id=job.id, values={})
        repo.upsert_parsed_profile(applicant_id=parsed.id, profile_json={"markdown": "# P"}, skills=[], titles=[])

        backlog = repo.list_backlog_submissions(job.id)

        assert [(submission.external_id, applicant.external_id) for submission, applicant in backlog] == [("S2", "A2")]


def test_counters_increment_and_lists_append() -> None:
    with SessionLocal() as db:
        repo = Repository(db)
        job = repo.create_job(title="Backend Engineer", external_id="ext-1")
        run = repo.create_processing_job(job_id=job.id, job_code="BE", parsing_mode="none", total_submissions=3)

        repo.increment_processing_counters(run.id, {"processed_count": 1, "total_cost": 0.003})
        repo.increment_processing_counters(run.id, {"processed_count": 1, "error_count": 1, "total_cost": 0.003})
        repo.append_processing_lists(run.id, {"errors": ["first"], "failed_applicants": ["Jane"]})
        repo.append_processing_lists(run.id, {"errors": ["second"]})

        db.expire_all()
        stored = repo.get_processing_job(run.id)
        assert stored.processed_count == 2
        assert stored.error_count == 1
        assert round(stored.total_cost, 6) == 0.006
        assert stored.errors_json == ["first", "second"]
        assert stored.failed_applicants_json == ["Jane"]


def test_embedding_and_ranking_upserts_overwrite() -> None:
    with SessionLocal() as db:
        repo = Repository(db)
        job = repo.create_job(title="Backend Engineer", external_id="ext-1")
        applicant = repo.upsert_applicant(job_id=job.id, external_id="A1", name="Jane Doe")

        repo.upsert_embedding(namespace="candidate", ref_id=str(applicant.id), vector=[0.1, 0.2], model="m1")
        embedding = repo.upsert_embedding(namespace="candidate", ref_id=str(applicant.id), vector=[0.3], model="m2")
        assert embedding.dimensions == 1
        assert embedding.model == "m2"

        repo.upsert_ranking(job_id=job.id, applicant_id=applicant.id, score=40, explanation="meh", rubric={})
        repo.upsert_ranking(job_id=job.id, applicant_id=applicant.id, score=80, explanation="good", rubric={})
        rankings = repo.list_rankings(job.id)
        assert [(ranking.score, ranking.explanation) for ranking in rankings] == [(80, "good")]
