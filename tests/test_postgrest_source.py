"""Tests for the PostgREST source client."""
from __future__ import annotations

import httpx
import pytest

from bteb_results.exceptions import SourceTimeout, SourceUnavailable
from bteb_results.models.source import SourceDescriptor
from bteb_results.sources.postgrest import PostgrestSource

DESCRIPTOR = SourceDescriptor(
    id="primary", kind="postgrest", endpoint="https://demo.supabase.co", credential="anon-key"
)

STUDENT_ROW = {
    "roll_number": 721942,
    "program_name": "Diploma in Engineering",
    "regulation_year": 2022,
    "institute_code": 23091,
    "created_at": "2024-06-01T10:00:00Z",
    "institutes": {"institute_code": 23091, "name": "Dhaka Polytechnic Institute", "district": "Dhaka"},
}


class Recorder:
    """MockTransport handler that serves canned rows per table."""

    def __init__(self, tables: dict[str, object] | None = None, status: int = 200):
        self.tables = tables or {}
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(self.status, json=self.tables.get(table, []))


def source_with(handler) -> PostgrestSource:
    return PostgrestSource(DESCRIPTOR, transport=httpx.MockTransport(handler))


class TestConstruction:
    def test_requires_credential(self):
        descriptor = DESCRIPTOR.model_copy(update={"credential": None})
        with pytest.raises(SourceUnavailable, match="missing credential"):
            PostgrestSource(descriptor)

    @pytest.mark.parametrize("url", ["", "ftp://demo.supabase.co", "demo.supabase.co"])
    def test_rejects_malformed_endpoint(self, url):
        with pytest.raises(SourceUnavailable, match="malformed endpoint"):
            PostgrestSource(DESCRIPTOR.model_copy(update={"endpoint": url}))


class TestQueries:
    @pytest.mark.asyncio
    async def test_find_primary_filters_and_embeds_institute(self):
        recorder = Recorder({"students": [STUDENT_ROW]})
        async with source_with(recorder) as source:
            record = await source.find_primary("Diploma in Engineering", "2022", "721942")

        assert record.roll_number == "721942"
        assert record.regulation_year == "2022"
        assert record.institute.code == "23091"
        assert record.institute.district == "Dhaka"

        request = recorder.requests[0]
        assert request.url.path == "/rest/v1/students"
        params = request.url.params
        assert params["roll_number"] == "eq.721942"
        assert params["regulation_year"] == "eq.2022"
        assert params["program_name"] == "eq.Diploma in Engineering"
        assert params["institutes.program_name"] == "eq.Diploma in Engineering"
        assert "institutes!inner" in params["select"]
        assert params["limit"] == "1"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"

    @pytest.mark.asyncio
    async def test_find_primary_no_rows(self):
        async with source_with(Recorder()) as source:
            assert await source.find_primary("Diploma in Engineering", "2022", "1") is None

    @pytest.mark.asyncio
    async def test_embedded_institute_as_list(self):
        row = {**STUDENT_ROW, "institutes": [STUDENT_ROW["institutes"]]}
        async with source_with(Recorder({"students": [row]})) as source:
            record = await source.find_primary("Diploma in Engineering", "2022", "721942")
        assert record.institute.name == "Dhaka Polytechnic Institute"

    @pytest.mark.asyncio
    async def test_list_grades_ordered_by_semester(self):
        recorder = Recorder({"gpa_records": [
            {"semester": 1, "gpa": 3.5, "is_reference": False, "ref_subjects": None},
            {"semester": 2, "gpa": None, "is_reference": True, "ref_subjects": ["66641"]},
        ]})
        async with source_with(recorder) as source:
            grades = await source.list_grades("721942")

        assert [g.semester for g in grades] == [1, 2]
        assert grades[1].ref_subjects == ["66641"]
        assert recorder.requests[0].url.params["order"] == "semester.asc"

    @pytest.mark.asyncio
    async def test_list_cumulatives_sends_and_applies_limit(self):
        rows = [{"semester": i, "cgpa": 3.0} for i in range(1, 31)]
        recorder = Recorder({"cgpa_records": rows})
        async with source_with(recorder) as source:
            cumulatives = await source.list_cumulatives("721942", limit=20)

        assert len(cumulatives) == 20
        assert recorder.requests[0].url.params["limit"] == "20"

    @pytest.mark.asyncio
    async def test_list_regulations(self):
        recorder = Recorder({"regulations": [{"regulation_year": 2016}, {"regulation_year": "2022"}]})
        async with source_with(recorder) as source:
            assert await source.list_regulations("Diploma in Engineering") == ["2016", "2022"]

    @pytest.mark.asyncio
    async def test_find_institute(self):
        recorder = Recorder({"institutes": [STUDENT_ROW["institutes"]]})
        async with source_with(recorder) as source:
            institute = await source.find_institute("Diploma in Engineering", "2022", "23091")

        assert institute.code == "23091"
        assert recorder.requests[0].url.params["institute_code"] == "eq.23091"


class TestFailures:
    @pytest.mark.asyncio
    async def test_http_error_is_unavailable(self):
        async with source_with(Recorder(status=401)) as source:
            with pytest.raises(SourceUnavailable) as exc:
                await source.find_primary("Diploma in Engineering", "2022", "721942")
        assert exc.value.reason == "students: HTTP 401"

    @pytest.mark.asyncio
    async def test_transport_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with source_with(handler) as source:
            with pytest.raises(SourceTimeout):
                await source.list_grades("721942")

    @pytest.mark.asyncio
    async def test_non_list_body_is_unavailable(self):
        async with source_with(Recorder({"programs": {"message": "hi"}})) as source:
            with pytest.raises(SourceUnavailable, match="row list"):
                await source.ping()

    @pytest.mark.asyncio
    async def test_ping(self):
        recorder = Recorder({"programs": [{"name": "Diploma in Engineering"}]})
        async with source_with(recorder) as source:
            assert await source.ping() is True
        assert recorder.requests[0].url.path == "/rest/v1/programs"
