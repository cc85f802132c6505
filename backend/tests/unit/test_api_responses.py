"""Tests for response envelopes and pagination parameters."""

from app.core.pagination import PaginationParams, pagination_params
from app.core.responses import (
    DataResponse,
    ErrorDetail,
    ErrorResponse,
    ListResponse,
    PaginationMeta,
)


class TestPaginationMeta:
    """total_pages rounds up and is 0 for an empty trail."""

    def test_total_pages_rounds_up(self):
        assert PaginationMeta(total=101, page=1, per_page=20).total_pages == 6

    def test_total_pages_exact_division(self):
        assert PaginationMeta(total=100, page=1, per_page=20).total_pages == 5

    def test_total_pages_zero_items(self):
        assert PaginationMeta(total=0, page=1, per_page=20).total_pages == 0


class TestEnvelopes:
    def test_data_response_serializes_with_data_key(self):
        result = DataResponse(data={"status": "accepted"}).model_dump()
        assert result == {"data": {"status": "accepted"}}

    def test_list_response_has_data_and_meta(self):
        response = ListResponse(
            data=[{"action": "quote_viewed"}],
            meta=PaginationMeta(total=1, page=1, per_page=20),
        )
        result = response.model_dump()
        assert result["data"] == [{"action": "quote_viewed"}]
        assert result["meta"]["total"] == 1

    def test_error_response_serializes_with_error_key(self):
        response = ErrorResponse(
            error=ErrorDetail(code="TOKEN_EXPIRED", message="This link has expired.")
        )
        result = response.model_dump()
        assert result["error"]["code"] == "TOKEN_EXPIRED"
        assert result["error"]["details"] is None
        assert "data" not in result


class TestPaginationParams:
    """page/per_page map onto OFFSET/LIMIT."""

    def test_offset_page_one(self):
        assert PaginationParams(page=1, per_page=20).offset == 0

    def test_offset_and_limit(self):
        params = PaginationParams(page=3, per_page=25)
        assert params.offset == 50
        assert params.limit == 25

    def test_dependency_builds_params(self):
        result = pagination_params(page=2, per_page=10)
        assert isinstance(result, PaginationParams)
        assert result.offset == 10
