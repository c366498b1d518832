import httpx
import pytest

from models.result import ErrorCode
from services import bookmark_service

USER = "7d4f3c1e-0000-4000-8000-000000000001"
OCID = "ocds-9t57fa-200002"


def test_add_is_idempotent(store, fake_supabase):
    first = bookmark_service.add_bookmark(store, USER, OCID)
    second = bookmark_service.add_bookmark(store, USER, OCID)

    assert first.is_ok and second.is_ok
    assert first.data["message"] == "Bookmark added"
    assert second.data["message"] == "Tender is already bookmarked"
    assert len(fake_supabase.rows("bookmarks")) == 1


def test_remove_is_idempotent(store, fake_supabase):
    bookmark_service.add_bookmark(store, USER, OCID)

    removed = bookmark_service.remove_bookmark(store, USER, OCID)
    again = bookmark_service.remove_bookmark(store, USER, OCID)

    assert removed.data["message"] == "Bookmark removed"
    assert again.is_ok
    assert again.data["message"] == "Tender was not bookmarked"
    assert fake_supabase.rows("bookmarks") == []


@pytest.mark.parametrize("operation", [
    bookmark_service.add_bookmark,
    bookmark_service.remove_bookmark,
    bookmark_service.is_bookmarked,
])
def test_signed_out_user_is_told_to_sign_in(store, operation):
    result = operation(store, None, OCID)

    assert result.error.code == ErrorCode.NOT_AUTHENTICATED
    assert result.error.message == bookmark_service.NOT_AUTHENTICATED_MESSAGE


def test_invalid_reference(store):
    result = bookmark_service.add_bookmark(store, USER, "  ")

    assert result.error.code == ErrorCode.INVALID_REFERENCE


def test_is_bookmarked(store):
    assert bookmark_service.is_bookmarked(store, USER, OCID).data["isBookmarked"] is False
    bookmark_service.add_bookmark(store, USER, OCID)
    assert bookmark_service.is_bookmarked(store, USER, OCID).data["isBookmarked"] is True


def test_check_retries_with_linear_backoff():
    class FlakyStore:
        def __init__(self):
            self.calls = 0

        def bookmark_exists(self, user_id, ocid):
            self.calls += 1
            if self.calls < 3:
                raise httpx.ReadError("connection reset")
            return True

    flaky = FlakyStore()
    delays = []

    result = bookmark_service.is_bookmarked(flaky, USER, OCID, sleep=delays.append)

    assert result.data["isBookmarked"] is True
    assert flaky.calls == 3
    assert delays == [0.5, 1.0]


def test_check_gives_up_after_max_attempts():
    class DownStore:
        def bookmark_exists(self, user_id, ocid):
            raise httpx.ConnectError("connection refused")

    result = bookmark_service.is_bookmarked(DownStore(), USER, OCID, sleep=lambda s: None)

    assert result.error.code == ErrorCode.CONNECTION


def test_list_paginates(store):
    for i in range(30):
        bookmark_service.add_bookmark(store, USER, f"ocds-{i}")

    first = bookmark_service.list_bookmarks(store, USER, page=1, limit=24)
    second = bookmark_service.list_bookmarks(store, USER, page=2, limit=24)

    assert len(first.data["bookmarks"]) == 24
    assert first.data["hasMore"] is True
    assert len(second.data["bookmarks"]) == 6
    assert second.data["hasMore"] is False


def test_list_rejects_out_of_range_limit(store):
    result = bookmark_service.list_bookmarks(store, USER, limit=500)

    assert result.data["limit"] == bookmark_service.DEFAULT_PAGE_SIZE
