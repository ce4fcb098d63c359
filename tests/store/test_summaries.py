"""Tests for persisted run summaries."""


def test_save_and_get(summary_repo):
    summary_id = summary_repo.save({"start": "s", "end": "e", "success": True, "entities": []})
    assert summary_repo.get(summary_id) == {
        "start": "s", "end": "e", "success": True, "entities": [], "id": summary_id,
    }


def test_get_unknown_returns_none(summary_repo):
    assert summary_repo.get(12345) is None


def test_list_newest_first_with_limit(summary_repo):
    ids = [summary_repo.save({"start": str(i), "success": i % 2 == 0}) for i in range(5)]

    listed = summary_repo.list(limit=3)

    assert [s["id"] for s in listed] == list(reversed(ids))[:3]


def test_list_limit_clamped(summary_repo):
    for i in range(3):
        summary_repo.save({"start": str(i), "success": True})
    assert len(summary_repo.list(limit=0)) == 1
    assert len(summary_repo.list(limit=999)) == 3
