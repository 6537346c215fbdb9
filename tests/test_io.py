import json

from behance_jobs.io.dataset import JsonlDataset
from behance_jobs.io.queue import RequestQueue
from behance_jobs.models import FilterSet, Label, WorkItem


def _page(n):
    return WorkItem(url=f"u{n}", label=Label.JSON_LIST, filters=FilterSet(keyword="design"), page_no=n)


def test_jsonl_dataset_appends_one_line_per_item(tmp_path):
    ds = JsonlDataset(tmp_path / "nested" / "out.jsonl")
    assert ds.push([{"id": "1", "title": "Ä"}, {"id": "2"}]) == 2
    assert ds.push([]) == 0
    ds.push([{"id": "3"}])

    lines = (tmp_path / "nested" / "out.jsonl").read_text(encoding="utf-8").splitlines()
    assert [json.loads(l)["id"] for l in lines] == ["1", "2", "3"]
    assert "Ä" in lines[0]
    assert ds.count == 3


def test_queue_is_fifo_and_rejects_duplicates():
    q = RequestQueue()
    assert q.add(_page(1))
    assert q.add(_page(2))
    assert not q.add(WorkItem(url="elsewhere", label=Label.JSON_LIST, filters=FilterSet(keyword="design"), page_no=1))

    first = q.fetch_next()
    assert first.page_no == 1
    assert not q.is_finished()
    q.mark_handled(first)
    q.mark_handled(q.fetch_next())
    assert q.fetch_next() is None
    assert q.is_finished()
    # handled keys stay known
    assert not q.add(_page(1))


def test_in_flight_item_keeps_queue_open():
    q = RequestQueue()
    q.add(_page(1))
    item = q.fetch_next()
    assert q.pending_items() == []
    assert not q.is_finished()
    q.mark_handled(item)
    assert q.is_finished()


def test_journal_resumes_pending_and_skips_handled(tmp_path):
    journal = tmp_path / "queue.jsonl"
    q = RequestQueue(journal)
    for n in (1, 2, 3):
        q.add(_page(n))
    q.mark_handled(q.fetch_next())
    q.fetch_next()  # taken, never marked: handed out again after restart
    with journal.open("a", encoding="utf-8") as f:
        f.write('{"op": "add", "item": \n')

    again = RequestQueue(journal)
    assert [i.page_no for i in again.pending_items()] == [2, 3]
    assert not again.add(_page(1))
    assert again.add(_page(4))
