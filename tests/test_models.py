from behance_jobs.models import FilterSet, Label, Tier, WorkItem


def test_tier_order_is_terminal_on_browser():
    assert Tier.JSON.next() is Tier.HTML
    assert Tier.HTML.next() is Tier.BROWSER
    assert Tier.BROWSER.next() is None


def test_label_escalation_chains():
    assert Label.JSON_LIST.escalation is Label.HTML_LIST
    assert Label.HTML_LIST.escalation is Label.BROWSER_LIST
    assert Label.BROWSER_LIST.escalation is None
    assert Label.JSON_DETAIL.escalation is Label.HTML_DETAIL
    assert Label.HTML_DETAIL.escalation is Label.BROWSER_DETAIL
    assert Label.BROWSER_DETAIL.escalation is None
    assert Label.SITEMAP.escalation is None


def test_filter_key_is_normalised():
    a = FilterSet(keyword="  UX   Design", location="Berlin", job_type="", sort="published_on")
    b = FilterSet(keyword="ux design", location="BERLIN ", job_type="", sort="published_on")
    assert a.key == b.key == "ux design|berlin||published_on"


def test_filter_set_emptiness_ignores_sort():
    assert FilterSet(sort="appreciations").is_empty
    assert not FilterSet(location="Remote").is_empty


def test_unique_key_by_label_filters_and_target():
    f = FilterSet(keyword="design")
    page = WorkItem(url="u1", label=Label.JSON_LIST, filters=f, page_no=2)
    same = WorkItem(url="different-url", label=Label.JSON_LIST, filters=FilterSet(keyword="DESIGN"), page_no=2)
    assert page.unique_key == same.unique_key == "JSON_LIST|design|||published_on|2"
    detail = WorkItem(url="u", label=Label.JSON_DETAIL, filters=f, job_id="9", partial={"title": "T"})
    assert detail.unique_key.endswith("|9")


def test_escalated_keeps_page_and_partial():
    item = WorkItem(url="u", label=Label.JSON_DETAIL, job_id="9", partial={"title": "T"})
    up = item.escalated("https://www.behance.net/joblist/9")
    assert up.label is Label.HTML_DETAIL
    assert up.job_id == "9" and up.partial == {"title": "T"}
    assert up.url == "https://www.behance.net/joblist/9"
    assert WorkItem(url="u", label=Label.BROWSER_DETAIL, job_id="9").escalated("x") is None


def test_work_item_survives_journal_serialisation():
    item = WorkItem(url="u", label=Label.HTML_LIST, filters=FilterSet(location="Remote"), page_no=3)
    again = WorkItem.from_dict(item.to_dict())
    assert again == item
    assert again.unique_key == item.unique_key
