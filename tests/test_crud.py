from listings_viz import crud
from listings_viz.crud import ChangeFlags, compute_change_flags

URL = "https://www.bazos.cz/inzerat/1/"


def test_insert_and_get_snapshot(db, make_snapshot):
    run = crud.create_run(db, "bazos")
    obj = make_snapshot(run)
    fetched = crud.get_snapshot(db, obj.id)
    assert fetched is not None
    assert fetched.title == "Traktor Zetor"
    assert fetched.scraped_at is not None


def test_latest_and_preceding(db, make_snapshot):
    first_run = crud.create_run(db, "bazos", status="SUCCEEDED")
    second_run = crud.create_run(db, "bazos", status="SUCCEEDED")
    first = make_snapshot(first_run)
    second = make_snapshot(second_run, price=110000)

    assert crud.latest(db, "bazos", URL).id == second.id
    assert crud.preceding(db, second).id == first.id
    assert crud.preceding(db, first) is None
    assert crud.version_count(db, "bazos", URL) == 2


def test_missing_listing_is_empty_result(db):
    assert crud.latest(db, "bazos", "https://nowhere") is None
    assert crud.version_count(db, "bazos", "https://nowhere") == 0
    assert crud.get_snapshot(db, 12345) is None


def test_first_snapshot_has_no_change_flags(db, make_snapshot):
    run = crud.create_run(db, "bazos")
    obj = make_snapshot(run)
    assert crud.change_flags(db, obj) == ChangeFlags()


def test_price_only_change(db, make_snapshot):
    make_snapshot(crud.create_run(db, "bazos"))
    second = make_snapshot(crud.create_run(db, "bazos"), price=99000, views=500)
    flags = crud.change_flags(db, second)
    assert flags.price_changed
    assert not flags.description_changed
    assert not flags.title_changed
    assert not flags.top_status_changed
    assert not flags.views_changed


def test_superseded_runs_are_skipped(db, make_snapshot):
    first = make_snapshot(crud.create_run(db, "bazos", status="SUCCEEDED"))
    failed_run = crud.create_run(db, "bazos")
    make_snapshot(failed_run, title="Rozbitý záznam")
    crud.finish_run(db, failed_run.id, status="FAILED")

    assert crud.latest(db, "bazos", URL).id == first.id
    third = make_snapshot(crud.create_run(db, "bazos"), title="Traktor Zetor 7211")
    assert crud.preceding(db, third).id == first.id
    assert crud.change_flags(db, third).title_changed
    assert crud.version_count(db, "bazos", URL) == 3


def test_compute_change_flags_ignores_missing_values():
    current = {"price": None, "description": "b", "title": "t", "is_top": True}
    previous = {"price": 100, "description": None, "title": "t", "is_top": False}
    flags = compute_change_flags(current, previous)
    assert flags == ChangeFlags(top_status_changed=True)
    assert compute_change_flags(current, None) == ChangeFlags()


def test_set_coordinates_if_unset_never_overwrites(db, make_snapshot):
    run = crud.create_run(db, "gfr")
    obj = make_snapshot(run, location="Kolín")
    other = make_snapshot(run, url="https://gfr.cz/2", location="Kolín")

    assert crud.set_coordinates_if_unset(db, "gfr", "Kolín", 50.0283, 15.1998) == 2
    assert crud.set_coordinates_if_unset(db, "gfr", "Kolín", 1.0, 2.0) == 0
    assert crud.set_coordinates_if_unset(db, "gfr", "Kolín", 3.0, 4.0, url=other.url) == 0

    db.refresh(obj)
    assert (obj.coordinates_lat, obj.coordinates_lng) == (50.0283, 15.1998)


def test_set_coordinates_scoped_to_exact_location_and_source(db, make_snapshot):
    run = crud.create_run(db, "gfr")
    make_snapshot(run, location="Kolín")
    untouched = make_snapshot(run, url="https://gfr.cz/3", location="Kolín 2")
    bazos = make_snapshot(crud.create_run(db, "bazos"), location="Kolín")

    assert crud.set_coordinates_if_unset(db, "gfr", "Kolín", 50.0, 15.0) == 1
    db.refresh(untouched)
    db.refresh(bazos)
    assert untouched.coordinates_lat is None
    assert bazos.coordinates_lat is None


def test_distinct_unresolved_locations(db, make_snapshot):
    run = crud.create_run(db, "gfr")
    make_snapshot(run, url="https://gfr.cz/1", location="Tábor")
    make_snapshot(run, url="https://gfr.cz/2", location="Tábor")
    make_snapshot(run, url="https://gfr.cz/3", location="Brno")
    make_snapshot(run, url="https://gfr.cz/4", location="")
    make_snapshot(run, url="https://gfr.cz/5", location=None)
    make_snapshot(run, url="https://gfr.cz/6", location="Cheb", coordinates_lat=50.0, coordinates_lng=12.3)

    assert crud.distinct_unresolved_locations(db, "gfr") == ["Brno", "Tábor"]
    assert crud.count_missing_coordinates(db, "gfr") == 5
    assert crud.count_missing_coordinates(db, "gfr", empty_location_only=True) == 2
    assert crud.count_listings(db, "gfr") == 6


def test_list_latest_listings_with_change_flags(db, make_snapshot):
    coords = {"coordinates_lat": 50.0283, "coordinates_lng": 15.1998}
    make_snapshot(crud.create_run(db, "bazos"), **coords)
    make_snapshot(crud.create_run(db, "bazos"), price=99000, **coords)
    make_snapshot(crud.create_run(db, "bazos"), url="https://www.bazos.cz/inzerat/2/", is_top=True, **coords)
    make_snapshot(crud.create_run(db, "bazos"), url="https://www.bazos.cz/inzerat/3/")

    items = {item["url"]: item for item in crud.list_latest_listings(db, {"scraper_name": "bazos"})}
    assert set(items) == {URL, "https://www.bazos.cz/inzerat/2/"}

    changed = items[URL]
    assert changed["price"] == 99000
    assert changed["price_changed"] is True
    assert changed["title_changed"] is False
    assert changed["views_changed"] is False
    assert changed["total_versions"] == 2

    fresh = items["https://www.bazos.cz/inzerat/2/"]
    assert fresh["total_versions"] == 1
    assert not any(fresh[flag] for flag in ChangeFlags().as_dict())


def test_list_latest_listings_filters(db, make_snapshot):
    run = crud.create_run(db, "bazos")
    coords = {"coordinates_lat": 49.4, "coordinates_lng": 14.6}
    make_snapshot(run, url="https://a", title="Sekačka", price=5000, category="zahrada", location="Tábor", **coords)
    make_snapshot(run, url="https://b", title="Traktor", price=150000, category="stroje", location="Písek", **coords)
    make_snapshot(run, url="https://c", title="Pluh", price=20000, category="stroje", location=None)

    def urls(**filters):
        return sorted(item["url"] for item in crud.list_latest_listings(db, filters))

    assert urls(category="stroje") == ["https://b"]
    assert urls(price_min=10000) == ["https://b"]
    assert urls(price_max=10000) == ["https://a"]
    assert urls(location="BOR") == ["https://a"]
    assert urls(search="SEKA") == ["https://a"]
    assert urls(category="stroje", with_coordinates=False) == ["https://b", "https://c"]
    assert urls(scraper_name="gfr") == []


def test_listing_history_newest_first(db, make_snapshot):
    make_snapshot(crud.create_run(db, "bazos"), price=1)
    make_snapshot(crud.create_run(db, "bazos"), price=2)
    make_snapshot(crud.create_run(db, "bazos"), price=3)

    history = crud.listing_history(db, "bazos", URL)
    assert [h["price"] for h in history] == [3, 2, 1]
    assert [h["version_number"] for h in history] == [1, 2, 3]
    assert len(crud.listing_history(db, "bazos", URL, limit=2)) == 2


def test_category_counts_and_stats(db, make_snapshot):
    coords = {"coordinates_lat": 50.0, "coordinates_lng": 14.0}
    make_snapshot(crud.create_run(db, "bazos"), url="https://a", category="stroje", price=100, **coords)
    run = crud.create_run(db, "bazos")
    make_snapshot(run, url="https://a", category="stroje", price=300, is_top=True, **coords)
    make_snapshot(run, url="https://b", category="stroje", price=100, **coords)
    make_snapshot(run, url="https://c", category="auto", price=500, **coords)

    assert crud.category_counts(db) == [
        {"category": "stroje", "count": 2},
        {"category": "auto", "count": 1},
    ]
    stats = crud.listing_stats(db)
    assert stats["total_listings"] == 3
    assert stats["total_categories"] == 2
    assert stats["min_price"] == 100
    assert stats["max_price"] == 500
    assert stats["top_listings"] == 1


def test_list_runs_newest_first(db):
    first = crud.create_run(db, "gfr")
    crud.create_run(db, "bazos")
    second = crud.create_run(db, "gfr")

    assert [run.id for run in crud.list_runs(db, "gfr")] == [second.id, first.id]
    assert len(crud.list_runs(db)) == 3
    assert [run.id for run in crud.list_runs(db, "gfr", limit=1)] == [second.id]
    assert crud.get_run(db, 999) is None
