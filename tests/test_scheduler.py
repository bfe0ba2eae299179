from listings_viz import crud, scheduler


def test_backfill_all_scrapers(db, make_snapshot, monkeypatch):
    gfr = make_snapshot(crud.create_run(db, "gfr"), location="Tábor")
    bazos = make_snapshot(crud.create_run(db, "bazos"), location="Praha 10")
    # the job closes the session, detaching these instances
    gfr_id, bazos_id = gfr.id, bazos.id
    monkeypatch.setattr(scheduler, "SessionLocal", lambda: db)

    scheduler.backfill_all_scrapers()

    assert crud.get_snapshot(db, gfr_id).coordinates_lat is not None
    assert crud.get_snapshot(db, bazos_id).coordinates_lat is not None


def test_start_respects_disable_flag(monkeypatch):
    monkeypatch.setenv("BACKFILL_SCHEDULE", "0")
    scheduler.start()
    assert not scheduler.scheduler.running


def test_backfill_job_registered():
    assert scheduler.scheduler.get_job("coordinate-backfill") is not None


def test_env_flag(monkeypatch):
    from listings_viz.utils import env_flag

    monkeypatch.delenv("SOME_FLAG", raising=False)
    assert env_flag("SOME_FLAG", default=True) is True
    monkeypatch.setenv("SOME_FLAG", "yes")
    assert env_flag("SOME_FLAG") is True
    monkeypatch.setenv("SOME_FLAG", "0")
    assert env_flag("SOME_FLAG", default=True) is False
