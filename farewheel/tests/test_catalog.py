from datetime import timedelta

from farewheel import db
from farewheel.catalog import Catalog
from farewheel.models import WheelSpinRecord
from farewheel.spin_report import spin_summary
from farewheel.tests.helpers import T0


def test_import_csv(db_path, tmp_path):
    airports = tmp_path / "airports.csv"
    airports.write_text(
        "iata_code,name,city,country_code,latitude,longitude\n"
        "bru,Brussels Airport,Brussels,BE,50.9010,4.4844\n"
        "BCN,El Prat,Barcelona,ES,41.2974,2.0833\n"
    )
    destinations = tmp_path / "destinations.csv"
    destinations.write_text(
        "id,name,primary_airport_iata,estimated_price_eur,is_featured\n"
        "d-bcn,Barcelona,BCN,150,True\n"
        "d-opo,Porto,OPO,,False\n"
    )
    cat = Catalog(db_path)
    assert cat.import_csv(str(airports), str(destinations)) == (2, 2)

    assert cat.get_airport("bru").city == "Brussels"
    assert sorted(a.iata_code for a in cat.active_airports()) == ["BCN", "BRU"]
    wheel = cat.wheel_destinations()
    assert [d.id for d in wheel] == ["d-bcn"]
    assert wheel[0].estimated_price_eur == 150


def test_reimport_overwrites(db_path, tmp_path):
    airports = tmp_path / "airports.csv"
    airports.write_text(
        "iata_code,name,city,country_code,latitude,longitude,is_active\n"
        "BRU,Brussels Airport,Brussels,BE,50.9010,4.4844,False\n"
    )
    cat = Catalog(db_path)
    cat.import_csv(str(airports))
    cat.import_csv(str(airports))
    assert cat.get_airport("BRU") is None
    assert cat.get_airport("BRU", active_only=False).is_active is False


def test_spin_summary(db_path):
    for i, user in enumerate(["u1", None, None]):
        db.insert_wheel_spin(
            WheelSpinRecord(
                id=f"spin-{i}",
                user_id=user,
                origin_airport="BRU",
                destination_ids=["d-bcn"],
                offers_shown_count=2 + i,
                created_at=T0 - timedelta(days=i // 2),
            ),
            db_path,
        )
    db.insert_wheel_spin(
        WheelSpinRecord("old", "u1", "BRU", [], 0, T0 - timedelta(days=30)), db_path
    )

    df = spin_summary(db_path, T0, days=7)
    assert list(df["day"]) == [(T0 - timedelta(days=1)).date(), T0.date()]
    today = df.iloc[1]
    assert today["spins"] == 2
    assert today["anonymous_spins"] == 1
    assert today["avg_offers_shown"] == 2.5


def test_spin_summary_empty(db_path):
    assert spin_summary(db_path, T0).empty
