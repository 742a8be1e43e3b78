"""End-to-end tests: create, load, reopen and query a GeoPackage file."""

from collections.abc import Generator, Iterator
from pathlib import Path

import pytest
from shapely.geometry import Point

from geopackage_kit import (
    BulkInsertOptions,
    BulkProgress,
    Feature,
    GeoPackage,
    ReadOptions,
    get_geopackage_info,
)

FEATURE_COUNT = 2500


def generated_cities(count: int = FEATURE_COUNT) -> Iterator[Feature]:
    for i in range(count):
        yield Feature(
            Point(500_000 + i * 10, 6_500_000 + i * 5),
            {
                "name": f"city_{i:04d}",
                "population": str(i * 100),
                "area": f"{i * 0.5:.1f}",
            },
        )


@pytest.fixture
def loaded(tmp_path: Path) -> Generator[Path, None, None]:
    """A GeoPackage with FEATURE_COUNT generated cities"""
    path = tmp_path / "sweden.gpkg"
    with GeoPackage(path, wal_mode=True) as gpkg:
        layer = gpkg.ensure_layer(
            "cities", {"name": "TEXT", "population": "INTEGER", "area": "REAL"}
        )
        layer.bulk_insert(
            generated_cities(),
            BulkInsertOptions(batch_size=1000, validate_geometry_type=True),
        )
    yield path


class TestWorkflow:
    def test_row_count(self, loaded: Path):
        with GeoPackage(loaded, must_exist=True) as gpkg:
            assert gpkg.layer("cities").count() == FEATURE_COUNT

    def test_info_after_reopen(self, loaded: Path):
        layer = get_geopackage_info(loaded).get_layer("cities")
        assert layer is not None
        assert layer.geometry_type == "POINT"
        assert layer.srid == 3006
        extent = layer.extent
        assert extent is not None
        # 5% of the 24,990 x 12,495 m extent on each side
        assert extent.min_x == pytest.approx(500_000 - 1249.5)
        assert extent.max_x == pytest.approx(524_990 + 1249.5)
        assert extent.min_y == pytest.approx(6_500_000 - 624.75)
        assert extent.max_y == pytest.approx(6_512_495 + 624.75)

    def test_filtered_sorted_limited_read(self, loaded: Path):
        with GeoPackage(loaded, must_exist=True) as gpkg:
            options = ReadOptions(
                where="population > 100000", order_by="population DESC", limit=10
            )
            features = gpkg.layer("cities").read_all(options)

        populations = [int(f["population"]) for f in features]
        assert len(populations) == 10
        assert populations == sorted(populations, reverse=True)
        assert all(p > 100_000 for p in populations)
        assert populations[0] == (FEATURE_COUNT - 1) * 100

    def test_values_round_trip(self, loaded: Path):
        with GeoPackage(loaded, must_exist=True) as gpkg:
            (feature,) = gpkg.layer("cities").read_features(
                ReadOptions(where="name = 'city_0042'")
            )
        assert feature.attributes == {"name": "city_0042", "population": "4200", "area": "21.0"}
        assert feature.geometry.equals(Point(500_420, 6_500_210))

    def test_paging(self, loaded: Path):
        with GeoPackage(loaded, must_exist=True) as gpkg:
            layer = gpkg.layer("cities")
            pages = [
                layer.read_all(ReadOptions(order_by="id", limit=1000, offset=offset))
                for offset in range(0, FEATURE_COUNT, 1000)
            ]
        assert [len(page) for page in pages] == [1000, 1000, 500]
        assert pages[2][-1]["name"] == "city_2499"

    def test_second_load_with_progress(self, loaded: Path):
        reports: list[BulkProgress] = []
        with GeoPackage(loaded, must_exist=True) as gpkg:
            assert gpkg.journal_mode == "wal"
            layer = gpkg.layer("cities")
            layer.bulk_insert(
                generated_cities(250),
                BulkInsertOptions(batch_size=100),
                progress=reports.append,
            )
            assert layer.count() == FEATURE_COUNT + 250
        assert [r.processed for r in reports] == [100, 200, 250]
        assert reports[-1].is_complete
