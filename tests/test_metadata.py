"""Tests for the GeoPackage metadata registry."""

import sqlite3

import pytest
from shapely.geometry import Point

from geopackage_kit import InvalidColumnType, InvalidIdentifier, InvalidSrid, StorageEngineError
from geopackage_kit import metadata
from geopackage_kit.codec import encode_geometry
from geopackage_kit.metadata import (
    GPKG_APPLICATION_ID,
    compute_extent,
    create_layer,
    get_geometry_column,
    get_info,
    get_layer_geometry_type,
    layer_exists,
    setup_srs,
    srs_exists,
    update_extent,
)


def srids(conn: sqlite3.Connection) -> set[int]:
    return {row[0] for row in conn.execute("SELECT srs_id FROM gpkg_spatial_ref_sys")}


def table_names(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    return {row[0] for row in rows}


class TestMetadataTables:
    def test_tables_created(self, bare_conn: sqlite3.Connection):
        assert {
            "gpkg_spatial_ref_sys",
            "gpkg_contents",
            "gpkg_geometry_columns",
        } <= table_names(bare_conn)

    def test_application_id(self, bare_conn: sqlite3.Connection):
        (application_id,) = bare_conn.execute("PRAGMA application_id").fetchone()
        assert application_id == GPKG_APPLICATION_ID

    def test_not_idempotent(self, bare_conn: sqlite3.Connection):
        with pytest.raises(StorageEngineError, match="already exists"):
            metadata.create_metadata_tables(bare_conn)


class TestSetupSrs:
    def test_sweref99_brings_wgs84(self, bare_conn: sqlite3.Connection):
        setup_srs(bare_conn, 3006)
        assert srids(bare_conn) == {-1, 0, 3006, 4326}

    def test_wgs84_only(self, bare_conn: sqlite3.Connection):
        setup_srs(bare_conn, 4326)
        assert srids(bare_conn) == {-1, 0, 4326}

    @pytest.mark.parametrize("srid", [-1, 0])
    def test_undefined(self, bare_conn: sqlite3.Connection, srid: int):
        setup_srs(bare_conn, srid)
        assert srids(bare_conn) == {-1, 0}

    def test_unknown_srid_gets_placeholder(self, bare_conn: sqlite3.Connection):
        setup_srs(bare_conn, 32633)
        row = bare_conn.execute(
            "SELECT srs_name, organization, organization_coordsys_id, definition "
            "FROM gpkg_spatial_ref_sys WHERE srs_id = 32633"
        ).fetchone()
        assert tuple(row) == ("EPSG:32633", "EPSG", 32633, "undefined")

    def test_resolve_crs_with_pyproj(self, bare_conn: sqlite3.Connection):
        setup_srs(bare_conn, 32633, resolve_crs=True)
        row = bare_conn.execute(
            "SELECT srs_name, definition FROM gpkg_spatial_ref_sys WHERE srs_id = 32633"
        ).fetchone()
        assert "UTM zone 33N" in row[0]
        assert row[1].startswith("PROJCS")

    def test_idempotent(self, bare_conn: sqlite3.Connection):
        setup_srs(bare_conn, 3006)
        setup_srs(bare_conn, 3006)
        (count,) = bare_conn.execute("SELECT COUNT(*) FROM gpkg_spatial_ref_sys").fetchone()
        assert count == 4

    def test_builtin_definitions(self, bare_conn: sqlite3.Connection):
        setup_srs(bare_conn, 3006)
        (definition,) = bare_conn.execute(
            "SELECT definition FROM gpkg_spatial_ref_sys WHERE srs_id = 3006"
        ).fetchone()
        assert definition.startswith('PROJCS["SWEREF99 TM"')

    def test_invalid_srid(self, bare_conn: sqlite3.Connection):
        with pytest.raises(InvalidSrid):
            setup_srs(bare_conn, -5)
        assert srids(bare_conn) == set()

    def test_srs_exists(self, conn: sqlite3.Connection):
        assert srs_exists(conn, 3006)
        assert not srs_exists(conn, 32633)


class TestCreateLayer:
    def test_creates_table_and_registry_rows(self, conn: sqlite3.Connection):
        create_layer(conn, "cities", {"name": "TEXT", "population": "INTEGER"})

        columns = [row[1] for row in conn.execute("PRAGMA table_info(cities)")]
        assert columns == ["id", "name", "population", "geom"]

        contents = conn.execute(
            "SELECT data_type, identifier, srs_id, min_x, min_y, max_x, max_y "
            "FROM gpkg_contents WHERE table_name = 'cities'"
        ).fetchone()
        assert tuple(contents) == ("features", "cities", 3006, None, None, None, None)

        geometry_columns = conn.execute(
            "SELECT column_name, geometry_type_name, srs_id, z, m "
            "FROM gpkg_geometry_columns WHERE table_name = 'cities'"
        ).fetchone()
        assert tuple(geometry_columns) == ("geom", "POINT", 3006, 0, 0)

    def test_geometry_type_is_normalized(self, conn: sqlite3.Connection):
        create_layer(conn, "roads", {}, geometry_type="linestring", geometry_column="shape")
        assert get_layer_geometry_type(conn, "roads") == "LINESTRING"
        assert get_geometry_column(conn, "roads") == "shape"

    def test_registers_missing_srs(self, conn: sqlite3.Connection):
        create_layer(conn, "utm", {"name": "TEXT"}, srid=32633)
        assert srs_exists(conn, 32633)

    def test_constraints(self, conn: sqlite3.Connection):
        create_layer(conn, "cities", {"name": "TEXT"}, constraints={"name": "UNIQUE"})
        conn.execute("INSERT INTO cities (name) VALUES ('Lund')")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO cities (name) VALUES ('Lund')")

    def test_sized_column_type(self, conn: sqlite3.Connection):
        create_layer(conn, "cities", {"code": "VARCHAR(10)"})
        types = {row[1]: row[2] for row in conn.execute("PRAGMA table_info(cities)")}
        assert types["code"] == "VARCHAR(10)"

    @pytest.mark.parametrize(
        "table,columns,geometry_column",
        [
            ("1cities", {"name": "TEXT"}, "geom"),
            ("cities", {"select": "TEXT"}, "geom"),
            ("cities", {"name": "TEXT"}, "geo-m"),
        ],
    )
    def test_invalid_identifiers(
        self, conn: sqlite3.Connection, table: str, columns: dict, geometry_column: str
    ):
        with pytest.raises(InvalidIdentifier):
            create_layer(conn, table, columns, geometry_column=geometry_column)
        assert conn.execute("SELECT COUNT(*) FROM gpkg_contents").fetchone()[0] == 0

    def test_invalid_column_type(self, conn: sqlite3.Connection):
        with pytest.raises(InvalidColumnType):
            create_layer(conn, "cities", {"name": "TEXT); DROP TABLE gpkg_contents; --"})
        assert "gpkg_contents" in table_names(conn)

    def test_unknown_geometry_type(self, conn: sqlite3.Connection):
        with pytest.raises(ValueError, match="Unknown geometry type"):
            create_layer(conn, "cities", {}, geometry_type="CIRCLE")

    def test_duplicate_layer(self, conn: sqlite3.Connection):
        create_layer(conn, "cities", {"name": "TEXT"})
        with pytest.raises(StorageEngineError):
            create_layer(conn, "cities", {"name": "TEXT"})
        assert conn.execute("SELECT COUNT(*) FROM gpkg_contents").fetchone()[0] == 1
        assert not conn.in_transaction

    def test_registration_failure_rolls_back_table(
        self, conn: sqlite3.Connection, monkeypatch: pytest.MonkeyPatch
    ):
        def fail(*args, **kwargs):
            raise RuntimeError("registry write failed")

        monkeypatch.setattr(metadata, "register_layer", fail)
        with pytest.raises(RuntimeError, match="registry write failed"):
            create_layer(conn, "cities", {"name": "TEXT"})

        assert "cities" not in table_names(conn)
        assert not layer_exists(conn, "cities")
        assert not conn.in_transaction


class TestRegistryQueries:
    def test_layer_exists(self, conn: sqlite3.Connection):
        assert not layer_exists(conn, "cities")
        create_layer(conn, "cities", {"name": "TEXT"})
        assert layer_exists(conn, "cities")

    def test_missing_layer(self, conn: sqlite3.Connection):
        assert get_layer_geometry_type(conn, "nothing") is None
        assert get_geometry_column(conn, "nothing") is None

    def test_get_info(self, conn: sqlite3.Connection):
        create_layer(conn, "roads", {"name": "TEXT"}, geometry_type="LINESTRING")
        create_layer(conn, "cities", {"name": "TEXT", "population": "INTEGER"}, srid=4326)

        info = get_info(conn)
        assert [layer.table_name for layer in info.layers] == ["cities", "roads"]
        assert set(info.srids) == {-1, 0, 3006, 4326}

        cities = info.get_layer("cities")
        assert cities is not None
        assert cities.data_type == "features"
        assert cities.srid == 4326
        assert cities.geometry_type == "POINT"
        assert cities.geometry_column == "geom"
        assert [c.name for c in cities.columns] == ["id", "name", "population", "geom"]
        assert [c.name for c in cities.attribute_columns] == ["name", "population"]
        assert cities.extent is None
        assert info.get_layer("lakes") is None

    def test_get_info_row_count(self, conn: sqlite3.Connection):
        create_layer(conn, "cities", {"name": "TEXT"})
        conn.execute("INSERT INTO cities (name) VALUES ('Lund'), ('Ystad')")
        assert get_info(conn).layers[0].row_count == 2

    def test_get_info_table_name_from_other_writers(self, conn: sqlite3.Connection):
        conn.execute(
            'CREATE TABLE "my-roads" (id INTEGER PRIMARY KEY, geom BLOB, "road name" TEXT)'
        )
        conn.execute(
            "INSERT INTO gpkg_contents (table_name, data_type, srs_id) "
            "VALUES ('my-roads', 'features', 3006)"
        )
        conn.execute(
            "INSERT INTO gpkg_geometry_columns "
            "VALUES ('my-roads', 'geom', 'LINESTRING', 3006, 0, 0)"
        )
        conn.execute("INSERT INTO \"my-roads\" (\"road name\") VALUES ('E22')")

        roads = get_info(conn).get_layer("my-roads")
        assert roads is not None
        assert roads.geometry_type == "LINESTRING"
        assert [c.name for c in roads.attribute_columns] == ["road name"]
        assert roads.row_count == 1

    def test_get_info_registered_table_missing(self, conn: sqlite3.Connection):
        conn.execute(
            "INSERT INTO gpkg_contents (table_name, data_type, srs_id) "
            "VALUES ('gone', 'features', 3006)"
        )
        gone = get_info(conn).get_layer("gone")
        assert gone is not None
        assert gone.columns == []
        assert gone.row_count is None

    def test_get_info_empty(self, conn: sqlite3.Connection):
        info = get_info(conn)
        assert info.layers == []
        assert len(info.spatial_ref_systems) == 4


class TestExtent:
    def insert(self, conn: sqlite3.Connection, blob: bytes | None) -> None:
        conn.execute("INSERT INTO cities (name, geom) VALUES ('x', ?)", (blob,))

    def test_single_point_gets_minimum_buffer(self, conn: sqlite3.Connection):
        create_layer(conn, "cities", {"name": "TEXT"})
        self.insert(conn, encode_geometry(Point(10, 10), 3006))

        extent = update_extent(conn, "cities")
        assert tuple(extent) == (-90, -90, 110, 110)

        row = conn.execute(
            "SELECT min_x, min_y, max_x, max_y FROM gpkg_contents WHERE table_name = 'cities'"
        ).fetchone()
        assert tuple(row) == (-90, -90, 110, 110)
        assert get_info(conn).get_layer("cities").extent == extent

    def test_percent_buffer(self, conn: sqlite3.Connection):
        create_layer(conn, "cities", {"name": "TEXT"})
        self.insert(conn, encode_geometry(Point(0, 0), 3006))
        self.insert(conn, encode_geometry(Point(10_000, 20_000), 3006))
        assert tuple(update_extent(conn, "cities")) == (-500, -1000, 10_500, 21_000)

    def test_custom_buffer_percent(self, conn: sqlite3.Connection):
        create_layer(conn, "cities", {"name": "TEXT"})
        self.insert(conn, encode_geometry(Point(0, 0), 3006))
        self.insert(conn, encode_geometry(Point(10_000, 10_000), 3006))
        assert tuple(update_extent(conn, "cities", buffer_percent=10)) == (
            -1000,
            -1000,
            11_000,
            11_000,
        )

    def test_no_geometries(self, conn: sqlite3.Connection):
        create_layer(conn, "cities", {"name": "TEXT"})
        self.insert(conn, None)
        assert update_extent(conn, "cities") is None
        assert get_info(conn).get_layer("cities").extent is None

    def test_skips_malformed_geometries(self, conn: sqlite3.Connection):
        create_layer(conn, "cities", {"name": "TEXT"})
        self.insert(conn, b"XX")
        self.insert(conn, b"GP\x00\x00\x00\x00\x00\x00\xff\xff")
        self.insert(conn, encode_geometry(Point(5, 5), 3006))
        assert tuple(compute_extent(conn, "cities")) == (5, 5, 5, 5)

    def test_updates_last_change(self, conn: sqlite3.Connection):
        create_layer(conn, "cities", {"name": "TEXT"})
        conn.execute(
            "UPDATE gpkg_contents SET last_change = '2000-01-01T00:00:00.000Z' "
            "WHERE table_name = 'cities'"
        )
        self.insert(conn, encode_geometry(Point(1, 1), 3006))
        update_extent(conn, "cities")
        (last_change,) = conn.execute(
            "SELECT last_change FROM gpkg_contents WHERE table_name = 'cities'"
        ).fetchone()
        assert last_change > "2000-01-01T00:00:00.000Z"
