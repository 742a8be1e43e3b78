"""Shared fixtures: fresh GeoPackage files in a temporary directory."""

import sqlite3
from collections.abc import Generator
from pathlib import Path

import pytest

from geopackage_kit import GeoPackage
from geopackage_kit.metadata import create_metadata_tables, setup_srs
from geopackage_kit.storage import connect


@pytest.fixture
def gpkg_path(tmp_path: Path) -> Path:
    return tmp_path / "test.gpkg"


@pytest.fixture
def bare_conn(gpkg_path: Path) -> Generator[sqlite3.Connection, None, None]:
    """Connection to a file with the metadata tables but no SRS rows"""
    conn = connect(gpkg_path)
    create_metadata_tables(conn)
    yield conn
    conn.close()


@pytest.fixture
def conn(bare_conn: sqlite3.Connection) -> sqlite3.Connection:
    """Connection to an initialized GeoPackage (SRID 3006)"""
    setup_srs(bare_conn, 3006)
    return bare_conn


@pytest.fixture
def gpkg(gpkg_path: Path) -> Generator[GeoPackage, None, None]:
    with GeoPackage(gpkg_path) as gpkg:
        yield gpkg
