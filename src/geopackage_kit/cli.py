"""
Command-line interface for geopackage-kit.

Usage:
    geopackage-kit create <file.gpkg> [--srid SRID] [--wal]
    geopackage-kit info <file.gpkg> [--json]
    geopackage-kit list-layers <file.gpkg>
    geopackage-kit dump <file.gpkg> <layer> [--format FORMAT]
"""

import json
import sys

import click
from shapely.geometry import mapping

from .database import GeoPackage, create_geopackage
from .exceptions import GeoPackageError
from .metadata import DEFAULT_SRID
from .query import ReadOptions


def _open(path: str) -> GeoPackage:
    try:
        return GeoPackage(path, must_exist=True)
    except GeoPackageError as e:
        click.echo(f"Error opening GeoPackage: {e}", err=True)
        sys.exit(1)


def _rows(row_count: int | None) -> str:
    return f"{row_count:,}" if row_count is not None else "-"


@click.group()
@click.version_option(package_name="geopackage-kit")
def main():
    """
    Create and inspect OGC GeoPackage (.gpkg) files.
    """
    pass


@main.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.option(
    "--srid",
    type=int,
    default=DEFAULT_SRID,
    show_default=True,
    envvar="GEOPACKAGE_KIT_SRID",
    help="Spatial reference system to register",
)
@click.option("--wal", is_flag=True, help="Enable write-ahead logging")
def create(path: str, srid: int, wal: bool):
    """
    Create a new, empty GeoPackage.

    An existing file at PATH is replaced.
    """
    try:
        create_geopackage(path, srid=srid, wal_mode=wal, on_status=click.echo)
    except GeoPackageError as e:
        click.echo(f"Error creating GeoPackage: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(path: str, output_json: bool):
    """
    Display information about a GeoPackage file.

    Shows layers, geometry types, extents, columns and spatial reference systems.
    """
    with _open(path) as gpkg:
        gpkg_info = gpkg.info()

    if output_json:
        layers_list: list[dict[str, object]] = []
        for layer in gpkg_info.layers:
            extent = layer.extent
            layers_list.append(
                {
                    "name": layer.table_name,
                    "geometry_column": layer.geometry_column,
                    "geometry_type": layer.geometry_type,
                    "srid": layer.srid,
                    "row_count": layer.row_count,
                    "extent": list(extent) if extent is not None else None,
                    "columns": {c.name: c.type for c in layer.attribute_columns},
                }
            )
        data = {
            "path": path,
            "layers": layers_list,
            "spatial_ref_systems": [
                {"srs_id": srs.srs_id, "srs_name": srs.srs_name}
                for srs in gpkg_info.spatial_ref_systems
            ],
        }
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(f"GeoPackage: {path}")
    click.echo()

    if not gpkg_info.layers:
        click.echo("No layers found.")
    else:
        click.echo("Layers:")
        click.echo("-" * 60)
        for layer in gpkg_info.layers:
            click.echo(f"  {layer.table_name}")
            click.echo(f"    Type: {layer.geometry_type or 'Unknown'}")
            click.echo(f"    Rows: {_rows(layer.row_count)}")
            click.echo(f"    SRID: {layer.srid}")
            if layer.extent is not None:
                e = layer.extent
                click.echo(f"    Extent: {e.min_x}, {e.min_y}, {e.max_x}, {e.max_y}")
            columns = ", ".join(f"{c.name} {c.type}" for c in layer.attribute_columns)
            click.echo(f"    Columns: {columns or '-'}")
            click.echo()

    click.echo("Spatial reference systems:")
    click.echo("-" * 60)
    for srs in gpkg_info.spatial_ref_systems:
        click.echo(f"  {srs.srs_id}: {srs.srs_name}")


@main.command("list-layers")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def list_layers(path: str):
    """
    List all layers in the GeoPackage.

    Simple output suitable for scripting.
    """
    with _open(path) as gpkg:
        for layer in gpkg.info().layers:
            row_count = layer.row_count if layer.row_count is not None else "-"
            click.echo(f"{layer.table_name}\t{layer.geometry_type or '-'}\t{row_count}")


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.argument("layer")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["wkt", "geojson"]),
    default="wkt",
    help="Output format for geometries",
)
@click.option(
    "--limit",
    "-n",
    type=int,
    default=10,
    envvar="GEOPACKAGE_KIT_LIMIT",
    help="Number of features to show (default: 10)",
)
@click.option("--where", "-w", help="SQL WHERE clause")
@click.option("--order-by", "-o", help="SQL ORDER BY clause")
def dump(
    path: str,
    layer: str,
    output_format: str,
    limit: int,
    where: str | None,
    order_by: str | None,
):
    """
    Dump features from a layer.

    Shows geometry and attributes for quick inspection.

    Example:
        geopackage-kit dump cities.gpkg cities -n 5 -o "population DESC"
    """
    with _open(path) as gpkg:
        try:
            target = gpkg.layer(layer)
            features = target.read_all(
                ReadOptions(where=where, order_by=order_by, limit=limit)
            )
        except GeoPackageError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    for i, feature in enumerate(features):
        click.echo(f"--- Feature {i + 1} ---")

        if feature.geometry is not None:
            if output_format == "wkt":
                click.echo(f"Geometry: {feature.geometry.wkt}")
            else:
                click.echo(f"Geometry: {json.dumps(mapping(feature.geometry))}")
        else:
            click.echo("Geometry: None")

        if feature.attributes:
            click.echo("Attributes:")
            for key, value in feature.attributes.items():
                if value is not None:
                    click.echo(f"  {key}: {value}")
        click.echo()


if __name__ == "__main__":
    main()
