#!/usr/bin/python3
from pathlib import Path

import click

from mango_deployment.registry import ConflictResolution, merge_registries

EXISTING_REGISTRY = click.Path(dir_okay=False, exists=True, path_type=Path)


@click.command()
@click.argument("first_registry", type=EXISTING_REGISTRY)
@click.argument("second_registry", type=EXISTING_REGISTRY)
@click.option(
    "--output",
    "-o",
    "output_filepath",
    help="Registry file to write the merge to",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
)
@click.option(
    "--exclude",
    "-x",
    "excluded_names",
    help="Registry name left out of the merge, e.g. a retired contract; repeatable",
    multiple=True,
)
@click.option(
    "--keep",
    help="Which registry wins when both publish a name on the same chain; asked per name if unset",
    type=click.Choice(["first", "second"]),
    default=None,
)
def cli(first_registry, second_registry, output_filepath, excluded_names, keep):
    """Merge the Mango registries of two deployments."""
    resolution = None
    if keep:
        resolution = ConflictResolution.USE_1 if keep == "first" else ConflictResolution.USE_2
    merge_registries(
        registry_1_filepath=first_registry,
        registry_2_filepath=second_registry,
        output_filepath=output_filepath,
        deprecated_contracts=list(excluded_names),
        force_conflict_resolution=resolution,
    )


if __name__ == "__main__":
    cli()
