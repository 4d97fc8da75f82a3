import logging
import sys
import time

import click

from dcfSimpy.Simulation import (
    Config,
    ConfigurationBoundExceeded,
    NonConvergenceError,
    logger,
    run_simulation,
)


@click.command()
@click.argument("pkt_size", type=int)
@click.argument("node_count", type=int)
@click.argument("cw_size", type=int)
@click.option("--seed", default=None, type=int, help="Seed of the backoff generator (default: current time)")
@click.option("--output", default=None, help="Append the result row to this CSV file")
@click.option("--checkpoints", default=None, help="Append the convergence checkpoints to this CSV file")
@click.option("--debug", is_flag=True, default=False, help="Log every success, collision and checkpoint")
def run_dcf(pkt_size, node_count, cw_size, seed, output, checkpoints, debug):
    """Simulate PKT_SIZE-slot transmissions of NODE_COUNT nodes starting from CW_SIZE.

    Slots used counts the stop slot itself, one more than the stop index.
    """
    if debug:
        logger.setLevel(logging.DEBUG)

    config = Config(pkt_size=pkt_size, node_count=node_count, cw_size=cw_size)
    try:
        config.validate()
    except ConfigurationBoundExceeded as e:
        click.echo("Error taking inputs!")
        logger.error(str(e))
        sys.exit(1)

    if seed is None:
        seed = int(time.time())

    try:
        result = run_simulation(config, seed, csv_output_path=output, checkpoints_path=checkpoints)
    except NonConvergenceError:
        click.echo("Simulation failed to converge. Exiting...")
        sys.exit(1)

    click.echo(f"Idle Slots: {result.idle_slots}")
    click.echo(f"Transmission Slots: {result.transmission_slots}")
    click.echo(f"Collision Slots: {result.collision_slots}")
    click.echo(f"Packets successfully transmitted: {result.packet_count}")
    click.echo(f"Total slots used for simulation: {result.slots_used}")

    click.echo(f"Throughput: {result.throughput:f}")
    click.echo(f" {cw_size} {result.efficiency:f}")


if __name__ == "__main__":
    run_dcf()
