import csv
import os
import time

import click
import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from dcfSimpy.Simulation import (
    RESULT_HEADER,
    Config,
    NonConvergenceError,
    run_simulation,
)

HEATMAPS = [
    ('Efficiency', 'Channel Efficiency (transmission slots / slot)', 'viridis'),
    ('Throughput', 'Throughput (packets / slot)', 'viridis'),
    ('Collision_Probability', 'Collision Probability', 'viridis_r'),
]


def ensure_directory(directory_path):
    """Create directory if it doesn't exist"""
    if not os.path.exists(directory_path):
        os.makedirs(directory_path)
        print(f"Created directory: {directory_path}")


def create_csv_with_header(file_path):
    """Start a fresh CSV file holding only the header row"""
    with open(file_path, 'w', newline='') as csvfile:
        writer = csv.writer(csvfile)
        writer.writerow(RESULT_HEADER)


@click.command()
@click.option("-r", "--runs", default=3, help="Number of simulation runs per configuration")
@click.option("--seed-start", default=1, help="Starting seed for simulation")
@click.option("-p", "--pkt-size", default=10, help="Slots taken by one transmission")
@click.option("-n", "--nodes", "node_counts", multiple=True, type=int, default=[5, 10, 20],
              help="Node count to simulate, repeatable")
@click.option("-w", "--cw", "cw_sizes", multiple=True, type=int, default=[8, 16, 32, 64],
              help="Initial contention window to simulate, repeatable")
@click.option("--output-dir", default="results", help="Directory to save results")
@click.option("--visualize/--no-visualize", default=True, help="Generate heatmaps after simulation")
def run_cw_sweep(runs, seed_start, pkt_size, node_counts, cw_sizes, output_dir, visualize):
    """Run simulations for a matrix of node counts and initial CW sizes."""
    ensure_directory(output_dir)
    output_csv = os.path.join(output_dir, "cw_sweep.csv")
    create_csv_with_header(output_csv)

    total_configs = len(node_counts) * len(cw_sizes) * runs
    config_counter = 0

    for node_count in node_counts:
        for cw_size in cw_sizes:
            print(f"\nRunning configuration: {node_count} nodes, CW {cw_size}, packet {pkt_size} slots")
            config = Config(pkt_size=pkt_size, node_count=node_count, cw_size=cw_size)

            for run in range(runs):
                config_counter += 1
                current_seed = seed_start + run
                progress = (config_counter / total_configs) * 100
                print(f"Progress: {progress:.1f}% - Run {run + 1}/{runs}, Seed {current_seed}")

                start_time = time.time()
                try:
                    result = run_simulation(config, current_seed, csv_output_path=output_csv)
                except NonConvergenceError as e:
                    print(f"Error in simulation: {e}")
                    print("Continuing with next configuration...")
                    continue
                elapsed = time.time() - start_time
                print(f"Converged after {result.slots_used} slots in {elapsed:.2f} seconds, "
                      f"efficiency {result.efficiency:.5f}")

    print("\nAll simulations complete!")

    if visualize:
        print("Generating visualizations...")
        visualize_results(output_csv, output_dir)

    print(f"Results saved to the {output_dir} directory")


def visualize_results(csv_file, output_dir):
    """Generate heatmaps of the seed-averaged metrics, nodes by CW"""
    df = pd.read_csv(csv_file)
    if df.empty:
        print("Nothing to visualize")
        return

    matrix_data = df.groupby(['Nodes', 'CW_Size']).agg({
        'Efficiency': 'mean',
        'Throughput': 'mean',
        'Collision_Probability': 'mean',
    }).reset_index()

    for col_name, title, cmap in HEATMAPS:
        plt.figure(figsize=(8, 6))
        pivot = matrix_data.pivot(index='Nodes', columns='CW_Size', values=col_name)

        ax = sns.heatmap(pivot, annot=True, fmt='.3f', cmap=cmap, cbar_kws={'label': col_name})
        ax.set_title(title)
        ax.set_xlabel('Initial Contention Window')
        ax.set_ylabel('Number of Nodes')

        plt.tight_layout()
        plt.savefig(os.path.join(output_dir, f"{col_name}_heatmap.png"), dpi=300)
        plt.close()


if __name__ == "__main__":
    run_cw_sweep()
