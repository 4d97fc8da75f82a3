import logging
import csv
import os
import random
import simpy

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

from .Backoff import Node, SlotState, colors

logging.basicConfig(format='%(asctime)s %(message)s')
logger = logging.getLogger(__name__)
logger.setLevel(logging.CRITICAL)  # chose DEBUG to display slot events :)

MAX_SLOT_SIZE = 100000  # timeline length, the run has to converge before it
MAX_PKT_SIZE = 100
MAX_NODE_COUNT = 1000
MAX_CW_SIZE = 512

CHECKPOINT_INTERVAL = 1000  # slots between two convergence checks
THRESHOLD = 0.0005  # efficiency delta below which a checkpoint is stable

RESULT_HEADER = [
    "Seed", "Pkt_Size", "Nodes", "CW_Size",
    "Idle_Slots", "Transmission_Slots", "Collision_Slots",
    "Packets", "Slots_Used", "Throughput", "Efficiency",
    "Collision_Probability", "Jains_Fairness",
]


class ConfigurationBoundExceeded(ValueError):
    pass


class NonConvergenceError(Exception):
    def __init__(self, stats: 'SimulationStats'):
        super().__init__(f"no convergence within {stats.slots} slots")
        self.stats = stats


class SlotOutcome(Enum):
    NO_EXPIRY = 0
    SUCCESS = 1
    COLLISION = 2


@dataclass()
class Config:
    pkt_size: int  # slots taken by one transmission or collision
    node_count: int  # number of contending nodes
    cw_size: int  # initial contention window of every node
    slot_limit: int = MAX_SLOT_SIZE  # length of the slot timeline
    checkpoint_interval: int = CHECKPOINT_INTERVAL
    threshold: float = THRESHOLD

    def validate(self):
        bounds = {
            "pkt_size": MAX_PKT_SIZE,
            "node_count": MAX_NODE_COUNT,
            "cw_size": MAX_CW_SIZE,
            "slot_limit": MAX_SLOT_SIZE,
        }
        for name, bound in bounds.items():
            value = getattr(self, name)
            if not 0 < value <= bound:
                raise ConfigurationBoundExceeded(f"{name}={value} not in [1, {bound}]")
        if self.checkpoint_interval <= 0:
            raise ConfigurationBoundExceeded(
                f"checkpoint_interval={self.checkpoint_interval} must be positive")


@dataclass()
class SimulationStats:
    idle_slots: int = 0
    transmission_slots: int = 0
    collision_slots: int = 0
    packet_count: int = 0  # successfully transmitted packets
    slots: int = 0  # slots advanced so far, also the index of the next slot

    def count(self, state: SlotState):
        if state is SlotState.IDLE:
            self.idle_slots += 1
        elif state is SlotState.TRANSMISSION:
            self.transmission_slots += 1
        else:
            self.collision_slots += 1
        self.slots += 1


@dataclass()
class SimulationResult:
    config: Config
    seed: int
    idle_slots: int
    transmission_slots: int
    collision_slots: int
    packet_count: int
    slots_used: int
    throughput: float  # packets per slot
    efficiency: float  # share of slots carrying a successful transmission
    collision_probability: float
    jains_fairness: float
    checkpoints: List[Dict] = field(default_factory=list)

    def as_row(self) -> list:
        return [
            self.seed, self.config.pkt_size, self.config.node_count, self.config.cw_size,
            self.idle_slots, self.transmission_slots, self.collision_slots,
            self.packet_count, self.slots_used, self.throughput, self.efficiency,
            self.collision_probability, self.jains_fairness,
        ]


def log(engine, node: Node, mes: str) -> None:
    logger.info(
        f"{node.col}Slot: {engine.stats.slots} Node: {node.name} Message: {mes}"
    )


class SlotEngine:
    def __init__(self, config: Config, rng: random.Random = None):
        config.validate()
        self.config = config
        self.rng = rng if rng is not None else random.Random()
        self.channel = [SlotState.IDLE] * config.slot_limit  # whole slot timeline
        self.nodes = [
            Node(f"Node {i}", config.cw_size, col=colors[i % len(colors)])
            for i in range(1, config.node_count + 1)
        ]
        self.stats = SimulationStats()
        self.converged = False
        self.checkpoints = []  # convergence history, one entry per checkpoint
        self.prev_efficiency = 0.000001
        self.prev_delta = 1.0

    def step(self) -> SlotOutcome:
        """Advance the channel by one slot.

        Stepping on after convergence is allowed, the counters keep running.
        Raises NonConvergenceError once the slot timeline is used up.
        """
        i = self.stats.slots
        if i >= self.config.slot_limit:
            raise NonConvergenceError(self.stats)
        state = self.channel[i]

        # every node sees the state fixed at slot entry before anything is resolved
        ready = [node for node in self.nodes if node.observe(state, self.rng)]

        if len(ready) == 0:
            outcome = SlotOutcome.NO_EXPIRY
        elif len(ready) == 1:
            self._occupy(i, SlotState.TRANSMISSION)
            ready[0].sent_completed()
            self.stats.packet_count += 1
            log(self, ready[0], "Successfully sent frame")
            outcome = SlotOutcome.SUCCESS
        else:
            self._occupy(i, SlotState.COLLISION)
            for node in ready:
                node.sent_failed()
                log(self, node, f"There was a collision, new CW {node.cw_size}")
            outcome = SlotOutcome.COLLISION

        self.stats.count(self.channel[i])

        if i != 0 and i % self.config.checkpoint_interval == 0:
            self._check_convergence(i)
        return outcome

    def _occupy(self, start: int, state: SlotState):
        end = min(start + self.config.pkt_size, self.config.slot_limit)
        for k in range(start, end):
            self.channel[k] = state

    def _check_convergence(self, i: int):
        efficiency = self.stats.transmission_slots / i
        delta = abs(efficiency - self.prev_efficiency)
        self.checkpoints.append({'slot': i, 'efficiency': efficiency, 'delta': delta})
        logger.debug(f"Checkpoint at slot {i}: efficiency {efficiency:.6f} delta {delta:.6f}")

        if delta < self.config.threshold and self.prev_delta < self.config.threshold:
            self.converged = True
            return

        self.prev_efficiency = efficiency
        self.prev_delta = delta

    def run(self, env: simpy.Environment):
        """Slot clock process, one simulated time unit per slot."""
        while self.stats.slots < self.config.slot_limit:
            self.step()
            if self.converged:
                return self.stats
            yield env.timeout(1)
        raise NonConvergenceError(self.stats)

    def collision_probability(self) -> float:
        failed = sum(node.failed_transmissions for node in self.nodes)
        succeeded = sum(node.succeeded_transmissions for node in self.nodes)
        if failed + succeeded == 0:
            return 0
        return failed / (failed + succeeded)

    def jains_fairness(self) -> float:
        successes = [node.succeeded_transmissions for node in self.nodes]
        sum_squared = sum(s * s for s in successes)
        if sum_squared == 0:
            return 0
        return sum(successes) ** 2 / (len(successes) * sum_squared)

    def result(self, seed: int = None) -> SimulationResult:
        stats = self.stats
        return SimulationResult(
            config=self.config,
            seed=seed,
            idle_slots=stats.idle_slots,
            transmission_slots=stats.transmission_slots,
            collision_slots=stats.collision_slots,
            packet_count=stats.packet_count,
            slots_used=stats.slots,
            throughput=stats.packet_count / stats.slots,
            efficiency=stats.transmission_slots / stats.slots,
            collision_probability=self.collision_probability(),
            jains_fairness=self.jains_fairness(),
            checkpoints=list(self.checkpoints),
        )


def run_simulation(
        config: Config,
        seed: int = None,
        rng: random.Random = None,
        csv_output_path: str = None,
        checkpoints_path: str = None,
) -> SimulationResult:
    """Run one simulation until convergence.

    Raises NonConvergenceError when the slot timeline is exhausted first.
    """
    if rng is None:
        rng = random.Random(seed)
    environment = simpy.Environment()
    engine = SlotEngine(config, rng)

    environment.run(until=environment.process(engine.run(environment)))

    result = engine.result(seed)
    logger.info(
        f"SEED = {seed} N_nodes:={config.node_count} CW = {config.cw_size} PKT = {config.pkt_size} "
        f"pcol:={result.collision_probability:.4f} eff:={result.efficiency:.5f} "
        f"slots:={result.slots_used}"
    )

    if csv_output_path:
        save_result(result, csv_output_path)
    if checkpoints_path:
        save_checkpoints(result, checkpoints_path)
    return result


def save_result(result: SimulationResult, csv_output_path: str):
    write_header = not os.path.isfile(csv_output_path) or os.path.getsize(csv_output_path) == 0

    with open(csv_output_path, mode='a', newline="") as result_file:
        result_adder = csv.writer(result_file, delimiter=',', quotechar='"', quoting=csv.QUOTE_MINIMAL)
        if write_header:
            result_adder.writerow(RESULT_HEADER)
        result_adder.writerow(result.as_row())


def save_checkpoints(result: SimulationResult, checkpoints_path: str):
    with open(checkpoints_path, 'a', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=['seed', 'slot', 'efficiency', 'delta'])
        if f.tell() == 0:
            writer.writeheader()

        for entry in result.checkpoints:
            writer.writerow({'seed': result.seed, **entry})
