import random

from dataclasses import dataclass
from enum import Enum
from typing import Optional

colors = [
    "\033[30m",
    "\033[32m",
    "\033[31m",
    "\033[33m",
    "\033[34m",
    "\033[35m",
    "\033[36m",
    "\033[37m",
]  # colors to distinguish nodes in output


class SlotState(Enum):
    IDLE = 0
    TRANSMISSION = 1
    COLLISION = 2


@dataclass()
class Node:
    name: str  # name of the node
    cw_size: int  # current contention window, only ever doubles
    col: str = colors[0]  # color of output
    backoff: Optional[int] = None  # None until drawn from [1, cw_size]
    prev_state: SlotState = SlotState.IDLE  # channel state seen at the previous slot
    succeeded_transmissions: int = 0  # all succeeded transmissions for node
    failed_transmissions: int = 0  # all collided transmissions for node

    def observe(self, state: SlotState, rng: random.Random) -> bool:
        """React to the channel state of the current slot.

        Returns True when the backoff expired in this slot and the node is
        ready to transmit. The counter only moves when the channel was idle
        for the whole previous slot as well.
        """
        if state is SlotState.IDLE:
            if self.prev_state is SlotState.IDLE:
                if self.backoff is None:
                    self.backoff = rng.randint(1, self.cw_size)
                self.backoff -= 1
                return self.backoff == 0

            # channel just became idle, wait one full idle slot
            self.prev_state = SlotState.IDLE
            return False

        # somebody else is on air, freeze the counter till it is over
        self.prev_state = state
        return False

    def sent_completed(self):
        self.backoff = None
        self.succeeded_transmissions += 1

    def sent_failed(self):
        self.backoff = None
        self.cw_size *= 2  # binary exponential backoff
        self.failed_transmissions += 1
