from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

GENERAL_TAG = "GENERAL"
SIMD_TAG = "SIMD"

DEFAULT_RELIABILITY = 0.995
DEFAULT_COOLING_CAP = 3
DEFAULT_REPLACE_RATIO = 0.35
DEFAULT_POWER_DRAW = 4.2
DEFAULT_HEAT_OUTPUT = 1.0
DEFAULT_PURCHASE_COST = 180
ELECTRIC_COOLING_FACTOR = 0.05

DAEMON_OFF = "off"
DAEMON_ASSIST = "assist"
DAEMON_AUTO = "auto"
DAEMON_MODES = (DAEMON_OFF, DAEMON_ASSIST, DAEMON_AUTO)


@dataclass(frozen=True)
class Job:
    id: int
    name: str
    tag: str
    base_time_ms: int
    base_reward: int
    quality_target: int
    data_output: int


@dataclass
class DaemonPenalty:
    quality: int = -5
    time_multiplier: float = 1.10


# Processor status: Idle | Working | BurntOut | Destroyed


@dataclass
class Idle:
    kind = "idle"


@dataclass
class Working:
    job: Job
    remaining_ms: int
    total_ms: int
    daemon_penalty: Optional[DaemonPenalty] = None
    overheating: bool = False

    kind = "working"


@dataclass
class BurntOut:
    kind = "burnt_out"


@dataclass
class Destroyed:
    kind = "destroyed"


ProcessorStatus = Union[Idle, Working, BurntOut, Destroyed]


@dataclass
class ProcessorState:
    name: str
    speed: float = 1.0
    quality_bias: int = 0
    instruction_set: List[str] = field(default_factory=lambda: [GENERAL_TAG])
    upkeep_cost: int = 8
    status: ProcessorStatus = field(default_factory=Idle)

    reliability_base: float = DEFAULT_RELIABILITY
    cooling_required: bool = False
    cooling_level: int = 0
    cooling_cap: int = DEFAULT_COOLING_CAP
    hardening_level: int = 0
    requires_cooling_min: int = 0

    # Wear only accumulates on finite-lifespan hardware.
    finite_lifespan: bool = False
    mttf_ticks: int = 0
    wear: float = 0.0
    fragility: float = 0.0

    replace_cost_ratio: float = DEFAULT_REPLACE_RATIO
    purchase_cost: int = DEFAULT_PURCHASE_COST
    power_draw_base: float = DEFAULT_POWER_DRAW
    power_draw_mod: Dict[str, float] = field(default_factory=dict)  # tag -> load modifier
    heat_output_base: float = DEFAULT_HEAT_OUTPUT

    daemon_mode: str = DAEMON_OFF  # off|assist|auto
    daemon_unlocked: bool = False
    daemon_affinity: Dict[str, float] = field(default_factory=dict)
    daemon_priority: int = 0
    honor_cooling_mins: bool = True
    daemon_penalty: DaemonPenalty = field(default_factory=DaemonPenalty)

    # Last-tick snapshot for display/automation (not persisted)
    last_reliability: float = DEFAULT_RELIABILITY
    last_heat: float = 0.0
    last_power_draw: float = DEFAULT_POWER_DRAW
    last_effective_cooling: int = 0

    @classmethod
    def starter(cls) -> "ProcessorState":
        p = cls(name="Model F12-Scalar")
        p.ensure_runtime_defaults()
        return p

    def ensure_runtime_defaults(self) -> None:
        if self.cooling_cap <= 0:
            self.cooling_cap = DEFAULT_COOLING_CAP
        if self.replace_cost_ratio == 0.0:
            self.replace_cost_ratio = DEFAULT_REPLACE_RATIO
        if self.reliability_base <= 0.0:
            self.reliability_base = DEFAULT_RELIABILITY
        if self.power_draw_base == 0.0:
            self.power_draw_base = DEFAULT_POWER_DRAW
        if self.heat_output_base == 0.0:
            self.heat_output_base = DEFAULT_HEAT_OUTPUT
        if self.purchase_cost <= 0:
            self.purchase_cost = DEFAULT_PURCHASE_COST
        self.last_reliability = self.reliability_base
        self.last_heat = 0.0
        self.last_effective_cooling = self.cooling_level
        self.last_power_draw = self.idle_power_draw()

    def idle_power_draw(self) -> float:
        cooling_factor = 1.0 + ELECTRIC_COOLING_FACTOR * float(self.cooling_level)
        return max(0.0, self.power_draw_base * cooling_factor)

    def is_idle(self) -> bool:
        return isinstance(self.status, Idle)

    def is_functional(self) -> bool:
        return not isinstance(self.status, (BurntOut, Destroyed))

    def supports(self, tag: str) -> bool:
        return tag in self.instruction_set

    def remaining_and_total(self) -> Optional[tuple[int, int]]:
        if isinstance(self.status, Working):
            return self.status.remaining_ms, self.status.total_ms
        return None

    def reliability_display(self) -> float:
        return max(0.0, self.last_reliability)


@dataclass
class DataStorage:
    capacity: int = 120
    stored: int = 0

    def free_capacity(self) -> int:
        return max(0, self.capacity - self.stored)

    def store(self, amount: int) -> int:
        """Absorb up to the free capacity and return how much was kept."""
        to_store = min(max(0, int(amount)), self.free_capacity())
        self.stored += to_store
        return to_store

    def expand(self, extra: int) -> None:
        self.capacity += max(0, int(extra))


@dataclass(frozen=True)
class StoreItem:
    name: str
    description: str
    base_cost: int
    cost_step: int
    action: str
    max_purchases: Optional[int] = None
    tag: str = ""  # only for unlock_instruction_set


@dataclass
class GameState:
    credits: int = 120
    processors: List[ProcessorState] = field(default_factory=lambda: [ProcessorState.starter()])
    jobs: List[Job] = field(default_factory=list)
    storage: DataStorage = field(default_factory=DataStorage)
    daemon_unlocked: bool = False
    daemon_enabled: bool = False
    thermal_paste_timer_ms: int = 0
    job_counter: int = 0
    unlocked_tags: List[str] = field(default_factory=lambda: [GENERAL_TAG])
    store_purchases: List[int] = field(default_factory=list)

    def is_instruction_unlocked(self, tag: str) -> bool:
        return tag in self.unlocked_tags
